"""Domain exception to HTTP status mapping"""

import logging

from fastapi import HTTPException

from tanda_engine.domain.exceptions import (
    AlreadyParticipantError,
    DepositFailedError,
    DomainException,
    InsufficientFundsError,
    InvalidTransitionError,
    LedgerError,
    TandaFullError,
    TandaNotFoundError,
    TandaNotJoinableError,
    UserBlockedError,
    WalletNotConfiguredError,
)

logger = logging.getLogger(__name__)

# Checked in order; subclasses before their parents
STATUS_CODES = [
    (TandaNotFoundError, 404),
    (TandaFullError, 409),
    (TandaNotJoinableError, 409),
    (AlreadyParticipantError, 409),
    (InvalidTransitionError, 409),
    (UserBlockedError, 403),
    (InsufficientFundsError, 402),
    (DepositFailedError, 402),
    (LedgerError, 503),
    (WalletNotConfiguredError, 503),
]


def to_http_error(exc: DomainException, request_id: str, detail=None) -> HTTPException:
    status_code = next((code for cls, code in STATUS_CODES if isinstance(exc, cls)), 500)
    log = logger.error if status_code >= 500 else logger.warning
    log(f"{type(exc).__name__}: {exc}", extra={"request_id": request_id, "status": status_code})
    return HTTPException(status_code=status_code, detail=detail if detail is not None else str(exc))

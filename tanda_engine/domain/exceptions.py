"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class LedgerError(DomainException):
    """Ledger API returned an error or is unavailable"""

    def __init__(self, message: str, code: str | None = None, status_code: int | None = None):
        super().__init__(message)
        self.code = code
        self.status_code = status_code


class TandaNotFoundError(DomainException):
    """Tanda is unknown to both the local cache and the Ledger"""

    pass


class TandaFullError(DomainException):
    """Tanda already has max_participants members"""

    pass


class TandaNotJoinableError(DomainException):
    """Tanda no longer accepts participants"""

    pass


class AlreadyParticipantError(DomainException):
    """Wallet is already a member of the tanda"""

    pass


class UserBlockedError(DomainException):
    """Reputation is below the participation threshold"""

    pass


class WalletNotConfiguredError(DomainException):
    """No wallet address is configured for this device"""

    pass


class DepositFailedError(DomainException):
    """Contribution could not be made; eligible for automatic retry"""

    pass


class InsufficientFundsError(DepositFailedError):
    """Wallet balance does not cover the contribution"""

    pass


class TransferError(DepositFailedError):
    """Transfer or its confirmation failed"""

    pass


class InvalidTransitionError(DomainException):
    """A failed-deposit record transition violated the state machine"""

    pass

"""Retry and expulsion strategies injected into the retry scheduler"""

import logging
from typing import Protocol

from tanda_engine.domain.exceptions import DepositFailedError, LedgerError
from tanda_engine.domain.models import FailedDepositRecord
from tanda_engine.domain.scoring import ScoreEvent
from tanda_engine.infrastructure.clients.ledger import Ledger
from tanda_engine.infrastructure.clients.notifications import NotificationScheduler
from tanda_engine.infrastructure.observability.logging import log_expulsion
from tanda_engine.infrastructure.observability.metrics import record_expulsion
from tanda_engine.services.deposits import DepositExecutor
from tanda_engine.services.registry import FailedDepositRegistry
from tanda_engine.services.reputation import ReputationService
from tanda_engine.services.tanda_cache import TandaCache

logger = logging.getLogger(__name__)


class RetryStrategy(Protocol):
    async def attempt_retry(self, record: FailedDepositRecord) -> bool: ...


class ExpulsionStrategy(Protocol):
    async def expel(self, record: FailedDepositRecord) -> None: ...


class DepositRetryStrategy:
    """Re-runs the deposit for records owned by this device's wallet"""

    def __init__(self, executor: DepositExecutor, wallet_address: str):
        self.executor = executor
        self.wallet_address = wallet_address

    async def attempt_retry(self, record: FailedDepositRecord) -> bool:
        if record.wallet_address != self.wallet_address:
            # Only the owner's device can sign the transfer
            return False

        try:
            await self.executor.execute(record.tanda_id, record.wallet_address)
        except (DepositFailedError, LedgerError) as e:
            logger.info(f"Deposit retry failed: {e}", extra={"deposit_id": str(record.key)})
            return False
        return True


class LedgerExpulsionStrategy:
    """
    Expels a participant whose contribution failed permanently.

    1. Apply the non-payment penalty if the wallet belongs to this device
    2. Ask the Ledger to remove the participant (best-effort)
    3. Cancel reminder notifications for the tanda
    4. Cancel every other active retry of the wallet in that tanda
    5. Drop the participant from the cached tanda
    """

    def __init__(
        self,
        ledger: Ledger,
        reputation: ReputationService,
        notifications: NotificationScheduler,
        registry: FailedDepositRegistry,
        cache: TandaCache,
        wallet_address: str,
    ):
        self.ledger = ledger
        self.reputation = reputation
        self.notifications = notifications
        self.registry = registry
        self.cache = cache
        self.wallet_address = wallet_address

    async def expel(self, record: FailedDepositRecord) -> None:
        if record.wallet_address == self.wallet_address:
            self.reputation.apply(record.wallet_address, ScoreEvent.EXPELLED_FOR_NONPAYMENT)

        ledger_notified = True
        try:
            updated = await self.ledger.leave_tanda(record.tanda_id, record.wallet_address)
            self.cache.upsert(updated)
        except LedgerError as e:
            ledger_notified = False
            logger.warning(f"Ledger removal failed, expelling locally: {e}", extra={"tanda_id": record.tanda_id})

        await self.notifications.cancel_all(record.tanda_id)
        await self.registry.cancel_retries(record.tanda_id, record.wallet_address)
        self.cache.remove_participant(record.tanda_id, record.wallet_address)

        record_expulsion(ledger_notified)
        log_expulsion(str(record.key), record.tanda_id, record.wallet_address, ledger_notified)

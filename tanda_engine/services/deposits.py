"""Deposit executor - one contribution attempt: transfer, then Ledger confirmation"""

import logging

from tanda_engine.domain.exceptions import LedgerError, TransferError
from tanda_engine.domain.models import Tanda
from tanda_engine.domain.scoring import ScoreEvent
from tanda_engine.infrastructure.clients.ledger import Ledger
from tanda_engine.infrastructure.clients.notifications import NotificationScheduler
from tanda_engine.infrastructure.clients.wallet import FundsTransfer
from tanda_engine.services.reputation import ReputationService
from tanda_engine.services.tanda_cache import TandaCache

logger = logging.getLogger(__name__)


class DepositExecutor:
    """Shared by user-initiated deposits and automatic retries"""

    def __init__(
        self,
        ledger: Ledger,
        transfer: FundsTransfer,
        cache: TandaCache,
        reputation: ReputationService,
        notifications: NotificationScheduler,
    ):
        self.ledger = ledger
        self.transfer = transfer
        self.cache = cache
        self.reputation = reputation
        self.notifications = notifications

    async def execute(self, tanda_id: str, wallet_address: str) -> Tanda:
        """
        Contribute the cycle amount for wallet_address.

        Flow:
        1. Fetch the tanda from the Ledger (custody account, current amount)
        2. Transfer the contribution to the custody account
        3. Confirm the deposit with the Ledger using the transfer proof
        4. Refresh the cache, score the deposit, cancel pending reminders

        Raises:
            InsufficientFundsError, TransferError: Contribution not made (retryable)
            LedgerError: Tanda could not be fetched; nothing was transferred
        """
        tanda = await self.ledger.get_tanda(tanda_id)
        if not tanda.storage_account:
            raise TransferError(f"Tanda {tanda_id} has no custody account configured")

        proof = await self.transfer.transfer(tanda, tanda.amount)

        try:
            confirmed = await self.ledger.confirm_deposit(tanda_id, wallet_address, proof)
        except LedgerError as e:
            # Funds may have moved; a later confirmation resolves the record
            raise TransferError(f"Transfer {proof} sent but confirmation failed: {e}") from e

        self.cache.upsert(confirmed)
        self.reputation.apply(wallet_address, ScoreEvent.DEPOSIT)
        await self.notifications.cancel_all(tanda_id)

        logger.info(
            "Deposit confirmed",
            extra={"tanda_id": tanda_id, "wallet_address": wallet_address, "proof": proof},
        )
        return confirmed

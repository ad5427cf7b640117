"""Tanda orchestrator - composes policy, cache, retries and the Ledger into user operations"""

import asyncio
import logging
from dataclasses import replace
from datetime import timedelta
from decimal import Decimal
from typing import List, Optional, Set

from tanda_engine.config import Settings, settings as default_settings
from tanda_engine.domain.advancement import evaluate_cycle
from tanda_engine.domain.exceptions import (
    AlreadyParticipantError,
    DepositFailedError,
    DomainException,
    LedgerError,
    TandaFullError,
    TandaNotFoundError,
    TandaNotJoinableError,
    UserBlockedError,
    WalletNotConfiguredError,
)
from tanda_engine.domain.models import (
    LOCAL_ID_PREFIX,
    AdvanceDecision,
    DepositKey,
    NextPaymentInfo,
    Participant,
    PaymentScheduleItem,
    RetryInfo,
    RetryStats,
    Tanda,
    TandaStatus,
    UserReputation,
)
from tanda_engine.domain.schedule import build_payment_schedule, next_payment, reminder_times
from tanda_engine.domain.scoring import ScoreEvent
from tanda_engine.infrastructure.clients.ledger import Ledger
from tanda_engine.infrastructure.clients.notifications import NotificationScheduler
from tanda_engine.infrastructure.clock import Clock
from tanda_engine.infrastructure.observability.logging import log_advance
from tanda_engine.infrastructure.observability.metrics import record_advance_decision
from tanda_engine.services.deposits import DepositExecutor
from tanda_engine.services.registry import FailedDepositRegistry
from tanda_engine.services.reputation import ReputationService
from tanda_engine.services.retry_scheduler import RetryScheduler
from tanda_engine.services.sync import TandaSyncService
from tanda_engine.services.tanda_cache import TandaCache

logger = logging.getLogger(__name__)

ADVANCE_ACTIONS = (AdvanceDecision.PAYOUT_READY, AdvanceDecision.DELINQUENTS_PRESENT)


class TandaOrchestrator:
    """User-facing tanda operations for the wallet that owns this device"""

    def __init__(
        self,
        ledger: Ledger,
        cache: TandaCache,
        sync: TandaSyncService,
        reputation: ReputationService,
        executor: DepositExecutor,
        registry: FailedDepositRegistry,
        scheduler: RetryScheduler,
        notifications: NotificationScheduler,
        clock: Clock,
        config: Settings | None = None,
    ):
        self.ledger = ledger
        self.cache = cache
        self.sync = sync
        self.reputation = reputation
        self.executor = executor
        self.registry = registry
        self.scheduler = scheduler
        self.notifications = notifications
        self.clock = clock
        self.config = config or default_settings
        self._background: Set[asyncio.Task] = set()

    @property
    def wallet_address(self) -> str:
        if not self.config.wallet_address:
            raise WalletNotConfiguredError("Wallet not initialized")
        return self.config.wallet_address

    @property
    def delinquency_window(self) -> timedelta:
        return timedelta(milliseconds=self.config.delinquency_window_ms)

    # ---- loading -------------------------------------------------------

    async def load_tandas(self) -> List[Tanda]:
        """
        Local-first load.

        Returns the cached list right away and starts a background sync
        whose result replaces the cache when it arrives. Reminders are
        scheduled for active tandas the user takes part in.
        """
        tandas = self.cache.all()

        if self.config.wallet_address:
            for tanda in self.cache.active():
                if tanda.status == TandaStatus.ACTIVE and tanda.find_participant(self.config.wallet_address):
                    await self.schedule_payment_reminders(tanda.id)

        self._spawn(self.sync.refresh())
        return tandas

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background_done)
        return task

    def _background_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning(f"Background task failed: {task.exception()}")

    async def wait_for_background(self) -> None:
        """Wait for in-flight background syncs (shutdown and tests)"""
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

    def get_tanda(self, tanda_id: str) -> Tanda:
        tanda = self.cache.get(tanda_id)
        if tanda is None:
            raise TandaNotFoundError(f"Tanda {tanda_id} not found")
        return tanda

    async def refresh_tanda(self, tanda_id: str) -> Optional[Tanda]:
        """Pull one tanda from the Ledger; keeps the cached copy if the Ledger is unreachable"""
        try:
            tanda = await self.ledger.get_tanda(tanda_id)
        except LedgerError as e:
            logger.warning(f"Tanda refresh failed: {e}", extra={"tanda_id": tanda_id})
            return self.cache.get(tanda_id)
        self.cache.upsert(tanda)
        return tanda

    # ---- membership ----------------------------------------------------

    def _ensure_not_blocked(self, wallet_address: str) -> None:
        if self.reputation.is_blocked(wallet_address):
            raise UserBlockedError("Reputation too low to take part in tandas")

    async def create_tanda(self, amount: Decimal, max_participants: int, name: str = "") -> Tanda:
        """
        Create a tanda through the Ledger.

        When the Ledger is unreachable the tanda is created locally with a
        `local_` id in waiting status; the next successful sync keeps it
        until the Ledger knows about it.
        """
        wallet = self.wallet_address
        self._ensure_not_blocked(wallet)
        now = self.clock.now()

        try:
            tanda = await self.ledger.create_tanda(
                name=name or f"Tanda {int(now.timestamp() * 1000)}",
                amount=amount,
                max_participants=max_participants,
                creator_wallet=wallet,
            )
        except LedgerError as e:
            logger.warning(f"Ledger unavailable, creating tanda locally: {e}")
            tanda = Tanda(
                id=f"{LOCAL_ID_PREFIX}{int(now.timestamp() * 1000)}",
                name=name,
                creator=wallet,
                amount=amount,
                max_participants=max_participants,
                participants=[
                    Participant(wallet_address=wallet, joined_at=now, score=self.reputation.get(wallet).score)
                ],
                current_cycle=0,
                total_cycles=max_participants,
                status=TandaStatus.WAITING,
                created_at=now,
            )

        self.cache.upsert(tanda)
        self.reputation.apply(wallet, ScoreEvent.CREATE_TANDA)
        logger.info("Tanda created", extra={"tanda_id": tanda.id, "provisional": tanda.is_provisional})
        return tanda

    async def join_tanda(self, tanda_id: str) -> Tanda:
        wallet = self.wallet_address
        self._ensure_not_blocked(wallet)

        try:
            tanda = await self.ledger.join_tanda(tanda_id, wallet)
        except LedgerError as e:
            logger.warning(f"Ledger unavailable, joining locally: {e}", extra={"tanda_id": tanda_id})
            tanda = self._join_locally(tanda_id, wallet)

        self.cache.upsert(tanda)
        self.reputation.apply(wallet, ScoreEvent.CREATE_TANDA)
        if tanda.status == TandaStatus.ACTIVE:
            await self.schedule_payment_reminders(tanda_id)
        return tanda

    def _join_locally(self, tanda_id: str, wallet: str) -> Tanda:
        tanda = self.cache.get(tanda_id)
        if tanda is None:
            raise TandaNotFoundError(f"Tanda {tanda_id} not found")
        if tanda.is_full:
            raise TandaFullError("Tanda is full")
        if tanda.status != TandaStatus.WAITING:
            raise TandaNotJoinableError("Tanda no longer accepts participants")
        if tanda.find_participant(wallet):
            raise AlreadyParticipantError("Already a participant of this tanda")

        participant = Participant(
            wallet_address=wallet,
            joined_at=self.clock.now(),
            score=self.reputation.get(wallet).score,
        )
        return replace(tanda, participants=[*tanda.participants, participant])

    async def leave_tanda(self, tanda_id: str) -> Optional[Tanda]:
        wallet = self.wallet_address
        try:
            tanda = await self.ledger.leave_tanda(tanda_id, wallet)
            self.cache.upsert(tanda)
        except LedgerError as e:
            logger.warning(f"Ledger unavailable, leaving locally: {e}", extra={"tanda_id": tanda_id})
            tanda = self.cache.remove_participant(tanda_id, wallet)

        await self.registry.cancel_retries(tanda_id, wallet)
        await self.notifications.cancel_all(tanda_id)
        return tanda

    # ---- contributions -------------------------------------------------

    async def deposit(self, tanda_id: str) -> Tanda:
        """
        Contribute to the current cycle.

        A failed contribution is registered for automatic retry and the
        error is re-raised for the caller. A confirmed one resolves the
        retry record of the cycle the Ledger confirmed, and of the cached
        cycle when the two differ.
        """
        wallet = self.wallet_address
        cached = self.cache.get(tanda_id) or await self.refresh_tanda(tanda_id)
        if cached is None:
            raise TandaNotFoundError(f"Tanda {tanda_id} not found")
        key = DepositKey(tanda_id, wallet, cached.current_cycle)

        try:
            tanda = await self.executor.execute(tanda_id, wallet)
        except DepositFailedError as e:
            await self.scheduler.register_failure(key, cached.amount, str(e))
            raise

        confirmed_key = DepositKey(tanda_id, wallet, tanda.current_cycle)
        await self.registry.mark_as_resolved(confirmed_key)
        if confirmed_key != key:
            await self.registry.mark_as_resolved(key)
        return tanda

    async def retry_failed_deposit(self, tanda_id: str) -> bool:
        """Manual retry of this cycle's failed contribution"""
        tanda = self.cache.get(tanda_id)
        if tanda is None:
            return False
        return await self.scheduler.force_retry(DepositKey(tanda_id, self.wallet_address, tanda.current_cycle))

    def get_failed_deposit_info(self, tanda_id: str) -> Optional[RetryInfo]:
        tanda = self.cache.get(tanda_id)
        if tanda is None:
            return None
        return self.registry.retry_info(DepositKey(tanda_id, self.wallet_address, tanda.current_cycle))

    # ---- cycle ---------------------------------------------------------

    async def advance(self, tanda_id: str) -> tuple[AdvanceDecision, Tanda]:
        """
        Ask the Ledger to advance the cycle when the policy says it can.

        The Ledger performs the payout or the expulsion itself; the client
        only decides whether calling it makes sense right now.
        """
        tanda = await self.ledger.get_tanda(tanda_id)
        decision = evaluate_cycle(tanda, self.clock.now(), self.delinquency_window)
        record_advance_decision(decision.value)

        forwarded = decision in ADVANCE_ACTIONS
        if forwarded:
            tanda = await self.ledger.advance(tanda_id)

        log_advance(tanda_id, decision.value, forwarded)
        previous = self.cache.get(tanda_id)
        self.cache.upsert(tanda)

        wallet = self.config.wallet_address
        just_completed = tanda.status == TandaStatus.COMPLETED and (
            previous is None or previous.status != TandaStatus.COMPLETED
        )
        if just_completed and wallet and tanda.find_participant(wallet):
            self.reputation.apply(wallet, ScoreEvent.COMPLETE_TANDA)

        return decision, tanda

    # ---- schedule ------------------------------------------------------

    def get_payment_schedule(self, tanda_id: str) -> List[PaymentScheduleItem]:
        return build_payment_schedule(self.get_tanda(tanda_id), self.delinquency_window)

    def get_next_payment(self, tanda_id: str) -> Optional[NextPaymentInfo]:
        return next_payment(self.get_tanda(tanda_id), self.wallet_address, self.clock.now(), self.delinquency_window)

    async def schedule_payment_reminders(self, tanda_id: str) -> int:
        """
        Schedule reminders for the next contribution: 3 days before, 1 day
        before and the morning of the due day. Existing reminders for the
        tanda are replaced; nothing is scheduled once the user has paid.
        """
        tanda = self.cache.get(tanda_id)
        if tanda is None or tanda.status != TandaStatus.ACTIVE:
            return 0

        await self.notifications.cancel_all(tanda_id)
        payment = next_payment(tanda, self.wallet_address, self.clock.now(), self.delinquency_window)
        if payment is None:
            return 0

        scheduled = 0
        for kind, at in reminder_times(payment.due_at, self.clock.now()):
            try:
                await self.notifications.schedule(
                    tanda_id,
                    at,
                    {
                        "type": kind,
                        "cycle": payment.cycle,
                        "tanda_name": tanda.name or f"Tanda {tanda_id[:8]}",
                        "amount": str(payment.amount),
                    },
                )
                scheduled += 1
            except DomainException as e:
                logger.warning(f"Reminder scheduling failed: {e}", extra={"tanda_id": tanda_id, "type": kind})
        return scheduled

    # ---- reputation ----------------------------------------------------

    def get_reputation(self) -> UserReputation:
        return self.reputation.get(self.wallet_address)

    def get_retry_stats(self) -> RetryStats:
        return self.registry.stats()

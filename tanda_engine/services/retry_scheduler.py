"""Retry scheduler - drives failed deposits through retry, resolution or expulsion"""

import asyncio
import contextlib
import itertools
import logging
from dataclasses import dataclass, replace
from datetime import timedelta
from decimal import Decimal
from typing import Optional

from tanda_engine.config import Settings, settings as default_settings
from tanda_engine.domain.models import DepositKey, FailedDepositRecord, FailedDepositStatus
from tanda_engine.infrastructure.clock import Clock
from tanda_engine.infrastructure.observability.logging import log_retry_outcome
from tanda_engine.infrastructure.observability.metrics import record_retry_outcome
from tanda_engine.services.registry import FailedDepositRegistry
from tanda_engine.services.strategies import ExpulsionStrategy, RetryStrategy

logger = logging.getLogger(__name__)

_ticket_ids = itertools.count(1)


@dataclass
class SchedulerTicket:
    """Handle returned by `start`; hand it back to `stop`"""

    id: int
    task: asyncio.Task


class RetryScheduler:
    """
    Periodic processor for failed deposits.

    State machine per record:
    - pending_retry -> retrying (attempt_count + 1) before each attempt
    - retrying -> resolved when the retry strategy succeeds
    - retrying -> pending_retry (next_retry_at = now + retry interval) on failure
    - retrying -> failed_permanent once attempt_count reaches max_attempts,
      then failed_permanent -> user_expelled after the expulsion strategy ran

    Records due in a tick are processed one after another, never in
    parallel, so two attempts can never move the same wallet's funds at
    once. Manual retries share the same path and lose the compare-and-set
    race instead of double-triggering.
    """

    def __init__(
        self,
        registry: FailedDepositRegistry,
        retry_strategy: RetryStrategy,
        expulsion_strategy: ExpulsionStrategy,
        clock: Clock,
        config: Settings | None = None,
    ):
        self.registry = registry
        self.retry_strategy = retry_strategy
        self.expulsion_strategy = expulsion_strategy
        self.clock = clock
        self.config = config or default_settings
        self._ticket: Optional[SchedulerTicket] = None
        self._current_tick: Optional[asyncio.Future] = None
        self._expelling: set[DepositKey] = set()

    @property
    def tick_interval(self) -> timedelta:
        return timedelta(milliseconds=self.config.scheduler_tick_interval_ms)

    @property
    def running(self) -> bool:
        return self._ticket is not None

    # ---- lifecycle -----------------------------------------------------

    def start(self) -> SchedulerTicket:
        """Start ticking: once immediately, then every tick interval"""
        if self._ticket is not None:
            raise RuntimeError("Retry scheduler already running")
        task = asyncio.create_task(self._run(), name="tanda-retry-scheduler")
        self._ticket = SchedulerTicket(id=next(_ticket_ids), task=task)
        logger.info("Retry scheduler started", extra={"interval_ms": self.config.scheduler_tick_interval_ms})
        return self._ticket

    async def stop(self, ticket: SchedulerTicket) -> None:
        """Stop ticking; a tick already in flight is allowed to finish"""
        if self._ticket is None or ticket.id != self._ticket.id:
            return
        self._ticket = None
        ticket.task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await ticket.task
        if self._current_tick is not None and not self._current_tick.done():
            await self._current_tick
        logger.info("Retry scheduler stopped")

    async def _run(self) -> None:
        while True:
            self._current_tick = asyncio.ensure_future(self._safe_tick())
            await asyncio.shield(self._current_tick)
            await self.clock.after(self.tick_interval)

    async def _safe_tick(self) -> None:
        try:
            await self.tick()
        except Exception:
            logger.exception("Retry scheduler tick failed")

    # ---- processing ----------------------------------------------------

    async def tick(self) -> int:
        """
        Process every due record sequentially; returns how many were attempted.

        failed_permanent records whose expulsion never ran (the process
        stopped in between) are expelled first.
        """
        for record in self.registry.awaiting_expulsion():
            await self._handle_permanent_failure(record)

        due = self.registry.due()
        if due:
            logger.info("Processing pending retries", extra={"count": len(due)})

        attempted = 0
        for record in due:
            if await self._process(record.key) is not None:
                attempted += 1
        return attempted

    async def force_retry(self, key: DepositKey) -> bool:
        """
        Retry now, outside the tick (e.g. the user topped up).

        Only a pending_retry record can be forced; while another attempt is
        in flight this returns False without touching the record.
        """
        logger.info("Forcing deposit retry", extra={"deposit_id": str(key)})
        return await self._process(key) == FailedDepositStatus.RESOLVED

    async def register_failure(self, key: DepositKey, amount: Decimal, error_message: str) -> FailedDepositRecord:
        """Register a failed contribution; expels right away when attempts are exhausted"""
        record = await self.registry.register_failure(key, amount, error_message)
        if record.status == FailedDepositStatus.FAILED_PERMANENT:
            await self._handle_permanent_failure(record)
        return self.registry.get(key)

    async def _process(self, key: DepositKey) -> Optional[FailedDepositStatus]:
        started_at = self.clock.now()
        claimed = await self.registry.transition(
            key,
            FailedDepositStatus.PENDING_RETRY,
            lambda r: replace(
                r,
                status=FailedDepositStatus.RETRYING,
                attempt_count=r.attempt_count + 1,
                last_attempt_at=started_at,
            ),
        )
        if not claimed:
            logger.info("Retry skipped, record not pending", extra={"deposit_id": str(key)})
            return None

        record = self.registry.get(key)
        success, error = await self._attempt(record)

        if success:
            outcome = FailedDepositStatus.RESOLVED
            changes = {"status": outcome}
        elif record.attempt_count >= self.config.max_attempts:
            outcome = FailedDepositStatus.FAILED_PERMANENT
            changes = {"status": outcome, "error_message": error}
        else:
            outcome = FailedDepositStatus.PENDING_RETRY
            changes = {
                "status": outcome,
                "error_message": error,
                "next_retry_at": self.clock.now() + self.registry.retry_interval,
            }

        if not await self.registry.transition(key, FailedDepositStatus.RETRYING, lambda r: replace(r, **changes)):
            # Resolved by a confirmation or cancelled while the attempt was in flight
            current = self.registry.get(key)
            logger.info(
                "Retry outcome discarded",
                extra={"deposit_id": str(key), "status": current.status.value if current else None},
            )
            return current.status if current else None

        record_retry_outcome(outcome.value)
        log_retry_outcome(str(key), record.attempt_count, outcome.value, error)

        if outcome == FailedDepositStatus.FAILED_PERMANENT:
            await self._handle_permanent_failure(self.registry.get(key))
            current = self.registry.get(key)
            return current.status if current else outcome
        return outcome

    async def _attempt(self, record: FailedDepositRecord) -> tuple[bool, str]:
        try:
            success = await asyncio.wait_for(
                self.retry_strategy.attempt_retry(record),
                timeout=self.config.retry_attempt_timeout_seconds,
            )
        except asyncio.TimeoutError:
            record_retry_outcome("timeout")
            return False, f"Retry timed out after {self.config.retry_attempt_timeout_seconds}s"
        except Exception as e:
            logger.warning(f"Retry attempt raised: {e}", extra={"deposit_id": str(record.key)})
            return False, str(e) or "Retry failed"

        return bool(success), "" if success else record.error_message

    async def _handle_permanent_failure(self, record: FailedDepositRecord) -> None:
        """
        Run the expulsion once; the record then becomes user_expelled.

        `expulsion_attempted` is only persisted once the strategy returned or
        raised, so a process stopping mid-expulsion leaves the record for the
        next tick to pick up.
        """
        key = record.key
        current = self.registry.get(key)
        if key in self._expelling or current is None or current.expulsion_attempted:
            return
        if current.status != FailedDepositStatus.FAILED_PERMANENT:
            return

        self._expelling.add(key)
        try:
            logger.warning("Max attempts reached, expelling", extra={"deposit_id": str(key)})
            try:
                await self.expulsion_strategy.expel(current)
            except Exception:
                # Stays failed_permanent: terminal, never retried or expelled again
                logger.exception("Expulsion failed", extra={"deposit_id": str(key)})
                await self.registry.transition(
                    key,
                    FailedDepositStatus.FAILED_PERMANENT,
                    lambda r: replace(r, expulsion_attempted=True),
                )
                return

            await self.registry.transition(
                key,
                FailedDepositStatus.FAILED_PERMANENT,
                lambda r: replace(r, status=FailedDepositStatus.USER_EXPELLED, expulsion_attempted=True),
            )
        finally:
            self._expelling.discard(key)

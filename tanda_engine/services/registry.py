"""Failed deposit registry - durable retry records with a compare-and-set transition primitive"""

import asyncio
import logging
from dataclasses import replace
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, Dict, Iterable, List, Optional

from tanda_engine.config import Settings, settings as default_settings
from tanda_engine.domain.exceptions import InvalidTransitionError
from tanda_engine.domain.models import (
    DepositKey,
    FailedDepositRecord,
    FailedDepositStatus,
    RetryInfo,
    RetryStats,
)
from tanda_engine.domain.schedule import retry_days_remaining
from tanda_engine.domain.scoring import SCORE_DELTAS, ScoreEvent
from tanda_engine.infrastructure.clock import Clock
from tanda_engine.infrastructure.database.repositories import FailedDepositRepository
from tanda_engine.infrastructure.observability.metrics import failed_deposit_counter, pending_retries_gauge

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = (FailedDepositStatus.PENDING_RETRY, FailedDepositStatus.RETRYING)
CLEANUP_STATUSES = (FailedDepositStatus.RESOLVED, FailedDepositStatus.USER_EXPELLED)

StateUpdate = Callable[[FailedDepositRecord], FailedDepositRecord]


class FailedDepositRegistry:
    """
    Index of failed deposit records over a PersistentStore.

    Every mutation goes through `transition`, which re-checks the record's
    status under a per-key lock before applying the new state. That keeps a
    single active transition per (tanda, wallet, cycle), whether it comes
    from the scheduler, a manual retry, a confirmation or a cancellation.
    Readers get copies; the stored records are never handed out.
    """

    def __init__(self, repository: FailedDepositRepository, clock: Clock, config: Settings | None = None):
        self.repository = repository
        self.clock = clock
        self.config = config or default_settings
        self._records: Dict[DepositKey, FailedDepositRecord] = {}
        self._locks: Dict[DepositKey, asyncio.Lock] = {}

    def load(self) -> None:
        """
        Load records from the store.

        A record left in `retrying` means the process stopped mid-attempt.
        The interrupted attempt is not counted: the record goes back to
        `pending_retry`, due immediately. If that attempt was the last one
        allowed, the record is `failed_permanent` instead and waits for the
        scheduler to expel (see `awaiting_expulsion`).
        """
        now = self.clock.now()
        self._records = {}
        for record in self.repository.load():
            if record.status == FailedDepositStatus.RETRYING:
                record = self._recover(record, now)
            self._records[record.key] = record
        self._persist()
        logger.info(
            "Failed deposit registry loaded",
            extra={"pending": len(self.all_pending()), "awaiting_expulsion": len(self.awaiting_expulsion())},
        )

    def _recover(self, record: FailedDepositRecord, now: datetime) -> FailedDepositRecord:
        if record.attempt_count >= self.config.max_attempts:
            logger.warning("Interrupted final retry, moving to failed_permanent", extra={"deposit_id": str(record.key)})
            return replace(record, status=FailedDepositStatus.FAILED_PERMANENT, attempt_count=self.config.max_attempts)
        return replace(
            record,
            status=FailedDepositStatus.PENDING_RETRY,
            attempt_count=max(1, record.attempt_count - 1),
            next_retry_at=now,
        )

    def _persist(self) -> None:
        self.repository.save(list(self._records.values()))
        pending_retries_gauge.set(len(self.all_pending()))

    def lock_for(self, key: DepositKey) -> asyncio.Lock:
        if key not in self._locks:
            self._locks[key] = asyncio.Lock()
        return self._locks[key]

    @property
    def retry_interval(self) -> timedelta:
        return timedelta(milliseconds=self.config.retry_interval_ms)

    @property
    def grace_period(self) -> timedelta:
        return timedelta(milliseconds=self.config.grace_period_ms)

    # ---- queries -------------------------------------------------------

    def get(self, key: DepositKey) -> Optional[FailedDepositRecord]:
        record = self._records.get(key)
        return replace(record) if record else None

    def _select(self, predicate: Callable[[FailedDepositRecord], bool]) -> List[FailedDepositRecord]:
        return [replace(r) for r in self._records.values() if predicate(r)]

    def all_pending(self) -> List[FailedDepositRecord]:
        return self._select(lambda r: r.status == FailedDepositStatus.PENDING_RETRY)

    def pending_for_wallet(self, wallet_address: str) -> List[FailedDepositRecord]:
        return self._select(
            lambda r: r.wallet_address == wallet_address and r.status == FailedDepositStatus.PENDING_RETRY
        )

    def due(self) -> List[FailedDepositRecord]:
        """Pending records whose next retry time has come, oldest first"""
        now = self.clock.now()
        due = self._select(lambda r: r.status == FailedDepositStatus.PENDING_RETRY and r.next_retry_at <= now)
        return sorted(due, key=lambda r: r.next_retry_at)

    def awaiting_expulsion(self) -> List[FailedDepositRecord]:
        """failed_permanent records whose expulsion never ran (e.g. the process stopped first)"""
        return self._select(lambda r: r.status == FailedDepositStatus.FAILED_PERMANENT and not r.expulsion_attempted)

    def has_pending(self, key: DepositKey) -> bool:
        record = self._records.get(key)
        return record is not None and record.status == FailedDepositStatus.PENDING_RETRY

    def retry_info(self, key: DepositKey) -> Optional[RetryInfo]:
        """What the user is told about a failed contribution"""
        record = self._records.get(key)
        if record is None or record.status == FailedDepositStatus.RESOLVED:
            return None

        window = timedelta(milliseconds=self.config.delinquency_window_ms)
        active = not record.status.is_terminal
        penalty = 0 if active else SCORE_DELTAS[ScoreEvent.EXPELLED_FOR_NONPAYMENT]
        return RetryInfo(
            status=record.status,
            attempt_count=record.attempt_count,
            max_attempts=self.config.max_attempts,
            next_retry_at=record.next_retry_at if active else None,
            days_remaining=retry_days_remaining(record, self.clock.now(), window) if active else 0,
            error_message=record.error_message,
            score_penalty=penalty,
        )

    def stats(self) -> RetryStats:
        records = list(self._records.values())
        return RetryStats(
            total=len(records),
            pending=sum(1 for r in records if r.status in ACTIVE_STATUSES),
            resolved=sum(1 for r in records if r.status == FailedDepositStatus.RESOLVED),
            failed=sum(1 for r in records if r.status == FailedDepositStatus.FAILED_PERMANENT),
            expelled=sum(1 for r in records if r.status == FailedDepositStatus.USER_EXPELLED),
        )

    # ---- transitions ---------------------------------------------------

    async def transition(
        self,
        key: DepositKey,
        expected: FailedDepositStatus | Iterable[FailedDepositStatus],
        new_state: StateUpdate,
    ) -> bool:
        """
        Compare-and-set on a record's status.

        Applies `new_state` only if the record exists and its status is one
        of `expected` at the moment the key lock is held. Returns whether the
        transition was applied.
        """
        expected_statuses = {expected} if isinstance(expected, FailedDepositStatus) else set(expected)
        async with self.lock_for(key):
            record = self._records.get(key)
            if record is None or record.status not in expected_statuses:
                return False
            updated = new_state(replace(record))
            if updated.key != key:
                raise InvalidTransitionError(f"Transition changed record identity {key} -> {updated.key}")
            self._records[key] = updated
            self._persist()
            return True

    async def register_failure(self, key: DepositKey, amount: Decimal, error_message: str) -> FailedDepositRecord:
        """
        Record a failed contribution.

        - No active record: create one in pending_retry, first retry after
          the grace period.
        - Existing pending_retry record: count the attempt and push the next
          retry by the retry interval; reaching max_attempts moves it to
          failed_permanent (the caller runs the expulsion).
        - A retry in flight owns the record; the failure is only logged.
        """
        now = self.clock.now()
        async with self.lock_for(key):
            existing = self._records.get(key)

            if existing is not None and existing.status == FailedDepositStatus.RETRYING:
                logger.warning("Failure reported while a retry is in flight", extra={"deposit_id": str(key)})
                return replace(existing)

            if existing is not None and existing.status == FailedDepositStatus.PENDING_RETRY:
                attempt_count = existing.attempt_count + 1
                status = (
                    FailedDepositStatus.FAILED_PERMANENT
                    if attempt_count >= self.config.max_attempts
                    else FailedDepositStatus.PENDING_RETRY
                )
                record = replace(
                    existing,
                    attempt_count=attempt_count,
                    last_attempt_at=now,
                    error_message=error_message,
                    next_retry_at=now + self.retry_interval,
                    status=status,
                )
            else:
                record = FailedDepositRecord(
                    tanda_id=key.tanda_id,
                    wallet_address=key.wallet_address,
                    cycle=key.cycle,
                    amount=amount,
                    first_failed_at=now,
                    last_attempt_at=now,
                    next_retry_at=now + self.grace_period,
                    attempt_count=1,
                    error_message=error_message,
                )
                failed_deposit_counter.inc()

            self._records[key] = record
            self._persist()

        logger.info(
            "Failed deposit registered",
            extra={
                "deposit_id": str(key),
                "attempt_count": record.attempt_count,
                "status": record.status.value,
                "next_retry_at": record.next_retry_at.isoformat(),
            },
        )
        return replace(record)

    async def mark_as_resolved(self, key: DepositKey) -> bool:
        """A confirmed deposit is authoritative: stop retrying whatever is in flight"""
        now = self.clock.now()
        resolved = await self.transition(
            key,
            ACTIVE_STATUSES,
            lambda r: replace(r, status=FailedDepositStatus.RESOLVED, last_attempt_at=now),
        )
        if resolved:
            logger.info("Failed deposit resolved", extra={"deposit_id": str(key)})
        return resolved

    async def cancel_retries(self, tanda_id: str, wallet_address: str) -> int:
        """Close every active record of a wallet in a tanda, whatever the cycle"""
        now = self.clock.now()
        keys = [
            r.key
            for r in self._records.values()
            if r.tanda_id == tanda_id and r.wallet_address == wallet_address and r.status in ACTIVE_STATUSES
        ]
        cancelled = 0
        for key in keys:
            if await self.transition(
                key,
                ACTIVE_STATUSES,
                lambda r: replace(r, status=FailedDepositStatus.USER_EXPELLED, last_attempt_at=now),
            ):
                cancelled += 1

        if cancelled:
            logger.info(
                "Pending retries cancelled",
                extra={"tanda_id": tanda_id, "wallet_address": wallet_address, "count": cancelled},
            )
        return cancelled

    def cleanup(self) -> int:
        """Drop resolved/expelled records whose last activity is older than the retention window"""
        cutoff = self.clock.now() - timedelta(days=self.config.cleanup_max_age_days)
        stale = [
            key
            for key, r in self._records.items()
            if r.status in CLEANUP_STATUSES and r.last_attempt_at < cutoff and not self.lock_for(key).locked()
        ]
        for key in stale:
            del self._records[key]
            self._locks.pop(key, None)

        if stale:
            self._persist()
            logger.info("Old failed deposit records cleaned up", extra={"count": len(stale)})
        return len(stale)

"""Payment schedule projections derived from a tanda snapshot and the current time"""

import math
from datetime import datetime, time, timedelta
from typing import List, Optional

from tanda_engine.domain.advancement import DEFAULT_DELINQUENCY_WINDOW, delinquency_deadline
from tanda_engine.domain.models import (
    FailedDepositRecord,
    NextPaymentInfo,
    PaymentScheduleItem,
    Tanda,
    TandaStatus,
)

ONE_DAY = timedelta(days=1)
REMINDER_OFFSETS = {
    "reminder_3d": timedelta(days=3),
    "reminder_1d": timedelta(days=1),
}
DUE_DAY_REMINDER_TIME = time(9, 0)


def days_until(deadline: datetime, now: datetime) -> int:
    """Whole days left until deadline, rounded up, never negative"""
    remaining = (deadline - now) / ONE_DAY
    return max(0, math.ceil(remaining))


def build_payment_schedule(
    tanda: Tanda,
    delinquency_window: timedelta = DEFAULT_DELINQUENCY_WINDOW,
) -> List[PaymentScheduleItem]:
    """
    One item per slot of the beneficiary rotation.

    Cycles are 1-based: slots before current_cycle are completed, the
    current one is pending (and carries the delinquency deadline as its due
    date), later ones are upcoming. There is no fixed calendar for future
    cycles because a payout happens as soon as everyone has deposited.
    """
    schedule = []
    for index in range(len(tanda.beneficiary_order)):
        cycle = index + 1
        if cycle < tanda.current_cycle:
            status = "completed"
        elif cycle == tanda.current_cycle:
            status = "pending"
        else:
            status = "upcoming"

        due_at = None
        if status == "pending" and tanda.status == TandaStatus.ACTIVE:
            due_at = delinquency_deadline(tanda, delinquency_window)

        schedule.append(
            PaymentScheduleItem(
                cycle=cycle,
                beneficiary=tanda.beneficiary_for_cycle(cycle),
                status=status,
                due_at=due_at,
            )
        )
    return schedule


def next_payment(
    tanda: Tanda,
    wallet_address: str,
    now: datetime,
    delinquency_window: timedelta = DEFAULT_DELINQUENCY_WINDOW,
) -> Optional[NextPaymentInfo]:
    """Contribution still owed by wallet_address in the running cycle, if any"""
    if tanda.status != TandaStatus.ACTIVE:
        return None

    participant = tanda.find_participant(wallet_address)
    if participant is None or participant.has_deposited:
        return None

    due_at = delinquency_deadline(tanda, delinquency_window)
    return NextPaymentInfo(
        cycle=tanda.current_cycle,
        due_at=due_at,
        amount=tanda.amount,
        beneficiary=tanda.beneficiary_for_cycle(tanda.current_cycle),
        days_remaining=days_until(due_at, now),
        is_overdue=now >= due_at,
    )


def reminder_times(due_at: datetime, now: datetime) -> List[tuple[str, datetime]]:
    """
    Reminder slots for a due date: 3 days before, 1 day before and the
    morning of the due day. Slots already in the past are dropped.
    """
    slots = [(kind, due_at - offset) for kind, offset in REMINDER_OFFSETS.items()]
    due_morning = datetime.combine(due_at.date(), DUE_DAY_REMINDER_TIME, tzinfo=due_at.tzinfo)
    slots.append(("reminder_due", due_morning))
    return [(kind, at) for kind, at in slots if at > now]


def retry_days_remaining(
    record: FailedDepositRecord,
    now: datetime,
    delinquency_window: timedelta = DEFAULT_DELINQUENCY_WINDOW,
) -> int:
    """Days left before a failed contribution turns into delinquency"""
    return days_until(record.first_failed_at + delinquency_window, now)

"""Cycle advancement policy - decides whether a tanda can pay out or expel delinquents"""

from datetime import datetime, timedelta

from tanda_engine.domain.models import AdvanceDecision, Tanda, TandaStatus

DEFAULT_DELINQUENCY_WINDOW = timedelta(days=6)


def delinquency_deadline(tanda: Tanda, window: timedelta = DEFAULT_DELINQUENCY_WINDOW) -> datetime:
    """Moment after which non-depositing members count as delinquent"""
    return tanda.last_payout_at + window


def evaluate_cycle(
    tanda: Tanda,
    now: datetime,
    delinquency_window: timedelta = DEFAULT_DELINQUENCY_WINDOW,
) -> AdvanceDecision:
    """
    Evaluate a tanda snapshot against the current time.

    Rules:
    - Only active tandas can advance
    - All members deposited -> payout, even if the delinquency window elapsed
    - Window elapsed (strictly more than 6 days since last payout) and someone
      has not deposited -> delinquents present
    - Otherwise nothing to do yet
    """
    if tanda.status != TandaStatus.ACTIVE:
        return AdvanceDecision.NO_ACTION

    all_deposited = all(p.has_deposited for p in tanda.participants)
    window_elapsed = (now - tanda.last_payout_at) > delinquency_window
    has_delinquents = window_elapsed and any(not p.has_deposited for p in tanda.participants)

    if all_deposited:
        return AdvanceDecision.PAYOUT_READY
    if has_delinquents:
        return AdvanceDecision.DELINQUENTS_PRESENT
    return AdvanceDecision.NO_ACTION

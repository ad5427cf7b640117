"""Reputation scoring engine - bounded, event-driven score deltas"""

from dataclasses import replace
from enum import Enum
from typing import Dict

from tanda_engine.domain.models import UserReputation

MIN_SCORE = 0
MAX_SCORE = 100
INITIAL_SCORE = 50
BLOCK_THRESHOLD = 25


class ScoreEvent(str, Enum):
    DEPOSIT = "deposit"
    CREATE_TANDA = "create_tanda"
    COMPLETE_TANDA = "complete_tanda"
    EXPELLED_FOR_NONPAYMENT = "expelled_for_nonpayment"


SCORE_DELTAS: Dict[ScoreEvent, int] = {
    ScoreEvent.DEPOSIT: 5,
    ScoreEvent.CREATE_TANDA: 5,
    ScoreEvent.COMPLETE_TANDA: 20,
    ScoreEvent.EXPELLED_FOR_NONPAYMENT: -25,
}


def apply_delta(current_score: int, delta: int) -> int:
    """Return current_score + delta clamped to [0, 100]"""
    return max(MIN_SCORE, min(MAX_SCORE, current_score + delta))


def is_blocked(score: int) -> bool:
    """Users below the threshold cannot create or join tandas"""
    return score < BLOCK_THRESHOLD


def new_reputation(wallet_address: str) -> UserReputation:
    return UserReputation(wallet_address=wallet_address, score=INITIAL_SCORE)


def apply_event(reputation: UserReputation, event: ScoreEvent) -> UserReputation:
    """
    Apply a scoring event and its bookkeeping to a reputation.

    Returns a new UserReputation; the input is left untouched so callers
    decide when to persist.

    Bookkeeping per event:
    - create_tanda: total_tandas + 1
    - complete_tanda: completed_tandas + 1
    - expelled_for_nonpayment: active_debt set
    """
    updated = replace(reputation, score=apply_delta(reputation.score, SCORE_DELTAS[event]))

    if event is ScoreEvent.CREATE_TANDA:
        updated.total_tandas += 1
    elif event is ScoreEvent.COMPLETE_TANDA:
        updated.completed_tandas += 1
    elif event is ScoreEvent.EXPELLED_FOR_NONPAYMENT:
        updated.active_debt = True

    return updated

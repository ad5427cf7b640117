"""Reputation service - persists scoring engine results for the device's wallet"""

import logging

from tanda_engine.domain.models import UserReputation
from tanda_engine.domain.scoring import ScoreEvent, apply_event, is_blocked, new_reputation
from tanda_engine.infrastructure.database.repositories import ReputationRepository

logger = logging.getLogger(__name__)


class ReputationService:
    """Loads, updates and stores reputations; every change is a ScoreEvent"""

    def __init__(self, repository: ReputationRepository):
        self.repository = repository

    def get(self, wallet_address: str) -> UserReputation:
        """Reputation of a wallet, created with the initial score on first use"""
        reputation = self.repository.get(wallet_address)
        if reputation is None:
            reputation = new_reputation(wallet_address)
            self.repository.save(reputation)
        return reputation

    def apply(self, wallet_address: str, event: ScoreEvent) -> UserReputation:
        before = self.get(wallet_address)
        after = apply_event(before, event)
        self.repository.save(after)
        logger.info(
            "Reputation updated",
            extra={
                "wallet_address": wallet_address,
                "event": event.value,
                "score_before": before.score,
                "score_after": after.score,
            },
        )
        return after

    def is_blocked(self, wallet_address: str) -> bool:
        return is_blocked(self.get(wallet_address).score)

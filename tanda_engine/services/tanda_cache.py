"""Offline-first tanda cache: in-memory list mirrored to the persistent store"""

from dataclasses import replace
from typing import List, Optional

from tanda_engine.domain.models import Tanda
from tanda_engine.domain.reconciliation import active_tandas
from tanda_engine.infrastructure.database.repositories import TandaCacheRepository


class TandaCache:
    def __init__(self, repository: TandaCacheRepository):
        self.repository = repository
        self._tandas: List[Tanda] = repository.load()

    def all(self) -> List[Tanda]:
        return list(self._tandas)

    def active(self) -> List[Tanda]:
        return active_tandas(self._tandas)

    def get(self, tanda_id: str) -> Optional[Tanda]:
        for tanda in self._tandas:
            if tanda.id == tanda_id:
                return tanda
        return None

    def replace_all(self, tandas: List[Tanda]) -> None:
        self._tandas = list(tandas)
        self.repository.save(self._tandas)

    def upsert(self, tanda: Tanda) -> None:
        """Replace the cached copy with the same id, or append a new one"""
        for index, cached in enumerate(self._tandas):
            if cached.id == tanda.id:
                self._tandas[index] = tanda
                break
        else:
            self._tandas.append(tanda)
        self.repository.save(self._tandas)

    def remove_participant(self, tanda_id: str, wallet_address: str) -> Optional[Tanda]:
        tanda = self.get(tanda_id)
        if tanda is None:
            return None
        updated = replace(
            tanda,
            participants=[p for p in tanda.participants if p.wallet_address != wallet_address],
        )
        self.upsert(updated)
        return updated

"""Data access layer: serialize domain entities into the key/value store"""

from typing import List, Optional

from pydantic import TypeAdapter
from tanda_engine.domain.models import FailedDepositRecord, Tanda, UserReputation
from tanda_engine.infrastructure.database.store import PersistentStore

TANDAS_KEY = "tanda_tandas"
FAILED_DEPOSITS_KEY = "tanda_failed_deposits"
USER_KEY_PREFIX = "tanda_user_"

_tanda_list = TypeAdapter(List[Tanda])
_record_list = TypeAdapter(List[FailedDepositRecord])
_reputation = TypeAdapter(UserReputation)


class TandaCacheRepository:
    """Repository for the offline-first tanda list"""

    def __init__(self, store: PersistentStore):
        self.store = store

    def load(self) -> List[Tanda]:
        data = self.store.get(TANDAS_KEY)
        return _tanda_list.validate_json(data) if data else []

    def save(self, tandas: List[Tanda]) -> None:
        self.store.set(TANDAS_KEY, _tanda_list.dump_json(tandas))


class FailedDepositRepository:
    """Repository for failed deposit retry records"""

    def __init__(self, store: PersistentStore):
        self.store = store

    def load(self) -> List[FailedDepositRecord]:
        data = self.store.get(FAILED_DEPOSITS_KEY)
        return _record_list.validate_json(data) if data else []

    def save(self, records: List[FailedDepositRecord]) -> None:
        self.store.set(FAILED_DEPOSITS_KEY, _record_list.dump_json(records))


class ReputationRepository:
    """Repository for per-wallet reputation"""

    def __init__(self, store: PersistentStore):
        self.store = store

    def get(self, wallet_address: str) -> Optional[UserReputation]:
        data = self.store.get(USER_KEY_PREFIX + wallet_address)
        return _reputation.validate_json(data) if data else None

    def save(self, reputation: UserReputation) -> None:
        self.store.set(USER_KEY_PREFIX + reputation.wallet_address, _reputation.dump_json(reputation))

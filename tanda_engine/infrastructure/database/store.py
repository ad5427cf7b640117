"""Durable key -> bytes store used by the registry and the local caches"""

from typing import Dict, Optional, Protocol

from sqlalchemy.orm import sessionmaker
from tanda_engine.infrastructure.database.models import KVEntry


class PersistentStore(Protocol):
    def get(self, key: str) -> Optional[bytes]: ...

    def set(self, key: str, value: bytes) -> None: ...

    def delete(self, key: str) -> None: ...


class SqlAlchemyStore:
    """PersistentStore backed by the kv_entry table"""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def get(self, key: str) -> Optional[bytes]:
        with self.session_factory() as db:
            entry = db.get(KVEntry, key)
            return entry.value if entry else None

    def set(self, key: str, value: bytes) -> None:
        with self.session_factory() as db:
            entry = db.get(KVEntry, key)
            if entry is None:
                db.add(KVEntry(key=key, value=value))
            else:
                entry.value = value
            db.commit()

    def delete(self, key: str) -> None:
        with self.session_factory() as db:
            entry = db.get(KVEntry, key)
            if entry is not None:
                db.delete(entry)
                db.commit()


class InMemoryStore:
    """Process-local PersistentStore, used in tests and ephemeral runs"""

    def __init__(self):
        self._data: Dict[str, bytes] = {}

    def get(self, key: str) -> Optional[bytes]:
        return self._data.get(key)

    def set(self, key: str, value: bytes) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

"""SQLAlchemy ORM models for the local key/value store"""

from sqlalchemy import Column, DateTime, LargeBinary, String
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()


class KVEntry(Base):
    """Opaque blob persisted under a string key (survives app restarts)"""

    __tablename__ = "kv_entry"

    key = Column(String(255), primary_key=True)
    value = Column(LargeBinary, nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

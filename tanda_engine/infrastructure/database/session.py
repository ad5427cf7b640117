"""Database session management for the local store"""

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from tanda_engine.infrastructure.database.models import Base


def build_engine(database_url: str) -> Engine:
    """Create the engine and make sure the schema exists"""
    connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
    engine = create_engine(
        database_url,
        pool_pre_ping=True,  # Verify connections before using
        connect_args=connect_args,
    )
    Base.metadata.create_all(bind=engine)
    return engine


def build_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)

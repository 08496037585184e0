"""Database engine and unit-of-work helpers.

Every evaluation runs in one unit of work: the delivery record, the order
upsert, the flag and its audit entries commit together or not at all. A
retried evaluation therefore never sees a half-applied previous attempt.
"""

from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from config import settings
from models.base import Base

_IN_MEMORY_URLS = ("sqlite://", "sqlite:///:memory:")


def build_engine(database_url: str) -> Engine:
    """Create an engine for a database URL.

    PostgreSQL gets a sized connection pool. SQLite (local runs and tests)
    gets no pool sizing; an in-memory database is pinned to one shared
    connection so that every session sees the same tables.
    """
    if database_url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if database_url in _IN_MEMORY_URLS:
            kwargs["poolclass"] = StaticPool
        return create_engine(database_url, **kwargs)

    return create_engine(
        database_url,
        pool_pre_ping=True,  # Verify connections before using
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
    )


def create_session_factory(bind: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=bind)


def create_tables(bind: Optional[Engine] = None) -> None:
    """Create the duplicate detection tables if missing."""
    Base.metadata.create_all(bind=bind or engine)


engine = build_engine(settings.DATABASE_URL)

SessionLocal = create_session_factory(engine)


@contextmanager
def get_db_session() -> Generator[Session, None, None]:
    """One unit of work for a task or operator action.

    Usage:
        with get_db_session() as session:
            dismiss_order(session, shop_domain, order_id)

    Commits on success, rolls back on any exception and re-raises it.
    """
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()

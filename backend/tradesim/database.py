# backend/tradesim/database.py
"""
Engine, sessions and connectivity checks for the TradeSim store.

Two tables live here: the append-only transaction ledger and the users
table that carries each account's cash balance. Request handlers get a
session through get_db(); background work (the snapshot poller) opens its
own through session_scope().

Pooling:
    SQLite      StaticPool, one shared connection (in-memory test databases)
    PostgreSQL  QueuePool sized from the DB_POOL_* settings
"""

import logging
from collections.abc import Generator, Iterator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import create_engine, text
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from .config import settings

logger = logging.getLogger(__name__)

# Seconds to wait for a pooled connection before giving up
POOL_CHECKOUT_TIMEOUT = 30


def _engine_options() -> dict[str, Any]:
    """Keyword arguments for create_engine() matching the configured backend."""
    if settings.is_sqlite:
        logger.info("Using SQLite with a shared static connection")
        return {
            "poolclass": StaticPool,
            "connect_args": {"check_same_thread": False},
        }

    logger.info(
        f"Using PostgreSQL pool (size={settings.db_pool_size}, "
        f"overflow={settings.db_pool_max_overflow}, recycle={settings.db_pool_recycle}s)"
    )
    return {
        "poolclass": QueuePool,
        "pool_size": settings.db_pool_size,
        "max_overflow": settings.db_pool_max_overflow,
        "pool_recycle": settings.db_pool_recycle,
        "pool_pre_ping": settings.db_pool_pre_ping,
        "pool_timeout": POOL_CHECKOUT_TIMEOUT,
    }


engine = create_engine(settings.database_url, echo=settings.debug, **_engine_options())
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency: one session per request, closed afterwards."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def session_scope() -> Iterator[Session]:
    """
    Session for work outside a request.

    Rolls back anything left uncommitted, then closes.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.rollback()
        db.close()


def check_database_health(db: Session) -> dict:
    """
    Run a trivial query through the session.

    Returns:
        {"status": "healthy", "database": <backend>} or
        {"status": "unhealthy", "error": <message>}
    """
    try:
        db.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return {"status": "unhealthy", "error": str(e)}

    return {"status": "healthy", "database": engine.dialect.name}

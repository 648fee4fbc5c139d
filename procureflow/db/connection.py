"""Database connection management for ProcureFlow.

Synchronous SQLAlchemy access. SQLite is the default store; any
SQLAlchemy URL can be supplied through DATABASE_URL.

Usage:
    from procureflow.db.connection import get_db, init_db

    init_db()  # Create tables
    db = next(get_db())
    # ... use db session
"""

import logging
import os
from collections.abc import Generator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from procureflow.config import get_database_url
from procureflow.db.models import Base

logger = logging.getLogger(__name__)

DATABASE_URL = get_database_url()

engine = create_engine(
    DATABASE_URL,
    connect_args={"check_same_thread": False}
    if DATABASE_URL.startswith("sqlite")
    else {},
    echo=os.environ.get("SQL_ECHO", "").lower() == "true",
)


@event.listens_for(Engine, "connect")
def set_sqlite_pragma(dbapi_connection: Any, connection_record: Any) -> None:
    """Enable foreign keys on every SQLite connection.

    SQLite ships with referential integrity off, which would leave cart
    and message rows behind when a parent is deleted.
    """
    module = type(dbapi_connection).__module__
    if "sqlite" not in module:
        return
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)


def get_db() -> Generator[Session, None, None]:
    """Yield a database session for request-scoped use.

    Intended for use with FastAPI's Depends().

    Yields:
        Session: SQLAlchemy session that will be closed after use.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def get_db_context() -> Generator[Session, None, None]:
    """Context manager for database sessions outside of FastAPI.

    Commits on clean exit and rolls back on any exception.

    Usage:
        with get_db_context() as db:
            cart = CartService(db).get_cart_for_user("user-1")
    """
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def init_db(bind: Engine | None = None) -> None:
    """Create all database tables.

    Safe to call multiple times; existing tables are left alone.

    Args:
        bind: Engine to create tables on. Defaults to the module engine.
    """
    target = bind or engine
    Base.metadata.create_all(bind=target)
    logger.info("Database tables ensured on %s", target.url.render_as_string())


def close_db() -> None:
    """Dispose of the engine connection pool."""
    engine.dispose()

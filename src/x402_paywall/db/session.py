# src/x402_paywall/db/session.py
"""Database session configuration."""

from __future__ import annotations

import logging
from collections.abc import Generator, Iterator
from contextlib import contextmanager

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from x402_paywall.core.errors import StorageError
from x402_paywall.core.settings import settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Declarative base shared by all ORM models."""


# Ensure model modules are imported so that metadata is populated when create_all runs.
import x402_paywall.models  # noqa: E402,F401


def _configure_sqlite(engine: Engine, busy_timeout_seconds: float) -> None:
    """Make pysqlite honour SAVEPOINTs and take the write lock up front.

    pysqlite defers BEGIN until the first DML statement, which breaks nested
    transactions. Emitting ``BEGIN IMMEDIATE`` ourselves keeps savepoints
    inside the outer transaction and serializes writers on the database lock
    instead of failing on a read-to-write lock upgrade.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record) -> None:  # pragma: no cover - driver hook
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute(f"PRAGMA busy_timeout = {int(busy_timeout_seconds * 1000)}")
        cursor.execute("PRAGMA foreign_keys = ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn) -> None:  # pragma: no cover - driver hook
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(url: str, *, echo: bool = False) -> Engine:
    """Create an engine for ``url`` with the transactional setup the ledger needs."""
    if url.startswith("sqlite"):
        engine = create_engine(
            url,
            echo=echo,
            connect_args={
                "check_same_thread": False,
                "timeout": settings.sqlite_busy_timeout_seconds,
            },
        )
        _configure_sqlite(engine, settings.sqlite_busy_timeout_seconds)
        return engine
    return create_engine(url, pool_pre_ping=True, echo=echo)


def build_sessionmaker(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


engine = build_engine(settings.database_url, echo=settings.sql_debug)

SessionLocal = build_sessionmaker(engine)


def get_db() -> Generator[Session, None, None]:
    """Yield a database session for dependency injection."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def create_tables(bind: Engine | None = None) -> None:
    """Create all database tables."""
    Base.metadata.create_all(bind=bind or engine)


def drop_tables(bind: Engine | None = None) -> None:
    """Drop all database tables."""
    Base.metadata.drop_all(bind=bind or engine)


@contextmanager
def storage_errors(db: Session) -> Iterator[None]:
    """Roll back and re-raise database failures as ``StorageError``."""
    try:
        yield
    except SQLAlchemyError as exc:
        logger.error("Storage operation failed: %s", exc)
        db.rollback()
        raise StorageError("Storage operation failed") from exc

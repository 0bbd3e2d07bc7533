"""Database connectivity helpers."""

from __future__ import annotations

import logging

from sqlalchemy import create_engine, event, inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from .models_sql import Base

LOGGER = logging.getLogger(__name__)

CATALOG_TABLES = ("products", "product_options", "product_variants", "product_images")


def _apply_sqlite_pragmas(engine: Engine, timeout_value: float) -> None:
    """WAL keeps readers unblocked while the scraper writes."""

    if engine.url.database in (None, "", ":memory:"):
        return
    try:
        with engine.connect() as connection:
            connection.execute(text("PRAGMA journal_mode=WAL"))
            connection.execute(text("PRAGMA synchronous=NORMAL"))
            connection.execute(text(f"PRAGMA busy_timeout = {int(timeout_value * 1000)}"))
    except Exception as exc:  # pragma: no cover - best-effort tuning
        LOGGER.warning("Unable to configure SQLite pragmas: %s", exc)


def get_engine(database_url: str, *, busy_timeout: int | float | None = None) -> Engine:
    """Create a SQLAlchemy engine; SQLite URLs get a busy timeout and WAL journaling."""

    timeout_value = float(busy_timeout) if busy_timeout is not None else 30.0
    if database_url.startswith("sqlite"):
        engine = create_engine(
            database_url,
            future=True,
            connect_args={"check_same_thread": False, "timeout": timeout_value},
        )

        @event.listens_for(engine, "connect")
        def _enable_foreign_keys(dbapi_connection, _record) -> None:  # pragma: no cover - driver hook
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        _apply_sqlite_pragmas(engine, timeout_value)
        return engine
    return create_engine(database_url, future=True, pool_pre_ping=True)


def make_session(engine: Engine) -> sessionmaker[Session]:
    """Create a configured session factory bound to *engine*."""

    return sessionmaker(engine, expire_on_commit=False, future=True)


def init_db_safe(engine: Engine) -> None:
    """Initialise database schema, creating only missing tables."""

    Base.metadata.create_all(engine, checkfirst=True)


def has_catalog_tables(engine: Engine) -> bool:
    """Return True if every catalog table exists for *engine*."""

    inspector = inspect(engine)
    missing = [name for name in CATALOG_TABLES if not inspector.has_table(name)]
    if missing:
        LOGGER.info("Catalog tables missing: %s", ", ".join(missing))
    return not missing

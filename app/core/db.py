"""
Database connection and session management.

Provides the async SQLAlchemy engine and session factory used by the rule
store. PostgreSQL (asyncpg) is used in deployed environments; local
development and tests run on SQLite through aiosqlite.
"""

import logging
from pathlib import Path
from typing import Any

from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.core.config import settings

logger = logging.getLogger(__name__)

_async_engine: AsyncEngine | None = None
_async_sessionmaker: async_sessionmaker[AsyncSession] | None = None
_telemetry_instrumented: bool = False


def _engine_options(url: str) -> dict[str, Any]:
    """Pool and driver options per backend."""
    if url.startswith("sqlite"):
        return {"echo": False}

    return {
        "pool_size": 20,
        "max_overflow": 10,
        "pool_timeout": 30,
        "pool_recycle": 3600,
        "pool_pre_ping": True,
        "echo": False,
        "connect_args": {"server_settings": {"timezone": "UTC"}, "timeout": 30},
    }


def _ensure_sqlite_directory(url: str) -> None:
    """Create the parent directory of a file-backed SQLite database."""
    database = make_url(url).database
    if url.startswith("sqlite") and database and database != ":memory:":
        Path(database).parent.mkdir(parents=True, exist_ok=True)


def create_fresh_async_engine(url: str | None = None) -> AsyncEngine:
    """Create a fresh async engine without caching.

    Used for tests and CLI commands that need an engine bound to their own
    event loop.
    """
    url = url or settings.async_url
    if not url:
        raise RuntimeError("DATABASE_URL_APP is required")

    _ensure_sqlite_directory(url)
    return create_async_engine(url, **_engine_options(url))


def get_async_engine() -> AsyncEngine:
    """
    Get or create the process-wide async engine.

    Returns:
        Configured async SQLAlchemy engine
    """
    global _async_engine

    if _async_engine is not None:
        return _async_engine

    _async_engine = create_fresh_async_engine()
    _instrument_sqlalchemy(_async_engine)
    return _async_engine


def _instrument_sqlalchemy(engine: AsyncEngine) -> None:
    """Instrument the engine with OpenTelemetry once per process."""
    global _telemetry_instrumented

    if _telemetry_instrumented:
        return

    from app.core.telemetry import instrument_sqlalchemy

    instrument_sqlalchemy(engine.sync_engine)
    _telemetry_instrumented = True


def get_async_sessionmaker() -> async_sessionmaker[AsyncSession]:
    """
    Get or create the async sessionmaker.

    Returns:
        Async sessionmaker factory
    """
    global _async_sessionmaker
    if _async_sessionmaker is not None:
        return _async_sessionmaker

    _async_sessionmaker = async_sessionmaker(
        bind=get_async_engine(),
        class_=AsyncSession,
        autoflush=False,
        expire_on_commit=False,
    )
    return _async_sessionmaker


async def reset_async_engine() -> None:
    """Dispose the async engine and forget the sessionmaker."""
    global _async_engine, _async_sessionmaker

    if _async_engine is not None:
        await _async_engine.dispose()
    _async_engine = None
    _async_sessionmaker = None


async def create_schema(engine: AsyncEngine | None = None) -> None:
    """Create the rule store tables if they do not exist."""
    from app.db.models import Base

    engine = engine or get_async_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Rule store schema ready")


async def check_database(engine: AsyncEngine | None = None) -> bool:
    """Return True when the database answers a trivial query."""
    engine = engine or get_async_engine()
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        logger.warning("Database readiness check failed: %s", e)
        return False
    return True

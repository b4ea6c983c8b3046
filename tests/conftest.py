"""
Pytest configuration and shared fixtures.

Provides:
- anyio backend selection (asyncio)
- A file-backed SQLite rule store per test (async SQLAlchemy)
- A catalog snapshot mirroring data/catalog.sample.json
- httpx AsyncClient over the ASGI app with database and catalog overrides

Environment variables are set before `app` is imported because settings
are read at import time.
"""

from __future__ import annotations

import os
import sys
from collections.abc import AsyncGenerator
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]

if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DATABASE_URL_APP", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("OTEL_ENABLED", "false")
os.environ.setdefault("OBSERVABILITY_STRUCTURED_LOGS", "false")
os.environ.setdefault("METRICS_TOKEN", "test-metrics-token")
os.environ.setdefault("CATALOG_FILE", str(ROOT / "data" / "catalog.sample.json"))

import httpx  # noqa: E402 (import after env setup)
import pytest  # noqa: E402 (import after env setup)
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
)

from app.core.db import create_fresh_async_engine, create_schema  # noqa: E402
from app.core.dependencies import get_async_db_session, get_catalogs  # noqa: E402
from app.main import create_app  # noqa: E402
from app.services.catalogs import (  # noqa: E402
    CatalogSnapshot,
    ConditionRecord,
    MedicationRecord,
)


# Per AnyIO testing docs: https://anyio.readthedocs.io/en/stable/testing.html
@pytest.fixture
def anyio_backend():
    return "asyncio"


# ============================================================================
# Catalogs
# ============================================================================


@pytest.fixture
def catalogs() -> CatalogSnapshot:
    """Same content as data/catalog.sample.json."""
    return CatalogSnapshot.from_records(
        medications=[
            MedicationRecord(1, "Paracetamol", "500mg", "tablet", False, 500),
            MedicationRecord(2, "Amoxicilina", "250mg", "capsule", False, 80),
            MedicationRecord(3, "Morfina", "10mg", "injection", True, 25),
            MedicationRecord(4, "Ibuprofeno", "400mg", "tablet", False, 240),
            MedicationRecord(5, "Salbutamol", "100mcg", "inhaler", False, 12),
            MedicationRecord(6, "Loratadina", "10mg", "tablet", False, 60),
        ],
        conditions=[
            ConditionRecord(1, "Asma", "respiratory"),
            ConditionRecord(2, "Diabetes", "endocrine"),
            ConditionRecord(3, "Hipertension", "cardiovascular"),
            ConditionRecord(4, "Migrana cronica", "neurological"),
        ],
    )


@pytest.fixture
def empty_catalogs() -> CatalogSnapshot:
    return CatalogSnapshot.from_records()


# ============================================================================
# Async SQLAlchemy Fixtures
# ============================================================================


@pytest.fixture
async def async_engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine]:
    """Fresh SQLite database file with the rule store schema."""
    engine = create_fresh_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'rules.db'}")
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=async_engine, class_=AsyncSession, autoflush=False, expire_on_commit=False
    )


@pytest.fixture
async def async_db_session(
    session_maker: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession]:
    """Session with real commits; the database file is discarded after the test."""
    async with session_maker() as session:
        yield session


# ============================================================================
# API Clients
# ============================================================================


def _build_app(session_maker: async_sessionmaker[AsyncSession], snapshot: CatalogSnapshot):
    app = create_app()

    async def override_get_async_db():
        async with session_maker() as session:
            yield session

    async def override_get_catalogs():
        return snapshot

    app.dependency_overrides[get_async_db_session] = override_get_async_db
    app.dependency_overrides[get_catalogs] = override_get_catalogs
    return app


@pytest.fixture
async def client(
    session_maker: async_sessionmaker[AsyncSession], catalogs: CatalogSnapshot
) -> AsyncGenerator[httpx.AsyncClient]:
    """AsyncClient against the app, backed by the test database and sample catalogs."""
    app = _build_app(session_maker, catalogs)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.fixture
async def empty_catalog_client(
    session_maker: async_sessionmaker[AsyncSession], empty_catalogs: CatalogSnapshot
) -> AsyncGenerator[httpx.AsyncClient]:
    """AsyncClient whose catalogs contain nothing (every reference is missing)."""
    app = _build_app(session_maker, empty_catalogs)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c

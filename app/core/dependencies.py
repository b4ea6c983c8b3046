"""
FastAPI dependency injection utilities.

Provides reusable dependencies for database sessions and catalog
snapshots. Tests replace them through `app.dependency_overrides`.
"""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.db import get_async_sessionmaker
from app.domain.enums import CatalogBackend
from app.services.catalogs import (
    CatalogProvider,
    CatalogSnapshot,
    ClinicApiCatalogProvider,
    FileCatalogProvider,
)

# ============================================================================
# Database Dependencies
# ============================================================================


async def get_async_db_session() -> AsyncGenerator[AsyncSession]:
    """
    Async database session dependency for FastAPI endpoints.

    Routes commit explicitly; an uncommitted session is rolled back on close.

    Yields:
        Async SQLAlchemy database session
    """
    session_maker = get_async_sessionmaker()
    async with session_maker() as session:
        yield session


AsyncDbSession = Annotated[AsyncSession, Depends(get_async_db_session)]


# ============================================================================
# Catalog Dependencies
# ============================================================================


def get_catalog_provider() -> CatalogProvider:
    """Provider selected by CATALOG_BACKEND."""
    if settings.catalog_backend == CatalogBackend.CLINIC_API:
        return ClinicApiCatalogProvider(
            base_url=settings.clinic_api_url or "",
            token=settings.clinic_api_token,
            timeout=settings.clinic_api_timeout_seconds,
        )
    return FileCatalogProvider(settings.catalog_file)


async def get_catalogs(
    provider: Annotated[CatalogProvider, Depends(get_catalog_provider)],
) -> CatalogSnapshot:
    """One read-only catalog snapshot per request."""
    return await provider.load()


Catalogs = Annotated[CatalogSnapshot, Depends(get_catalogs)]

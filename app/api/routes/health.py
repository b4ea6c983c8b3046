import logging

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from app.core.config import settings
from app.core.db import check_database

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
def health() -> dict:
    """Liveness probe."""
    return {"ok": True, "service": settings.app_name}


@router.get("/readyz")
async def readyz() -> JSONResponse:
    """Readiness probe: verifies the rule store database is reachable.

    Returns:
      - 200 when DB is reachable
      - 503 when DB is unavailable
    """
    if await check_database():
        return JSONResponse(status_code=status.HTTP_200_OK, content={"ok": True, "db": "ok"})
    # Don't expose internal error details to callers
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"ok": False, "db": "unavailable"},
    )

import hmac
import logging
import re
from typing import Any

from fastapi import FastAPI, HTTPException, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.routes.health import router as health_router
from app.api.routes.rules import router as rules_router
from app.core.config import AppEnvironment, settings
from app.core.db import create_schema, reset_async_engine
from app.core.errors import RuleServiceError, get_status_code
from app.core.middleware import RequestSizeLimitMiddleware, max_body_bytes
from app.core.observability import (
    ObservabilityMiddleware,
    configure_structured_logging,
    get_request_id,
    metrics_endpoint,
)
from app.core.telemetry import init_telemetry, instrument_fastapi, shutdown_telemetry

if settings.observability_structured_logs:
    configure_structured_logging(settings.app_log_level)

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"

_SENSITIVE_PATTERNS = [
    r"[/\\][\w/.-]+\.(py|db)",  # File paths
    r"SELECT.*FROM",  # SQL queries
    r"INSERT INTO.*VALUES",
    r"UPDATE.*SET",
    r"DELETE FROM",
    r"\w+://[^\s]*@",  # URLs with credentials
]


def _sanitize_error_details(details: dict[str, Any]) -> dict[str, Any]:
    """
    Sanitize error details to prevent information leakage in production.

    String values matching file paths, SQL or credentialed URLs are
    replaced with "[REDACTED]"; nested dicts and lists are walked.
    """
    if settings.app_env != AppEnvironment.PROD:
        return details

    sanitized: dict[str, Any] = {}
    for key, value in details.items():
        if isinstance(value, str):
            if any(re.search(p, value, re.IGNORECASE) for p in _SENSITIVE_PATTERNS):
                sanitized[key] = "[REDACTED]"
            else:
                sanitized[key] = value
        elif isinstance(value, dict):
            sanitized[key] = _sanitize_error_details(value)
        elif isinstance(value, list):
            sanitized[key] = [
                _sanitize_error_details(item) if isinstance(item, dict) else item for item in value
            ]
        else:
            sanitized[key] = value

    return sanitized


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Sets up:
    - OpenTelemetry distributed tracing
    - CORS, request size limit and observability middleware
    - Exception handlers for domain errors
    - API routers
    - Metrics endpoint for Prometheus scraping
    """
    app = FastAPI(
        title="Kure Clinical Rules API",
        description="Compiler and store for clinical rules written in the 'cuando ... dar' DSL",
        version="0.1.0",
    )

    # ============================================================================
    # Lifecycle
    # ============================================================================

    @app.on_event("startup")
    async def startup():
        """Initialize tracing; create the SQLite schema for local runs."""
        init_telemetry()
        instrument_fastapi(app)

        if settings.is_sqlite:
            await create_schema()

    @app.on_event("shutdown")
    async def shutdown():
        shutdown_telemetry()
        await reset_async_engine()

    # ============================================================================
    # Middleware
    # ============================================================================

    if settings.observability_enabled:
        app.add_middleware(ObservabilityMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    app.add_middleware(
        RequestSizeLimitMiddleware, max_size_bytes=max_body_bytes(settings.rule_max_source_bytes)
    )

    # ============================================================================
    # Exception Handlers
    # ============================================================================

    @app.exception_handler(RuleServiceError)
    async def rule_service_error_handler(request: Request, exc: RuleServiceError) -> JSONResponse:
        """
        Map domain exceptions to HTTP status codes.

        Body: {"error": <exception class>, "message": ..., "details": {...}}
        """
        status_code = get_status_code(exc)

        context = {
            "details": exc.details,
            "path": request.url.path,
            "request_id": get_request_id(),
        }

        if status_code >= 500:
            logger.error(f"{exc.__class__.__name__}: {exc.message}", extra=context)
        else:
            logger.warning(f"{exc.__class__.__name__}: {exc.message}", extra=context)

        return JSONResponse(
            status_code=status_code,
            content={
                "error": exc.__class__.__name__,
                "message": exc.message,
                "details": _sanitize_error_details(exc.details),
            },
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        """Consistent error body for FastAPI HTTP exceptions."""
        if exc.status_code >= 500:
            logger.error(
                f"HTTP {exc.status_code}: {exc.detail}",
                extra={"path": request.url.path, "request_id": get_request_id()},
            )

        return JSONResponse(
            status_code=exc.status_code,
            content={"error": "HTTPException", "message": exc.detail, "details": {}},
            headers=exc.headers,
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """
        Catch-all handler for unexpected exceptions.

        Logs the full exception and returns a generic 500 error to the client
        without exposing internal implementation details.
        """
        logger.error(
            f"Unhandled exception: {exc}",
            exc_info=True,
            extra={"path": request.url.path, "request_id": get_request_id()},
        )

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": "InternalServerError",
                "message": "An unexpected error occurred",
                "details": {},
            },
        )

    # ============================================================================
    # Router Registration
    # ============================================================================

    app.include_router(health_router, prefix=API_PREFIX)
    app.include_router(rules_router, prefix=API_PREFIX)

    # ============================================================================
    # Metrics Endpoint (Prometheus) - Token Protected
    # ============================================================================

    async def protected_metrics(request: Request) -> Response:
        """
        Protected Prometheus metrics endpoint.

        Requires the X-Metrics-Token header to match METRICS_TOKEN.
        """
        expected_token = settings.metrics_token
        if not expected_token:
            logger.error("Metrics endpoint accessed but METRICS_TOKEN not configured")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Metrics token not configured. Set METRICS_TOKEN environment variable.",
            )

        # Constant-time comparison
        metrics_token = request.headers.get("X-Metrics-Token")
        if not hmac.compare_digest(metrics_token or "", expected_token):
            logger.warning(
                "Unauthorized metrics access attempt",
                extra={"client_ip": request.client.host if request.client else "unknown"},
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN, detail="Invalid metrics token"
            )

        return metrics_endpoint()

    if settings.observability_enabled:
        app.add_route("/metrics", protected_metrics)

    return app


app = create_app()

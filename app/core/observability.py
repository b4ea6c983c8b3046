"""
Observability module for the clinical rules API.

Provides:
- Structured logging with JSON format and correlation IDs
- Request correlation ID (request_id) generation and propagation
- Prometheus metrics collection (HTTP, rule compiler, rule store, renderer)
- Request tracking middleware for latency and status codes

Usage:
    from app.core.observability import get_request_id, metrics
"""

import json
import logging
import time
import uuid
from collections.abc import Callable
from contextvars import ContextVar
from datetime import UTC, datetime

from fastapi import Request, Response
from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

REQUEST_ID_HEADER = "X-Request-ID"

# ============================================================================
# Context Variables for Request Tracking
# ============================================================================

# Correlation ID - links all logs for a single request
_request_id_ctx: ContextVar[str] = ContextVar("request_id", default="")


def generate_request_id() -> str:
    """Generate a unique request ID for correlation."""
    return str(uuid.uuid4())


def get_request_id() -> str:
    """Get the current request ID from context."""
    return _request_id_ctx.get()


def set_correlation_id(request_id: str) -> None:
    """Set the correlation ID for the current request context."""
    _request_id_ctx.set(request_id)


# ============================================================================
# Structured Logging Configuration
# ============================================================================

# Attributes every LogRecord has; anything else came from `extra=`
_RESERVED_RECORD_KEYS = frozenset(
    {
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
        "exc_info",
        "exc_text",
        "stack_info",
    }
)


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Outputs logs as JSON with standard fields:
    - timestamp: ISO 8601 format
    - level, logger, message
    - request_id: Correlation ID (if available)
    - trace_id / span_id: OpenTelemetry context (if a span is recording)
    - extra: Any additional context from logging.extra
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        request_id = get_request_id()
        if request_id:
            log_entry["request_id"] = request_id

        from app.core.telemetry import get_span_id, get_trace_id

        trace_id = get_trace_id()
        if trace_id:
            log_entry["trace_id"] = trace_id
            log_entry["span_id"] = get_span_id()

        if record.exc_info:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
            }

        log_entry["file"] = record.pathname
        log_entry["line"] = record.lineno
        log_entry["function"] = record.funcName

        extra_keys = {
            k: v for k, v in record.__dict__.items() if k not in _RESERVED_RECORD_KEYS
        }
        if extra_keys:
            log_entry["extra"] = extra_keys

        return json.dumps(log_entry, default=str)


def configure_structured_logging(level: str = "INFO") -> None:
    """
    Configure root logger with structured JSON formatting.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    handler = logging.StreamHandler()
    handler.setFormatter(StructuredFormatter())
    root_logger.addHandler(handler)


# ============================================================================
# Prometheus Metrics
# ============================================================================

# Use a custom registry to avoid conflicts with other Prometheus metrics
_registry = CollectorRegistry()


class Metrics:
    """
    Centralized metrics collection for the application.

    Metrics groups:
    - HTTP: Request rate, errors, latency
    - Compiler: Compilation outcome, duration, diagnostics by code
    - Store / Renderer: Save outcomes, diagram renders
    """

    def __init__(self, registry: CollectorRegistry) -> None:
        self.registry = registry

        # -------------------------------------------------------------------
        # HTTP Metrics
        # -------------------------------------------------------------------

        self.http_requests_total = Counter(
            "http_requests_total",
            "Total HTTP requests",
            ["method", "route", "status_code"],
            registry=self.registry,
        )

        self.http_request_duration_seconds = Histogram(
            "http_request_duration_seconds",
            "HTTP request latency in seconds",
            ["method", "route"],
            buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
            registry=self.registry,
        )

        self.http_requests_in_progress = Gauge(
            "http_requests_in_progress",
            "HTTP requests currently in progress",
            ["method", "route"],
            registry=self.registry,
        )

        self.http_errors_total = Counter(
            "http_errors_total",
            "Total HTTP errors",
            ["error_type", "method", "route"],
            registry=self.registry,
        )

        # -------------------------------------------------------------------
        # Compiler Metrics
        # -------------------------------------------------------------------

        self.rule_compilations_total = Counter(
            "rule_compilations_total",
            "Total rule compilations",
            ["status"],
            registry=self.registry,
        )

        self.rule_compile_duration_seconds = Histogram(
            "rule_compile_duration_seconds",
            "Rule compilation duration in seconds",
            buckets=(0.0005, 0.001, 0.0025, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25),
            registry=self.registry,
        )

        self.rule_diagnostics_total = Counter(
            "rule_diagnostics_total",
            "Diagnostics emitted by the rule compiler",
            ["code"],
            registry=self.registry,
        )

        # -------------------------------------------------------------------
        # Rule Store / Renderer Metrics
        # -------------------------------------------------------------------

        self.rule_saves_total = Counter(
            "rule_saves_total",
            "Rule save attempts by outcome",
            ["outcome"],
            registry=self.registry,
        )

        self.rule_renders_total = Counter(
            "rule_renders_total",
            "Rule diagram renders",
            ["status"],
            registry=self.registry,
        )


# Global metrics instance
metrics = Metrics(_registry)


# ============================================================================
# Middleware
# ============================================================================


class ObservabilityMiddleware(BaseHTTPMiddleware):
    """
    Middleware that adds observability to all requests.

    Features:
    - Generates and propagates request_id (correlation ID)
    - Logs all requests with structured fields
    - Tracks request latency
    - Records Prometheus metrics
    - Adds request_id to response headers
    """

    def __init__(
        self,
        app: ASGIApp,
        metrics_instance: Metrics | None = None,
        skip_paths: list[str] | None = None,
    ) -> None:
        super().__init__(app)
        self.metrics = metrics_instance or metrics
        self.skip_paths = tuple(skip_paths or ["/api/v1/health", "/api/v1/readyz", "/metrics"])

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or generate_request_id()
        set_correlation_id(request_id)

        route_pattern = request.url.path
        is_skipped_path = route_pattern.startswith(self.skip_paths)
        logger = logging.getLogger("app.request")

        self.metrics.http_requests_in_progress.labels(
            method=request.method, route=route_pattern
        ).inc()
        start_time = time.perf_counter()

        try:
            response = await call_next(request)
            latency = time.perf_counter() - start_time

            # Matched route template (e.g. /api/v1/rules/{rule_id}) keeps label cardinality low
            route = request.scope.get("route")
            label = getattr(route, "path", route_pattern)

            self.metrics.http_requests_total.labels(
                method=request.method, route=label, status_code=response.status_code
            ).inc()
            self.metrics.http_request_duration_seconds.labels(
                method=request.method, route=label
            ).observe(latency)

            response.headers[REQUEST_ID_HEADER] = request_id

            if not is_skipped_path:
                logger.info(
                    f"{request.method} {label}",
                    extra={
                        "method": request.method,
                        "route": label,
                        "status_code": response.status_code,
                        "latency_ms": round(latency * 1000, 2),
                    },
                )

            return response

        except Exception as e:
            latency = time.perf_counter() - start_time
            error_type = type(e).__name__

            self.metrics.http_requests_total.labels(
                method=request.method, route=route_pattern, status_code=500
            ).inc()
            self.metrics.http_errors_total.labels(
                error_type=error_type, method=request.method, route=route_pattern
            ).inc()
            self.metrics.http_request_duration_seconds.labels(
                method=request.method, route=route_pattern
            ).observe(latency)

            logger.error(
                f"{request.method} {route_pattern} - {error_type}: {e}",
                extra={
                    "method": request.method,
                    "route": route_pattern,
                    "status_code": 500,
                    "latency_ms": round(latency * 1000, 2),
                    "error_type": error_type,
                },
                exc_info=True,
            )
            raise

        finally:
            self.metrics.http_requests_in_progress.labels(
                method=request.method, route=route_pattern
            ).dec()


# ============================================================================
# Metrics Endpoint
# ============================================================================


def metrics_endpoint() -> Response:
    """Prometheus metrics in text format for scraping."""
    return Response(
        content=generate_latest(_registry),
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )

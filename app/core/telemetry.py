"""
OpenTelemetry distributed tracing configuration for the clinical rules API.

This module provides instrumentation for:
- FastAPI (HTTP requests/responses)
- SQLAlchemy (rule store queries)
- HTTPX (clinic catalog calls)
- Compiler phases (lex, parse, validate) through `get_tracer`

Configuration via environment variables:
- OTEL_ENABLED: Enable/disable tracing (default: false)
- OTEL_SERVICE_NAME: Service name for traces (default: kure-rules-api)
- OTEL_EXPORTER_OTLP_ENDPOINT: OTLP collector endpoint (default: http://localhost:4317)

When tracing is disabled no provider is installed and `get_tracer` hands
out OpenTelemetry's no-op tracer.
"""

import logging
from typing import Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.resources import DEPLOYMENT_ENVIRONMENT, SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

logger = logging.getLogger(__name__)

# Global tracer provider reference for shutdown
_tracer_provider: TracerProvider | None = None


def get_tracer(name: str) -> trace.Tracer:
    """Module tracer; a no-op tracer until `init_telemetry` installs a provider."""
    return trace.get_tracer(name)


def init_telemetry(
    service_name: str | None = None,
    app_env: str | None = None,
    otlp_endpoint: str | None = None,
) -> TracerProvider | None:
    """
    Initialize OpenTelemetry distributed tracing.

    Sets up a tracer provider with service metadata, an OTLP exporter and a
    batch span processor, then instruments HTTPX.

    Returns:
        TracerProvider instance if enabled, None otherwise
    """
    global _tracer_provider

    from app.core.config import settings

    if not settings.otel_enabled:
        logger.info("OpenTelemetry tracing is disabled (OTEL_ENABLED=false)")
        return None

    service_name = service_name or settings.otel_service_name
    app_env = app_env or settings.app_env.value
    otlp_endpoint = otlp_endpoint or settings.otel_exporter_otlp_endpoint

    try:
        resource = Resource.create(
            {
                SERVICE_NAME: service_name,
                DEPLOYMENT_ENVIRONMENT: app_env,
                "telemetry.sdk.language": "python",
            }
        )
        tracer_provider = TracerProvider(resource=resource)
        tracer_provider.add_span_processor(
            BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint))
        )
        trace.set_tracer_provider(tracer_provider)
        _tracer_provider = tracer_provider

        HTTPXClientInstrumentor().instrument()

        logger.info(
            "OpenTelemetry initialized: service=%s, environment=%s, endpoint=%s",
            service_name,
            app_env,
            otlp_endpoint,
        )
        return tracer_provider

    except Exception as e:
        logger.error(f"Failed to initialize OpenTelemetry: {e}", exc_info=True)
        return None


def instrument_fastapi(app: Any) -> None:
    """Instrument a FastAPI application when tracing is enabled."""
    from app.core.config import settings

    if not settings.otel_enabled:
        logger.debug("OpenTelemetry disabled - skipping FastAPI instrumentation")
        return

    try:
        FastAPIInstrumentor.instrument_app(app)
        logger.info("FastAPI instrumentation enabled")
    except Exception as e:
        logger.error(f"Failed to instrument FastAPI: {e}", exc_info=True)


def instrument_sqlalchemy(engine: Any) -> None:
    """Instrument a (sync) SQLAlchemy engine when tracing is enabled."""
    from app.core.config import settings

    if not settings.otel_enabled:
        logger.debug("OpenTelemetry disabled - skipping SQLAlchemy instrumentation")
        return

    try:
        SQLAlchemyInstrumentor().instrument(engine=engine)
        logger.info("SQLAlchemy instrumentation enabled")
    except Exception as e:
        logger.error(f"Failed to instrument SQLAlchemy: {e}", exc_info=True)


def shutdown_telemetry() -> None:
    """Flush pending spans and shut the tracer provider down."""
    global _tracer_provider

    if _tracer_provider is None:
        return

    try:
        _tracer_provider.shutdown()
        logger.info("OpenTelemetry shutdown complete")
    except Exception as e:
        logger.error(f"Error during OpenTelemetry shutdown: {e}", exc_info=True)
    finally:
        _tracer_provider = None


def _current_span_context() -> trace.SpanContext | None:
    current_span = trace.get_current_span()
    if not current_span.is_recording():
        return None
    span_context = current_span.get_span_context()
    return span_context if span_context.is_valid else None


def get_trace_id() -> str | None:
    """Current trace ID as hex, or None without an active span."""
    span_context = _current_span_context()
    return format(span_context.trace_id, "032x") if span_context else None


def get_span_id() -> str | None:
    """Current span ID as hex, or None without an active span."""
    span_context = _current_span_context()
    return format(span_context.span_id, "016x") if span_context else None

"""
Unit tests for observability helpers: structured logging, request IDs,
Prometheus metrics and tracing setup.
"""

import json
import logging
import sys
from unittest.mock import patch

import pytest
from prometheus_client import CollectorRegistry

from app.core.observability import (
    Metrics,
    StructuredFormatter,
    configure_structured_logging,
    generate_request_id,
    get_request_id,
    metrics_endpoint,
    set_correlation_id,
)
from app.core.telemetry import (
    get_span_id,
    get_trace_id,
    get_tracer,
    init_telemetry,
    shutdown_telemetry,
)


def make_record(message: str = "Compiled rule", **extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="app.compiler.compiler",
        level=logging.INFO,
        pathname=__file__,
        lineno=10,
        msg=message,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestStructuredFormatter:
    def test_formats_json(self):
        output = json.loads(StructuredFormatter().format(make_record()))

        assert output["level"] == "INFO"
        assert output["logger"] == "app.compiler.compiler"
        assert output["message"] == "Compiled rule"
        assert "timestamp" in output

    def test_includes_request_id(self):
        set_correlation_id("req-123")
        try:
            output = json.loads(StructuredFormatter().format(make_record()))
        finally:
            set_correlation_id("")

        assert output["request_id"] == "req-123"

    def test_includes_extra_fields(self):
        record = make_record(route="/api/v1/rules/save", status_code=200)

        output = json.loads(StructuredFormatter().format(record))

        assert output["extra"] == {"route": "/api/v1/rules/save", "status_code": 200}

    def test_includes_exception(self):
        try:
            raise ValueError("bad catalog")
        except ValueError:
            record = make_record()
            record.exc_info = sys.exc_info()

        output = json.loads(StructuredFormatter().format(record))

        assert output["exception"] == {"type": "ValueError", "message": "bad catalog"}

    def test_configure_structured_logging_replaces_handlers(self):
        root = logging.getLogger()
        saved_handlers, saved_level = root.handlers[:], root.level
        try:
            configure_structured_logging("debug")

            assert root.level == logging.DEBUG
            assert len(root.handlers) == 1
            assert isinstance(root.handlers[0].formatter, StructuredFormatter)
        finally:
            root.handlers[:] = saved_handlers
            root.setLevel(saved_level)


class TestRequestIds:
    def test_generate_request_id_is_unique(self):
        assert generate_request_id() != generate_request_id()

    def test_default_is_empty(self):
        assert get_request_id() == ""


class TestMetrics:
    def test_isolated_registry(self):
        registry = CollectorRegistry()
        local = Metrics(registry)

        local.rule_saves_total.labels(outcome="created").inc()

        assert registry.get_sample_value("rule_saves_total", {"outcome": "created"}) == 1.0

    def test_metrics_endpoint_content_type(self):
        response = metrics_endpoint()

        assert response.media_type.startswith("text/plain")
        assert b"rule_compilations_total" in response.body


class TestTelemetry:
    def test_disabled_by_default(self):
        assert init_telemetry() is None
        shutdown_telemetry()

    def test_no_trace_ids_without_active_span(self):
        assert get_trace_id() is None
        assert get_span_id() is None

    def test_tracer_works_without_provider(self):
        with get_tracer("tests").start_as_current_span("rule.compile") as span:
            span.set_attribute("rule.success", True)

    @pytest.mark.anyio
    async def test_init_failure_is_logged_not_raised(self):
        with (
            patch("app.core.config.settings.otel_enabled", True),
            patch("app.core.telemetry.Resource.create", side_effect=RuntimeError("boom")),
        ):
            assert init_telemetry(service_name="kure-rules-api") is None

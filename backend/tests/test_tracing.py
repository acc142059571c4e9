"""
Unit tests for OpenTelemetry tracing helpers.
"""
import pytest

from assistant_api.core.tracing import (
    StatusCode,
    configure_tracing,
    get_trace_id_from_context,
    get_tracer,
    record_exception,
    set_span_attribute,
    set_span_status,
    shutdown_tracing,
)


@pytest.fixture(autouse=True)
def tracing():
    configure_tracing(service_name="assistant_api_test", sampling_rate=1.0)


class TestTracingConfiguration:
    def test_get_tracer(self):
        """A tracer is available after configuration."""
        assert get_tracer() is not None

    def test_shutdown_is_idempotent(self):
        """Shutting down twice is harmless."""
        configure_tracing(service_name="assistant_api_shutdown")
        shutdown_tracing()
        shutdown_tracing()


class TestSpanHelpers:
    def test_trace_id_inside_span(self):
        """An active span exposes a 32-hex-digit trace id."""
        with get_tracer().start_as_current_span("test.operation"):
            trace_id = get_trace_id_from_context()

        assert trace_id is not None
        assert len(trace_id) == 32
        int(trace_id, 16)

    def test_no_trace_id_outside_span(self):
        """No span, no trace id."""
        assert get_trace_id_from_context() is None

    def test_span_helpers_do_not_raise(self):
        """Attribute, status and exception helpers work inside a span."""
        with get_tracer().start_as_current_span("test.helpers"):
            set_span_attribute("chat.intent", "fit_assessment")
            set_span_status(StatusCode.OK)
            record_exception(ValueError("boom"))

    def test_helpers_without_active_span(self):
        """Helpers are no-ops without an active span."""
        set_span_attribute("chat.intent", "default_chat")
        set_span_status(StatusCode.ERROR, "failed")

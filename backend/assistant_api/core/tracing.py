"""
OpenTelemetry tracing.

Configuration:
- OTEL_SERVICE_NAME: service name (default: assistant_api)
- OTEL_EXPORTER_OTLP_ENDPOINT: OTLP gRPC endpoint; spans are only exported when set
- OTEL_TRACES_SAMPLER_ARG: sampling ratio (default: 1.0)
"""
import os
from typing import Any, Optional

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.trace.sampling import TraceIdRatioBased
from opentelemetry.trace import Status, StatusCode, Tracer

from .logging import get_logger

logger = get_logger(__name__)

__all__ = [
    "StatusCode",
    "configure_tracing",
    "get_tracer",
    "get_trace_id_from_context",
    "set_span_attribute",
    "set_span_status",
    "record_exception",
    "instrument_fastapi",
    "shutdown_tracing",
]

_tracer: Optional[Tracer] = None
_tracer_provider: Optional[TracerProvider] = None


def configure_tracing(
    service_name: Optional[str] = None,
    otlp_endpoint: Optional[str] = None,
    sampling_rate: Optional[float] = None,
) -> None:
    global _tracer, _tracer_provider

    service_name = service_name or os.getenv("OTEL_SERVICE_NAME", "assistant_api")
    otlp_endpoint = otlp_endpoint or os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")
    if sampling_rate is None:
        sampling_rate = float(os.getenv("OTEL_TRACES_SAMPLER_ARG", "1.0"))

    resource = Resource.create({"service.name": service_name})
    _tracer_provider = TracerProvider(
        resource=resource,
        sampler=TraceIdRatioBased(sampling_rate),
    )

    if otlp_endpoint:
        try:
            _tracer_provider.add_span_processor(
                BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint))
            )
            logger.info("tracing_otlp_configured", endpoint=otlp_endpoint)
        except Exception as e:
            logger.warning(
                "tracing_otlp_configuration_failed",
                endpoint=otlp_endpoint,
                error=str(e),
                error_type=type(e).__name__,
            )

    trace.set_tracer_provider(_tracer_provider)
    _tracer = trace.get_tracer(__name__)

    logger.info(
        "tracing_configured",
        service_name=service_name,
        sampling_rate=sampling_rate,
        otlp_enabled=bool(otlp_endpoint),
    )


def get_tracer() -> Tracer:
    """Global tracer; falls back to the API's default provider if unconfigured."""
    global _tracer
    if _tracer is None:
        _tracer = trace.get_tracer(__name__)
    return _tracer


def get_trace_id_from_context() -> Optional[str]:
    """Hex trace id of the active span, if any."""
    span_context = trace.get_current_span().get_span_context()
    if span_context.is_valid:
        return format(span_context.trace_id, "032x")
    return None


def set_span_attribute(key: str, value: Any) -> None:
    trace.get_current_span().set_attribute(key, value)


def set_span_status(status_code: StatusCode, description: Optional[str] = None) -> None:
    trace.get_current_span().set_status(Status(status_code, description))


def record_exception(exception: BaseException) -> None:
    span = trace.get_current_span()
    span.record_exception(exception)
    span.set_status(Status(StatusCode.ERROR, str(exception)))


def instrument_fastapi(app) -> None:
    try:
        FastAPIInstrumentor.instrument_app(app)
        logger.info("tracing_fastapi_instrumented")
    except Exception as e:
        logger.warning(
            "tracing_fastapi_instrumentation_failed",
            error=str(e),
            error_type=type(e).__name__,
        )


def shutdown_tracing() -> None:
    global _tracer_provider
    if _tracer_provider is None:
        return
    try:
        _tracer_provider.shutdown()
        logger.info("tracing_shutdown")
    except Exception as e:
        logger.warning("tracing_shutdown_failed", error=str(e), error_type=type(e).__name__)
    finally:
        _tracer_provider = None

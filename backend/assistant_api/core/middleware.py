"""
Request context middleware.

- Reads X-Trace-ID / X-Request-ID or generates a trace id
- Generates a request id per request
- Binds trace id, request id and client identity for structured logging
- Records RED metrics and returns both ids as response headers
"""
import time
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from .logging import (
    generate_request_id,
    generate_trace_id,
    get_logger,
    set_client_id,
    set_request_id,
    set_trace_id,
)
from .quota import get_client_ip
from .tracing import get_tracer, record_exception, set_span_attribute

logger = get_logger(__name__)


class TraceIDMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, metrics_provider: Callable):
        super().__init__(app)
        self._metrics_provider = metrics_provider

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        trace_id = (
            request.headers.get("X-Trace-ID")
            or request.headers.get("X-Request-ID")
            or generate_trace_id()
        )
        request_id = generate_request_id()
        client_id = get_client_ip(request)

        set_trace_id(trace_id)
        set_request_id(request_id)
        set_client_id(client_id)

        metrics = self._metrics_provider()
        start_time = time.perf_counter()
        request.state.start_time = start_time

        with get_tracer().start_as_current_span("http.request"):
            set_span_attribute("http.method", request.method)
            set_span_attribute("http.route", request.url.path)

            logger.info("request_started", method=request.method, path=request.url.path)
            try:
                response = await call_next(request)
            except Exception as e:
                duration = time.perf_counter() - start_time
                record_exception(e)
                metrics.record_http_request(request.method, request.url.path, 500, duration)
                logger.error(
                    "request_failed",
                    method=request.method,
                    path=request.url.path,
                    error=str(e),
                    error_type=type(e).__name__,
                    latency_ms=int(duration * 1000),
                    exc_info=True,
                )
                raise
            finally:
                set_trace_id(None)
                set_request_id(None)
                set_client_id(None)

            duration = time.perf_counter() - start_time
            set_span_attribute("http.status_code", response.status_code)
            metrics.record_http_request(
                request.method, request.url.path, response.status_code, duration
            )
            logger.info(
                "request_completed",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                latency_ms=int(duration * 1000),
                trace_id=trace_id,
                request_id=request_id,
            )

            response.headers["X-Trace-ID"] = trace_id
            response.headers["X-Request-ID"] = request_id
            return response

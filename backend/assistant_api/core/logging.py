"""
Structured logging configuration.

Every log entry carries:
- timestamp (ISO 8601)
- level
- service name
- trace_id / request_id (set by TraceIDMiddleware)
- client_id (the quota/session identity, when known)
"""
import logging
import sys
import uuid
from contextvars import ContextVar
from typing import Any, Dict, Optional

import structlog
from structlog.types import Processor

trace_id_var: ContextVar[Optional[str]] = ContextVar("trace_id", default=None)
request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
client_id_var: ContextVar[Optional[str]] = ContextVar("client_id", default=None)

SERVICE_NAME = "assistant_api"


def add_request_context(
    logger: structlog.BoundLogger,
    method_name: str,
    event_dict: Dict[str, Any],
) -> Dict[str, Any]:
    """Copy request-scoped context variables onto the event."""
    trace_id = trace_id_var.get()
    if trace_id:
        event_dict["trace_id"] = trace_id

    request_id = request_id_var.get()
    if request_id:
        event_dict["request_id"] = request_id

    client_id = client_id_var.get()
    if client_id:
        event_dict["client_id"] = client_id

    event_dict["service"] = SERVICE_NAME
    return event_dict


def configure_logging(
    log_level: str = "INFO",
    service_name: Optional[str] = None,
    json_output: bool = True,
) -> None:
    """
    Configure structlog on top of the standard library logger.

    Args:
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        service_name: Overrides SERVICE_NAME when given
        json_output: JSON lines for containers, pretty console output otherwise
    """
    global SERVICE_NAME
    if service_name:
        SERVICE_NAME = service_name

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_request_context,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO),
    )


def get_logger(name: Optional[str] = None) -> structlog.BoundLogger:
    """Return a structlog logger, typically named after the calling module."""
    return structlog.get_logger(name)


def set_trace_id(trace_id: Optional[str]) -> None:
    trace_id_var.set(trace_id)


def get_trace_id() -> Optional[str]:
    return trace_id_var.get()


def set_request_id(request_id: Optional[str]) -> None:
    request_id_var.set(request_id)


def get_request_id() -> Optional[str]:
    return request_id_var.get()


def set_client_id(client_id: Optional[str]) -> None:
    """Bind the caller identity to every log line of the current request."""
    client_id_var.set(client_id)


def get_client_id() -> Optional[str]:
    return client_id_var.get()


def generate_request_id() -> str:
    return str(uuid.uuid4())


def generate_trace_id() -> str:
    return str(uuid.uuid4())

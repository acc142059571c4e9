from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .core.errors import QuotaExceeded, ServiceError
from .core.logging import configure_logging, get_logger, get_trace_id
from .core.metrics import get_metrics
from .core.middleware import TraceIDMiddleware
from .core.redis import close_redis, initialize_redis
from .core.settings import get_settings
from .core.tracing import (
    StatusCode,
    configure_tracing,
    get_trace_id_from_context,
    instrument_fastapi,
    record_exception,
    set_span_status,
    shutdown_tracing,
)
from .routes import admin, chat, health, metrics, session

settings = get_settings()

# JSON lines in containers, console output in development
configure_logging(log_level=settings.log_level, json_output=settings.log_json)

logger = get_logger(__name__)

configure_tracing()

app = FastAPI(
    title="Assistant API",
    description="Portfolio chat assistant with page scraping, extraction and job-fit assessment",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Added last, so it wraps CORS as the outermost middleware
app.add_middleware(TraceIDMiddleware, metrics_provider=get_metrics)

instrument_fastapi(app)


@app.on_event("startup")
async def startup_event():
    """Initialize services on application startup."""
    logger.info("app_startup_started", environment=settings.environment)

    redis_ready = await initialize_redis(settings.redis_url)
    if redis_ready:
        logger.info("app_startup_redis_ready")
    else:
        logger.warning(
            "app_startup_redis_unavailable",
            message="Quota ledger unavailable. Requests are served without quota enforcement.",
        )

    if not settings.gemini_api_key:
        logger.warning("app_startup_ai_not_configured", message="GEMINI_API_KEY is not set")
    if not settings.scraper_base_url:
        logger.warning("app_startup_scraper_not_configured", message="SCRAPER_BASE_URL is not set")

    logger.info("app_startup_completed")


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup resources on application shutdown."""
    logger.info("app_shutdown_started")
    shutdown_tracing()
    await close_redis()
    logger.info("app_shutdown_completed")


def _error_response(status_code: int, category: str, detail=None, headers=None) -> JSONResponse:
    trace_id = get_trace_id() or get_trace_id_from_context()

    content = {"error": category, "status_code": status_code}
    if detail and get_settings().is_development:
        content["detail"] = detail
    if trace_id:
        content["trace_id"] = trace_id

    response = JSONResponse(status_code=status_code, content=content, headers=headers)
    if trace_id:
        response.headers["X-Trace-ID"] = trace_id
    return response


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    """Render the service error taxonomy."""
    set_span_status(StatusCode.ERROR if exc.status_code >= 500 else StatusCode.OK, exc.category)

    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        "service_error",
        category=exc.category,
        status_code=exc.status_code,
        detail=exc.detail,
        upstream=getattr(exc, "upstream", None),
        reason=getattr(exc, "reason", None),
        path=request.url.path,
        method=request.method,
    )

    headers = None
    if isinstance(exc, QuotaExceeded):
        headers = {"Retry-After": str(exc.retry_after)}

    return _error_response(
        exc.status_code,
        exc.category,
        detail=exc.detail or exc.public_message,
        headers=headers,
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning(
        "request_validation_failed",
        path=request.url.path,
        method=request.method,
        errors=len(exc.errors()),
    )
    return _error_response(400, "input_invalid", detail=str(exc.errors()))


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTP exceptions raised by routes and dependencies."""
    set_span_status(StatusCode.ERROR if exc.status_code >= 500 else StatusCode.OK, str(exc.detail))

    logger.warning(
        "http_exception",
        status_code=exc.status_code,
        detail=exc.detail,
        path=request.url.path,
        method=request.method,
    )
    category = {
        400: "input_invalid",
        401: "unauthorized",
        429: "quota_exceeded",
        502: "upstream_unavailable",
        503: "upstream_unavailable",
    }.get(exc.status_code, "internal_error" if exc.status_code >= 500 else "http_error")
    return _error_response(exc.status_code, category, detail=str(exc.detail))


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle general exceptions."""
    record_exception(exc)
    set_span_status(StatusCode.ERROR, str(exc))

    logger.error(
        "unhandled_exception",
        error=str(exc),
        error_type=type(exc).__name__,
        path=request.url.path,
        method=request.method,
        exc_info=True,
    )
    return _error_response(500, "internal_error", detail=str(exc))


app.include_router(health.router, prefix="/health", tags=["Health"])
app.include_router(metrics.router, prefix="/metrics", tags=["Metrics"])
app.include_router(session.router, prefix="/session", tags=["Session"])
app.include_router(chat.router, prefix="/chat", tags=["Chat"])
app.include_router(admin.router, prefix="/admin", tags=["Admin"])

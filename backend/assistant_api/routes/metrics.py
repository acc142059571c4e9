"""
Prometheus metrics endpoint.

GET /metrics
"""
from fastapi import APIRouter, Depends, Response
from fastapi.responses import PlainTextResponse

from assistant_api.core.logging import get_logger
from assistant_api.dependencies import Services, get_services

logger = get_logger(__name__)
router = APIRouter()


@router.get("", response_class=PlainTextResponse)
async def metrics(services: Services = Depends(get_services)):
    """
    Prometheus text exposition. No authentication (standard scrape target).
    """
    recorder = services.metrics
    try:
        return Response(content=recorder.render(), media_type=recorder.content_type)
    except Exception as e:
        logger.error(
            "metrics_endpoint_error",
            error=str(e),
            error_type=type(e).__name__,
            exc_info=True,
        )
        return Response(
            content=b"# Error collecting metrics\n",
            media_type=recorder.content_type,
        )

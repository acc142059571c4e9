"""
Health check endpoints.
"""
from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from assistant_api.core.logging import get_logger
from assistant_api.core.redis import ping_redis
from assistant_api.dependencies import Services, get_services

logger = get_logger(__name__)
router = APIRouter()


@router.get("/")
async def health_check():
    """Liveness probe."""
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/dependencies")
async def dependencies_health(services: Services = Depends(get_services)):
    """
    Status of external collaborators.

    Returns:
        - redis: whether the quota store answers a PING (quota fails open if not)
        - ai: whether an API key is configured
        - scraper: whether the scraping service URL is configured
        - verification: whether a human-verification secret is configured
        - gating_enforced: whether /chat currently requires a session token
    """
    redis_ok = await ping_redis()
    ai_ok = services.llm.configured

    if not redis_ok:
        logger.warning("health_redis_unreachable")

    return {
        "status": "ok" if ai_ok else "degraded",
        "redis": "ok" if redis_ok else "unavailable",
        "ai": "configured" if ai_ok else "not_configured",
        "scraper": "configured" if services.scraper.configured else "not_configured",
        "verification": "configured" if services.gate.verifier.configured else "not_configured",
        "gating_enforced": services.gate.policy.enforced,
    }

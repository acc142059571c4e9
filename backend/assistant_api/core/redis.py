"""
Shared Redis connection pool.

Redis backs the quota ledger only. The pool reconnects on its own after an
outage; callers that find no pool (startup failed) degrade instead of
failing requests.
"""
from typing import Optional

from redis.asyncio import Redis
from redis.exceptions import RedisError

from .logging import get_logger

logger = get_logger(__name__)

_redis_pool: Optional[Redis] = None


async def initialize_redis(redis_url: str) -> bool:
    """
    Create the pool and check it with a PING.

    Returns:
        True if Redis answered, False otherwise. The pool is kept either way
        so that later requests can succeed once Redis comes back.
    """
    global _redis_pool

    logger.info("redis_initializing", url=redis_url)
    _redis_pool = Redis.from_url(
        redis_url,
        max_connections=20,
        socket_connect_timeout=2,
        socket_timeout=2,
        retry_on_timeout=True,
        health_check_interval=30,
        decode_responses=True,
    )

    try:
        await _redis_pool.ping()
    except (RedisError, OSError) as e:
        logger.warning(
            "redis_unreachable_at_startup",
            url=redis_url,
            error=str(e),
            error_type=type(e).__name__,
        )
        return False

    logger.info("redis_initialized")
    return True


async def close_redis() -> None:
    global _redis_pool

    if _redis_pool is None:
        return
    try:
        await _redis_pool.aclose()
        logger.info("redis_closed")
    except (RedisError, OSError) as e:
        logger.error("redis_close_failed", error=str(e), exc_info=True)
    finally:
        _redis_pool = None


def get_redis_client() -> Optional[Redis]:
    return _redis_pool


async def ping_redis() -> bool:
    """Health probe; never raises."""
    if _redis_pool is None:
        return False
    try:
        return bool(await _redis_pool.ping())
    except (RedisError, OSError):
        return False

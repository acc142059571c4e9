"""
Per-client daily request quota backed by Redis.

One counter per (identity, UTC day):
- INCR is atomic, so concurrent requests from the same client
  serialize inside Redis.
- INCR and EXPIRE run in one MULTI/EXEC transaction, so a counter never
  exists without an expiry. The expiry always points at the next UTC
  midnight (never less than QUOTA_MIN_TTL_SECONDS), so re-applying it on
  every hit keeps the same deadline and repairs a key that lost its TTL.
  Yesterday's counter is simply a different key that is already gone or
  about to be.

Policy is fail-open: if Redis is unreachable the request proceeds and a
warning is logged.
"""
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from fastapi import Request
from redis.asyncio import Redis
from redis.exceptions import RedisError

from .errors import LedgerUnavailable, QuotaExceeded
from .logging import get_logger

logger = get_logger(__name__)

QUOTA_KEY_PREFIX = "quota"
QUOTA_MIN_TTL_SECONDS = 60


def get_client_ip(request: Request) -> str:
    """Client identity: first X-Forwarded-For hop, X-Real-IP, then the peer address."""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        first_hop = forwarded_for.split(",")[0].strip()
        if first_hop:
            return first_hop

    real_ip = request.headers.get("X-Real-IP")
    if real_ip and real_ip.strip():
        return real_ip.strip()

    if request.client and request.client.host:
        return request.client.host

    return "unknown"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def day_key(now: datetime) -> str:
    return now.astimezone(timezone.utc).strftime("%Y-%m-%d")


def seconds_until_utc_midnight(now: datetime, floor: int = QUOTA_MIN_TTL_SECONDS) -> int:
    """Whole seconds left in the current UTC day, never below `floor`."""
    now = now.astimezone(timezone.utc)
    next_midnight = (now + timedelta(days=1)).replace(
        hour=0, minute=0, second=0, microsecond=0
    )
    remaining = int((next_midnight - now).total_seconds())
    return max(remaining, floor)


def quota_key(identity: str, now: datetime) -> str:
    return f"{QUOTA_KEY_PREFIX}:{identity}:{day_key(now)}"


class QuotaLedger:
    """Atomic per-day counters in Redis."""

    def __init__(
        self,
        redis_provider: Callable[[], Optional[Redis]],
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._redis_provider = redis_provider
        self._clock = clock

    async def check_and_increment(self, identity: str) -> int:
        """
        Count one more request for `identity` today.

        Returns:
            The post-increment count.

        Raises:
            LedgerUnavailable: Redis is not configured or the call failed.
        """
        client = self._redis_provider()
        if client is None:
            raise LedgerUnavailable("quota store not initialized")

        now = self._clock()
        key = quota_key(identity, now)
        try:
            async with client.pipeline(transaction=True) as pipe:
                count, _ = await pipe.incr(key).expire(key, seconds_until_utc_midnight(now)).execute()
            count = int(count)
        except (RedisError, OSError) as e:
            raise LedgerUnavailable(str(e)) from e

        return count


class QuotaGuard:
    """Applies the daily ceiling on top of the ledger."""

    def __init__(self, ledger: QuotaLedger, daily_limit: int, metrics, clock: Callable[[], datetime] = _utcnow):
        self.ledger = ledger
        self.daily_limit = daily_limit
        self.metrics = metrics
        self._clock = clock

    async def enforce(self, identity: str) -> Optional[int]:
        """
        Count the request and reject it once today's count passes the limit.

        Returns:
            The count, or None when the ledger was unavailable (fail-open).

        Raises:
            QuotaExceeded: with retry_after set to the seconds until UTC midnight.
        """
        try:
            count = await self.ledger.check_and_increment(identity)
        except LedgerUnavailable as e:
            self.metrics.record_quota_check("store_unavailable")
            logger.warning(
                "quota_ledger_unavailable",
                error=str(e),
                policy="fail_open",
            )
            return None

        if count > self.daily_limit:
            self.metrics.record_quota_check("exceeded")
            retry_after = seconds_until_utc_midnight(self._clock(), floor=1)
            logger.warning(
                "quota_exceeded",
                count=count,
                limit=self.daily_limit,
                retry_after=retry_after,
            )
            raise QuotaExceeded(retry_after=retry_after, count=count, limit=self.daily_limit)

        self.metrics.record_quota_check("allowed")
        return count

"""
Shared fixtures: an in-memory stand-in for the Redis commands the quota
ledger uses, mutable clocks and a null metrics recorder.
"""
from datetime import datetime, timedelta, timezone
from typing import Dict

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from assistant_api.core.metrics import NullMetrics


class FakePipeline:
    """Queues commands and applies them all at once on execute, like MULTI/EXEC."""

    def __init__(self, redis):
        self._redis = redis
        self._commands = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        self._commands.clear()

    def incr(self, key: str):
        self._commands.append(("incr", (key,)))
        return self

    def expire(self, key: str, seconds: int):
        self._commands.append(("expire", (key, seconds)))
        return self

    async def execute(self):
        self._redis._check()
        commands, self._commands = self._commands, []
        return [await getattr(self._redis, name)(*args) for name, args in commands]


class FakeRedis:
    """INCR / EXPIRE / TTL / PING and pipelines over a dict, with expiry driven by `clock`."""

    def __init__(self, clock):
        self._clock = clock
        self.values: Dict[str, int] = {}
        self.expiries: Dict[str, datetime] = {}
        self.fail = False

    def _check(self):
        if self.fail:
            raise RedisConnectionError("connection refused")

    def _evict(self, key: str) -> None:
        expires_at = self.expiries.get(key)
        if expires_at is not None and self._clock() >= expires_at:
            self.values.pop(key, None)
            self.expiries.pop(key, None)

    async def incr(self, key: str) -> int:
        self._check()
        self._evict(key)
        self.values[key] = self.values.get(key, 0) + 1
        return self.values[key]

    async def expire(self, key: str, seconds: int) -> bool:
        self._check()
        self.expiries[key] = self._clock() + timedelta(seconds=seconds)
        return True

    async def ttl(self, key: str) -> int:
        self._evict(key)
        if key not in self.values:
            return -2
        if key not in self.expiries:
            return -1
        return int((self.expiries[key] - self._clock()).total_seconds())

    async def ping(self) -> bool:
        self._check()
        return True

    def pipeline(self, transaction: bool = True) -> FakePipeline:
        return FakePipeline(self)


class MutableClock:
    """Callable clock that tests move forward explicitly."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def utc_clock():
    return MutableClock(datetime(2024, 3, 10, 15, 30, 0, tzinfo=timezone.utc))


@pytest.fixture
def fake_redis(utc_clock):
    return FakeRedis(utc_clock)


@pytest.fixture
def null_metrics():
    return NullMetrics()


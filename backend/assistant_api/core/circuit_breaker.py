"""
Circuit breaker for outbound calls (AI provider, scraper, verification).

- Opens when the error rate over a sliding window reaches the threshold
  (once at least `min_calls` results are in the window).
- Stays open for `open_seconds`, then lets a single probe call through.
- A successful probe closes the circuit; a failed one re-opens it.
"""
import time
from collections import deque
from enum import Enum
from typing import Any, Awaitable, Callable, Deque, Optional, Tuple

from .logging import get_logger

logger = get_logger(__name__)


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreakerOpenError(Exception):
    """Raised instead of calling the wrapped function while the circuit is open."""


class CircuitBreaker:
    def __init__(
        self,
        name: str,
        failure_threshold: float = 0.5,
        window_seconds: float = 60.0,
        open_seconds: float = 30.0,
        min_calls: int = 10,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.window_seconds = window_seconds
        self.open_seconds = open_seconds
        self.min_calls = min_calls
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._results: Deque[Tuple[float, bool]] = deque()
        self._opened_at: Optional[float] = None
        self._probe_in_flight = False

    @property
    def state(self) -> CircuitState:
        self._refresh()
        return self._state

    def _refresh(self) -> None:
        now = self._clock()
        cutoff = now - self.window_seconds
        while self._results and self._results[0][0] < cutoff:
            self._results.popleft()

        if (
            self._state == CircuitState.OPEN
            and self._opened_at is not None
            and now - self._opened_at >= self.open_seconds
        ):
            self._state = CircuitState.HALF_OPEN
            self._probe_in_flight = False
            logger.info("circuit_breaker_half_open", circuit_breaker=self.name)

    def _open(self, now: float, **fields: Any) -> None:
        self._state = CircuitState.OPEN
        self._opened_at = now
        self._results.clear()
        logger.warning("circuit_breaker_opened", circuit_breaker=self.name, **fields)

    def _record(self, success: bool) -> None:
        now = self._clock()

        if self._state == CircuitState.HALF_OPEN:
            self._probe_in_flight = False
            if success:
                self._state = CircuitState.CLOSED
                self._opened_at = None
                logger.info("circuit_breaker_closed", circuit_breaker=self.name)
            else:
                self._open(now, reason="probe_failed")
            return

        self._results.append((now, success))
        total = len(self._results)
        if total < self.min_calls:
            return
        failures = sum(1 for _, ok in self._results if not ok)
        error_rate = failures / total
        if error_rate >= self.failure_threshold:
            self._open(now, error_rate=error_rate, failures=failures, total=total)

    async def call_async(self, func: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        """Await `func(*args, **kwargs)` under circuit protection."""
        state = self.state
        if state == CircuitState.OPEN:
            raise CircuitBreakerOpenError(f"Circuit breaker {self.name} is open")
        if state == CircuitState.HALF_OPEN:
            if self._probe_in_flight:
                raise CircuitBreakerOpenError(
                    f"Circuit breaker {self.name} is half-open, probe already in flight"
                )
            self._probe_in_flight = True

        try:
            result = await func(*args, **kwargs)
        except Exception:
            self._record(False)
            raise
        except BaseException:
            # Cancelled: neither a success nor a failure, free the probe slot.
            self._probe_in_flight = False
            raise
        self._record(True)
        return result

    def get_metrics(self) -> dict:
        self._refresh()
        failures = sum(1 for _, ok in self._results if not ok)
        total = len(self._results)
        return {
            "name": self.name,
            "state": self._state.value,
            "recent_calls": total,
            "recent_failures": failures,
            "error_rate": failures / total if total else 0.0,
            "opened_at": self._opened_at,
        }

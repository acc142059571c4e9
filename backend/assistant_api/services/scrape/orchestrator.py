"""
Scrape job submission and polling.

Polling uses bounded exponential backoff against an absolute deadline:
- wait `initial_delay`, poll, multiply the delay by `backoff_factor`
  (capped at `max_delay`), repeat
- a failed poll is transient: keep the last good snapshot and continue
- return on the first terminal status (completed, failed, error)
- at the deadline, return the last snapshot (None if no poll succeeded);
  callers treat that as "outcome unknown", not as a failure
- each poll is cut off at the deadline even if the HTTP call is still running
"""
import asyncio
import time
from typing import Awaitable, Callable, Optional

import httpx

from assistant_api.core.logging import get_logger
from assistant_api.core.settings import PollSettings
from assistant_api.services.scrape.client import ScrapeServiceClient
from assistant_api.services.scrape.schema import ScrapeJob

logger = get_logger(__name__)

CancelCheck = Callable[[], Awaitable[bool]]


class ScrapeJobOrchestrator:
    def __init__(
        self,
        client: ScrapeServiceClient,
        poll: PollSettings,
        metrics,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.client = client
        self.poll = poll
        self.metrics = metrics
        self._clock = clock
        self._sleep = sleep

    async def submit(self, target_url: str) -> str:
        """Submit once; failures propagate as UpstreamUnavailable."""
        return await self.client.submit(target_url)

    def deadline_from_now(self, seconds: Optional[float] = None) -> float:
        return self._clock() + (self.poll.deadline if seconds is None else seconds)

    async def await_terminal(
        self,
        job_id: str,
        deadline: float,
        is_cancelled: Optional[CancelCheck] = None,
    ) -> Optional[ScrapeJob]:
        """
        Poll until a terminal status, the deadline, or cancellation.

        Args:
            job_id: Job returned by submit()
            deadline: Absolute time on this orchestrator's clock
            is_cancelled: Checked before every wait; True abandons polling

        Returns:
            The terminal job, or the last observed snapshot, or None.
        """
        delay = self.poll.initial_delay
        last_observed: Optional[ScrapeJob] = None
        attempts = 0

        while True:
            if is_cancelled is not None and await is_cancelled():
                self.metrics.record_scrape_job("abandoned")
                logger.info("scrape_poll_abandoned", job_id=job_id, attempts=attempts)
                return last_observed

            remaining = deadline - self._clock()
            if remaining <= 0:
                break
            await self._sleep(min(delay, remaining))
            delay = min(delay * self.poll.backoff_factor, self.poll.max_delay)

            remaining = deadline - self._clock()
            if remaining <= 0:
                break

            attempts += 1
            try:
                job = await asyncio.wait_for(self.client.status(job_id), timeout=remaining)
            except (httpx.HTTPError, ValueError, asyncio.TimeoutError) as e:
                self.metrics.record_scrape_poll("error")
                logger.warning(
                    "scrape_poll_failed",
                    job_id=job_id,
                    attempt=attempts,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                continue

            self.metrics.record_scrape_poll("observed")
            last_observed = job
            logger.debug("scrape_poll_observed", job_id=job_id, attempt=attempts, status=job.status.value)

            if job.status.is_terminal:
                self.metrics.record_scrape_job(job.status.value)
                logger.info(
                    "scrape_job_terminal",
                    job_id=job_id,
                    status=job.status.value,
                    attempts=attempts,
                    results=len(job.results),
                )
                return job

        self.metrics.record_scrape_job("deadline")
        logger.info(
            "scrape_poll_deadline_reached",
            job_id=job_id,
            attempts=attempts,
            last_status=last_observed.status.value if last_observed else None,
        )
        return last_observed

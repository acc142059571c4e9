"""
HTTP client for the companion scraping microservice.

API contract:
- POST {base}/scrape        {"url": ...}  -> {"jobId": ...}
- GET  {base}/jobs/{job_id}               -> {"status": ..., "results": [...]}
"""
from typing import Any, Dict, Optional

import httpx

from assistant_api.core.circuit_breaker import CircuitBreaker, CircuitBreakerOpenError
from assistant_api.core.errors import UpstreamUnavailable
from assistant_api.core.logging import get_logger
from assistant_api.services.scrape.schema import ScrapeJob

logger = get_logger(__name__)

UPSTREAM = "scraper"


class ScrapeServiceClient:
    def __init__(
        self,
        base_url: Optional[str],
        api_key: Optional[str] = None,
        submit_timeout: float = 10.0,
        poll_timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/") if base_url else None
        self.api_key = api_key
        self.submit_timeout = submit_timeout
        self.poll_timeout = poll_timeout
        self._transport = transport
        self.circuit_breaker = CircuitBreaker(name="scraper", min_calls=5)

    @property
    def configured(self) -> bool:
        return bool(self.base_url)

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def _request(self, method: str, path: str, timeout: float, **kwargs) -> Dict[str, Any]:
        async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
            response = await client.request(
                method, f"{self.base_url}{path}", headers=self._headers(), **kwargs
            )
            response.raise_for_status()
            return response.json()

    async def submit(self, url: str) -> str:
        """
        Start a scrape job. One attempt, bounded by submit_timeout.

        Raises:
            UpstreamUnavailable: service not configured, unreachable, or
                returned no job id.
        """
        if not self.configured:
            raise UpstreamUnavailable(UPSTREAM, "not_configured")

        try:
            payload = await self.circuit_breaker.call_async(
                self._request, "POST", "/scrape", self.submit_timeout, json={"url": url}
            )
        except CircuitBreakerOpenError as e:
            raise UpstreamUnavailable(UPSTREAM, "circuit_open") from e
        except httpx.TimeoutException as e:
            raise UpstreamUnavailable(UPSTREAM, "timeout") from e
        except (httpx.HTTPError, ValueError) as e:
            raise UpstreamUnavailable(UPSTREAM, "generic", str(e)) from e

        job_id = payload.get("jobId") or payload.get("job_id") or payload.get("id")
        if not job_id:
            raise UpstreamUnavailable(UPSTREAM, "generic", "submission returned no job id")

        logger.info("scrape_job_submitted", job_id=job_id, url=url)
        return str(job_id)

    async def status(self, job_id: str) -> ScrapeJob:
        """
        Fetch one status snapshot.

        Transport and decoding errors propagate as httpx.HTTPError /
        ValueError; the poller treats them as transient.
        """
        payload = await self._request("GET", f"/jobs/{job_id}", self.poll_timeout)
        if not isinstance(payload, dict):
            raise ValueError(f"unexpected job status payload: {type(payload).__name__}")
        return ScrapeJob.from_payload(job_id, payload)

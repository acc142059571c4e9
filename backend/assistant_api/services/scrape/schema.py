"""
Models for jobs owned by the external scraping service.
"""
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class JobStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    ERROR = "error"

    @classmethod
    def parse(cls, value: Any) -> "JobStatus":
        """Unknown or in-progress states ("running", "queued", ...) count as pending."""
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        return cls.PENDING

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.ERROR})


class ScrapeResult(BaseModel):
    content: str = ""
    title: Optional[str] = None
    url: Optional[str] = None


class ScrapeJob(BaseModel):
    """Last observed snapshot of a scrape job."""

    id: str
    status: JobStatus = JobStatus.PENDING
    results: List[ScrapeResult] = Field(default_factory=list)

    @classmethod
    def from_payload(cls, job_id: str, payload: Dict[str, Any]) -> "ScrapeJob":
        raw_results = payload.get("results") or []
        results = []
        for item in raw_results:
            if isinstance(item, dict):
                results.append(
                    ScrapeResult(
                        content=str(item.get("content") or ""),
                        title=item.get("title"),
                        url=item.get("url"),
                    )
                )
            elif isinstance(item, str):
                results.append(ScrapeResult(content=item))
        return cls(
            id=str(payload.get("id") or payload.get("jobId") or job_id),
            status=JobStatus.parse(payload.get("status")),
            results=results,
        )

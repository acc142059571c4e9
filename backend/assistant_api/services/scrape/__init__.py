"""Client and polling orchestrator for the external scraping service."""

from .orchestrator import ScrapeJobOrchestrator
from .schema import JobStatus, ScrapeJob, ScrapeResult

__all__ = ["ScrapeJobOrchestrator", "JobStatus", "ScrapeJob", "ScrapeResult"]

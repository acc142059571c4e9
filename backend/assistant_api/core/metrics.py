"""
Prometheus metrics.

Collectors are owned by a ChatMetrics instance bound to an explicit
CollectorRegistry and handed to the services that record into them, so
tests can build isolated registries (or use NullMetrics) instead of sharing
process-wide counters.

Naming follows Prometheus conventions:
- Counters: _total suffix
- Histograms: _seconds suffix for durations
"""
from typing import Optional

import psutil
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

from .logging import get_logger

logger = get_logger(__name__)

METRIC_PREFIX = "ai_backend_"


def normalize_endpoint(path: str) -> str:
    """Strip query strings and trailing slashes to keep label cardinality low."""
    if "?" in path:
        path = path.split("?")[0]
    if len(path) > 1 and path.endswith("/"):
        path = path.rstrip("/")
    return path or "/"


class ChatMetrics:
    """Observability port backed by prometheus_client."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or CollectorRegistry()

        # RED metrics
        self.http_requests_total = Counter(
            "http_requests_total",
            "Total number of HTTP requests",
            ["method", "route", "status_code"],
            registry=self.registry,
        )
        self.http_request_duration_seconds = Histogram(
            "http_request_duration_seconds",
            "Duration of HTTP requests in seconds",
            ["method", "route", "status_code"],
            buckets=[0.1, 0.5, 1, 2, 5],
            registry=self.registry,
        )

        # Chat pipeline
        self.ai_chat_requests_total = Counter(
            "ai_chat_requests_total",
            "Total number of AI chat requests",
            ["status"],
            registry=self.registry,
        )
        self.ai_chat_response_time_seconds = Histogram(
            "ai_chat_response_time_seconds",
            "AI chat response time in seconds",
            buckets=[0.1, 0.5, 1, 2, 5, 10],
            registry=self.registry,
        )
        self.chat_intent_total = Counter(
            "chat_intent_total",
            "Classified chat intents",
            ["intent"],
            registry=self.registry,
        )
        self.quota_checks_total = Counter(
            "quota_checks_total",
            "Quota ledger checks by outcome (allowed, exceeded, store_unavailable)",
            ["outcome"],
            registry=self.registry,
        )
        self.session_tokens_total = Counter(
            "session_tokens_total",
            "Session token issuance and verification events",
            ["kind"],
            registry=self.registry,
        )
        self.scrape_jobs_total = Counter(
            "scrape_jobs_total",
            "Scrape jobs by final outcome",
            ["outcome"],
            registry=self.registry,
        )
        self.scrape_polls_total = Counter(
            "scrape_polls_total",
            "Individual scrape status polls by outcome",
            ["outcome"],
            registry=self.registry,
        )
        self.upstream_errors_total = Counter(
            "upstream_errors_total",
            "Errors from external dependencies",
            ["upstream", "reason"],
            registry=self.registry,
        )

        # Resource metrics
        self.process_cpu_percent = Gauge(
            f"{METRIC_PREFIX}process_cpu_percent",
            "Process CPU usage percentage",
            registry=self.registry,
        )
        self.process_memory_rss_bytes = Gauge(
            f"{METRIC_PREFIX}process_memory_rss_bytes",
            "Process resident memory in bytes",
            registry=self.registry,
        )

    def record_http_request(
        self,
        method: str,
        route: str,
        status_code: int,
        duration_seconds: float,
    ) -> None:
        labels = {
            "method": method,
            "route": normalize_endpoint(route),
            "status_code": str(status_code),
        }
        self.http_requests_total.labels(**labels).inc()
        self.http_request_duration_seconds.labels(**labels).observe(duration_seconds)

    def record_chat(self, status: str, duration_seconds: float) -> None:
        self.ai_chat_requests_total.labels(status=status).inc()
        self.ai_chat_response_time_seconds.observe(duration_seconds)

    def record_intent(self, intent: str) -> None:
        self.chat_intent_total.labels(intent=intent).inc()

    def record_quota_check(self, outcome: str) -> None:
        self.quota_checks_total.labels(outcome=outcome).inc()

    def record_session_token(self, kind: str) -> None:
        self.session_tokens_total.labels(kind=kind).inc()

    def record_scrape_job(self, outcome: str) -> None:
        self.scrape_jobs_total.labels(outcome=outcome).inc()

    def record_scrape_poll(self, outcome: str) -> None:
        self.scrape_polls_total.labels(outcome=outcome).inc()

    def record_upstream_error(self, upstream: str, reason: str) -> None:
        self.upstream_errors_total.labels(upstream=upstream, reason=reason).inc()

    def update_resource_metrics(self) -> None:
        """Refresh process gauges; called on each scrape of /metrics."""
        try:
            process = psutil.Process()
            self.process_cpu_percent.set(process.cpu_percent(interval=None))
            self.process_memory_rss_bytes.set(process.memory_info().rss)
        except psutil.Error as e:
            logger.warning(
                "metrics_resource_update_failed",
                error=str(e),
                error_type=type(e).__name__,
            )

    def render(self) -> bytes:
        self.update_resource_metrics()
        return generate_latest(self.registry)

    @property
    def content_type(self) -> str:
        return CONTENT_TYPE_LATEST


class NullMetrics:
    """Drop-in recorder that discards everything."""

    def record_http_request(self, method, route, status_code, duration_seconds) -> None:
        pass

    def record_chat(self, status, duration_seconds) -> None:
        pass

    def record_intent(self, intent) -> None:
        pass

    def record_quota_check(self, outcome) -> None:
        pass

    def record_session_token(self, kind) -> None:
        pass

    def record_scrape_job(self, outcome) -> None:
        pass

    def record_scrape_poll(self, outcome) -> None:
        pass

    def record_upstream_error(self, upstream, reason) -> None:
        pass

    def render(self) -> bytes:
        return b""

    @property
    def content_type(self) -> str:
        return CONTENT_TYPE_LATEST


_metrics: Optional[ChatMetrics] = None


def get_metrics() -> ChatMetrics:
    """The recorder wired into the running application."""
    global _metrics
    if _metrics is None:
        _metrics = ChatMetrics()
    return _metrics

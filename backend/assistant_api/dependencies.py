"""
Service wiring.

Everything a request handler needs is built once from Settings and held in a
Services bundle. Routes receive it through `Depends(get_services)`, so tests
swap the whole graph with `app.dependency_overrides[get_services]`.
"""
from dataclasses import dataclass
from typing import Callable, Optional

import httpx

from .core.logging import get_logger
from .core.metrics import get_metrics
from .core.quota import QuotaGuard, QuotaLedger
from .core.redis import get_redis_client
from .core.session import GatingPolicy, HumanVerifier, SessionGate, SessionTokenService
from .core.settings import Settings, get_settings
from .services.ai.llm_client import GeminiClient
from .services.ai.router import PromptRouter
from .services.chat import ChatService
from .services.scrape.client import ScrapeServiceClient
from .services.scrape.orchestrator import ScrapeJobOrchestrator

logger = get_logger(__name__)


@dataclass
class Services:
    settings: Settings
    metrics: object
    gate: SessionGate
    quota: QuotaGuard
    llm: GeminiClient
    scraper: ScrapeServiceClient
    chat: ChatService


def build_services(
    settings: Settings,
    metrics,
    redis_provider: Callable = get_redis_client,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Services:
    """`transport` is handed to every outbound HTTP client (tests pass a MockTransport)."""
    llm = GeminiClient(
        api_key=settings.gemini_api_key,
        model=settings.gemini_model,
        api_base=settings.gemini_api_base,
        timeout_seconds=settings.ai_timeout_seconds,
        metrics=metrics,
        transport=transport,
    )
    scraper = ScrapeServiceClient(
        base_url=settings.scraper_base_url,
        api_key=settings.scraper_api_key,
        submit_timeout=settings.poll.submit_timeout,
        poll_timeout=settings.poll.poll_timeout,
        transport=transport,
    )
    gate = SessionGate(
        tokens=SessionTokenService(settings.session_secret),
        verifier=HumanVerifier(
            secret_key=settings.turnstile_secret_key,
            verify_url=settings.turnstile_verify_url,
            timeout_seconds=settings.verification_timeout_seconds,
            transport=transport,
        ),
        policy=GatingPolicy(
            is_production=settings.is_production,
            verification_required=settings.verification_required,
        ),
        metrics=metrics,
    )
    quota = QuotaGuard(
        ledger=QuotaLedger(redis_provider),
        daily_limit=settings.daily_request_limit,
        metrics=metrics,
    )
    chat = ChatService(
        router=PromptRouter(llm),
        scraper=ScrapeJobOrchestrator(scraper, settings.poll, metrics),
        metrics=metrics,
        candidate_profile=settings.candidate_profile,
    )

    logger.info(
        "services_built",
        environment=settings.environment,
        ai_configured=llm.configured,
        scraper_configured=scraper.configured,
        verification_configured=gate.verifier.configured,
        gating_enforced=gate.policy.enforced,
    )
    return Services(
        settings=settings,
        metrics=metrics,
        gate=gate,
        quota=quota,
        llm=llm,
        scraper=scraper,
        chat=chat,
    )


_services: Optional[Services] = None


def get_services() -> Services:
    """Process-wide service bundle, built on first use."""
    global _services
    if _services is None:
        _services = build_services(get_settings(), get_metrics())
    return _services


def reset_services() -> None:
    global _services
    _services = None

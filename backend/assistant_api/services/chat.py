"""
Chat orchestration.

classify -> [scrape -> assemble] -> route -> generate

Scrape, extraction and fit flows need grounding content. When none is
available the caller gets a clarifying reply instead of an ungrounded
generation. When the scrape side of a flow breaks (submission fails, the job
ends failed/error) the request falls back to plain chat rather than failing.
A job still running at the poll deadline is reported as accepted with
unknown status, together with its job id.
"""
import time
from dataclasses import dataclass
from typing import Iterable, List, Optional

from assistant_api.core.errors import InputInvalid, UpstreamUnavailable
from assistant_api.core.logging import get_logger
from assistant_api.services.ai import prompts
from assistant_api.services.ai.intent import classify
from assistant_api.services.ai.llm_client import UPSTREAM as AI_UPSTREAM
from assistant_api.services.ai.router import PromptRouter
from assistant_api.services.ai.schema import Intent, IntentResult
from assistant_api.services.content.assembler import (
    apply_thin_fallback,
    assemble_pasted,
    assemble_results,
)
from assistant_api.services.scrape.orchestrator import CancelCheck, ScrapeJobOrchestrator
from assistant_api.services.scrape.schema import JobStatus, ScrapeJob

logger = get_logger(__name__)


@dataclass
class ChatOutcome:
    response: str
    job_id: Optional[str] = None


class ScrapeJobFailed(Exception):
    def __init__(self, job: ScrapeJob):
        super().__init__(f"scrape job {job.id} ended with status {job.status.value}")
        self.job = job


class ChatService:
    def __init__(
        self,
        router: PromptRouter,
        scraper: ScrapeJobOrchestrator,
        metrics,
        candidate_profile: str = "",
    ):
        self.router = router
        self.scraper = scraper
        self.metrics = metrics
        self.candidate_profile = candidate_profile

    async def handle(
        self,
        message: Optional[str],
        history: Optional[Iterable] = None,
        context: Optional[str] = None,
        is_cancelled: Optional[CancelCheck] = None,
    ) -> ChatOutcome:
        if not message or not message.strip():
            self.metrics.record_chat("error", 0.0)
            raise InputInvalid()

        history = list(history or [])
        start = time.perf_counter()

        intent = classify(message, history)
        self.metrics.record_intent(intent.intent.value)

        try:
            if not intent.needs_grounding:
                outcome = ChatOutcome(await self._default_chat(message, history, context))
            else:
                outcome = await self._grounded_with_fallback(
                    intent, message, history, context, is_cancelled
                )
        except Exception:
            self.metrics.record_chat("error", time.perf_counter() - start)
            raise

        duration = time.perf_counter() - start
        self.metrics.record_chat("success", duration)
        logger.info(
            "chat_completed",
            intent=intent.intent.value,
            job_id=outcome.job_id,
            response_chars=len(outcome.response),
            latency_ms=int(duration * 1000),
        )
        return outcome

    async def _default_chat(self, message: str, history: List, context: Optional[str]) -> str:
        return await self.router.route(
            Intent.DEFAULT_CHAT,
            content="",
            candidate_profile=self.candidate_profile,
            user_message=message,
            history=history,
            context=context,
        )

    async def _grounded_with_fallback(
        self,
        intent: IntentResult,
        message: str,
        history: List,
        context: Optional[str],
        is_cancelled: Optional[CancelCheck],
    ) -> ChatOutcome:
        try:
            return await self._grounded(intent, message, history, is_cancelled)
        except UpstreamUnavailable as e:
            # The model itself is down; plain chat would fail the same way.
            if e.upstream == AI_UPSTREAM:
                raise
            logger.warning(
                "chat_orchestration_fallback",
                intent=intent.intent.value,
                upstream=e.upstream,
                reason=e.reason,
            )
            job_id = None
        except ScrapeJobFailed as e:
            logger.warning(
                "chat_orchestration_fallback",
                intent=intent.intent.value,
                upstream="scraper",
                reason=e.job.status.value,
                job_id=e.job.id,
            )
            job_id = e.job.id

        return ChatOutcome(await self._default_chat(message, history, context), job_id=job_id)

    async def _grounded(
        self,
        intent: IntentResult,
        message: str,
        history: List,
        is_cancelled: Optional[CancelCheck],
    ) -> ChatOutcome:
        job_id = None

        if intent.has_pasted_text:
            content = assemble_pasted(intent.pasted_text)
        elif intent.target:
            job_id = await self.scraper.submit(intent.target)
            job = await self.scraper.await_terminal(
                job_id, self.scraper.deadline_from_now(), is_cancelled=is_cancelled
            )
            if job is None or not job.status.is_terminal:
                logger.info("chat_scrape_pending", job_id=job_id)
                return ChatOutcome(prompts.SCRAPE_PENDING, job_id=job_id)
            if job.status != JobStatus.COMPLETED:
                raise ScrapeJobFailed(job)
            content = assemble_results(job.results)
        else:
            logger.info("chat_clarification_needed", intent=intent.intent.value, reason="no_source")
            return ChatOutcome(prompts.CLARIFY_NO_SOURCE)

        content = apply_thin_fallback(content, history)
        if content.is_thin:
            logger.info("chat_clarification_needed", intent=intent.intent.value, reason="thin_content")
            return ChatOutcome(prompts.CLARIFY_THIN_CONTENT, job_id=job_id)

        text = await self.router.route(
            intent.intent,
            content=content.text,
            candidate_profile=self.candidate_profile,
            user_message=message,
        )
        return ChatOutcome(text, job_id=job_id)

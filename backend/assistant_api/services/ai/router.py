"""
Maps a classified intent to a prompt template and generation settings,
then calls the model.
"""
import re
from typing import Iterable, Optional

from assistant_api.core.logging import get_logger
from assistant_api.services.ai import prompts
from assistant_api.services.ai.llm_client import GeminiClient
from assistant_api.services.ai.schema import GenerationSettings, Intent

logger = get_logger(__name__)

PROFILE_MAX_CHARS = 8_000
PROMPT_CONTENT_MAX_CHARS = 100_000

GENERATION_SETTINGS = {
    Intent.EXTRACTION: GenerationSettings(max_output_tokens=2048, temperature=0.1),
    Intent.FIT_ASSESSMENT: GenerationSettings(max_output_tokens=1500, temperature=0.2),
    Intent.SCRAPE_REQUEST: GenerationSettings(max_output_tokens=1024, temperature=0.5),
    Intent.DEFAULT_CHAT: GenerationSettings(max_output_tokens=500, temperature=0.7),
}

TEMPLATES = {
    Intent.EXTRACTION: prompts.EXTRACTION_TEMPLATE,
    Intent.FIT_ASSESSMENT: prompts.FIT_ASSESSMENT_TEMPLATE,
    Intent.SCRAPE_REQUEST: prompts.SUMMARY_TEMPLATE,
}

JSON_INTENTS = frozenset({Intent.EXTRACTION})

_LEADING_FENCE = re.compile(r"^\s*```[a-zA-Z0-9_-]*[ \t]*\n?")
_TRAILING_FENCE = re.compile(r"\n?[ \t]*```\s*$")


def strip_code_fences(text: str) -> str:
    """Remove a markdown fence wrapped around the whole response."""
    stripped = _LEADING_FENCE.sub("", text, count=1)
    stripped = _TRAILING_FENCE.sub("", stripped, count=1)
    return stripped.strip()


def build_prompt(intent: Intent, content: str, profile: str, message: str) -> str:
    template = TEMPLATES[intent]
    return template.format(
        profile=(profile or "").strip()[:PROFILE_MAX_CHARS] or "(no profile provided)",
        content=(content or "")[:PROMPT_CONTENT_MAX_CHARS],
        message=message,
    )


def default_chat_message(message: str, context: Optional[str]) -> str:
    if context:
        return prompts.DEFAULT_CONTEXT_TEMPLATE.format(context=context, message=message)
    return message


class PromptRouter:
    def __init__(self, llm: GeminiClient):
        self.llm = llm

    async def route(
        self,
        intent: Intent,
        content: str,
        candidate_profile: str,
        user_message: str,
        history: Optional[Iterable] = None,
        context: Optional[str] = None,
    ) -> str:
        """
        Generate the reply for an intent.

        DefaultChat continues the caller's conversation; every other intent
        renders its template into a single prompt.
        """
        settings = GENERATION_SETTINGS[intent]

        if intent == Intent.DEFAULT_CHAT:
            session = self.llm.start_conversation(
                history or [],
                max_tokens=settings.max_output_tokens,
                temperature=settings.temperature,
            )
            return await session.send_message(default_chat_message(user_message, context))

        prompt = build_prompt(intent, content, candidate_profile, user_message)
        logger.info(
            "prompt_routed",
            intent=intent.value,
            prompt_chars=len(prompt),
            max_output_tokens=settings.max_output_tokens,
            temperature=settings.temperature,
        )
        text = await self.llm.generate(
            prompt,
            max_tokens=settings.max_output_tokens,
            temperature=settings.temperature,
            agent=intent.value,
        )
        if intent in JSON_INTENTS:
            text = strip_code_fences(text)
        return text

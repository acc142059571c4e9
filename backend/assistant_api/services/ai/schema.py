"""
Internal control-plane models for the chat pipeline.
"""
from enum import Enum
from typing import Optional

from pydantic import BaseModel


class Intent(str, Enum):
    DEFAULT_CHAT = "default_chat"
    SCRAPE_REQUEST = "scrape_request"
    EXTRACTION = "extraction"
    FIT_ASSESSMENT = "fit_assessment"


class IntentResult(BaseModel):
    """
    Outcome of rule-based classification.

    `target` is a normalized absolute URL when one was found.
    `pasted_text` is the message body itself when it looks like pasted
    source material (a job posting, an article) rather than a question.
    """

    intent: Intent
    target: Optional[str] = None
    pasted_text: Optional[str] = None

    @property
    def has_pasted_text(self) -> bool:
        return self.pasted_text is not None

    @property
    def needs_grounding(self) -> bool:
        return self.intent != Intent.DEFAULT_CHAT


class GenerationSettings(BaseModel):
    max_output_tokens: int
    temperature: float

"""
Turns scrape results (or pasted text) into one bounded plain-text blob.

- Each result is converted to text with BeautifulSoup first: script, style
  and image elements are dropped, links keep their anchor text only.
- The texts are concatenated in order until CONTENT_BUDGET_CHARS; the
  chunk that crosses the budget is cut to fill it exactly. The budget counts
  readable text, so a page with a huge inline script in its head is not
  cut off before its body.
- Text shorter than THIN_CONTENT_MIN_CHARS is "thin" (login wall or a
  client-rendered page). Thin content is replaced by the most recent long
  user message from the conversation, if there is one.
"""
import re
from typing import Iterable, List, Optional

from bs4 import BeautifulSoup
from pydantic import BaseModel

from assistant_api.core.logging import get_logger
from assistant_api.services.ai.intent import PASTED_TEXT_THRESHOLD, find_pasted_history_message
from assistant_api.services.scrape.schema import ScrapeResult

logger = get_logger(__name__)

CONTENT_BUDGET_CHARS = 100_000
THIN_CONTENT_MIN_CHARS = 300
DISCARDED_TAGS = ["script", "style", "noscript", "img", "picture", "svg", "iframe"]


class AssembledContent(BaseModel):
    text: str
    is_thin: bool
    source: str  # scrape | pasted | history
    truncated: bool = False


def combine_sources(contents: Iterable[str], budget: int = CONTENT_BUDGET_CHARS) -> str:
    """Concatenate contents, cutting the last one so the total never exceeds `budget`."""
    parts: List[str] = []
    used = 0
    for content in contents:
        if not content:
            continue
        remaining = budget - used
        if remaining <= 0:
            break
        chunk = content[:remaining]
        parts.append(chunk)
        used += len(chunk)
    return "".join(parts)


def html_to_text(markup: str) -> str:
    if not markup:
        return ""

    soup = BeautifulSoup(markup, "html.parser")
    for tag in soup(DISCARDED_TAGS):
        tag.decompose()
    for anchor in soup.find_all("a"):
        anchor.replace_with(anchor.get_text())

    text = soup.get_text(separator="\n")
    lines = [" ".join(line.split()) for line in text.splitlines()]
    text = "\n".join(lines)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def is_thin(text: str) -> bool:
    return len(text.strip()) < THIN_CONTENT_MIN_CHARS


def assemble_results(results: Iterable[ScrapeResult], budget: int = CONTENT_BUDGET_CHARS) -> AssembledContent:
    results = list(results)
    total_raw = sum(len(r.content or "") for r in results)
    texts = [html_to_text(r.content or "") for r in results]
    total_text = sum(len(t) for t in texts)
    text = combine_sources(texts, budget)

    content = AssembledContent(
        text=text,
        is_thin=is_thin(text),
        source="scrape",
        truncated=total_text > budget,
    )
    logger.info(
        "content_assembled",
        source=content.source,
        results=len(results),
        raw_chars=total_raw,
        text_chars=len(text),
        truncated=content.truncated,
        is_thin=content.is_thin,
    )
    return content


def assemble_pasted(pasted_text: str, budget: int = CONTENT_BUDGET_CHARS) -> AssembledContent:
    text = combine_sources([pasted_text.strip()], budget)
    return AssembledContent(
        text=text,
        is_thin=is_thin(text),
        source="pasted",
        truncated=len(pasted_text.strip()) > budget,
    )


def apply_thin_fallback(
    content: AssembledContent,
    history: Optional[Iterable] = None,
    threshold: int = PASTED_TEXT_THRESHOLD,
) -> AssembledContent:
    """Swap thin content for the latest long user message in the history."""
    if not content.is_thin:
        return content

    replacement = find_pasted_history_message(history or [], threshold)
    if replacement is None:
        logger.info("content_thin_no_fallback", source=content.source, text_chars=len(content.text))
        return content

    logger.info(
        "content_thin_fallback_applied",
        original_chars=len(content.text),
        replacement_chars=len(replacement),
    )
    return AssembledContent(
        text=combine_sources([replacement]),
        is_thin=False,
        source="history",
    )

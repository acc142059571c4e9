"""
Rule-based intent classification.

Rules are evaluated in a fixed order and the first match wins:

1. Target extraction: first absolute URL, else first bare domain token.
2. Pasted source text: long message body or job-posting markers.
3. FitAssessment: fit-inquiry phrasing. Beats everything below.
4. Extraction: structured-output cues (json, csv, extract, fields).
5. ScrapeRequest: action verb plus a target, or a target / pasted text with
   no other marker (the source gets summarized).
6. DefaultChat: nothing of the above.

Never calls the LLM; classification must stay cheap and deterministic.
"""
import re
from typing import Iterable, Optional, Tuple

from assistant_api.core.logging import get_logger
from assistant_api.services.ai.schema import Intent, IntentResult

logger = get_logger(__name__)

PASTED_TEXT_THRESHOLD = 600
DEFAULT_SCHEME = "https://"

URL_PATTERN = re.compile(r"https?://[^\s<>\"'`]+", re.IGNORECASE)
DOMAIN_PATTERN = re.compile(
    r"(?<![\w@/.-])"
    r"((?:[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?\.)+([a-z]{2,24}))(?![\w@-])"
    r"(/[^\s<>\"'`]*)?",
    re.IGNORECASE,
)
# Bare tokens like "node.js" or "resume.pdf" are file names, not sites.
NON_DOMAIN_SUFFIXES = {
    "js", "ts", "py", "rb", "go", "rs", "java", "json", "csv", "md", "txt",
    "pdf", "doc", "docx", "png", "jpg", "jpeg", "gif", "html", "htm", "xml",
    "yaml", "yml", "sh", "exe", "zip",
}
TARGET_STRIP_CHARS = "\"'`<>()[]{}.,;:!?"

ACTION_VERB_PATTERN = re.compile(r"\b(scrape|fetch|get|extract)\b", re.IGNORECASE)
STRUCTURED_OUTPUT_PATTERN = re.compile(r"\b(json|csv|extract|fields)\b", re.IGNORECASE)
FIT_PATTERNS = [
    re.compile(r"\bqualified\b", re.IGNORECASE),
    re.compile(r"\bgood (?:fit|candidate)\b", re.IGNORECASE),
    re.compile(r"\bfit\b", re.IGNORECASE),
    re.compile(
        r"\b(?:am i|are you|is he|is she|are they|would i|would you|could i|could you|do i|do you)\b"
        r"[^?.!]*\b(?:qualif\w*|suit(?:ed|able)|right (?:person|candidate|for)|match\w*|meet\w*|eligible)\b",
        re.IGNORECASE,
    ),
    re.compile(r"\bshould (?:i|you|he|she|they|we) apply\b", re.IGNORECASE),
]
JOB_POSTING_MARKERS = [
    "job description",
    "about the role",
    "about this role",
    "responsibilities:",
    "requirements:",
    "qualifications:",
    "minimum qualifications",
    "preferred qualifications",
    "what you'll do",
    "what you will do",
    "we are looking for a",
    "equal opportunity employer",
]


def normalize_whitespace(text: str) -> str:
    return " ".join(text.split())


def _clean_target(raw: str) -> Optional[str]:
    token = raw.strip(TARGET_STRIP_CHARS)
    if not token:
        return None
    if not re.match(r"^https?://", token, re.IGNORECASE):
        token = DEFAULT_SCHEME + token
    return token


def find_target(message: str) -> Tuple[Optional[str], Optional[Tuple[int, int]]]:
    """First absolute URL in the message, else the first bare domain, with its span."""
    match = URL_PATTERN.search(message)
    if match:
        target = _clean_target(match.group(0))
        if target and len(target) > len(DEFAULT_SCHEME):
            return target, match.span()

    for match in DOMAIN_PATTERN.finditer(message):
        if match.group(2).lower() in NON_DOMAIN_SUFFIXES:
            continue
        return _clean_target(match.group(0)), match.span()
    return None, None


def extract_target(message: str) -> Optional[str]:
    return find_target(message)[0]


def without_span(message: str, span: Optional[Tuple[int, int]]) -> str:
    if span is None:
        return message
    start, end = span
    return message[:start] + " " + message[end:]


def looks_like_pasted_text(message: str) -> bool:
    if len(normalize_whitespace(message)) > PASTED_TEXT_THRESHOLD:
        return True
    lowered = message.lower()
    return any(marker in lowered for marker in JOB_POSTING_MARKERS)


def is_fit_inquiry(message: str) -> bool:
    return any(pattern.search(message) for pattern in FIT_PATTERNS)


def find_pasted_history_message(history: Iterable, threshold: int = PASTED_TEXT_THRESHOLD) -> Optional[str]:
    """Most recent user turn whose trimmed content is longer than `threshold`."""
    for entry in reversed(list(history or [])):
        if entry.role != "user":
            continue
        content = (entry.content or "").strip()
        if len(content) > threshold:
            return content
    return None


def classify(message: str, history: Optional[Iterable] = None) -> IntentResult:
    """Assign an intent (and any grounding found) to a chat message."""
    message = message or ""
    target, span = find_target(message)
    pasted_text = message.strip() if looks_like_pasted_text(message) else None

    # Markers inside the target (".json", "fit.example.com") do not count.
    marker_text = without_span(message, span)

    if is_fit_inquiry(marker_text):
        intent = Intent.FIT_ASSESSMENT
    elif STRUCTURED_OUTPUT_PATTERN.search(marker_text):
        intent = Intent.EXTRACTION
    elif target and ACTION_VERB_PATTERN.search(marker_text):
        intent = Intent.SCRAPE_REQUEST
    elif target or pasted_text:
        intent = Intent.SCRAPE_REQUEST
    else:
        intent = Intent.DEFAULT_CHAT

    if intent in (Intent.FIT_ASSESSMENT, Intent.EXTRACTION) and not target and not pasted_text:
        pasted_text = find_pasted_history_message(history or [])

    result = IntentResult(intent=intent, target=target, pasted_text=pasted_text)
    logger.info(
        "intent_classified",
        intent=intent.value,
        has_target=target is not None,
        has_pasted_text=pasted_text is not None,
    )
    return result

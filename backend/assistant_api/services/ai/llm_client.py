"""
Async client for the Gemini generateContent REST API.

Plain httpx against the public endpoint; no provider SDK. Two entry points:
- generate(prompt, max_tokens, temperature) for single-shot prompts
- start_conversation(history) -> ChatSession for multi-turn chat

Failures surface as UpstreamUnavailable with an operator-facing reason:
auth, quota, rate_limit, timeout, circuit_open, not_configured, generic.
"""
import time
from typing import Any, Dict, Iterable, List, Optional

import httpx

from assistant_api.core.circuit_breaker import CircuitBreaker, CircuitBreakerOpenError
from assistant_api.core.errors import UpstreamUnavailable
from assistant_api.core.logging import get_logger

logger = get_logger(__name__)

UPSTREAM = "ai"


def classify_http_error(status_code: int, body: str) -> str:
    upper = body.upper()
    if "API_KEY_INVALID" in upper or status_code in (401, 403):
        return "auth"
    if "RATE_LIMIT" in upper:
        return "rate_limit"
    if "QUOTA" in upper:
        return "quota"
    if status_code == 429:
        return "rate_limit"
    return "generic"


def _extract_text(data: Dict[str, Any]) -> str:
    candidates = data.get("candidates") or []
    if not candidates:
        return ""
    parts = (candidates[0].get("content") or {}).get("parts") or []
    return "".join(part.get("text", "") for part in parts if isinstance(part, dict))


class GeminiClient:
    def __init__(
        self,
        api_key: Optional[str],
        model: str,
        api_base: str,
        timeout_seconds: float = 30.0,
        metrics=None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.api_base = api_base.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.metrics = metrics
        self._transport = transport
        self.circuit_breaker = CircuitBreaker(name="gemini")

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def _fail(self, reason: str, detail: Optional[str] = None, **fields) -> UpstreamUnavailable:
        if self.metrics is not None:
            self.metrics.record_upstream_error(UPSTREAM, reason)
        logger.warning("llm_request_failed", reason=reason, model=self.model, **fields)
        return UpstreamUnavailable(UPSTREAM, reason, detail)

    async def _post(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.api_base}/models/{self.model}:generateContent"
        headers = {"Content-Type": "application/json", "x-goog-api-key": self.api_key or ""}
        async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
            response = await client.post(url, headers=headers, json=payload)
            response.raise_for_status()
            return response.json()

    async def generate_content(
        self,
        contents: List[Dict[str, Any]],
        max_tokens: int,
        temperature: float,
        agent: str = "chat",
    ) -> str:
        if not self.configured:
            raise self._fail("not_configured", agent=agent)

        payload = {
            "contents": contents,
            "generationConfig": {
                "maxOutputTokens": max_tokens,
                "temperature": temperature,
            },
        }

        start = time.perf_counter()
        try:
            data = await self.circuit_breaker.call_async(self._post, payload)
        except CircuitBreakerOpenError:
            raise self._fail("circuit_open", agent=agent)
        except httpx.TimeoutException as e:
            raise self._fail("timeout", str(e), agent=agent) from e
        except httpx.HTTPStatusError as e:
            reason = classify_http_error(e.response.status_code, e.response.text)
            raise self._fail(
                reason, str(e), agent=agent, status_code=e.response.status_code
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise self._fail("generic", str(e), agent=agent, error_type=type(e).__name__) from e

        text = _extract_text(data)
        usage = data.get("usageMetadata") or {}
        logger.info(
            "llm_request_completed",
            agent=agent,
            model=self.model,
            latency_ms=int((time.perf_counter() - start) * 1000),
            input_tokens=usage.get("promptTokenCount"),
            output_tokens=usage.get("candidatesTokenCount"),
        )
        if not text:
            finish_reason = ((data.get("candidates") or [{}])[0]).get("finishReason")
            raise self._fail("generic", "empty completion", agent=agent, finish_reason=finish_reason)
        return text

    async def generate(self, prompt: str, max_tokens: int, temperature: float, agent: str = "generate") -> str:
        contents = [{"role": "user", "parts": [{"text": prompt}]}]
        return await self.generate_content(contents, max_tokens, temperature, agent=agent)

    def start_conversation(
        self,
        history: Iterable,
        max_tokens: int = 500,
        temperature: float = 0.7,
    ) -> "ChatSession":
        return ChatSession(self, history, max_tokens, temperature)


class ChatSession:
    """Multi-turn conversation; turns are kept locally and resent on each call."""

    def __init__(self, client: GeminiClient, history: Iterable, max_tokens: int, temperature: float):
        self.client = client
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.contents: List[Dict[str, Any]] = [
            {
                "role": "user" if turn.role == "user" else "model",
                "parts": [{"text": turn.content}],
            }
            for turn in history
            if turn.content
        ]

    async def send_message(self, text: str) -> str:
        self.contents.append({"role": "user", "parts": [{"text": text}]})
        try:
            reply = await self.client.generate_content(
                self.contents, self.max_tokens, self.temperature, agent="chat"
            )
        except Exception:
            self.contents.pop()
            raise
        self.contents.append({"role": "model", "parts": [{"text": reply}]})
        return reply

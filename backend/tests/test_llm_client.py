"""
Unit tests for the Gemini REST client, using httpx.MockTransport.
"""
import json

import httpx
import pytest

from assistant_api.core.errors import UpstreamUnavailable
from assistant_api.models import ConversationMessage
from assistant_api.services.ai.llm_client import GeminiClient, classify_http_error

API_BASE = "https://gemini.test/v1beta"


def reply(text):
    return {
        "candidates": [{"content": {"role": "model", "parts": [{"text": text}]}, "finishReason": "STOP"}],
        "usageMetadata": {"promptTokenCount": 12, "candidatesTokenCount": 3},
    }


def make_client(handler, api_key="key"):
    return GeminiClient(
        api_key=api_key,
        model="gemini-test",
        api_base=API_BASE,
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.parametrize(
    "status,body,expected",
    [
        (400, '{"error": {"status": "INVALID_ARGUMENT", "details": [{"reason": "API_KEY_INVALID"}]}}', "auth"),
        (403, "forbidden", "auth"),
        (429, "RESOURCE_EXHAUSTED: Quota exceeded for metric", "quota"),
        (429, "too many requests", "rate_limit"),
        (500, "RATE_LIMIT_EXCEEDED", "rate_limit"),
        (500, "internal", "generic"),
    ],
)
def test_classify_http_error(status, body, expected):
    """HTTP failures map to auth, quota, rate_limit or generic."""
    assert classify_http_error(status, body) == expected


@pytest.mark.asyncio
async def test_generate_sends_prompt_and_settings():
    """The request carries the key header, prompt and generation config."""
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["key"] = request.headers.get("x-goog-api-key")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json=reply("Hello"))

    text = await make_client(handler).generate("Say hi", max_tokens=100, temperature=0.3)

    assert text == "Hello"
    assert seen["url"] == f"{API_BASE}/models/gemini-test:generateContent"
    assert seen["key"] == "key"
    assert seen["body"]["contents"] == [{"role": "user", "parts": [{"text": "Say hi"}]}]
    assert seen["body"]["generationConfig"] == {"maxOutputTokens": 100, "temperature": 0.3}


@pytest.mark.asyncio
async def test_not_configured():
    """Without an API key the client fails with not_configured."""
    client = make_client(lambda request: httpx.Response(200, json=reply("x")), api_key=None)

    with pytest.raises(UpstreamUnavailable) as exc_info:
        await client.generate("hi", 10, 0.1)

    assert exc_info.value.reason == "not_configured"
    assert exc_info.value.status_code == 503


@pytest.mark.asyncio
async def test_http_error_is_classified():
    """HTTP errors become UpstreamUnavailable with a classified reason."""
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429, text="Quota exceeded")

    with pytest.raises(UpstreamUnavailable) as exc_info:
        await make_client(handler).generate("hi", 10, 0.1)

    assert exc_info.value.upstream == "ai"
    assert exc_info.value.reason == "quota"
    assert exc_info.value.public_message == "Sorry, I encountered an error while processing your request."


@pytest.mark.asyncio
async def test_empty_completion_is_an_error():
    """A response with no text is treated as a failure."""
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"candidates": [{"finishReason": "SAFETY"}]})

    with pytest.raises(UpstreamUnavailable):
        await make_client(handler).generate("hi", 10, 0.1)


@pytest.mark.asyncio
async def test_conversation_replays_history():
    """Each turn resends the whole conversation so far."""
    bodies = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json=reply(f"answer {len(bodies)}"))

    history = [
        ConversationMessage(role="user", content="first"),
        ConversationMessage(role="model", content="first reply"),
    ]
    session = make_client(handler).start_conversation(history)

    assert await session.send_message("second") == "answer 1"
    assert await session.send_message("third") == "answer 2"

    roles = [turn["role"] for turn in bodies[1]["contents"]]
    assert roles == ["user", "model", "user", "model", "user"]
    assert bodies[1]["contents"][-1]["parts"][0]["text"] == "third"
    assert bodies[0]["generationConfig"] == {"maxOutputTokens": 500, "temperature": 0.7}


@pytest.mark.asyncio
async def test_failed_turn_is_not_kept():
    """A failed message is dropped from the conversation."""
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(json.loads(request.content))
        if len(calls) == 1:
            return httpx.Response(500, text="boom")
        return httpx.Response(200, json=reply("ok"))

    session = make_client(handler).start_conversation([])

    with pytest.raises(UpstreamUnavailable):
        await session.send_message("lost")
    await session.send_message("kept")

    assert [t["parts"][0]["text"] for t in calls[1]["contents"]] == ["kept"]

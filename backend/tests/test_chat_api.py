"""
Endpoint tests for /chat, /session and /admin.

The service graph is built from test Settings with an in-memory quota store
and a single httpx.MockTransport standing in for Gemini, the scraping
service and the verification provider.
"""
import httpx
import pytest
from fastapi.testclient import TestClient

from assistant_api.core.metrics import NullMetrics
from assistant_api.core.settings import PollSettings, Settings
from assistant_api.dependencies import build_services, get_services
from assistant_api.main import app
from assistant_api.services.ai import prompts

SCRAPER_URL = "https://scraper.test"
VERIFY_URL = "https://verify.test/siteverify"
FAST_POLL = PollSettings(initial_delay=0.01, backoff_factor=1.0, max_delay=0.01, deadline=0.05)


class Upstreams:
    """Routes outbound calls by host; tests tweak the canned answers."""

    def __init__(self):
        self.ai_text = "Hello from Gemini"
        self.job_status = "pending"
        self.job_contents = []
        self.verification_success = True
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path.endswith(":generateContent"):
            return httpx.Response(
                200,
                json={"candidates": [{"content": {"role": "model", "parts": [{"text": self.ai_text}]}}]},
            )
        if request.url.host == "scraper.test" and request.url.path == "/scrape":
            return httpx.Response(202, json={"jobId": "job-9"})
        if request.url.host == "scraper.test" and request.url.path == "/jobs/job-9":
            return httpx.Response(
                200,
                json={"status": self.job_status, "results": [{"content": c} for c in self.job_contents]},
            )
        if request.url.host == "verify.test":
            return httpx.Response(200, json={"success": self.verification_success})
        return httpx.Response(404)


@pytest.fixture
def upstreams():
    return Upstreams()


@pytest.fixture
def make_client(fake_redis, upstreams):
    def _make(metrics=None, **overrides):
        values = {
            "environment": "development",
            "gemini_api_key": "test-key",
            "scraper_base_url": SCRAPER_URL,
            "turnstile_verify_url": VERIFY_URL,
            "admin_api_key": "admin-key",
            "poll": FAST_POLL,
        }
        values.update(overrides)
        services = build_services(
            Settings(**values),
            metrics or NullMetrics(),
            redis_provider=lambda: fake_redis,
            transport=httpx.MockTransport(upstreams),
        )
        app.dependency_overrides[get_services] = lambda: services
        return TestClient(app), services

    yield _make
    app.dependency_overrides.clear()


class TestChat:
    def test_default_chat(self, make_client):
        """A greeting is answered by the model with an epoch-ms timestamp."""
        client, _ = make_client()

        response = client.post("/chat", json={"message": "Hi!", "history": [], "context": "portfolio"})

        assert response.status_code == 200
        data = response.json()
        assert data["response"] == "Hello from Gemini"
        assert isinstance(data["timestamp"], int)
        assert "jobId" not in data

    @pytest.mark.parametrize("body", [{}, {"message": ""}, {"message": "   "}])
    def test_missing_message(self, make_client, body):
        """Missing or blank messages are input_invalid."""
        client, _ = make_client()

        response = client.post("/chat", json=body)

        assert response.status_code == 400
        assert response.json()["error"] == "input_invalid"

    def test_malformed_history(self, make_client):
        """Unparseable history entries are input_invalid, not 422."""
        client, _ = make_client()

        response = client.post("/chat", json={"message": "hi", "history": [{"role": "user", "content": {"x": 1}}, 5]})

        assert response.status_code == 400
        assert response.json()["error"] == "input_invalid"

    def test_ai_not_configured(self, make_client):
        """Without an AI key chat is upstream_unavailable."""
        client, _ = make_client(gemini_api_key=None)

        response = client.post("/chat", json={"message": "Hi!"})

        assert response.status_code == 503
        assert response.json()["error"] == "upstream_unavailable"

    def test_quota_exceeded(self, make_client):
        """The request past the daily limit gets 429 with Retry-After."""
        client, _ = make_client(daily_request_limit=1)

        first = client.post("/chat", json={"message": "Hi!"})
        second = client.post("/chat", json={"message": "Hi again"})

        assert first.status_code == 200
        assert second.status_code == 429
        assert second.json()["error"] == "quota_exceeded"
        assert int(second.headers["Retry-After"]) >= 1

    def test_quota_fails_open(self, make_client, fake_redis):
        """A quota store outage does not block chat."""
        fake_redis.fail = True
        client, _ = make_client(daily_request_limit=1)

        for _ in range(3):
            assert client.post("/chat", json={"message": "Hi!"}).status_code == 200

    def test_scrape_pending_returns_job_id(self, make_client):
        """A job still running at the deadline is reported with its id."""
        client, _ = make_client()

        response = client.post("/chat", json={"message": "scrape https://example.com"})

        assert response.status_code == 200
        assert response.json()["response"] == prompts.SCRAPE_PENDING
        assert response.json()["jobId"] == "job-9"

    def test_scrape_completed_is_summarized(self, make_client, upstreams):
        """A completed scrape is summarized and returns the job id."""
        client, _ = make_client()
        upstreams.job_status = "completed"
        upstreams.job_contents = ["<p>" + "Distributed systems engineering role. " * 20 + "</p>"]
        upstreams.ai_text = "## Overview\nA job posting."

        response = client.post("/chat", json={"message": "summarize https://example.com/job"})

        assert response.status_code == 200
        assert response.json() == {
            "response": "## Overview\nA job posting.",
            "jobId": "job-9",
            "timestamp": response.json()["timestamp"],
        }

    def test_trace_id_propagated(self, make_client):
        """An incoming X-Trace-ID is echoed in header and error body."""
        client, _ = make_client()

        response = client.post("/chat", json={}, headers={"X-Trace-ID": "trace-abc"})

        assert response.headers["X-Trace-ID"] == "trace-abc"
        assert response.json()["trace_id"] == "trace-abc"


class TestGating:
    def test_enforced_without_token(self, make_client):
        """Production chat without a token is unauthorized."""
        client, _ = make_client(environment="production")

        response = client.post("/chat", json={"message": "Hi!"})

        assert response.status_code == 401
        assert response.json()["error"] == "unauthorized"

    def test_enforced_with_invalid_token(self, make_client):
        """Production chat with a bad token is unauthorized."""
        client, _ = make_client(environment="production")

        response = client.post("/chat", json={"message": "Hi!"}, headers={"Authorization": "Bearer nope"})

        assert response.status_code == 401

    def test_enforced_with_valid_token(self, make_client):
        """A valid session token opens the gate."""
        client, services = make_client(environment="production")
        token = services.gate.tokens.issue("testclient")

        response = client.post("/chat", json={"message": "Hi!"}, headers={"X-Session-Token": token})

        assert response.status_code == 200

    def test_unauthorized_does_not_consume_quota(self, make_client, fake_redis):
        """Rejected callers are not counted."""
        client, _ = make_client(environment="production")

        client.post("/chat", json={"message": "Hi!"})

        assert fake_redis.values == {}


class TestSession:
    def test_dev_token(self, make_client):
        """Development issues dev tokens without verification."""
        client, services = make_client()

        response = client.post("/session", json={})

        assert response.status_code == 200
        data = response.json()
        assert data["dev"] is True
        assert data["bypass"] is False
        assert data["expiresAt"] > 0
        assert services.gate.tokens.verify(data["token"]) is not None

    def test_bypass_token_when_verification_off(self, make_client):
        """Verification switched off issues bypass tokens."""
        client, _ = make_client(environment="production", verification_required=False)

        response = client.post("/session")

        assert response.status_code == 200
        assert response.json()["bypass"] is True

    def test_verified_token_in_production(self, make_client):
        """A verified production token works for chat."""
        client, services = make_client(environment="production", turnstile_secret_key="ts-secret")

        response = client.post("/session", json={"turnstileToken": "human"})

        assert response.status_code == 200
        data = response.json()
        assert data["dev"] is False
        assert data["bypass"] is False

        chat = client.post("/chat", json={"message": "Hi!"}, headers={"Authorization": f"Bearer {data['token']}"})
        assert chat.status_code == 200

    def test_failed_verification(self, make_client, upstreams):
        """A rejected verification is unauthorized."""
        client, _ = make_client(environment="production", turnstile_secret_key="ts-secret")
        upstreams.verification_success = False

        response = client.post("/session", json={"turnstileToken": "bot"})

        assert response.status_code == 401
        assert response.json()["error"] == "unauthorized"


class TestAdmin:
    def test_requires_key(self, make_client):
        """Admin endpoints need the right X-Admin-Key."""
        client, _ = make_client()

        assert client.get("/admin/verification").status_code == 401
        assert client.get("/admin/verification", headers={"X-Admin-Key": "wrong"}).status_code == 401

    def test_disabled_without_configured_key(self, make_client):
        """Without ADMIN_API_KEY the admin API is disabled."""
        client, _ = make_client(admin_api_key=None)

        assert client.get("/admin/verification", headers={"X-Admin-Key": "x"}).status_code == 503

    def test_non_ascii_key_is_rejected(self, make_client):
        """A non-ASCII admin key header is a 401, not a server error."""
        client, _ = make_client()

        response = client.get("/admin/verification", headers={"X-Admin-Key": "cl\u00e9-admin".encode("utf-8")})

        assert response.status_code == 401
        assert response.json()["error"] == "unauthorized"

    def test_toggle_verification(self, make_client):
        """Switching verification off lifts the production gate at once."""
        client, _ = make_client(environment="production")
        headers = {"X-Admin-Key": "admin-key"}

        assert client.get("/admin/verification", headers=headers).json()["enforced"] is True
        assert client.post("/chat", json={"message": "Hi!"}).status_code == 401

        response = client.post("/admin/verification", json={"required": False}, headers=headers)

        assert response.status_code == 200
        assert response.json() == {"production": True, "verification_required": False, "enforced": False}
        assert client.post("/chat", json={"message": "Hi!"}).status_code == 200


class TestErrorDetail:
    def test_detail_shown_in_development(self, make_client, monkeypatch):
        """Development error bodies include detail."""
        monkeypatch.setattr("assistant_api.main.get_settings", lambda: Settings(environment="development"))
        client, _ = make_client()

        body = client.post("/chat", json={}).json()

        assert body["detail"]
        assert body["status_code"] == 400

    def test_detail_hidden_in_production(self, make_client, monkeypatch):
        """Production error bodies omit detail."""
        monkeypatch.setattr("assistant_api.main.get_settings", lambda: Settings(environment="production"))
        client, _ = make_client()

        body = client.post("/chat", json={}).json()

        assert "detail" not in body
        assert body["error"] == "input_invalid"

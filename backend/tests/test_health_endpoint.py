"""
Integration tests for health check and metrics endpoints.
"""
import pytest
from fastapi.testclient import TestClient
from prometheus_client import CollectorRegistry

from assistant_api.core.metrics import ChatMetrics
from assistant_api.core.settings import Settings
from assistant_api.dependencies import build_services, get_services
from assistant_api.main import app


@pytest.fixture
def client():
    """Create test client."""
    services = build_services(
        Settings(gemini_api_key="key", scraper_base_url=None),
        ChatMetrics(CollectorRegistry()),
        redis_provider=lambda: None,
    )
    app.dependency_overrides[get_services] = lambda: services
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_basic_health_check(client):
    """Liveness returns ok and a timestamp."""
    response = client.get("/health/")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert "timestamp" in data


def test_health_response_carries_trace_headers(client):
    """Every response carries trace and request ids."""
    response = client.get("/health/")

    assert response.headers["X-Trace-ID"]
    assert response.headers["X-Request-ID"]


def test_dependencies_health(client):
    """Dependency status reports each collaborator."""
    response = client.get("/health/dependencies")

    assert response.status_code == 200
    data = response.json()
    assert data["ai"] == "configured"
    assert data["scraper"] == "not_configured"
    assert data["redis"] in ("ok", "unavailable")
    assert data["gating_enforced"] is False


def test_metrics_endpoint(client):
    """Metrics are served in Prometheus text format."""
    response = client.get("/metrics")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    assert "ai_chat_requests_total" in response.text

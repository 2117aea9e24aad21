from __future__ import annotations

import sys
from pathlib import Path

from fastapi.testclient import TestClient

sys.path.insert(0, str(Path(__file__).resolve().parents[2] / "src"))

import oac.api.routes.health as health_route
from oac.api.main import app


def test_live_health_endpoint() -> None:
    client = TestClient(app)
    response = client.get("/health/live")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    assert response.headers["X-Request-Id"]


def test_ready_health_endpoint_healthy_with_mocks(monkeypatch) -> None:
    monkeypatch.setattr(health_route, "ping_database", lambda timeout_seconds=1.0: True)
    monkeypatch.setattr(health_route, "ping_redis", lambda timeout_seconds=1.0: True)
    monkeypatch.setattr(health_route, "redis_configured", lambda: True)
    monkeypatch.setattr(health_route, "webhook_configured", lambda: True)

    client = TestClient(app)
    response = client.get("/health/ready")

    assert response.status_code == 200
    assert response.json() == {
        "status": "ok",
        "checks": {"database": True, "redis": True},
        "webhookConfigured": True,
    }


def test_ready_skips_redis_when_publishing_is_disabled(monkeypatch) -> None:
    monkeypatch.setattr(health_route, "ping_database", lambda timeout_seconds=1.0: True)
    monkeypatch.setattr(health_route, "redis_configured", lambda: False)
    monkeypatch.setattr(health_route, "webhook_configured", lambda: False)

    response = TestClient(app).get("/health/ready")

    assert response.status_code == 200
    assert response.json()["checks"] == {"database": True}
    assert response.json()["webhookConfigured"] is False


def test_ready_health_endpoint_reports_failed_dependency(monkeypatch) -> None:
    monkeypatch.setattr(health_route, "ping_database", lambda timeout_seconds=1.0: True)
    monkeypatch.setattr(health_route, "ping_redis", lambda timeout_seconds=1.0: False)
    monkeypatch.setattr(health_route, "redis_configured", lambda: True)

    client = TestClient(app)
    response = client.get("/health/ready")

    assert response.status_code == 503
    assert response.json()["status"] == "unavailable"
    assert response.json()["checks"] == {"database": True, "redis": False}

from __future__ import annotations

import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

sys.path.insert(0, str(Path(__file__).resolve().parents[3] / "src"))

import oac.api.routes.assignments as assignments_route
import oac.api.routes.orders as orders_route
from oac.application.ports.webhook import WebhookResult
from oac.api.main import app


@pytest.fixture
def client(harness, monkeypatch) -> TestClient:
    monkeypatch.setattr(orders_route, "_order_status_coordinator", lambda: harness.coordinator)
    monkeypatch.setattr(orders_route, "_broadcast_order_use_case", lambda: harness.broadcaster)
    monkeypatch.setattr(orders_route, "_expiry_monitor", lambda: harness.monitor)
    monkeypatch.setattr(orders_route, "_assignment_queries", lambda: harness.queries)
    monkeypatch.setattr(assignments_route, "_response_handler", lambda: harness.handler)
    monkeypatch.setattr(assignments_route, "_order_status_coordinator", lambda: harness.coordinator)
    monkeypatch.setattr(assignments_route, "_assignment_queries", lambda: harness.queries)
    monkeypatch.setattr(assignments_route, "_assignment_health_monitor", lambda: harness.health)
    return TestClient(app)


def _broadcast(client: TestClient, restaurants=("rst_1", "rst_2")) -> dict:
    response = client.post(
        "/v1/orders/ord_001/broadcast",
        json={"restaurantIds": list(restaurants), "expirationMinutes": 10},
    )
    assert response.status_code == 201
    return {item["restaurantId"]: item["assignmentId"] for item in response.json()["assignments"]}


def test_get_order_returns_order_and_history(harness, client) -> None:
    harness.place_order()
    _broadcast(client)

    response = client.get("/v1/orders/ord_001")

    assert response.status_code == 200
    body = response.json()
    assert body["unifiedTracking"] is True
    assert body["order"]["status"] == "restaurant_assigned"
    assert body["order"]["statusMessage"] == "Looking for an available restaurant"
    assert body["order"]["nextExpectedStatus"] == "restaurant_accepted"
    assert body["order"]["canCancel"] is True
    assert body["order"]["latitude"] == 40.7
    assert body["history"][0]["status"] == "restaurant_assigned"
    assert body["history"][0]["changedByType"] == "system"


def test_get_unknown_order_is_404_with_error_body(client) -> None:
    response = client.get("/v1/orders/ord_missing", headers={"X-Request-Id": "req-123"})

    assert response.status_code == 404
    assert response.headers["X-Request-Id"] == "req-123"
    assert response.json() == {
        "error": {
            "code": "ORDER_NOT_FOUND",
            "message": "order ord_missing not found",
            "details": {},
        },
        "requestId": "req-123",
    }


def test_update_status_accepts_alias_and_rejects_illegal_moves(harness, client) -> None:
    harness.place_order()
    _broadcast(client)

    accepted = client.post(
        "/v1/orders/ord_001/status",
        json={"status": "accepted", "restaurantId": "rst_1", "actorKind": "admin"},
    )
    illegal = client.post("/v1/orders/ord_001/status", json={"status": "delivered"})
    unknown = client.post("/v1/orders/ord_001/status", json={"status": "teleported"})

    assert accepted.status_code == 200
    assert accepted.json()["status"] == "restaurant_accepted"
    assert accepted.json()["restaurantId"] == "rst_1"
    assert illegal.status_code == 409
    assert illegal.json()["error"]["code"] == "INVALID_ORDER_TRANSITION"
    assert unknown.status_code == 400
    assert unknown.json()["error"]["code"] == "INVALID_STATUS"


def test_request_validation_errors_use_error_envelope(client) -> None:
    response = client.post("/v1/orders/ord_001/broadcast", json={"expirationMinutes": 0})

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "INVALID_REQUEST"


def test_respond_accept_flow(harness, client) -> None:
    harness.place_order()
    assignments = _broadcast(client)

    response = client.post(
        f"/v1/assignments/{assignments['rst_2']}/respond",
        json={
            "orderId": "ord_001",
            "restaurantId": "rst_2",
            "latitude": 40.7,
            "longitude": -74.0,
            "action": "accept",
        },
    )
    late = client.post(
        f"/v1/assignments/{assignments['rst_1']}/respond",
        json={
            "orderId": "ord_001",
            "restaurantId": "rst_1",
            "latitude": 40.7,
            "longitude": -74.0,
            "action": "accept",
        },
    )

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["order"]["restaurantId"] == "rst_2"
    assert body["cancelledAssignmentIds"] == [assignments["rst_1"]]
    assert late.status_code == 409
    assert late.json()["error"]["code"] == "ORDER_ALREADY_ACCEPTED"


def test_respond_validates_coordinates_and_reports_webhook_failure(harness, client) -> None:
    harness.place_order()
    assignments = _broadcast(client)
    payload = {
        "orderId": "ord_001",
        "restaurantId": "rst_1",
        "latitude": 95.0,
        "longitude": 0.0,
        "action": "accept",
    }

    out_of_range = client.post(f"/v1/assignments/{assignments['rst_1']}/respond", json=payload)
    harness.webhook.result = WebhookResult(success=False, error="Authentication required")
    failed = client.post(
        f"/v1/assignments/{assignments['rst_1']}/respond",
        json={**payload, "latitude": 10.0},
    )
    missing = client.post("/v1/assignments/asg_missing/respond", json={**payload, "latitude": 10.0})

    assert out_of_range.status_code == 400
    assert failed.status_code == 502
    assert failed.json()["error"]["message"] == "Authentication required"
    assert missing.status_code == 404
    assert missing.json()["error"]["code"] == "ASSIGNMENT_NOT_FOUND"


def test_assignment_status_endpoint_drives_progress(harness, client) -> None:
    harness.place_order()
    assignments = _broadcast(client, restaurants=("rst_1",))
    body = {"orderId": "ord_001", "restaurantId": "rst_1"}

    accepted = client.post(f"/v1/assignments/{assignments['rst_1']}/status", json={**body, "status": "accepted"})
    preparing = client.post(f"/v1/assignments/{assignments['rst_1']}/status", json={**body, "status": "preparing"})

    assert accepted.status_code == 200
    assert preparing.status_code == 200
    assert preparing.json()["status"] == "preparing"


def test_expire_and_assignment_listings(harness, client) -> None:
    harness.place_order()
    _broadcast(client)

    pending = client.get("/v1/restaurants/rst_1/assignments/pending")
    expired = client.post("/v1/orders/ord_001/expire")
    listed = client.get("/v1/orders/ord_001/assignments")

    assert len(pending.json()["assignments"]) == 1
    assert expired.status_code == 200
    assert expired.json() == {
        "success": True,
        "expiredCount": 2,
        "pendingCount": 2,
        "orderStatus": "no_restaurant_accepted",
        "message": "Expired 2 of 2 assignments",
    }
    assert {item["status"] for item in listed.json()["assignments"]} == {"expired"}


def test_metrics_endpoint_exposes_assignment_counters(harness, client) -> None:
    harness.place_order()
    _broadcast(client)

    response = client.get("/metrics")

    assert response.status_code == 200
    assert "http_requests_total" in response.text
    assert "oac_assignments_created_total" in response.text


def test_assignment_health_and_cleanup_endpoints(harness, client) -> None:
    harness.place_order()
    _broadcast(client)

    healthy = client.get("/v1/assignments/health")
    harness.clock.advance(minutes=11)
    degraded = client.get("/v1/assignments/health")
    cleanup = client.post("/v1/assignments/cleanup")

    assert healthy.status_code == 200
    assert healthy.json()["healthy"] is True
    assert healthy.json()["pendingAssignments"] == 2
    assert degraded.json()["overdueAssignments"] == 2
    assert degraded.json()["healthy"] is False
    assert cleanup.status_code == 200
    assert cleanup.json() == {
        "success": True,
        "expiredAssignments": 2,
        "reclaimedOrders": 0,
        "repairedOrders": 0,
        "errors": [],
    }
    assert harness.order().status == "no_restaurant_accepted"

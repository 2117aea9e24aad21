from __future__ import annotations

import sys
from datetime import datetime, timezone
from pathlib import Path
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

sys.path.insert(0, str(Path(__file__).resolve().parents[2] / "src"))

from oac.api import wiring
from oac.api.main import app
from oac.application.ports.webhook import WebhookResult
from oac.domain.common.ids import OrderId
from oac.domain.order.entities import create_placed_order
from oac.infrastructure.db.repositories.history_repo import SqlAlchemyHistoryRepository
from oac.infrastructure.db.repositories.order_repo import SqlAlchemyOrderRepository

pytestmark = pytest.mark.integration


class AcceptingWebhook:
    url = "https://functions.test/order-webhook"

    def send_response(self, request):
        return WebhookResult(success=True, message="ok", status_code=200)

    def check_expired(self):
        return WebhookResult(success=True, status_code=200)


def _new_order() -> OrderId:
    order_id = OrderId(f"ord_{uuid4().hex[:12]}")
    SqlAlchemyOrderRepository().add(create_placed_order(order_id, now=datetime.now(timezone.utc)))
    return order_id


def test_broadcast_accept_and_progress_are_persisted(monkeypatch) -> None:
    monkeypatch.setattr(wiring, "order_webhook", lambda: AcceptingWebhook())
    order_id = _new_order()

    with TestClient(app) as client:
        broadcast = client.post(
            f"/v1/orders/{order_id}/broadcast",
            json={"restaurantIds": ["rst_001", "rst_002", "rst_003"]},
        )
        assert broadcast.status_code == 201
        assignments = {item["restaurantId"]: item["assignmentId"] for item in broadcast.json()["assignments"]}

        accept = client.post(
            f"/v1/assignments/{assignments['rst_002']}/respond",
            json={
                "orderId": order_id,
                "restaurantId": "rst_002",
                "latitude": 47.6,
                "longitude": -122.3,
                "action": "accept",
            },
        )
        assert accept.status_code == 200
        assert sorted(accept.json()["cancelledAssignmentIds"]) == sorted(
            [assignments["rst_001"], assignments["rst_003"]]
        )

        preparing = client.post(
            f"/v1/assignments/{assignments['rst_002']}/status",
            json={"orderId": order_id, "restaurantId": "rst_002", "status": "preparing"},
        )
        assert preparing.status_code == 200

        tracking = client.get(f"/v1/orders/{order_id}")
        assert tracking.status_code == 200
        body = tracking.json()
        assert body["order"]["status"] == "preparing"
        assert body["order"]["restaurantId"] == "rst_002"
        assert [entry["status"] for entry in body["history"]] == [
            "preparing",
            "restaurant_accepted",
            "restaurant_assigned",
        ]
        assert body["history"][1]["restaurantName"] == "Harbor Noodle Bar"
        assert "idempotency_key" not in body["history"][1]["details"]


def test_force_expire_writes_one_expiry_entry_per_assignment() -> None:
    order_id = _new_order()

    with TestClient(app) as client:
        client.post(f"/v1/orders/{order_id}/broadcast", json={"restaurantIds": ["rst_001", "rst_003"]})
        first = client.post(f"/v1/orders/{order_id}/expire")
        second = client.post(f"/v1/orders/{order_id}/expire")

    assert first.json()["expiredCount"] == 2
    assert first.json()["orderStatus"] == "no_restaurant_accepted"
    assert second.json()["expiredCount"] == 0

    statuses = [
        entry.status
        for entry in SqlAlchemyHistoryRepository().list_for_order(order_id, include_hidden=True)
    ]
    assert statuses.count("assignment_expired") == 2
    assert statuses.count("no_restaurant_accepted") == 1

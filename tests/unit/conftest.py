from __future__ import annotations

import sys
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[2] / "src"))

from oac.api import wiring
from oac.application.ports.webhook import AssignmentResponseRequest, WebhookResult
from oac.application.use_cases.assignment_health import AssignmentHealthMonitor
from oac.application.use_cases.assignment_queries import AssignmentQueries
from oac.application.use_cases.broadcast_order import BroadcastOrder
from oac.application.use_cases.expire_assignments import AssignmentExpiryMonitor
from oac.application.use_cases.history_ledger import HistoryLedger
from oac.application.use_cases.order_status import OrderStatusCoordinator
from oac.application.use_cases.respond_to_assignment import RestaurantResponseHandler
from oac.domain.common.ids import OrderId, RestaurantId
from oac.domain.order.entities import Order, create_placed_order
from oac.testing.in_memory import InMemoryStore, RecordingPublisher

T0 = datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)


class FixedClock:
    def __init__(self, now: datetime = T0) -> None:
        self.current = now

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs: float) -> None:
        self.current = self.current + timedelta(**kwargs)


class FakeWebhook:
    url = "https://functions.test/order-webhook"

    def __init__(self) -> None:
        self.requests: list[AssignmentResponseRequest] = []
        self.result = WebhookResult(success=True, message="ok", status_code=200)
        self.check_result = WebhookResult(success=True, status_code=200)
        self.expiry_checks = 0
        self.error: Exception | None = None

    def send_response(self, request: AssignmentResponseRequest) -> WebhookResult:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return self.result

    def check_expired(self) -> WebhookResult:
        self.expiry_checks += 1
        if self.error is not None:
            raise self.error
        return self.check_result


@dataclass
class Harness:
    store: InMemoryStore
    clock: FixedClock
    publisher: RecordingPublisher
    webhook: FakeWebhook
    ledger: HistoryLedger
    coordinator: OrderStatusCoordinator
    handler: RestaurantResponseHandler
    monitor: AssignmentExpiryMonitor
    broadcaster: BroadcastOrder
    queries: AssignmentQueries
    health: AssignmentHealthMonitor

    def place_order(self, order_id: str = "ord_001") -> Order:
        order = create_placed_order(OrderId(order_id), now=self.clock.now(), latitude=40.7, longitude=-74.0)
        self.store.order_repository.add(order)
        return order

    def order(self, order_id: str = "ord_001") -> Order:
        order = self.store.order_repository.get(OrderId(order_id))
        assert order is not None
        return order

    def broadcast(self, order_id: str = "ord_001", restaurants: tuple[str, ...] = ("rst_1", "rst_2", "rst_3")):
        result = self.broadcaster.execute(
            OrderId(order_id),
            [RestaurantId(item) for item in restaurants],
        )
        assert result.success
        return {str(item.restaurant_id): item for item in result.assignments}

    def history_statuses(self, order_id: str = "ord_001") -> list[str]:
        return [entry.status for entry in self.store.history if entry.order_id == order_id]


@pytest.fixture
def harness() -> Harness:
    store = InMemoryStore(
        restaurant_names={"rst_1": "Downtown Kitchen", "rst_2": "Harbor Noodles", "rst_3": "Uptown Grill"}
    )
    clock = FixedClock()
    publisher = RecordingPublisher()
    webhook = FakeWebhook()
    repos = store.bundle()
    return Harness(
        store=store,
        clock=clock,
        publisher=publisher,
        webhook=webhook,
        ledger=wiring.history_ledger(repos, clock),
        coordinator=wiring.order_status_coordinator(repos, publisher, clock=clock),
        handler=wiring.response_handler(repos, publisher, webhook, clock=clock),
        monitor=wiring.expiry_monitor(repos, publisher, webhook, clock=clock),
        broadcaster=wiring.broadcast_order(repos, publisher, clock=clock),
        queries=wiring.assignment_queries(repos, clock),
        health=wiring.assignment_health_monitor(repos, publisher, webhook, clock=clock),
    )

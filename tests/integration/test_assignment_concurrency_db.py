from __future__ import annotations

import concurrent.futures
import sys
from datetime import datetime, timezone
from pathlib import Path
from uuid import uuid4

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[2] / "src"))

from oac.api import wiring
from oac.application.ports.webhook import Location, WebhookResult
from oac.application.use_cases.outcomes import Outcome
from oac.domain.assignment.entities import AssignmentStatus
from oac.domain.common.ids import OrderId, RestaurantId
from oac.domain.order.entities import OrderStatus, create_placed_order
from oac.infrastructure.messaging.redis_publisher import NullEventPublisher

pytestmark = pytest.mark.integration


class AcceptingWebhook:
    url = "https://functions.test/order-webhook"

    def send_response(self, request):
        return WebhookResult(success=True, status_code=200)

    def check_expired(self):
        return WebhookResult(success=True, status_code=200)


def test_concurrent_accepts_leave_one_accepted_assignment() -> None:
    repos = wiring.sql_repositories()
    publisher = NullEventPublisher()
    order_id = OrderId(f"ord_{uuid4().hex[:12]}")
    repos.orders.add(create_placed_order(order_id, now=datetime.now(timezone.utc)))
    restaurants = [RestaurantId("rst_001"), RestaurantId("rst_002"), RestaurantId("rst_003")]
    broadcast = wiring.broadcast_order(repos, publisher).execute(order_id, restaurants)
    assert broadcast.success

    def _accept(assignment) -> Outcome:
        handler = wiring.response_handler(repos, publisher, AcceptingWebhook())
        return handler.respond(
            order_id=order_id,
            restaurant_id=assignment.restaurant_id,
            assignment_id=assignment.assignment_id,
            location=Location(latitude=0.0, longitude=0.0),
            action="accept",
        ).outcome

    with concurrent.futures.ThreadPoolExecutor(max_workers=len(restaurants)) as executor:
        outcomes = list(executor.map(_accept, broadcast.assignments))

    assert outcomes.count(Outcome.OK) == 1
    statuses = [item.status for item in repos.assignments.list_for_order(order_id)]
    assert statuses.count(AssignmentStatus.ACCEPTED) == 1
    order = repos.orders.get(order_id)
    assert order is not None
    assert order.status == OrderStatus.RESTAURANT_ACCEPTED

from __future__ import annotations

import sys
from dataclasses import replace
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[3] / "src"))

from oac.application.ports.webhook import Location
from oac.application.use_cases.outcomes import Outcome
from oac.domain.assignment.entities import AssignmentStatus
from oac.domain.common.ids import OrderId, RestaurantId
from oac.domain.order.entities import OrderStatus

ORDER_ID = OrderId("ord_001")


def _accept(harness, assignments, restaurant: str):
    return harness.handler.respond(
        order_id=ORDER_ID,
        restaurant_id=RestaurantId(restaurant),
        assignment_id=assignments[restaurant].assignment_id,
        location=Location(latitude=40.7, longitude=-74.0),
        action="accept",
    )


def test_check_counts_open_assignments(harness) -> None:
    harness.place_order()
    harness.broadcast()

    report = harness.health.check()

    assert report.pending_assignments == 3
    assert report.overdue_assignments == 0
    assert report.unanswered_orders == 0
    assert report.orders_missing_restaurant == 0
    assert report.checked_at == harness.clock.now()
    assert report.healthy is True


def test_check_flags_overdue_assignments(harness) -> None:
    harness.place_order()
    harness.broadcast()
    harness.clock.advance(minutes=16)

    report = harness.health.check()

    assert report.overdue_assignments == 3
    assert report.healthy is False


def test_cleanup_expires_overdue_assignments(harness) -> None:
    harness.place_order()
    harness.broadcast()
    harness.clock.advance(minutes=16)

    report = harness.health.cleanup()

    assert report.expired_assignments == 3
    assert report.reclaimed_orders == 0
    assert report.errors == []
    assert harness.order().status == OrderStatus.NO_RESTAURANT_ACCEPTED
    assert harness.health.check().healthy is True


def test_cleanup_reclaims_order_left_without_open_assignments(harness) -> None:
    harness.place_order()
    assignments = harness.broadcast(restaurants=("rst_1",))
    harness.store.fail_on.add("order.update")
    assert _accept(harness, assignments, "rst_1").outcome == Outcome.LOCAL_WRITE_FAILED
    harness.store.fail_on.clear()

    assert harness.health.check().unanswered_orders == 1
    report = harness.health.cleanup()

    assert report.reclaimed_orders == 1
    assert harness.order().status == OrderStatus.NO_RESTAURANT_ACCEPTED
    assert harness.history_statuses().count("no_restaurant_accepted") == 1
    assert harness.health.check().unanswered_orders == 0


def test_cleanup_links_accepted_order_back_to_its_restaurant(harness) -> None:
    harness.place_order()
    assignments = harness.broadcast()
    _accept(harness, assignments, "rst_2")
    order = harness.order()
    harness.store.orders[str(ORDER_ID)] = replace(order, restaurant_id=None)

    assert harness.health.check().orders_missing_restaurant == 1
    report = harness.health.cleanup()

    assert report.repaired_orders == 1
    assert report.errors == []
    repaired = harness.order()
    assert repaired.restaurant_id == "rst_2"
    assert repaired.status == OrderStatus.RESTAURANT_ACCEPTED
    assert repaired.version == order.version + 1
    entry = harness.store.history[-1]
    assert entry.details["repair"] == "restaurant_linked"
    assert entry.visibility is False


def test_cleanup_leaves_order_without_a_single_accepted_assignment(harness) -> None:
    harness.place_order()
    assignments = harness.broadcast()
    _accept(harness, assignments, "rst_1")
    order = harness.order()
    harness.store.orders[str(ORDER_ID)] = replace(order, restaurant_id=None)
    accepted = harness.store.assignments[str(assignments["rst_1"].assignment_id)]
    harness.store.assignments[str(accepted.assignment_id)] = replace(
        accepted, status=AssignmentStatus.CANCELLED
    )

    report = harness.health.cleanup()

    assert report.repaired_orders == 0
    assert report.errors == ["Order ord_001 has 0 accepted assignments"]
    assert harness.order().restaurant_id is None


def test_cleanup_collects_lookup_errors(harness) -> None:
    harness.place_order()
    harness.broadcast()
    harness.store.fail_on.update({"order.list", "assignment.list"})

    report = harness.health.cleanup()

    assert report.expired_assignments == 0
    assert report.reclaimed_orders == 0
    assert report.repaired_orders == 0
    assert report.errors == [
        "Error expiring overdue assignments",
        "Error finding unanswered orders",
        "Error finding orders without a restaurant",
    ]

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum

from oac.domain.common.ids import OrderId, RestaurantId


class OrderStatus(str, Enum):
    PLACED = "placed"
    RESTAURANT_ASSIGNED = "restaurant_assigned"
    RESTAURANT_ACCEPTED = "restaurant_accepted"
    RESTAURANT_REJECTED = "restaurant_rejected"
    PREPARING = "preparing"
    READY_FOR_PICKUP = "ready_for_pickup"
    ON_THE_WAY = "on_the_way"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    NO_RESTAURANT_ACCEPTED = "no_restaurant_accepted"


TERMINAL_STATUSES = frozenset(
    {
        OrderStatus.DELIVERED,
        OrderStatus.CANCELLED,
        OrderStatus.NO_RESTAURANT_ACCEPTED,
    }
)

# Statuses in which the order row must name the accepting restaurant.
RESTAURANT_HELD_STATUSES = frozenset(
    {
        OrderStatus.RESTAURANT_ACCEPTED,
        OrderStatus.PREPARING,
        OrderStatus.READY_FOR_PICKUP,
        OrderStatus.ON_THE_WAY,
        OrderStatus.DELIVERED,
    }
)

# Shorthand spellings still sent by older clients.
STATUS_ALIASES: dict[str, OrderStatus] = {
    "accepted": OrderStatus.RESTAURANT_ACCEPTED,
    "rejected": OrderStatus.RESTAURANT_REJECTED,
    "ready": OrderStatus.READY_FOR_PICKUP,
    "delivering": OrderStatus.ON_THE_WAY,
    "completed": OrderStatus.DELIVERED,
}

_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PLACED: frozenset(
        {OrderStatus.RESTAURANT_ASSIGNED, OrderStatus.NO_RESTAURANT_ACCEPTED}
    ),
    OrderStatus.RESTAURANT_ASSIGNED: frozenset(
        {
            OrderStatus.RESTAURANT_ACCEPTED,
            OrderStatus.RESTAURANT_REJECTED,
            OrderStatus.NO_RESTAURANT_ACCEPTED,
        }
    ),
    OrderStatus.RESTAURANT_REJECTED: frozenset(
        {
            OrderStatus.RESTAURANT_ASSIGNED,
            OrderStatus.RESTAURANT_ACCEPTED,
            OrderStatus.NO_RESTAURANT_ACCEPTED,
        }
    ),
    OrderStatus.RESTAURANT_ACCEPTED: frozenset({OrderStatus.PREPARING}),
    OrderStatus.PREPARING: frozenset({OrderStatus.READY_FOR_PICKUP}),
    OrderStatus.READY_FOR_PICKUP: frozenset({OrderStatus.ON_THE_WAY}),
    OrderStatus.ON_THE_WAY: frozenset({OrderStatus.DELIVERED}),
}

PHASE_TIMESTAMP_FIELDS: dict[OrderStatus, str] = {
    OrderStatus.RESTAURANT_ASSIGNED: "assigned_at",
    OrderStatus.RESTAURANT_ACCEPTED: "accepted_at",
    OrderStatus.PREPARING: "preparation_started_at",
    OrderStatus.READY_FOR_PICKUP: "ready_at",
    OrderStatus.ON_THE_WAY: "picked_up_at",
    OrderStatus.DELIVERED: "delivered_at",
    OrderStatus.CANCELLED: "cancelled_at",
}

_STATUS_MESSAGES: dict[OrderStatus, str] = {
    OrderStatus.PLACED: "Order received and being processed",
    OrderStatus.RESTAURANT_ASSIGNED: "Looking for an available restaurant",
    OrderStatus.RESTAURANT_ACCEPTED: "Restaurant accepted your order",
    OrderStatus.RESTAURANT_REJECTED: "Restaurant declined the order",
    OrderStatus.PREPARING: "Your order is being prepared",
    OrderStatus.READY_FOR_PICKUP: "Order is ready for pickup",
    OrderStatus.ON_THE_WAY: "Your order is on the way",
    OrderStatus.DELIVERED: "Order has been delivered",
    OrderStatus.CANCELLED: "Order has been cancelled",
    OrderStatus.NO_RESTAURANT_ACCEPTED: "No restaurant accepted the order",
}

_NEXT_EXPECTED: dict[OrderStatus, OrderStatus] = {
    OrderStatus.PLACED: OrderStatus.RESTAURANT_ASSIGNED,
    OrderStatus.RESTAURANT_ASSIGNED: OrderStatus.RESTAURANT_ACCEPTED,
    OrderStatus.RESTAURANT_REJECTED: OrderStatus.RESTAURANT_ASSIGNED,
    OrderStatus.RESTAURANT_ACCEPTED: OrderStatus.PREPARING,
    OrderStatus.PREPARING: OrderStatus.READY_FOR_PICKUP,
    OrderStatus.READY_FOR_PICKUP: OrderStatus.ON_THE_WAY,
    OrderStatus.ON_THE_WAY: OrderStatus.DELIVERED,
}

_CANCELLABLE = frozenset(
    {
        OrderStatus.PLACED,
        OrderStatus.RESTAURANT_ASSIGNED,
        OrderStatus.RESTAURANT_REJECTED,
        OrderStatus.RESTAURANT_ACCEPTED,
        OrderStatus.PREPARING,
    }
)


def parse_order_status(value: str | OrderStatus) -> OrderStatus:
    """Return the canonical status for a wire value or legacy alias."""
    if isinstance(value, OrderStatus):
        return value
    normalized = value.strip().lower()
    alias = STATUS_ALIASES.get(normalized)
    if alias is not None:
        return alias
    try:
        return OrderStatus(normalized)
    except ValueError as exc:
        raise InvalidStatusError(f"unknown order status: {value}") from exc


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    if current in TERMINAL_STATUSES:
        return False
    if target == OrderStatus.CANCELLED:
        return True
    return target in _TRANSITIONS.get(current, frozenset())


def status_message(status: OrderStatus) -> str:
    return _STATUS_MESSAGES.get(status, "Order status updated")


def can_cancel(status: OrderStatus) -> bool:
    return status in _CANCELLABLE


def next_expected_status(status: OrderStatus) -> OrderStatus | None:
    return _NEXT_EXPECTED.get(status)


@dataclass(frozen=True)
class Order:
    order_id: OrderId
    status: OrderStatus
    restaurant_id: RestaurantId | None
    assignment_source: str | None
    created_at: datetime
    updated_at: datetime | None = None
    assigned_at: datetime | None = None
    accepted_at: datetime | None = None
    preparation_started_at: datetime | None = None
    ready_at: datetime | None = None
    picked_up_at: datetime | None = None
    delivered_at: datetime | None = None
    cancelled_at: datetime | None = None
    latitude: float | None = None
    longitude: float | None = None
    version: int = 1

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def transition_to(
        self,
        new_status: OrderStatus,
        now: datetime,
        restaurant_id: RestaurantId | None = None,
        assignment_source: str | None = None,
    ) -> Order:
        if not can_transition(self.status, new_status):
            raise OrderTransitionError(
                f"cannot move order from status={self.status.value} to status={new_status.value}"
            )

        changes: dict[str, object] = {"status": new_status, "updated_at": now}
        timestamp_field = PHASE_TIMESTAMP_FIELDS.get(new_status)
        if timestamp_field is not None and getattr(self, timestamp_field) is None:
            changes[timestamp_field] = now
        if restaurant_id is not None:
            changes["restaurant_id"] = restaurant_id
        if assignment_source is not None:
            changes["assignment_source"] = assignment_source
        return replace(self, **changes)


def create_placed_order(
    order_id: OrderId,
    now: datetime,
    latitude: float | None = None,
    longitude: float | None = None,
) -> Order:
    return Order(
        order_id=order_id,
        status=OrderStatus.PLACED,
        restaurant_id=None,
        assignment_source=None,
        created_at=now,
        updated_at=now,
        latitude=latitude,
        longitude=longitude,
    )


class OrderTransitionError(Exception):
    pass


class InvalidStatusError(ValueError):
    pass

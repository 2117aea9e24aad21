from __future__ import annotations

import json
from datetime import datetime
from typing import Any
from uuid import uuid4

from oac.domain.assignment.entities import RestaurantAssignment
from oac.domain.order.entities import Order, OrderStatus


def _serialize_event(
    *,
    event_type: str,
    occurred_at: datetime,
    restaurant_id: str | None,
    payload: dict[str, Any],
    trace_id: str | None,
    request_id: str | None,
) -> str:
    envelope = {
        "event_id": str(uuid4()),
        "event_type": event_type,
        "occurred_at": occurred_at.isoformat(),
        "request_id": request_id,
        "trace_id": trace_id,
        "restaurant_id": restaurant_id,
        "payload": payload,
    }
    return json.dumps(envelope, separators=(",", ":"), ensure_ascii=False)


def serialize_status_changed_event(
    *,
    occurred_at: datetime,
    order: Order,
    from_status: OrderStatus,
    actor_kind: str,
    trace_id: str | None,
    request_id: str | None,
) -> str:
    return _serialize_event(
        event_type="order.status_changed",
        occurred_at=occurred_at,
        restaurant_id=str(order.restaurant_id) if order.restaurant_id else None,
        trace_id=trace_id,
        request_id=request_id,
        payload={
            "orderId": str(order.order_id),
            "fromStatus": from_status.value,
            "status": order.status.value,
            "actorKind": actor_kind,
            "assignmentSource": order.assignment_source,
            "updatedAt": order.updated_at.isoformat() if order.updated_at else None,
        },
    )


def serialize_assignment_created_event(
    *,
    occurred_at: datetime,
    assignment: RestaurantAssignment,
    trace_id: str | None,
    request_id: str | None,
) -> str:
    return _serialize_event(
        event_type="assignment.created",
        occurred_at=occurred_at,
        restaurant_id=str(assignment.restaurant_id),
        trace_id=trace_id,
        request_id=request_id,
        payload={
            "assignmentId": str(assignment.assignment_id),
            "orderId": str(assignment.order_id),
            "status": assignment.status.value,
            "expiresAt": assignment.expires_at.isoformat(),
        },
    )

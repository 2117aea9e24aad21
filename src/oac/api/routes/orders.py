from __future__ import annotations

from fastapi import APIRouter

from oac.api import wiring
from oac.application.dto.requests import BroadcastOrderRequest, UpdateOrderStatusRequest
from oac.application.dto.responses import (
    AssignmentListResponse,
    BroadcastResponse,
    ExpireResponse,
    OrderResponse,
    OrderTrackingResponse,
)
from oac.application.mappers.order_mapper import (
    to_assignment_response,
    to_order_response,
    to_order_tracking_response,
)
from oac.application.use_cases.assignment_queries import AssignmentQueries
from oac.application.use_cases.broadcast_order import BroadcastOrder
from oac.application.use_cases.errors import OrderNotFoundError, raise_for_outcome
from oac.application.use_cases.expire_assignments import AssignmentExpiryMonitor
from oac.application.use_cases.order_status import OrderStatusCoordinator
from oac.domain.common.ids import ActorId, OrderId, RestaurantId
from oac.domain.history.entities import ActorKind

router = APIRouter()


def _order_status_coordinator() -> OrderStatusCoordinator:
    return wiring.order_status_coordinator(
        wiring.sql_repositories(),
        wiring.event_publisher(),
        wiring.request_trace_context(),
    )


def _broadcast_order_use_case() -> BroadcastOrder:
    return wiring.broadcast_order(
        wiring.sql_repositories(),
        wiring.event_publisher(),
        wiring.request_trace_context(),
    )


def _expiry_monitor() -> AssignmentExpiryMonitor:
    return wiring.expiry_monitor(
        wiring.sql_repositories(),
        wiring.event_publisher(),
        wiring.order_webhook(),
        wiring.request_trace_context(),
    )


def _assignment_queries() -> AssignmentQueries:
    return wiring.assignment_queries(wiring.sql_repositories())


@router.get("/v1/orders/{order_id}", response_model=OrderTrackingResponse)
def get_order(order_id: str) -> OrderTrackingResponse:
    tracking = _order_status_coordinator().get_order_with_history(OrderId(order_id))
    if tracking is None:
        raise OrderNotFoundError(f"order {order_id} not found")
    return to_order_tracking_response(tracking)


@router.post("/v1/orders/{order_id}/status", response_model=OrderResponse)
def update_order_status(order_id: str, request: UpdateOrderStatusRequest) -> OrderResponse:
    result = _order_status_coordinator().update_status(
        order_id=OrderId(order_id),
        new_status=request.status,
        restaurant_id=RestaurantId(request.restaurant_id) if request.restaurant_id else None,
        assignment_source=request.assignment_source,
        metadata=request.metadata,
        actor_id=ActorId(request.actor_id) if request.actor_id else None,
        actor_kind=request.actor_kind or ActorKind.SYSTEM,
        idempotency_key=request.idempotency_key,
    )
    raise_for_outcome(result.outcome, result.message)
    return to_order_response(result.order)


@router.post("/v1/orders/{order_id}/broadcast", response_model=BroadcastResponse, status_code=201)
def broadcast_order(order_id: str, request: BroadcastOrderRequest) -> BroadcastResponse:
    result = _broadcast_order_use_case().execute(
        order_id=OrderId(order_id),
        candidate_restaurant_ids=[RestaurantId(item) for item in request.restaurant_ids],
        expiration_minutes=request.expiration_minutes or wiring.assignment_expiration_minutes(),
        assignment_source=request.assignment_source,
    )
    raise_for_outcome(result.outcome, result.message)
    return BroadcastResponse(
        order=to_order_response(result.order) if result.order else None,
        assignments=[to_assignment_response(item) for item in result.assignments],
        message=result.message,
    )


@router.get("/v1/orders/{order_id}/assignments", response_model=AssignmentListResponse)
def list_order_assignments(order_id: str) -> AssignmentListResponse:
    assignments = _assignment_queries().list_for_order(OrderId(order_id))
    return AssignmentListResponse(
        assignments=[to_assignment_response(item) for item in assignments]
    )


@router.post("/v1/orders/{order_id}/expire", response_model=ExpireResponse)
def force_expire(order_id: str) -> ExpireResponse:
    result = _expiry_monitor().force_expire(OrderId(order_id))
    raise_for_outcome(result.outcome, result.message)
    return ExpireResponse(
        expiredCount=result.expired_count,
        pendingCount=result.pending_count,
        orderStatus=result.order_status.value if result.order_status else None,
        message=result.message,
    )

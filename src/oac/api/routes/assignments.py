from __future__ import annotations

from fastapi import APIRouter

from oac.api import wiring
from oac.application.dto.requests import (
    RespondToAssignmentRequest,
    UpdateAssignmentStatusRequest,
)
from oac.application.dto.responses import (
    AssignmentHealthResponse,
    AssignmentListResponse,
    CleanupResponse,
    OrderResponse,
    RespondResponse,
)
from oac.application.mappers.order_mapper import (
    to_assignment_response,
    to_cleanup_response,
    to_health_response,
    to_order_response,
)
from oac.application.ports.webhook import Location
from oac.application.use_cases.assignment_health import AssignmentHealthMonitor
from oac.application.use_cases.assignment_queries import AssignmentQueries
from oac.application.use_cases.errors import AssignmentNotFoundError, raise_for_outcome
from oac.application.use_cases.order_status import OrderStatusCoordinator
from oac.application.use_cases.respond_to_assignment import RestaurantResponseHandler
from oac.domain.common.ids import AssignmentId, OrderId, RestaurantId

router = APIRouter()


def _response_handler() -> RestaurantResponseHandler:
    return wiring.response_handler(
        wiring.sql_repositories(),
        wiring.event_publisher(),
        wiring.order_webhook(),
        wiring.request_trace_context(),
    )


def _order_status_coordinator() -> OrderStatusCoordinator:
    return wiring.order_status_coordinator(
        wiring.sql_repositories(),
        wiring.event_publisher(),
        wiring.request_trace_context(),
    )


def _assignment_queries() -> AssignmentQueries:
    return wiring.assignment_queries(wiring.sql_repositories())


def _assignment_health_monitor() -> AssignmentHealthMonitor:
    return wiring.assignment_health_monitor(
        wiring.sql_repositories(),
        wiring.event_publisher(),
        wiring.order_webhook(),
        wiring.request_trace_context(),
    )


@router.get("/v1/assignments/health", response_model=AssignmentHealthResponse)
def assignment_health() -> AssignmentHealthResponse:
    return to_health_response(_assignment_health_monitor().check())


@router.post("/v1/assignments/cleanup", response_model=CleanupResponse)
def assignment_cleanup() -> CleanupResponse:
    return to_cleanup_response(_assignment_health_monitor().cleanup())


@router.post("/v1/assignments/{assignment_id}/respond", response_model=RespondResponse)
def respond_to_assignment(
    assignment_id: str,
    request: RespondToAssignmentRequest,
) -> RespondResponse:
    result = _response_handler().respond(
        order_id=OrderId(request.order_id),
        restaurant_id=RestaurantId(request.restaurant_id),
        assignment_id=AssignmentId(assignment_id),
        location=Location(latitude=request.latitude, longitude=request.longitude),
        action=request.action,
        notes=request.notes,
    )
    raise_for_outcome(result.outcome, result.message, not_found=AssignmentNotFoundError)
    return RespondResponse(
        order=to_order_response(result.order) if result.order else None,
        cancelledAssignmentIds=result.cancelled_assignment_ids,
    )


@router.post("/v1/assignments/{assignment_id}/status", response_model=OrderResponse)
def update_assignment_status(
    assignment_id: str,
    request: UpdateAssignmentStatusRequest,
) -> OrderResponse:
    result = _order_status_coordinator().update_restaurant_assignment_status(
        assignment_id=AssignmentId(assignment_id),
        order_id=OrderId(request.order_id),
        new_assignment_status=request.status,
        restaurant_id=RestaurantId(request.restaurant_id),
        notes=request.notes,
    )
    raise_for_outcome(result.outcome, result.message, not_found=AssignmentNotFoundError)
    return to_order_response(result.order)


@router.get(
    "/v1/restaurants/{restaurant_id}/assignments/pending",
    response_model=AssignmentListResponse,
)
def pending_assignments(restaurant_id: str) -> AssignmentListResponse:
    assignments = _assignment_queries().pending_for_restaurant(RestaurantId(restaurant_id))
    return AssignmentListResponse(
        assignments=[to_assignment_response(item) for item in assignments]
    )

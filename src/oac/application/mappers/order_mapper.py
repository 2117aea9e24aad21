from __future__ import annotations

from oac.application.dto.responses import (
    AssignmentHealthResponse,
    AssignmentResponse,
    CleanupResponse,
    HistoryEntryResponse,
    OrderResponse,
    OrderTrackingResponse,
)
from oac.application.use_cases.outcomes import AssignmentHealthReport, CleanupReport, OrderTracking
from oac.domain.assignment.entities import RestaurantAssignment
from oac.domain.history.entities import IDEMPOTENCY_DETAIL_KEY, OrderHistoryEntry
from oac.domain.order.entities import (
    Order,
    can_cancel,
    next_expected_status,
    status_message,
)


def to_order_response(order: Order) -> OrderResponse:
    next_status = next_expected_status(order.status)
    return OrderResponse(
        orderId=str(order.order_id),
        status=order.status.value,
        statusMessage=status_message(order.status),
        restaurantId=str(order.restaurant_id) if order.restaurant_id else None,
        assignmentSource=order.assignment_source,
        createdAt=order.created_at,
        updatedAt=order.updated_at,
        assignedAt=order.assigned_at,
        acceptedAt=order.accepted_at,
        preparationStartedAt=order.preparation_started_at,
        readyAt=order.ready_at,
        pickedUpAt=order.picked_up_at,
        deliveredAt=order.delivered_at,
        cancelledAt=order.cancelled_at,
        latitude=order.latitude,
        longitude=order.longitude,
        canCancel=can_cancel(order.status),
        nextExpectedStatus=next_status.value if next_status else None,
        version=order.version,
    )


def to_history_entry_response(entry: OrderHistoryEntry) -> HistoryEntryResponse:
    # Idempotency keys are bookkeeping, not something clients should see.
    details = {k: v for k, v in entry.details.items() if k != IDEMPOTENCY_DETAIL_KEY}
    return HistoryEntryResponse(
        entryId=str(entry.entry_id),
        status=entry.status,
        previousStatus=entry.previous_status,
        restaurantId=str(entry.restaurant_id) if entry.restaurant_id else None,
        restaurantName=entry.restaurant_name,
        details=details,
        expiredAt=entry.expired_at,
        changedBy=str(entry.changed_by) if entry.changed_by else None,
        changedByType=entry.changed_by_type.value,
        createdAt=entry.created_at,
    )


def to_order_tracking_response(tracking: OrderTracking) -> OrderTrackingResponse:
    return OrderTrackingResponse(
        order=to_order_response(tracking.order),
        history=[to_history_entry_response(entry) for entry in tracking.history],
        unifiedTracking=tracking.unified_tracking,
    )


def to_assignment_response(assignment: RestaurantAssignment) -> AssignmentResponse:
    return AssignmentResponse(
        assignmentId=str(assignment.assignment_id),
        orderId=str(assignment.order_id),
        restaurantId=str(assignment.restaurant_id),
        status=assignment.status.value,
        assignedAt=assignment.assigned_at,
        expiresAt=assignment.expires_at,
        respondedAt=assignment.responded_at,
        responseNotes=assignment.response_notes,
    )


def to_health_response(report: AssignmentHealthReport) -> AssignmentHealthResponse:
    return AssignmentHealthResponse(
        healthy=report.healthy,
        pendingAssignments=report.pending_assignments,
        overdueAssignments=report.overdue_assignments,
        unansweredOrders=report.unanswered_orders,
        ordersMissingRestaurant=report.orders_missing_restaurant,
        checkedAt=report.checked_at,
    )


def to_cleanup_response(report: CleanupReport) -> CleanupResponse:
    return CleanupResponse(
        success=not report.errors,
        expiredAssignments=report.expired_assignments,
        reclaimedOrders=report.reclaimed_orders,
        repairedOrders=report.repaired_orders,
        errors=list(report.errors),
    )

from __future__ import annotations

import logging
from datetime import timedelta
from uuid import uuid4

from oac.application.best_effort import best_effort
from oac.application.mappers.event_envelope import serialize_assignment_created_event
from oac.application.metrics.assignment_lifecycle import record_assignments_created
from oac.application.ports.clock import Clock, SystemClock
from oac.application.ports.publisher import EventPublisher, restaurant_channel
from oac.application.ports.repositories import AssignmentRepository, OrderRepository
from oac.application.use_cases.context import TraceContext
from oac.application.use_cases.order_status import OrderStatusCoordinator
from oac.application.use_cases.outcomes import BroadcastResult, Outcome
from oac.domain.assignment.entities import AssignmentStatus, create_pending_assignment
from oac.domain.common.ids import AssignmentId, OrderId, RestaurantId
from oac.domain.order.entities import OrderStatus

logger = logging.getLogger(__name__)

DEFAULT_EXPIRATION_MINUTES = 15
NO_CANDIDATES_REASON = "No restaurants available"
_BROADCASTABLE = frozenset({OrderStatus.PLACED, OrderStatus.RESTAURANT_REJECTED})


class BroadcastOrder:
    """Fan a placed order out to every candidate restaurant as pending assignments."""

    def __init__(
        self,
        order_repository: OrderRepository,
        assignment_repository: AssignmentRepository,
        coordinator: OrderStatusCoordinator,
        publisher: EventPublisher,
        clock: Clock | None = None,
        trace_ctx: TraceContext | None = None,
    ) -> None:
        self._order_repository = order_repository
        self._assignment_repository = assignment_repository
        self._coordinator = coordinator
        self._publisher = publisher
        self._clock = clock or SystemClock()
        self._trace_ctx = trace_ctx or TraceContext.background()

    def execute(
        self,
        order_id: OrderId,
        candidate_restaurant_ids: list[RestaurantId],
        expiration_minutes: int = DEFAULT_EXPIRATION_MINUTES,
        assignment_source: str = "broadcast",
    ) -> BroadcastResult:
        if expiration_minutes < 1:
            raise ValueError("expiration_minutes must be >= 1")

        order = self._order_repository.get(order_id)
        if order is None:
            return BroadcastResult(outcome=Outcome.NOT_FOUND, message=f"order {order_id} not found")
        if order.status not in _BROADCASTABLE:
            return BroadcastResult(
                outcome=Outcome.INVALID_TRANSITION,
                order=order,
                message=f"cannot broadcast order from status={order.status.value}",
            )

        already_asked = {
            assignment.restaurant_id
            for assignment in self._assignment_repository.list_for_order(order_id)
        }
        candidates: list[RestaurantId] = []
        for restaurant_id in candidate_restaurant_ids:
            if restaurant_id in already_asked or restaurant_id in candidates:
                continue
            candidates.append(restaurant_id)

        if not candidates:
            result = self._coordinator.update_status(
                order_id=order_id,
                new_status=OrderStatus.NO_RESTAURANT_ACCEPTED,
                metadata={"reason": NO_CANDIDATES_REASON},
            )
            return BroadcastResult(
                outcome=result.outcome,
                order=result.order,
                message=NO_CANDIDATES_REASON,
            )

        now = self._clock.now()
        expires_at = now + timedelta(minutes=expiration_minutes)
        assignments = [
            create_pending_assignment(
                assignment_id=AssignmentId(f"asg_{uuid4().hex[:12]}"),
                order_id=order_id,
                restaurant_id=restaurant_id,
                now=now,
                expires_at=expires_at,
            )
            for restaurant_id in candidates
        ]
        try:
            self._assignment_repository.add_many(assignments)
        except Exception:
            logger.exception("assignment_insert_failed", extra={"order_id": str(order_id)})
            return BroadcastResult(
                outcome=Outcome.FAILED,
                order=order,
                message="failed to create restaurant assignments",
            )

        for assignment in assignments:
            self._coordinator.append_assignment_history(
                order_id=order_id,
                assignment_id=assignment.assignment_id,
                restaurant_id=assignment.restaurant_id,
                status=AssignmentStatus.PENDING,
            )
        record_assignments_created(len(assignments))

        result = self._coordinator.update_status(
            order_id=order_id,
            new_status=OrderStatus.RESTAURANT_ASSIGNED,
            assignment_source=assignment_source,
            metadata={
                "assignment_ids": [str(item.assignment_id) for item in assignments],
                "restaurant_ids": [str(item.restaurant_id) for item in assignments],
                "expires_at": expires_at.isoformat(),
            },
        )
        if not result.success:
            logger.warning(
                "broadcast_status_update_failed",
                extra={"order_id": str(order_id), "outcome": result.outcome.value},
            )
            return BroadcastResult(
                outcome=result.outcome,
                assignments=assignments,
                order=result.order,
                message=result.message,
            )

        for assignment in assignments:
            message = serialize_assignment_created_event(
                occurred_at=now,
                assignment=assignment,
                trace_id=self._trace_ctx.trace_id,
                request_id=self._trace_ctx.request_id,
            )
            best_effort(
                "event_publish_failed",
                self._publisher.publish,
                channel=restaurant_channel(assignment.restaurant_id),
                message=message,
                extra={"order_id": str(order_id)},
            )

        logger.info(
            "order_broadcast",
            extra={"order_id": str(order_id), "count": len(assignments)},
        )
        return BroadcastResult(outcome=Outcome.OK, assignments=assignments, order=result.order)

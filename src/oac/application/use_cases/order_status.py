from __future__ import annotations

import logging
from typing import Any
from uuid import uuid4

from oac.application.best_effort import best_effort
from oac.application.mappers.event_envelope import serialize_status_changed_event
from oac.application.metrics.assignment_lifecycle import (
    record_assignment_outcome,
    record_race_lost,
    record_time_to_accept,
    record_transition,
)
from oac.application.ports.clock import Clock, SystemClock
from oac.application.ports.publisher import EventPublisher, restaurant_channel
from oac.application.ports.repositories import (
    AssignmentHistoryRepository,
    AssignmentRepository,
    OrderRepository,
    StaleStateError,
)
from oac.application.use_cases.context import TraceContext
from oac.application.use_cases.history_ledger import HistoryLedger
from oac.application.use_cases.outcomes import (
    Outcome,
    OrderTracking,
    ResponseResult,
    StatusUpdateResult,
)
from oac.domain.assignment.entities import (
    ACCEPTANCE_NOT_RECORDED_NOTE,
    CANCELLED_BY_WINNER_NOTE,
    ORDER_CANCELLED_NOTE,
    ORDER_CLOSED_NOTE,
    AssignmentStatus,
)
from oac.domain.common.ids import ActorId, AssignmentId, HistoryEntryId, OrderId, RestaurantId
from oac.domain.history.entities import ActorKind, AssignmentHistoryEntry
from oac.domain.order.entities import (
    InvalidStatusError,
    Order,
    OrderStatus,
    OrderTransitionError,
    parse_order_status,
)

logger = logging.getLogger(__name__)

ALREADY_ACCEPTED_MESSAGE = "Order already accepted elsewhere"
ORDER_WRITE_ATTEMPTS = 3

# Restaurant-side codes and the order status each one drives.
ASSIGNMENT_TO_ORDER_STATUS: dict[str, OrderStatus] = {
    "accepted": OrderStatus.RESTAURANT_ACCEPTED,
    "rejected": OrderStatus.RESTAURANT_REJECTED,
    "preparing": OrderStatus.PREPARING,
    "ready_for_pickup": OrderStatus.READY_FOR_PICKUP,
}


class OrderStatusCoordinator:
    """Single entry point for changing an order's status.

    The order row is written first with an optimistic version check; the
    history entry, metrics and event publication follow and are best effort.
    """

    def __init__(
        self,
        order_repository: OrderRepository,
        assignment_repository: AssignmentRepository,
        assignment_history_repository: AssignmentHistoryRepository,
        history_ledger: HistoryLedger,
        publisher: EventPublisher,
        clock: Clock | None = None,
        trace_ctx: TraceContext | None = None,
    ) -> None:
        self._order_repository = order_repository
        self._assignment_repository = assignment_repository
        self._assignment_history_repository = assignment_history_repository
        self._history_ledger = history_ledger
        self._publisher = publisher
        self._clock = clock or SystemClock()
        self._trace_ctx = trace_ctx or TraceContext.background()

    def update_status(
        self,
        order_id: OrderId,
        new_status: OrderStatus | str,
        restaurant_id: RestaurantId | None = None,
        assignment_source: str | None = None,
        metadata: dict[str, Any] | None = None,
        actor_id: ActorId | None = None,
        actor_kind: ActorKind | str = ActorKind.SYSTEM,
        idempotency_key: str | None = None,
    ) -> StatusUpdateResult:
        try:
            target = parse_order_status(new_status)
        except InvalidStatusError as exc:
            return StatusUpdateResult(outcome=Outcome.INVALID_STATUS, message=str(exc))

        if not ActorKind.is_known(actor_kind):
            logger.warning(
                "actor_kind_coerced",
                extra={"order_id": str(order_id), "status": target.value},
            )
        kind = ActorKind.coerce(actor_kind)

        try:
            order = self._order_repository.get(order_id)
        except Exception:
            logger.exception("order_lookup_failed", extra={"order_id": str(order_id)})
            return StatusUpdateResult(outcome=Outcome.FAILED, message="order lookup failed")
        if order is None:
            return StatusUpdateResult(
                outcome=Outcome.NOT_FOUND,
                message=f"order {order_id} not found",
            )

        if order.status == target:
            logger.info(
                "order_status_unchanged",
                extra={"order_id": str(order_id), "status": target.value},
            )
            return StatusUpdateResult(outcome=Outcome.OK, order=order)

        now = self._clock.now()
        row_restaurant_id = None if target == OrderStatus.RESTAURANT_REJECTED else restaurant_id
        try:
            updated = order.transition_to(
                target,
                now=now,
                restaurant_id=row_restaurant_id,
                assignment_source=assignment_source,
            )
        except OrderTransitionError as exc:
            logger.warning(
                "order_transition_rejected",
                extra={"order_id": str(order_id), "status": target.value},
            )
            return StatusUpdateResult(
                outcome=Outcome.INVALID_TRANSITION,
                order=order,
                message=str(exc),
            )

        try:
            persisted = self._order_repository.update_with_version(
                updated,
                expected_version=order.version,
            )
        except StaleStateError as exc:
            record_race_lost("order_update")
            logger.warning(
                "order_update_conflict",
                extra={"order_id": str(order_id), "status": target.value},
            )
            return StatusUpdateResult(outcome=Outcome.CONFLICT, order=order, message=str(exc))
        except Exception:
            logger.exception(
                "order_update_failed",
                extra={"order_id": str(order_id), "status": target.value},
            )
            return StatusUpdateResult(
                outcome=Outcome.FAILED,
                order=order,
                message="order update failed",
            )

        details = dict(metadata or {})
        details["assignment_source"] = assignment_source or persisted.assignment_source
        details["unified_tracking"] = True
        if idempotency_key is not None:
            self._history_ledger.record_idempotent(
                order_id=order_id,
                status=target.value,
                idempotency_key=idempotency_key,
                restaurant_id=restaurant_id,
                details=details,
                actor_id=actor_id,
                actor_kind=kind,
                previous_status=order.status.value,
            )
        else:
            self._history_ledger.record(
                order_id=order_id,
                status=target.value,
                restaurant_id=restaurant_id,
                details=details,
                actor_id=actor_id,
                actor_kind=kind,
                previous_status=order.status.value,
            )

        if target == OrderStatus.CANCELLED:
            best_effort(
                "assignment_cascade_failed",
                self.cancel_pending_assignments,
                order_id,
                notes=ORDER_CANCELLED_NOTE,
                extra={"order_id": str(order_id)},
            )

        record_transition(from_status=order.status, to_status=target, actor_kind=kind.value)
        if target == OrderStatus.RESTAURANT_ACCEPTED:
            record_time_to_accept(persisted, now=now)
        self._publish_status_changed(persisted, from_status=order.status, actor_kind=kind)

        logger.info(
            "order_status_updated",
            extra={
                "order_id": str(order_id),
                "status": target.value,
                "restaurant_id": str(persisted.restaurant_id) if persisted.restaurant_id else None,
            },
        )
        return StatusUpdateResult(outcome=Outcome.OK, order=persisted)

    def update_restaurant_assignment_status(
        self,
        assignment_id: AssignmentId,
        order_id: OrderId,
        new_assignment_status: str,
        restaurant_id: RestaurantId,
        notes: str | None = None,
    ) -> StatusUpdateResult:
        code = new_assignment_status.strip().lower()
        target = ASSIGNMENT_TO_ORDER_STATUS.get(code)
        if target is None:
            return StatusUpdateResult(
                outcome=Outcome.INVALID_STATUS,
                message=f"unsupported assignment status: {new_assignment_status}",
            )

        assignment = self._assignment_repository.get(assignment_id)
        if (
            assignment is None
            or assignment.order_id != order_id
            or assignment.restaurant_id != restaurant_id
        ):
            return StatusUpdateResult(
                outcome=Outcome.NOT_FOUND,
                message=f"assignment {assignment_id} not found for order {order_id}",
            )

        now = self._clock.now()
        if code in (AssignmentStatus.ACCEPTED.value, AssignmentStatus.REJECTED.value):
            assignment_status = AssignmentStatus(code)
            try:
                landed = self._assignment_repository.transition_if(
                    assignment_id,
                    expected=AssignmentStatus.PENDING,
                    new_status=assignment_status,
                    responded_at=now,
                    notes=notes,
                )
            except Exception:
                logger.exception(
                    "assignment_update_failed",
                    extra={"order_id": str(order_id), "assignment_id": str(assignment_id)},
                )
                return StatusUpdateResult(
                    outcome=Outcome.FAILED,
                    message="assignment update failed",
                )
            if not landed:
                record_race_lost("assignment_response")
                accepted_elsewhere = best_effort(
                    "assignment_lookup_failed",
                    self._assignment_repository.list_for_order,
                    order_id,
                    AssignmentStatus.ACCEPTED,
                    extra={"order_id": str(order_id)},
                )
                if any(item.assignment_id != assignment_id for item in accepted_elsewhere or []):
                    return StatusUpdateResult(
                        outcome=Outcome.ALREADY_ACCEPTED,
                        message=ALREADY_ACCEPTED_MESSAGE,
                    )
                return StatusUpdateResult(
                    outcome=Outcome.CONFLICT,
                    message=f"assignment {assignment_id} is no longer pending",
                )
            record_assignment_outcome(assignment_status.value)
            self.append_assignment_history(
                order_id=order_id,
                assignment_id=assignment_id,
                restaurant_id=restaurant_id,
                status=assignment_status,
                notes=notes,
            )
        elif assignment.status != AssignmentStatus.ACCEPTED:
            return StatusUpdateResult(
                outcome=Outcome.CONFLICT,
                message=f"assignment {assignment_id} has not been accepted",
            )

        if code == AssignmentStatus.ACCEPTED.value:
            accepted = self.complete_acceptance(
                order_id=order_id,
                restaurant_id=restaurant_id,
                assignment_id=assignment_id,
                metadata={
                    "assignment_id": str(assignment_id),
                    "assignment_status": code,
                    "notes": notes,
                },
            )
            return StatusUpdateResult(
                outcome=accepted.outcome,
                order=accepted.order,
                message=accepted.message,
            )

        return self.update_status(
            order_id=order_id,
            new_status=target,
            restaurant_id=restaurant_id,
            metadata={
                "assignment_id": str(assignment_id),
                "assignment_status": code,
                "notes": notes,
            },
            actor_kind=ActorKind.RESTAURANT,
        )

    def complete_acceptance(
        self,
        order_id: OrderId,
        restaurant_id: RestaurantId,
        assignment_id: AssignmentId,
        metadata: dict[str, Any] | None = None,
        idempotency_key: str | None = None,
    ) -> ResponseResult:
        """Carry a landed ``pending -> accepted`` claim through to the order.

        The claim is released again whenever the order does not end up
        accepted for this restaurant, so no order keeps a stray accepted
        assignment. On success every other pending assignment is cancelled.
        """
        # The version-guarded order write decides between two claims that
        # both landed before either cancelled the other.
        for _ in range(ORDER_WRITE_ATTEMPTS):
            status_result = self.update_status(
                order_id=order_id,
                new_status=OrderStatus.RESTAURANT_ACCEPTED,
                restaurant_id=restaurant_id,
                metadata=metadata,
                actor_kind=ActorKind.RESTAURANT,
                idempotency_key=idempotency_key,
            )
            if status_result.outcome != Outcome.CONFLICT:
                break

        holder = status_result.order.restaurant_id if status_result.order is not None else None
        taken = holder is not None and holder != restaurant_id
        if taken and status_result.outcome in (Outcome.OK, Outcome.INVALID_TRANSITION):
            record_race_lost("order_accept")
            self.release_claim(order_id, assignment_id, restaurant_id, CANCELLED_BY_WINNER_NOTE)
            logger.info(
                "assignment_accept_lost",
                extra={"order_id": str(order_id), "assignment_id": str(assignment_id)},
            )
            return ResponseResult(
                outcome=Outcome.ALREADY_ACCEPTED,
                order=status_result.order,
                message=ALREADY_ACCEPTED_MESSAGE,
            )

        if not status_result.success:
            if status_result.outcome == Outcome.INVALID_TRANSITION:
                note = ORDER_CLOSED_NOTE
            else:
                note = ACCEPTANCE_NOT_RECORDED_NOTE
            self.release_claim(order_id, assignment_id, restaurant_id, note)
            logger.error(
                "accept_local_write_failed",
                extra={
                    "order_id": str(order_id),
                    "assignment_id": str(assignment_id),
                    "outcome": status_result.outcome.value,
                },
            )
            return ResponseResult(
                outcome=status_result.outcome,
                order=status_result.order,
                message=status_result.message or "failed to update order after acceptance",
            )

        try:
            cancelled = self.cancel_pending_assignments(
                order_id,
                notes=CANCELLED_BY_WINNER_NOTE,
                keep=assignment_id,
            )
        except Exception:
            logger.exception(
                "sibling_cancellation_failed",
                extra={"order_id": str(order_id), "assignment_id": str(assignment_id)},
            )
            return ResponseResult(
                outcome=Outcome.LOCAL_WRITE_FAILED,
                order=status_result.order,
                message="failed to cancel competing assignments",
            )

        logger.info(
            "assignment_accepted",
            extra={
                "order_id": str(order_id),
                "assignment_id": str(assignment_id),
                "restaurant_id": str(restaurant_id),
            },
        )
        return ResponseResult(
            outcome=Outcome.OK,
            order=status_result.order,
            cancelled_assignment_ids=cancelled,
        )

    def release_claim(
        self,
        order_id: OrderId,
        assignment_id: AssignmentId,
        restaurant_id: RestaurantId,
        notes: str,
    ) -> bool:
        """Undo an ``accepted`` claim by moving it to ``cancelled``."""
        released = best_effort(
            "assignment_release_failed",
            self._assignment_repository.transition_if,
            assignment_id,
            expected=AssignmentStatus.ACCEPTED,
            new_status=AssignmentStatus.CANCELLED,
            responded_at=self._clock.now(),
            notes=notes,
            extra={"order_id": str(order_id), "assignment_id": str(assignment_id)},
        )
        if not released:
            return False
        record_assignment_outcome(AssignmentStatus.CANCELLED.value)
        self.append_assignment_history(
            order_id=order_id,
            assignment_id=assignment_id,
            restaurant_id=restaurant_id,
            status=AssignmentStatus.CANCELLED,
            notes=notes,
        )
        return True

    def cancel_pending_assignments(
        self,
        order_id: OrderId,
        notes: str,
        keep: AssignmentId | None = None,
    ) -> list[str]:
        """CAS every pending assignment of the order except ``keep`` to cancelled.

        Rows that already left ``pending`` keep their status. Repository
        errors propagate.
        """
        now = self._clock.now()
        cancelled: list[str] = []
        for assignment in self._assignment_repository.list_for_order(
            order_id, AssignmentStatus.PENDING
        ):
            if assignment.assignment_id == keep:
                continue
            landed = self._assignment_repository.transition_if(
                assignment.assignment_id,
                expected=AssignmentStatus.PENDING,
                new_status=AssignmentStatus.CANCELLED,
                responded_at=now,
                notes=notes,
            )
            if not landed:
                continue
            cancelled.append(str(assignment.assignment_id))
            self.append_assignment_history(
                order_id=order_id,
                assignment_id=assignment.assignment_id,
                restaurant_id=assignment.restaurant_id,
                status=AssignmentStatus.CANCELLED,
                notes=notes,
            )
        if cancelled:
            record_assignment_outcome(AssignmentStatus.CANCELLED.value, len(cancelled))
        return cancelled


    def get_order_with_history(self, order_id: OrderId) -> OrderTracking | None:
        order = self._order_repository.get(order_id)
        if order is None:
            return None
        history = (
            best_effort(
                "history_read_failed",
                self._history_ledger.list_for_order,
                order_id,
                extra={"order_id": str(order_id)},
            )
            or []
        )
        return OrderTracking(order=order, history=history)

    def append_assignment_history(
        self,
        order_id: OrderId,
        assignment_id: AssignmentId,
        restaurant_id: RestaurantId,
        status: AssignmentStatus,
        notes: str | None = None,
    ) -> None:
        entry = AssignmentHistoryEntry(
            entry_id=HistoryEntryId(f"ash_{uuid4().hex[:12]}"),
            order_id=order_id,
            assignment_id=assignment_id,
            restaurant_id=restaurant_id,
            status=status,
            created_at=self._clock.now(),
            notes=notes,
        )
        best_effort(
            "assignment_history_write_failed",
            self._assignment_history_repository.add,
            entry,
            extra={"order_id": str(order_id), "assignment_id": str(assignment_id)},
        )

    def _publish_status_changed(
        self,
        order: Order,
        from_status: OrderStatus,
        actor_kind: ActorKind,
    ) -> None:
        message = serialize_status_changed_event(
            occurred_at=order.updated_at or self._clock.now(),
            order=order,
            from_status=from_status,
            actor_kind=actor_kind.value,
            trace_id=self._trace_ctx.trace_id,
            request_id=self._trace_ctx.request_id,
        )
        best_effort(
            "event_publish_failed",
            self._publisher.publish,
            channel=restaurant_channel(order.restaurant_id),
            message=message,
            extra={"order_id": str(order.order_id)},
        )

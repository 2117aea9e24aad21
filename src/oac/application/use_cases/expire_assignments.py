from __future__ import annotations

import logging
from collections import defaultdict
from datetime import datetime

from oac.application.best_effort import best_effort
from oac.application.metrics.assignment_lifecycle import (
    record_assignment_outcome,
    record_race_lost,
    record_webhook_call,
)
from oac.application.ports.clock import Clock, SystemClock
from oac.application.ports.repositories import AssignmentRepository, OrderRepository
from oac.application.ports.webhook import OrderWebhook, WebhookResult
from oac.application.use_cases.history_ledger import HistoryLedger
from oac.application.use_cases.order_status import OrderStatusCoordinator
from oac.application.use_cases.outcomes import ExpiryResult, Outcome
from oac.application.use_cases.respond_to_assignment import no_restaurant_key
from oac.domain.assignment.entities import AssignmentStatus, RestaurantAssignment
from oac.domain.common.ids import OrderId
from oac.domain.history.entities import ASSIGNMENT_EXPIRED_EVENT
from oac.domain.order.entities import OrderStatus

logger = logging.getLogger(__name__)

NO_RESTAURANT_REASON = "No restaurants accepted the order"
FORCED_EXPIRY_NOTE = "Manually expired"
SWEEP_EXPIRY_NOTE = "Assignment expired without a response"


class AssignmentExpiryMonitor:
    """Reclaims orders whose broadcast assignments went unanswered."""

    def __init__(
        self,
        order_repository: OrderRepository,
        assignment_repository: AssignmentRepository,
        webhook: OrderWebhook,
        coordinator: OrderStatusCoordinator,
        history_ledger: HistoryLedger,
        clock: Clock | None = None,
    ) -> None:
        self._order_repository = order_repository
        self._assignment_repository = assignment_repository
        self._webhook = webhook
        self._coordinator = coordinator
        self._history_ledger = history_ledger
        self._clock = clock or SystemClock()

    def check_expired(self) -> WebhookResult:
        """Ask the webhook to sweep expired assignments server side."""
        result = best_effort("expiry_check_failed", self._webhook.check_expired)
        if result is None:
            result = WebhookResult(success=False, error="Failed to check expired assignments")
        record_webhook_call("check_expired", result.success)
        if not result.success:
            logger.warning("expiry_check_unsuccessful", extra={"status_code": result.status_code})
        return result

    def force_expire(self, order_id: OrderId) -> ExpiryResult:
        try:
            pending = self._assignment_repository.list_for_order(
                order_id, AssignmentStatus.PENDING
            )
        except Exception:
            logger.exception("pending_assignments_lookup_failed", extra={"order_id": str(order_id)})
            return ExpiryResult(
                outcome=Outcome.FAILED,
                expired_count=0,
                pending_count=0,
                message="Failed to fetch pending assignments",
            )

        expired_count = self._expire(order_id, pending, forced=True)
        order_status = self._reclaim_if_unanswered(order_id)
        self.check_expired()

        if pending:
            message = f"Expired {expired_count} of {len(pending)} assignments"
        else:
            message = "No pending assignments found"
        logger.info(
            "assignments_force_expired",
            extra={
                "order_id": str(order_id),
                "status": order_status.value if order_status else None,
            },
        )
        return ExpiryResult(
            outcome=Outcome.OK,
            expired_count=expired_count,
            pending_count=len(pending),
            order_status=order_status,
            message=message,
        )

    def expire_overdue(self, now: datetime | None = None, limit: int = 500) -> int:
        """Expire every pending assignment whose deadline has passed."""
        current = now or self._clock.now()
        overdue = self._assignment_repository.list_overdue(current, limit=limit)

        by_order: dict[OrderId, list[RestaurantAssignment]] = defaultdict(list)
        for assignment in overdue:
            by_order[assignment.order_id].append(assignment)

        total = 0
        for order_id, assignments in by_order.items():
            total += self._expire(order_id, assignments, forced=False)
            self._reclaim_if_unanswered(order_id)
        if total:
            logger.info("overdue_assignments_expired", extra={"count": total})
        return total

    def _expire(
        self,
        order_id: OrderId,
        assignments: list[RestaurantAssignment],
        forced: bool,
    ) -> int:
        now = self._clock.now()
        note = FORCED_EXPIRY_NOTE if forced else SWEEP_EXPIRY_NOTE
        expired = 0
        for assignment in assignments:
            try:
                landed = self._assignment_repository.transition_if(
                    assignment.assignment_id,
                    expected=AssignmentStatus.PENDING,
                    new_status=AssignmentStatus.EXPIRED,
                    responded_at=now,
                    notes=note,
                )
            except Exception:
                logger.exception(
                    "assignment_expire_failed",
                    extra={
                        "order_id": str(order_id),
                        "assignment_id": str(assignment.assignment_id),
                    },
                )
                continue
            if not landed:
                record_race_lost("assignment_expire")
                continue

            expired += 1
            self._coordinator.append_assignment_history(
                order_id=order_id,
                assignment_id=assignment.assignment_id,
                restaurant_id=assignment.restaurant_id,
                status=AssignmentStatus.EXPIRED,
                notes=note,
            )
            self._history_ledger.record_idempotent(
                order_id=order_id,
                status=ASSIGNMENT_EXPIRED_EVENT,
                idempotency_key=f"{assignment.assignment_id}:expired",
                restaurant_id=assignment.restaurant_id,
                details={"assignment_id": str(assignment.assignment_id), "forced": forced},
                expired_at=now,
            )
        record_assignment_outcome(AssignmentStatus.EXPIRED.value, expired)
        return expired

    def _reclaim_if_unanswered(self, order_id: OrderId) -> OrderStatus | None:
        try:
            remaining = self._assignment_repository.list_for_order(
                order_id, AssignmentStatus.PENDING
            )
            accepted = self._assignment_repository.list_for_order(
                order_id, AssignmentStatus.ACCEPTED
            )
        except Exception:
            logger.exception("order_reclaim_lookup_failed", extra={"order_id": str(order_id)})
            return None

        if remaining or accepted:
            order = best_effort(
                "order_lookup_failed",
                self._order_repository.get,
                order_id,
                extra={"order_id": str(order_id)},
            )
            return order.status if order is not None else None

        result = self._coordinator.update_status(
            order_id=order_id,
            new_status=OrderStatus.NO_RESTAURANT_ACCEPTED,
            metadata={"reason": NO_RESTAURANT_REASON},
            idempotency_key=no_restaurant_key(order_id),
        )
        if not result.success:
            logger.warning(
                "order_reclaim_failed",
                extra={"order_id": str(order_id), "outcome": result.outcome.value},
            )
        return result.order.status if result.order is not None else None

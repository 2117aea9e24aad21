from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime

from oac.application.metrics.assignment_lifecycle import (
    record_health,
    record_order_repair,
    record_race_lost,
)
from oac.application.ports.clock import Clock, SystemClock
from oac.application.ports.repositories import (
    AssignmentRepository,
    OrderRepository,
    StaleStateError,
)
from oac.application.use_cases.expire_assignments import (
    NO_RESTAURANT_REASON,
    AssignmentExpiryMonitor,
)
from oac.application.use_cases.history_ledger import HistoryLedger
from oac.application.use_cases.order_status import OrderStatusCoordinator
from oac.application.use_cases.outcomes import AssignmentHealthReport, CleanupReport, Outcome
from oac.application.use_cases.respond_to_assignment import no_restaurant_key
from oac.domain.assignment.entities import AssignmentStatus
from oac.domain.order.entities import RESTAURANT_HELD_STATUSES, Order, OrderStatus

logger = logging.getLogger(__name__)

RESTAURANT_LINK_REPAIR = "restaurant_linked"


class AssignmentHealthMonitor:
    """Reports on and repairs assignment state left behind by interrupted flows.

    ``check`` only counts. ``cleanup`` expires overdue assignments, moves
    orders that sit in ``restaurant_assigned`` with nothing open to
    ``no_restaurant_accepted``, and links accepted orders that lost their
    restaurant id back to the single accepted assignment.
    """

    def __init__(
        self,
        order_repository: OrderRepository,
        assignment_repository: AssignmentRepository,
        coordinator: OrderStatusCoordinator,
        expiry_monitor: AssignmentExpiryMonitor,
        history_ledger: HistoryLedger,
        clock: Clock | None = None,
        scan_limit: int = 500,
    ) -> None:
        self._order_repository = order_repository
        self._assignment_repository = assignment_repository
        self._coordinator = coordinator
        self._expiry_monitor = expiry_monitor
        self._history_ledger = history_ledger
        self._clock = clock or SystemClock()
        self._scan_limit = scan_limit

    def check(self, now: datetime | None = None) -> AssignmentHealthReport:
        current = now or self._clock.now()
        report = AssignmentHealthReport(
            pending_assignments=self._assignment_repository.count_by_status(
                AssignmentStatus.PENDING
            ),
            overdue_assignments=self._assignment_repository.count_overdue(current),
            unanswered_orders=len(self._order_repository.list_unanswered(self._scan_limit)),
            orders_missing_restaurant=len(
                self._order_repository.list_missing_restaurant(
                    RESTAURANT_HELD_STATUSES, self._scan_limit
                )
            ),
            checked_at=current,
        )
        record_health(
            {
                "pending": report.pending_assignments,
                "overdue": report.overdue_assignments,
                "unanswered_orders": report.unanswered_orders,
                "missing_restaurant": report.orders_missing_restaurant,
            }
        )
        if not report.healthy:
            logger.warning(
                "assignment_health_degraded",
                extra={"count": report.overdue_assignments + report.unanswered_orders},
            )
        return report

    def cleanup(self, now: datetime | None = None) -> CleanupReport:
        current = now or self._clock.now()
        errors: list[str] = []

        expired = 0
        try:
            expired = self._expiry_monitor.expire_overdue(current, limit=self._scan_limit)
        except Exception:
            logger.exception("cleanup_expire_failed")
            errors.append("Error expiring overdue assignments")

        reclaimed = self._reclaim_unanswered(errors)
        repaired = self._repair_missing_restaurant(current, errors)
        record_order_repair("reclaimed", reclaimed)
        record_order_repair(RESTAURANT_LINK_REPAIR, repaired)

        logger.info(
            "assignment_cleanup_completed",
            extra={"count": expired + reclaimed + repaired, "outcome": "ok" if not errors else "partial"},
        )
        return CleanupReport(
            expired_assignments=expired,
            reclaimed_orders=reclaimed,
            repaired_orders=repaired,
            errors=errors,
        )

    def _reclaim_unanswered(self, errors: list[str]) -> int:
        try:
            orders = self._order_repository.list_unanswered(self._scan_limit)
        except Exception:
            logger.exception("unanswered_orders_lookup_failed")
            errors.append("Error finding unanswered orders")
            return 0

        reclaimed = 0
        for order in orders:
            result = self._coordinator.update_status(
                order_id=order.order_id,
                new_status=OrderStatus.NO_RESTAURANT_ACCEPTED,
                metadata={"reason": NO_RESTAURANT_REASON, "cleanup": True},
                idempotency_key=no_restaurant_key(order.order_id),
            )
            if result.success:
                reclaimed += 1
            elif result.outcome != Outcome.CONFLICT:
                errors.append(f"Error reclaiming order {order.order_id}: {result.outcome.value}")
        return reclaimed

    def _repair_missing_restaurant(self, now: datetime, errors: list[str]) -> int:
        try:
            orders = self._order_repository.list_missing_restaurant(
                RESTAURANT_HELD_STATUSES, self._scan_limit
            )
        except Exception:
            logger.exception("missing_restaurant_lookup_failed")
            errors.append("Error finding orders without a restaurant")
            return 0

        repaired = 0
        for order in orders:
            if self._link_accepted_restaurant(order, now, errors):
                repaired += 1
        return repaired

    def _link_accepted_restaurant(self, order: Order, now: datetime, errors: list[str]) -> bool:
        order_id = str(order.order_id)
        try:
            accepted = self._assignment_repository.list_for_order(
                order.order_id, AssignmentStatus.ACCEPTED
            )
        except Exception:
            logger.exception("accepted_assignment_lookup_failed", extra={"order_id": order_id})
            errors.append(f"Error loading assignments for order {order_id}")
            return False
        if len(accepted) != 1:
            errors.append(f"Order {order_id} has {len(accepted)} accepted assignments")
            return False

        assignment = accepted[0]
        try:
            self._order_repository.update_with_version(
                replace(order, restaurant_id=assignment.restaurant_id, updated_at=now),
                expected_version=order.version,
            )
        except StaleStateError:
            record_race_lost("order_repair")
            return False
        except Exception:
            logger.exception("order_repair_failed", extra={"order_id": order_id})
            errors.append(f"Error repairing order {order_id}")
            return False

        self._history_ledger.record(
            order_id=order.order_id,
            status=order.status.value,
            restaurant_id=assignment.restaurant_id,
            details={"repair": RESTAURANT_LINK_REPAIR, "assignment_id": str(assignment.assignment_id)},
            visible=False,
        )
        logger.info(
            "order_restaurant_repaired",
            extra={"order_id": order_id, "restaurant_id": str(assignment.restaurant_id)},
        )
        return True

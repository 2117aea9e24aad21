from __future__ import annotations

from datetime import datetime

from oac.application.ports.clock import Clock, SystemClock
from oac.application.ports.repositories import AssignmentRepository
from oac.domain.assignment.entities import RestaurantAssignment
from oac.domain.common.ids import OrderId, RestaurantId


class AssignmentQueries:
    def __init__(
        self,
        assignment_repository: AssignmentRepository,
        clock: Clock | None = None,
    ) -> None:
        self._assignment_repository = assignment_repository
        self._clock = clock or SystemClock()

    def list_for_order(self, order_id: OrderId) -> list[RestaurantAssignment]:
        assignments = self._assignment_repository.list_for_order(order_id)
        return sorted(assignments, key=lambda item: item.assigned_at, reverse=True)

    def pending_for_restaurant(
        self,
        restaurant_id: RestaurantId,
        now: datetime | None = None,
    ) -> list[RestaurantAssignment]:
        """Pending assignments the restaurant can still answer, oldest first."""
        current = now or self._clock.now()
        assignments = self._assignment_repository.list_pending_for_restaurant(restaurant_id, current)
        return sorted(assignments, key=lambda item: item.assigned_at)

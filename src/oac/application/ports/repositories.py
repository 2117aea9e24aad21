from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Collection, Protocol

from oac.domain.assignment.entities import AssignmentStatus, RestaurantAssignment
from oac.domain.common.ids import AssignmentId, OrderId, RestaurantId
from oac.domain.history.entities import AssignmentHistoryEntry, OrderHistoryEntry
from oac.domain.order.entities import Order, OrderStatus


class OrderRepository(Protocol):
    def add(self, order: Order) -> None: ...

    def get(self, order_id: OrderId) -> Order | None: ...

    def update_with_version(self, order: Order, expected_version: int) -> Order:
        """Persist ``order`` only if the stored row still has ``expected_version``.

        Raises ``StaleStateError`` when another writer got there first.
        """
        ...

    def list_unanswered(self, limit: int) -> list[Order]:
        """Orders still ``restaurant_assigned`` with no pending or accepted assignment."""
        ...

    def list_missing_restaurant(
        self,
        statuses: Collection[OrderStatus],
        limit: int,
    ) -> list[Order]: ...


class AssignmentRepository(Protocol):
    def add_many(self, assignments: list[RestaurantAssignment]) -> None: ...

    def get(self, assignment_id: AssignmentId) -> RestaurantAssignment | None: ...

    def list_for_order(
        self,
        order_id: OrderId,
        status: AssignmentStatus | None = None,
    ) -> list[RestaurantAssignment]: ...

    def list_pending_for_restaurant(
        self,
        restaurant_id: RestaurantId,
        now: datetime,
    ) -> list[RestaurantAssignment]: ...

    def list_overdue(self, now: datetime, limit: int) -> list[RestaurantAssignment]: ...

    def count_by_status(self, status: AssignmentStatus) -> int: ...

    def count_overdue(self, now: datetime) -> int: ...

    def transition_if(
        self,
        assignment_id: AssignmentId,
        expected: AssignmentStatus,
        new_status: AssignmentStatus,
        responded_at: datetime,
        notes: str | None = None,
    ) -> bool:
        """Compare-and-swap on the assignment status.

        Returns ``False`` when the row no longer holds ``expected``.
        """
        ...


class HistoryRepository(Protocol):
    def add(self, entry: OrderHistoryEntry) -> bool:
        """Append ``entry``; ``False`` if its idempotency key was already stored."""
        ...

    def latest_for_order(self, order_id: OrderId) -> OrderHistoryEntry | None: ...

    def find_by_idempotency_key(
        self,
        order_id: OrderId,
        status: str,
        key: str,
    ) -> OrderHistoryEntry | None: ...

    def list_for_order(
        self,
        order_id: OrderId,
        include_hidden: bool = False,
    ) -> list[OrderHistoryEntry]: ...


class AssignmentHistoryRepository(Protocol):
    def add(self, entry: AssignmentHistoryEntry) -> None: ...

    def list_for_order(self, order_id: OrderId) -> list[AssignmentHistoryEntry]: ...


class RestaurantDirectory(Protocol):
    def get_name(self, restaurant_id: RestaurantId) -> str | None: ...


class RequestLogRepository(Protocol):
    def add(self, entry: RequestLogEntry) -> None: ...


class StaleStateError(Exception):
    pass


class RepositoryError(Exception):
    pass


@dataclass(frozen=True)
class RequestLogEntry:
    log_id: str
    url: str
    payload: dict[str, Any]
    created_at: datetime
    response: dict[str, Any] | None = None
    idempotency_key: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RepositoryBundle:
    orders: OrderRepository
    assignments: AssignmentRepository
    history: HistoryRepository
    assignment_history: AssignmentHistoryRepository
    restaurants: RestaurantDirectory
    request_logs: RequestLogRepository

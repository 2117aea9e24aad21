from __future__ import annotations

import threading
from dataclasses import replace
from datetime import datetime
from typing import Collection

from oac.application.ports.repositories import (
    RepositoryBundle,
    RepositoryError,
    RequestLogEntry,
    StaleStateError,
)
from oac.domain.assignment.entities import AssignmentStatus, RestaurantAssignment
from oac.domain.common.ids import AssignmentId, OrderId, RestaurantId
from oac.domain.history.entities import AssignmentHistoryEntry, OrderHistoryEntry
from oac.domain.order.entities import Order, OrderStatus


class InMemoryStore:
    """Process-local implementation of every repository port.

    One lock guards all tables so compare-and-swap style writes behave like
    the conditional UPDATEs of the SQL repositories when driven from threads.
    Operations named in ``fail_on`` raise ``RepositoryError``.
    """

    def __init__(self, restaurant_names: dict[str, str] | None = None) -> None:
        self._lock = threading.Lock()
        self.orders: dict[str, Order] = {}
        self.assignments: dict[str, RestaurantAssignment] = {}
        self.history: list[OrderHistoryEntry] = []
        self.assignment_history: list[AssignmentHistoryEntry] = []
        self.request_logs: list[RequestLogEntry] = []
        self.restaurant_names: dict[str, str] = dict(restaurant_names or {})
        self.fail_on: set[str] = set()

        self.order_repository = _OrderRepository(self)
        self.assignment_repository = _AssignmentRepository(self)
        self.history_repository = _HistoryRepository(self)
        self.assignment_history_repository = _AssignmentHistoryRepository(self)
        self.restaurant_directory = _RestaurantDirectory(self)
        self.request_log_repository = _RequestLogRepository(self)

    def bundle(self) -> RepositoryBundle:
        return RepositoryBundle(
            orders=self.order_repository,
            assignments=self.assignment_repository,
            history=self.history_repository,
            assignment_history=self.assignment_history_repository,
            restaurants=self.restaurant_directory,
            request_logs=self.request_log_repository,
        )

    def _check(self, operation: str) -> None:
        if operation in self.fail_on:
            raise RepositoryError(f"injected failure: {operation}")


class _OrderRepository:
    def __init__(self, store: InMemoryStore) -> None:
        self._store = store

    def add(self, order: Order) -> None:
        self._store._check("order.add")
        with self._store._lock:
            self._store.orders[str(order.order_id)] = order

    def get(self, order_id: OrderId) -> Order | None:
        self._store._check("order.get")
        with self._store._lock:
            return self._store.orders.get(str(order_id))

    def update_with_version(self, order: Order, expected_version: int) -> Order:
        self._store._check("order.update")
        with self._store._lock:
            current = self._store.orders.get(str(order.order_id))
            if current is None or current.version != expected_version:
                raise StaleStateError(f"order {order.order_id} changed concurrently")
            persisted = replace(order, version=expected_version + 1)
            self._store.orders[str(order.order_id)] = persisted
            return persisted

    def list_unanswered(self, limit: int) -> list[Order]:
        self._store._check("order.list")
        open_statuses = (AssignmentStatus.PENDING, AssignmentStatus.ACCEPTED)
        with self._store._lock:
            held = {
                item.order_id
                for item in self._store.assignments.values()
                if item.status in open_statuses
            }
            orders = [
                order
                for order in self._store.orders.values()
                if order.status == OrderStatus.RESTAURANT_ASSIGNED and order.order_id not in held
            ]
        orders.sort(key=lambda order: order.created_at)
        return orders[:limit]

    def list_missing_restaurant(
        self,
        statuses: Collection[OrderStatus],
        limit: int,
    ) -> list[Order]:
        self._store._check("order.list")
        with self._store._lock:
            orders = [
                order
                for order in self._store.orders.values()
                if order.status in statuses and order.restaurant_id is None
            ]
        orders.sort(key=lambda order: order.created_at)
        return orders[:limit]


class _AssignmentRepository:
    def __init__(self, store: InMemoryStore) -> None:
        self._store = store

    def add_many(self, assignments: list[RestaurantAssignment]) -> None:
        self._store._check("assignment.add")
        with self._store._lock:
            for assignment in assignments:
                self._store.assignments[str(assignment.assignment_id)] = assignment

    def get(self, assignment_id: AssignmentId) -> RestaurantAssignment | None:
        self._store._check("assignment.get")
        with self._store._lock:
            return self._store.assignments.get(str(assignment_id))

    def list_for_order(
        self,
        order_id: OrderId,
        status: AssignmentStatus | None = None,
    ) -> list[RestaurantAssignment]:
        self._store._check("assignment.list")
        with self._store._lock:
            return [
                item
                for item in self._store.assignments.values()
                if item.order_id == order_id and (status is None or item.status == status)
            ]

    def list_pending_for_restaurant(
        self,
        restaurant_id: RestaurantId,
        now: datetime,
    ) -> list[RestaurantAssignment]:
        self._store._check("assignment.list")
        with self._store._lock:
            return [
                item
                for item in self._store.assignments.values()
                if item.restaurant_id == restaurant_id
                and item.is_pending
                and not item.is_expired_at(now)
            ]

    def list_overdue(self, now: datetime, limit: int) -> list[RestaurantAssignment]:
        self._store._check("assignment.list")
        with self._store._lock:
            overdue = [
                item
                for item in self._store.assignments.values()
                if item.is_pending and item.is_expired_at(now)
            ]
        overdue.sort(key=lambda item: item.expires_at)
        return overdue[:limit]

    def count_by_status(self, status: AssignmentStatus) -> int:
        self._store._check("assignment.list")
        with self._store._lock:
            return sum(1 for item in self._store.assignments.values() if item.status == status)

    def count_overdue(self, now: datetime) -> int:
        self._store._check("assignment.list")
        with self._store._lock:
            return sum(
                1
                for item in self._store.assignments.values()
                if item.is_pending and item.is_expired_at(now)
            )

    def transition_if(
        self,
        assignment_id: AssignmentId,
        expected: AssignmentStatus,
        new_status: AssignmentStatus,
        responded_at: datetime,
        notes: str | None = None,
    ) -> bool:
        self._store._check("assignment.transition")
        with self._store._lock:
            current = self._store.assignments.get(str(assignment_id))
            if current is None or current.status != expected:
                return False
            self._store.assignments[str(assignment_id)] = current.with_status(
                new_status, responded_at, notes
            )
            return True


class _HistoryRepository:
    def __init__(self, store: InMemoryStore) -> None:
        self._store = store

    def add(self, entry: OrderHistoryEntry) -> bool:
        self._store._check("history.add")
        with self._store._lock:
            key = entry.idempotency_key
            if key is not None and any(
                item.order_id == entry.order_id
                and item.status == entry.status
                and item.idempotency_key == key
                for item in self._store.history
            ):
                return False
            self._store.history.append(entry)
            return True

    def latest_for_order(self, order_id: OrderId) -> OrderHistoryEntry | None:
        self._store._check("history.read")
        with self._store._lock:
            entries = [item for item in self._store.history if item.order_id == order_id]
        return entries[-1] if entries else None

    def find_by_idempotency_key(
        self,
        order_id: OrderId,
        status: str,
        key: str,
    ) -> OrderHistoryEntry | None:
        self._store._check("history.read")
        with self._store._lock:
            for item in self._store.history:
                if item.order_id == order_id and item.status == status and item.idempotency_key == key:
                    return item
        return None

    def list_for_order(
        self,
        order_id: OrderId,
        include_hidden: bool = False,
    ) -> list[OrderHistoryEntry]:
        self._store._check("history.read")
        with self._store._lock:
            return [
                item
                for item in self._store.history
                if item.order_id == order_id and (include_hidden or item.visibility)
            ]


class _AssignmentHistoryRepository:
    def __init__(self, store: InMemoryStore) -> None:
        self._store = store

    def add(self, entry: AssignmentHistoryEntry) -> None:
        self._store._check("assignment_history.add")
        with self._store._lock:
            self._store.assignment_history.append(entry)

    def list_for_order(self, order_id: OrderId) -> list[AssignmentHistoryEntry]:
        with self._store._lock:
            return [item for item in self._store.assignment_history if item.order_id == order_id]


class _RestaurantDirectory:
    def __init__(self, store: InMemoryStore) -> None:
        self._store = store

    def get_name(self, restaurant_id: RestaurantId) -> str | None:
        self._store._check("restaurant.get")
        return self._store.restaurant_names.get(str(restaurant_id))


class _RequestLogRepository:
    def __init__(self, store: InMemoryStore) -> None:
        self._store = store

    def add(self, entry: RequestLogEntry) -> None:
        self._store._check("request_log.add")
        with self._store._lock:
            self._store.request_logs.append(entry)


class RecordingPublisher:
    def __init__(self) -> None:
        self.messages: list[tuple[str, str]] = []

    def publish(self, channel: str, message: str) -> None:
        self.messages.append((channel, message))

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from oac.domain.assignment.entities import RestaurantAssignment
from oac.domain.history.entities import OrderHistoryEntry
from oac.domain.order.entities import Order, OrderStatus


class Outcome(str, Enum):
    OK = "ok"
    NOT_FOUND = "not_found"
    INVALID_STATUS = "invalid_status"
    INVALID_TRANSITION = "invalid_transition"
    CONFLICT = "conflict"
    ALREADY_ACCEPTED = "already_accepted"
    WEBHOOK_FAILED = "webhook_failed"
    LOCAL_WRITE_FAILED = "local_write_failed"
    FAILED = "failed"


@dataclass(frozen=True)
class StatusUpdateResult:
    outcome: Outcome
    order: Order | None = None
    message: str | None = None

    @property
    def success(self) -> bool:
        return self.outcome == Outcome.OK


@dataclass(frozen=True)
class ResponseResult:
    outcome: Outcome
    order: Order | None = None
    cancelled_assignment_ids: list[str] = field(default_factory=list)
    message: str | None = None

    @property
    def success(self) -> bool:
        return self.outcome == Outcome.OK


@dataclass(frozen=True)
class ExpiryResult:
    outcome: Outcome
    expired_count: int
    pending_count: int
    order_status: OrderStatus | None = None
    message: str | None = None

    @property
    def success(self) -> bool:
        return self.outcome == Outcome.OK


@dataclass(frozen=True)
class BroadcastResult:
    outcome: Outcome
    assignments: list[RestaurantAssignment] = field(default_factory=list)
    order: Order | None = None
    message: str | None = None

    @property
    def success(self) -> bool:
        return self.outcome == Outcome.OK


@dataclass(frozen=True)
class OrderTracking:
    order: Order
    history: list[OrderHistoryEntry]
    unified_tracking: bool = True


@dataclass(frozen=True)
class AssignmentHealthReport:
    pending_assignments: int
    overdue_assignments: int
    unanswered_orders: int
    orders_missing_restaurant: int
    checked_at: datetime

    @property
    def healthy(self) -> bool:
        return not (
            self.overdue_assignments or self.unanswered_orders or self.orders_missing_restaurant
        )


@dataclass(frozen=True)
class CleanupReport:
    expired_assignments: int = 0
    reclaimed_orders: int = 0
    repaired_orders: int = 0
    errors: list[str] = field(default_factory=list)

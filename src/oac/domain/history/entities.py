from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from oac.domain.assignment.entities import AssignmentStatus
from oac.domain.common.ids import ActorId, AssignmentId, HistoryEntryId, OrderId, RestaurantId
from oac.domain.order.entities import parse_order_status

ASSIGNMENT_EXPIRED_EVENT = "assignment_expired"
IDEMPOTENCY_DETAIL_KEY = "idempotency_key"
UNKNOWN_RESTAURANT_SENTINEL = "unknown"
UNKNOWN_RESTAURANT_NAME = "Unknown Restaurant"


class ActorKind(str, Enum):
    SYSTEM = "system"
    CUSTOMER = "customer"
    RESTAURANT = "restaurant"
    DELIVERY = "delivery"
    ADMIN = "admin"

    @classmethod
    def coerce(cls, value: ActorKind | str | None) -> ActorKind:
        """Map anything outside the vocabulary to ``system``."""
        if isinstance(value, ActorKind):
            return value
        if value is None:
            return cls.SYSTEM
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.SYSTEM

    @classmethod
    def is_known(cls, value: ActorKind | str | None) -> bool:
        if isinstance(value, ActorKind):
            return True
        return value is not None and str(value).strip().lower() in {m.value for m in cls}


def canonical_history_status(value: str) -> str:
    if value.strip().lower() == ASSIGNMENT_EXPIRED_EVENT:
        return ASSIGNMENT_EXPIRED_EVENT
    return parse_order_status(value).value


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class OrderHistoryEntry:
    entry_id: HistoryEntryId
    order_id: OrderId
    status: str
    previous_status: str | None
    restaurant_id: RestaurantId | None
    restaurant_name: str | None
    details: dict[str, Any]
    changed_by: ActorId | None
    changed_by_type: ActorKind
    visibility: bool
    created_at: datetime
    expired_at: datetime | None = None

    def __post_init__(self) -> None:
        if self.created_at.tzinfo is None:
            raise ValueError("created_at must be timezone-aware")

    @property
    def idempotency_key(self) -> str | None:
        value = self.details.get(IDEMPOTENCY_DETAIL_KEY)
        return str(value) if value is not None else None


@dataclass(frozen=True)
class AssignmentHistoryEntry:
    entry_id: HistoryEntryId
    order_id: OrderId
    assignment_id: AssignmentId
    restaurant_id: RestaurantId
    status: AssignmentStatus
    created_at: datetime
    notes: str | None = None

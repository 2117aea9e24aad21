from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum

from oac.domain.common.ids import AssignmentId, OrderId, RestaurantId


class AssignmentStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class ResponseAction(str, Enum):
    ACCEPT = "accept"
    REJECT = "reject"

    @property
    def assignment_status(self) -> AssignmentStatus:
        if self == ResponseAction.ACCEPT:
            return AssignmentStatus.ACCEPTED
        return AssignmentStatus.REJECTED


CANCELLED_BY_WINNER_NOTE = "Order accepted by another restaurant"
ORDER_CANCELLED_NOTE = "Order cancelled"
ORDER_CLOSED_NOTE = "Order is no longer open for acceptance"
ACCEPTANCE_NOT_RECORDED_NOTE = "Acceptance could not be recorded on the order"


@dataclass(frozen=True)
class RestaurantAssignment:
    assignment_id: AssignmentId
    order_id: OrderId
    restaurant_id: RestaurantId
    status: AssignmentStatus
    assigned_at: datetime
    expires_at: datetime
    responded_at: datetime | None = None
    response_notes: str | None = None

    def __post_init__(self) -> None:
        if self.expires_at < self.assigned_at:
            raise ValueError("expires_at must not be earlier than assigned_at")

    @property
    def is_pending(self) -> bool:
        return self.status == AssignmentStatus.PENDING

    def is_expired_at(self, now: datetime) -> bool:
        return self.expires_at <= now

    def with_status(
        self,
        status: AssignmentStatus,
        now: datetime,
        notes: str | None = None,
    ) -> RestaurantAssignment:
        return replace(
            self,
            status=status,
            responded_at=now,
            response_notes=notes if notes is not None else self.response_notes,
        )


def create_pending_assignment(
    assignment_id: AssignmentId,
    order_id: OrderId,
    restaurant_id: RestaurantId,
    now: datetime,
    expires_at: datetime,
) -> RestaurantAssignment:
    return RestaurantAssignment(
        assignment_id=assignment_id,
        order_id=order_id,
        restaurant_id=restaurant_id,
        status=AssignmentStatus.PENDING,
        assigned_at=now,
        expires_at=expires_at,
    )

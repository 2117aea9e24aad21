from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from oac.domain.assignment.entities import ResponseAction
from oac.domain.common.ids import AssignmentId, OrderId, RestaurantId


@dataclass(frozen=True)
class Location:
    latitude: float
    longitude: float


@dataclass(frozen=True)
class AssignmentResponseRequest:
    order_id: OrderId
    restaurant_id: RestaurantId
    assignment_id: AssignmentId
    location: Location
    action: ResponseAction

    def to_payload(self) -> dict[str, object]:
        return {
            "order_id": str(self.order_id),
            "restaurant_id": str(self.restaurant_id),
            "assignment_id": str(self.assignment_id),
            "latitude": self.location.latitude,
            "longitude": self.location.longitude,
            "action": self.action.value,
        }


@dataclass(frozen=True)
class WebhookResult:
    success: bool
    error: str | None = None
    message: str | None = None
    status_code: int | None = None


class OrderWebhook(Protocol):
    @property
    def url(self) -> str: ...

    def send_response(self, request: AssignmentResponseRequest) -> WebhookResult: ...

    def check_expired(self) -> WebhookResult: ...

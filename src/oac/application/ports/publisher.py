from __future__ import annotations

from typing import Protocol

from oac.domain.common.ids import RestaurantId

UNASSIGNED_CHANNEL = "events:unassigned"


class EventPublisher(Protocol):
    def publish(self, channel: str, message: str) -> None: ...


def restaurant_channel(restaurant_id: RestaurantId | None) -> str:
    if restaurant_id is None:
        return UNASSIGNED_CHANNEL
    return f"events:{restaurant_id}"

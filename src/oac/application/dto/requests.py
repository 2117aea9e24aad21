from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


def _to_camel(value: str) -> str:
    parts = value.split("_")
    return parts[0] + "".join(part.capitalize() for part in parts[1:])


class CamelBaseModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=_to_camel,
        populate_by_name=True,
    )


class UpdateOrderStatusRequest(CamelBaseModel):
    status: str = Field(min_length=1)
    restaurant_id: str | None = None
    assignment_source: str | None = None
    metadata: dict[str, Any] | None = None
    actor_id: str | None = None
    actor_kind: str | None = None
    idempotency_key: str | None = None


class BroadcastOrderRequest(CamelBaseModel):
    restaurant_ids: list[str]
    expiration_minutes: int | None = Field(default=None, ge=1, le=24 * 60)
    assignment_source: str = "broadcast"


class RespondToAssignmentRequest(CamelBaseModel):
    order_id: str = Field(min_length=1)
    restaurant_id: str = Field(min_length=1)
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    action: str
    notes: str | None = None


class UpdateAssignmentStatusRequest(CamelBaseModel):
    order_id: str = Field(min_length=1)
    restaurant_id: str = Field(min_length=1)
    status: str = Field(min_length=1)
    notes: str | None = None

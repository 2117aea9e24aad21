from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class OrderResponse(BaseModel):
    orderId: str
    status: str
    statusMessage: str
    restaurantId: str | None = None
    assignmentSource: str | None = None
    createdAt: datetime
    updatedAt: datetime | None = None
    assignedAt: datetime | None = None
    acceptedAt: datetime | None = None
    preparationStartedAt: datetime | None = None
    readyAt: datetime | None = None
    pickedUpAt: datetime | None = None
    deliveredAt: datetime | None = None
    cancelledAt: datetime | None = None
    latitude: float | None = None
    longitude: float | None = None
    canCancel: bool
    nextExpectedStatus: str | None = None
    version: int


class HistoryEntryResponse(BaseModel):
    entryId: str
    status: str
    previousStatus: str | None = None
    restaurantId: str | None = None
    restaurantName: str | None = None
    details: dict[str, Any] = Field(default_factory=dict)
    expiredAt: datetime | None = None
    changedBy: str | None = None
    changedByType: str
    createdAt: datetime


class OrderTrackingResponse(BaseModel):
    order: OrderResponse
    history: list[HistoryEntryResponse] = Field(default_factory=list)
    unifiedTracking: bool = True


class AssignmentResponse(BaseModel):
    assignmentId: str
    orderId: str
    restaurantId: str
    status: str
    assignedAt: datetime
    expiresAt: datetime
    respondedAt: datetime | None = None
    responseNotes: str | None = None


class AssignmentListResponse(BaseModel):
    assignments: list[AssignmentResponse] = Field(default_factory=list)


class BroadcastResponse(BaseModel):
    order: OrderResponse | None = None
    assignments: list[AssignmentResponse] = Field(default_factory=list)
    message: str | None = None


class RespondResponse(BaseModel):
    success: bool = True
    order: OrderResponse | None = None
    cancelledAssignmentIds: list[str] = Field(default_factory=list)


class ExpireResponse(BaseModel):
    success: bool = True
    expiredCount: int
    pendingCount: int
    orderStatus: str | None = None
    message: str | None = None


class AssignmentHealthResponse(BaseModel):
    healthy: bool
    pendingAssignments: int
    overdueAssignments: int
    unansweredOrders: int
    ordersMissingRestaurant: int
    checkedAt: datetime


class CleanupResponse(BaseModel):
    success: bool
    expiredAssignments: int
    reclaimedOrders: int
    repairedOrders: int
    errors: list[str] = Field(default_factory=list)

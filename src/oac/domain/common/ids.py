from __future__ import annotations

from typing import NewType

OrderId = NewType("OrderId", str)
RestaurantId = NewType("RestaurantId", str)
AssignmentId = NewType("AssignmentId", str)
HistoryEntryId = NewType("HistoryEntryId", str)
ActorId = NewType("ActorId", str)

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from oac.infrastructure.db.models.restaurant import Base


class RestaurantAssignmentModel(Base):
    __tablename__ = "restaurant_assignments"
    __table_args__ = (
        Index("ix_restaurant_assignments_order_status", "order_id", "status"),
        Index("ix_restaurant_assignments_restaurant_status", "restaurant_id", "status"),
        Index("ix_restaurant_assignments_status_expires_at", "status", "expires_at"),
    )

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    order_id: Mapped[str] = mapped_column(
        String(50),
        ForeignKey("orders.id", ondelete="RESTRICT"),
        nullable=False,
    )
    restaurant_id: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    assigned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    responded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    response_notes: Mapped[str | None] = mapped_column(String(1000), nullable=True)


class AssignmentHistoryModel(Base):
    __tablename__ = "restaurant_assignment_history"

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    order_id: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    assignment_id: Mapped[str] = mapped_column(
        String(50),
        ForeignKey("restaurant_assignments.id", ondelete="RESTRICT"),
        nullable=False,
    )
    restaurant_id: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    notes: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

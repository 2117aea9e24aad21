"""create orders, assignments and history tables

Revision ID: 202610010900
Revises:
Create Date: 2026-10-01 09:00:00
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "202610010900"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "restaurants",
        sa.Column("id", sa.String(length=50), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "orders",
        sa.Column("id", sa.String(length=50), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("restaurant_id", sa.String(length=50), nullable=True),
        sa.Column("assignment_source", sa.String(length=50), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("accepted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("preparation_started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ready_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("picked_up_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("delivered_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_orders_restaurant_status",
        "orders",
        ["restaurant_id", "status"],
        unique=False,
    )

    op.create_table(
        "restaurant_assignments",
        sa.Column("id", sa.String(length=50), nullable=False),
        sa.Column("order_id", sa.String(length=50), nullable=False),
        sa.Column("restaurant_id", sa.String(length=50), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("responded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("response_notes", sa.String(length=1000), nullable=True),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_restaurant_assignments_order_status",
        "restaurant_assignments",
        ["order_id", "status"],
        unique=False,
    )
    op.create_index(
        "ix_restaurant_assignments_restaurant_status",
        "restaurant_assignments",
        ["restaurant_id", "status"],
        unique=False,
    )
    op.create_index(
        "ix_restaurant_assignments_status_expires_at",
        "restaurant_assignments",
        ["status", "expires_at"],
        unique=False,
    )

    op.create_table(
        "restaurant_assignment_history",
        sa.Column("id", sa.String(length=50), nullable=False),
        sa.Column("order_id", sa.String(length=50), nullable=False),
        sa.Column("assignment_id", sa.String(length=50), nullable=False),
        sa.Column("restaurant_id", sa.String(length=50), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("notes", sa.String(length=1000), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ["assignment_id"], ["restaurant_assignments.id"], ondelete="RESTRICT"
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_restaurant_assignment_history_order_id",
        "restaurant_assignment_history",
        ["order_id"],
        unique=False,
    )

    op.create_table(
        "order_history",
        sa.Column("id", sa.String(length=50), nullable=False),
        sa.Column("order_id", sa.String(length=50), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("previous_status", sa.String(length=32), nullable=True),
        sa.Column("restaurant_id", sa.String(length=50), nullable=True),
        sa.Column("restaurant_name", sa.String(length=255), nullable=True),
        sa.Column("details", sa.JSON(), nullable=False),
        sa.Column("idempotency_key", sa.String(length=128), nullable=True),
        sa.Column("expired_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("changed_by", sa.String(length=50), nullable=True),
        sa.Column("changed_by_type", sa.String(length=20), nullable=False),
        sa.Column("visibility", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "order_id",
            "status",
            "idempotency_key",
            name="uq_order_history_order_status_idempotency_key",
        ),
    )
    op.create_index(
        "ix_order_history_order_created_at",
        "order_history",
        ["order_id", "created_at"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_order_history_order_created_at", table_name="order_history")
    op.drop_table("order_history")
    op.drop_index(
        "ix_restaurant_assignment_history_order_id",
        table_name="restaurant_assignment_history",
    )
    op.drop_table("restaurant_assignment_history")
    op.drop_index(
        "ix_restaurant_assignments_status_expires_at",
        table_name="restaurant_assignments",
    )
    op.drop_index(
        "ix_restaurant_assignments_restaurant_status",
        table_name="restaurant_assignments",
    )
    op.drop_index("ix_restaurant_assignments_order_status", table_name="restaurant_assignments")
    op.drop_table("restaurant_assignments")
    op.drop_index("ix_orders_restaurant_status", table_name="orders")
    op.drop_table("orders")
    op.drop_table("restaurants")

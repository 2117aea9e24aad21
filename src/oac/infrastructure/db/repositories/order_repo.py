from __future__ import annotations

from typing import Collection

from sqlalchemy import Engine, select, update
from sqlalchemy.orm import Session

from oac.application.ports.repositories import OrderRepository, StaleStateError
from oac.domain.assignment.entities import AssignmentStatus
from oac.domain.common.ids import OrderId, RestaurantId
from oac.domain.order.entities import Order, OrderStatus
from oac.infrastructure.db.models.assignment import RestaurantAssignmentModel
from oac.infrastructure.db.models.order import OrderModel
from oac.infrastructure.db.repositories._time import utc
from oac.infrastructure.db.session import get_engine


class SqlAlchemyOrderRepository(OrderRepository):
    def __init__(self, engine: Engine | None = None) -> None:
        self._engine = engine or get_engine()

    def add(self, order: Order) -> None:
        with Session(self._engine) as session:
            session.add(self._to_model(order))
            session.commit()

    def get(self, order_id: OrderId) -> Order | None:
        statement = select(OrderModel).where(OrderModel.id == str(order_id)).limit(1)
        with Session(self._engine) as session:
            model = session.execute(statement).scalar_one_or_none()
            if model is None:
                return None
            return self._to_domain(model)

    def update_with_version(self, order: Order, expected_version: int) -> Order:
        statement = (
            update(OrderModel)
            .where(
                OrderModel.id == str(order.order_id),
                OrderModel.version == expected_version,
            )
            .values(
                status=order.status.value,
                restaurant_id=str(order.restaurant_id) if order.restaurant_id else None,
                assignment_source=order.assignment_source,
                updated_at=order.updated_at,
                assigned_at=order.assigned_at,
                accepted_at=order.accepted_at,
                preparation_started_at=order.preparation_started_at,
                ready_at=order.ready_at,
                picked_up_at=order.picked_up_at,
                delivered_at=order.delivered_at,
                cancelled_at=order.cancelled_at,
                version=OrderModel.version + 1,
            )
        )
        with Session(self._engine) as session:
            result = session.execute(statement)
            if result.rowcount != 1:
                session.rollback()
                raise StaleStateError(f"order {order.order_id} version conflict")
            session.commit()

        updated = self.get(order.order_id)
        if updated is None:
            raise RuntimeError(f"order {order.order_id} not found after status update")
        return updated

    def list_unanswered(self, limit: int) -> list[Order]:
        open_assignment = (
            select(RestaurantAssignmentModel.id)
            .where(
                RestaurantAssignmentModel.order_id == OrderModel.id,
                RestaurantAssignmentModel.status.in_(
                    [AssignmentStatus.PENDING.value, AssignmentStatus.ACCEPTED.value]
                ),
            )
            .exists()
        )
        statement = (
            select(OrderModel)
            .where(
                OrderModel.status == OrderStatus.RESTAURANT_ASSIGNED.value,
                ~open_assignment,
            )
            .order_by(OrderModel.created_at, OrderModel.id)
            .limit(limit)
        )
        return self._fetch(statement)

    def list_missing_restaurant(
        self,
        statuses: Collection[OrderStatus],
        limit: int,
    ) -> list[Order]:
        statement = (
            select(OrderModel)
            .where(
                OrderModel.status.in_([status.value for status in statuses]),
                OrderModel.restaurant_id.is_(None),
            )
            .order_by(OrderModel.created_at, OrderModel.id)
            .limit(limit)
        )
        return self._fetch(statement)

    def _fetch(self, statement) -> list[Order]:
        with Session(self._engine) as session:
            models = session.execute(statement).scalars().all()
            return [self._to_domain(model) for model in models]

    def _to_model(self, order: Order) -> OrderModel:
        return OrderModel(
            id=str(order.order_id),
            status=order.status.value,
            restaurant_id=str(order.restaurant_id) if order.restaurant_id else None,
            assignment_source=order.assignment_source,
            created_at=order.created_at,
            updated_at=order.updated_at,
            assigned_at=order.assigned_at,
            accepted_at=order.accepted_at,
            preparation_started_at=order.preparation_started_at,
            ready_at=order.ready_at,
            picked_up_at=order.picked_up_at,
            delivered_at=order.delivered_at,
            cancelled_at=order.cancelled_at,
            latitude=order.latitude,
            longitude=order.longitude,
            version=order.version,
        )

    def _to_domain(self, model: OrderModel) -> Order:
        return Order(
            order_id=OrderId(model.id),
            status=OrderStatus(model.status),
            restaurant_id=RestaurantId(model.restaurant_id) if model.restaurant_id else None,
            assignment_source=model.assignment_source,
            created_at=utc(model.created_at),
            updated_at=utc(model.updated_at),
            assigned_at=utc(model.assigned_at),
            accepted_at=utc(model.accepted_at),
            preparation_started_at=utc(model.preparation_started_at),
            ready_at=utc(model.ready_at),
            picked_up_at=utc(model.picked_up_at),
            delivered_at=utc(model.delivered_at),
            cancelled_at=utc(model.cancelled_at),
            latitude=model.latitude,
            longitude=model.longitude,
            version=model.version,
        )

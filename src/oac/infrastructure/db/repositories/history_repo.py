from __future__ import annotations

from sqlalchemy import Engine, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from oac.application.ports.repositories import AssignmentHistoryRepository, HistoryRepository
from oac.domain.assignment.entities import AssignmentStatus
from oac.domain.common.ids import (
    ActorId,
    AssignmentId,
    HistoryEntryId,
    OrderId,
    RestaurantId,
)
from oac.domain.history.entities import ActorKind, AssignmentHistoryEntry, OrderHistoryEntry
from oac.infrastructure.db.models.assignment import AssignmentHistoryModel
from oac.infrastructure.db.models.order import OrderHistoryModel
from oac.infrastructure.db.repositories._time import utc
from oac.infrastructure.db.session import get_engine


class SqlAlchemyHistoryRepository(HistoryRepository):
    def __init__(self, engine: Engine | None = None) -> None:
        self._engine = engine or get_engine()

    def add(self, entry: OrderHistoryEntry) -> bool:
        with Session(self._engine) as session:
            session.add(self._to_model(entry))
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                duplicate = None
                if entry.idempotency_key is not None:
                    duplicate = self.find_by_idempotency_key(
                        entry.order_id, entry.status, entry.idempotency_key
                    )
                if duplicate is None:
                    raise
                return False
        return True

    def latest_for_order(self, order_id: OrderId) -> OrderHistoryEntry | None:
        statement = (
            select(OrderHistoryModel)
            .where(OrderHistoryModel.order_id == str(order_id))
            .order_by(OrderHistoryModel.created_at.desc(), OrderHistoryModel.id.desc())
            .limit(1)
        )
        with Session(self._engine) as session:
            model = session.execute(statement).scalar_one_or_none()
            if model is None:
                return None
            return self._to_domain(model)

    def find_by_idempotency_key(
        self,
        order_id: OrderId,
        status: str,
        key: str,
    ) -> OrderHistoryEntry | None:
        statement = (
            select(OrderHistoryModel)
            .where(
                OrderHistoryModel.order_id == str(order_id),
                OrderHistoryModel.status == status,
                OrderHistoryModel.idempotency_key == key,
            )
            .limit(1)
        )
        with Session(self._engine) as session:
            model = session.execute(statement).scalar_one_or_none()
            if model is None:
                return None
            return self._to_domain(model)

    def list_for_order(
        self,
        order_id: OrderId,
        include_hidden: bool = False,
    ) -> list[OrderHistoryEntry]:
        statement = select(OrderHistoryModel).where(OrderHistoryModel.order_id == str(order_id))
        if not include_hidden:
            statement = statement.where(OrderHistoryModel.visibility.is_(True))
        statement = statement.order_by(OrderHistoryModel.created_at, OrderHistoryModel.id)
        with Session(self._engine) as session:
            models = session.execute(statement).scalars().all()
            return [self._to_domain(model) for model in models]

    def _to_model(self, entry: OrderHistoryEntry) -> OrderHistoryModel:
        return OrderHistoryModel(
            id=str(entry.entry_id),
            order_id=str(entry.order_id),
            status=entry.status,
            previous_status=entry.previous_status,
            restaurant_id=str(entry.restaurant_id) if entry.restaurant_id else None,
            restaurant_name=entry.restaurant_name,
            details=dict(entry.details),
            idempotency_key=entry.idempotency_key,
            expired_at=entry.expired_at,
            changed_by=str(entry.changed_by) if entry.changed_by else None,
            changed_by_type=entry.changed_by_type.value,
            visibility=entry.visibility,
            created_at=entry.created_at,
        )

    def _to_domain(self, model: OrderHistoryModel) -> OrderHistoryEntry:
        return OrderHistoryEntry(
            entry_id=HistoryEntryId(model.id),
            order_id=OrderId(model.order_id),
            status=model.status,
            previous_status=model.previous_status,
            restaurant_id=RestaurantId(model.restaurant_id) if model.restaurant_id else None,
            restaurant_name=model.restaurant_name,
            details=dict(model.details or {}),
            changed_by=ActorId(model.changed_by) if model.changed_by else None,
            changed_by_type=ActorKind.coerce(model.changed_by_type),
            visibility=model.visibility,
            created_at=utc(model.created_at),
            expired_at=utc(model.expired_at),
        )


class SqlAlchemyAssignmentHistoryRepository(AssignmentHistoryRepository):
    def __init__(self, engine: Engine | None = None) -> None:
        self._engine = engine or get_engine()

    def add(self, entry: AssignmentHistoryEntry) -> None:
        model = AssignmentHistoryModel(
            id=str(entry.entry_id),
            order_id=str(entry.order_id),
            assignment_id=str(entry.assignment_id),
            restaurant_id=str(entry.restaurant_id),
            status=entry.status.value,
            notes=entry.notes,
            created_at=entry.created_at,
        )
        with Session(self._engine) as session:
            session.add(model)
            session.commit()

    def list_for_order(self, order_id: OrderId) -> list[AssignmentHistoryEntry]:
        statement = (
            select(AssignmentHistoryModel)
            .where(AssignmentHistoryModel.order_id == str(order_id))
            .order_by(AssignmentHistoryModel.created_at, AssignmentHistoryModel.id)
        )
        with Session(self._engine) as session:
            models = session.execute(statement).scalars().all()
            return [
                AssignmentHistoryEntry(
                    entry_id=HistoryEntryId(model.id),
                    order_id=OrderId(model.order_id),
                    assignment_id=AssignmentId(model.assignment_id),
                    restaurant_id=RestaurantId(model.restaurant_id),
                    status=AssignmentStatus(model.status),
                    created_at=utc(model.created_at),
                    notes=model.notes,
                )
                for model in models
            ]

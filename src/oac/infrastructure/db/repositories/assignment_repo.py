from __future__ import annotations

from datetime import datetime

from sqlalchemy import Engine, func, select, update
from sqlalchemy.orm import Session

from oac.application.ports.repositories import AssignmentRepository
from oac.domain.assignment.entities import AssignmentStatus, RestaurantAssignment
from oac.domain.common.ids import AssignmentId, OrderId, RestaurantId
from oac.infrastructure.db.models.assignment import RestaurantAssignmentModel
from oac.infrastructure.db.repositories._time import utc
from oac.infrastructure.db.session import get_engine


class SqlAlchemyAssignmentRepository(AssignmentRepository):
    def __init__(self, engine: Engine | None = None) -> None:
        self._engine = engine or get_engine()

    def add_many(self, assignments: list[RestaurantAssignment]) -> None:
        with Session(self._engine) as session:
            session.add_all([self._to_model(item) for item in assignments])
            session.commit()

    def get(self, assignment_id: AssignmentId) -> RestaurantAssignment | None:
        statement = (
            select(RestaurantAssignmentModel)
            .where(RestaurantAssignmentModel.id == str(assignment_id))
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
        status: AssignmentStatus | None = None,
    ) -> list[RestaurantAssignment]:
        statement = select(RestaurantAssignmentModel).where(
            RestaurantAssignmentModel.order_id == str(order_id)
        )
        if status is not None:
            statement = statement.where(RestaurantAssignmentModel.status == status.value)
        statement = statement.order_by(
            RestaurantAssignmentModel.assigned_at, RestaurantAssignmentModel.id
        )
        return self._fetch(statement)

    def list_pending_for_restaurant(
        self,
        restaurant_id: RestaurantId,
        now: datetime,
    ) -> list[RestaurantAssignment]:
        statement = (
            select(RestaurantAssignmentModel)
            .where(
                RestaurantAssignmentModel.restaurant_id == str(restaurant_id),
                RestaurantAssignmentModel.status == AssignmentStatus.PENDING.value,
                RestaurantAssignmentModel.expires_at > now,
            )
            .order_by(RestaurantAssignmentModel.assigned_at, RestaurantAssignmentModel.id)
        )
        return self._fetch(statement)

    def list_overdue(self, now: datetime, limit: int) -> list[RestaurantAssignment]:
        statement = (
            select(RestaurantAssignmentModel)
            .where(
                RestaurantAssignmentModel.status == AssignmentStatus.PENDING.value,
                RestaurantAssignmentModel.expires_at <= now,
            )
            .order_by(RestaurantAssignmentModel.expires_at, RestaurantAssignmentModel.id)
            .limit(limit)
        )
        return self._fetch(statement)

    def count_by_status(self, status: AssignmentStatus) -> int:
        statement = (
            select(func.count())
            .select_from(RestaurantAssignmentModel)
            .where(RestaurantAssignmentModel.status == status.value)
        )
        with Session(self._engine) as session:
            return session.execute(statement).scalar_one()

    def count_overdue(self, now: datetime) -> int:
        statement = (
            select(func.count())
            .select_from(RestaurantAssignmentModel)
            .where(
                RestaurantAssignmentModel.status == AssignmentStatus.PENDING.value,
                RestaurantAssignmentModel.expires_at <= now,
            )
        )
        with Session(self._engine) as session:
            return session.execute(statement).scalar_one()

    def transition_if(
        self,
        assignment_id: AssignmentId,
        expected: AssignmentStatus,
        new_status: AssignmentStatus,
        responded_at: datetime,
        notes: str | None = None,
    ) -> bool:
        values: dict[str, object] = {"status": new_status.value, "responded_at": responded_at}
        if notes is not None:
            values["response_notes"] = notes
        statement = (
            update(RestaurantAssignmentModel)
            .where(
                RestaurantAssignmentModel.id == str(assignment_id),
                RestaurantAssignmentModel.status == expected.value,
            )
            .values(**values)
        )
        with Session(self._engine) as session:
            result = session.execute(statement)
            if result.rowcount != 1:
                session.rollback()
                return False
            session.commit()
        return True

    def _fetch(self, statement) -> list[RestaurantAssignment]:
        with Session(self._engine) as session:
            models = session.execute(statement).scalars().all()
            return [self._to_domain(model) for model in models]

    def _to_model(self, assignment: RestaurantAssignment) -> RestaurantAssignmentModel:
        return RestaurantAssignmentModel(
            id=str(assignment.assignment_id),
            order_id=str(assignment.order_id),
            restaurant_id=str(assignment.restaurant_id),
            status=assignment.status.value,
            assigned_at=assignment.assigned_at,
            expires_at=assignment.expires_at,
            responded_at=assignment.responded_at,
            response_notes=assignment.response_notes,
        )

    def _to_domain(self, model: RestaurantAssignmentModel) -> RestaurantAssignment:
        return RestaurantAssignment(
            assignment_id=AssignmentId(model.id),
            order_id=OrderId(model.order_id),
            restaurant_id=RestaurantId(model.restaurant_id),
            status=AssignmentStatus(model.status),
            assigned_at=utc(model.assigned_at),
            expires_at=utc(model.expires_at),
            responded_at=utc(model.responded_at),
            response_notes=model.response_notes,
        )

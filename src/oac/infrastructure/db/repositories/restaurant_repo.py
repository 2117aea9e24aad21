from __future__ import annotations

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from oac.application.ports.repositories import RestaurantDirectory
from oac.domain.common.ids import RestaurantId
from oac.infrastructure.db.models.restaurant import RestaurantModel
from oac.infrastructure.db.session import get_engine


class SqlAlchemyRestaurantDirectory(RestaurantDirectory):
    def __init__(self, engine: Engine | None = None) -> None:
        self._engine = engine or get_engine()

    def get_name(self, restaurant_id: RestaurantId) -> str | None:
        statement = select(RestaurantModel.name).where(RestaurantModel.id == str(restaurant_id))
        with Session(self._engine) as session:
            return session.execute(statement).scalar_one_or_none()

    def upsert(self, restaurant_id: RestaurantId, name: str) -> None:
        with Session(self._engine) as session:
            session.merge(RestaurantModel(id=str(restaurant_id), name=name))
            session.commit()

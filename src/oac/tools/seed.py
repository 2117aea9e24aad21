from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import inspect
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.orm import Session

from oac.infrastructure.db.models.order import OrderModel
from oac.infrastructure.db.models.restaurant import RestaurantModel
from oac.infrastructure.db.session import get_engine

RESTAURANTS = (
    ("rst_001", "Downtown Test Kitchen"),
    ("rst_002", "Harbor Noodle Bar"),
    ("rst_003", "Uptown Grill"),
)
DEMO_ORDER_ID = "ord_demo000001"


def main() -> None:
    engine = get_engine(timeout_seconds=2.0)
    inspector = inspect(engine)
    required_tables = {"restaurants", "orders", "restaurant_assignments", "order_history"}
    if not required_tables.issubset(set(inspector.get_table_names(schema="public"))):
        print("no schema yet")
        return

    with Session(engine) as session:
        for restaurant_id, name in RESTAURANTS:
            session.execute(
                insert(RestaurantModel)
                .values(id=restaurant_id, name=name)
                .on_conflict_do_update(
                    index_elements=[RestaurantModel.id],
                    set_={"name": name},
                )
            )

        now = datetime.now(timezone.utc)
        session.execute(
            insert(OrderModel)
            .values(
                id=DEMO_ORDER_ID,
                status="placed",
                created_at=now,
                updated_at=now,
                latitude=40.7128,
                longitude=-74.0060,
                version=1,
            )
            .on_conflict_do_nothing(index_elements=[OrderModel.id])
        )
        session.commit()

    print(f"seeded {len(RESTAURANTS)} restaurants and order {DEMO_ORDER_ID}")


if __name__ == "__main__":
    main()

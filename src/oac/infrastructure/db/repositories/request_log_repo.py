from __future__ import annotations

from sqlalchemy import Engine
from sqlalchemy.orm import Session

from oac.application.ports.repositories import RequestLogEntry, RequestLogRepository
from oac.infrastructure.db.models.request_log import WebhookLogModel
from oac.infrastructure.db.session import get_engine


class SqlAlchemyRequestLogRepository(RequestLogRepository):
    def __init__(self, engine: Engine | None = None) -> None:
        self._engine = engine or get_engine()

    def add(self, entry: RequestLogEntry) -> None:
        model = WebhookLogModel(
            id=entry.log_id,
            url=entry.url,
            payload=dict(entry.payload),
            response=dict(entry.response) if entry.response is not None else None,
            idempotency_key=entry.idempotency_key,
            log_metadata=dict(entry.metadata),
            created_at=entry.created_at,
        )
        with Session(self._engine) as session:
            session.add(model)
            session.commit()

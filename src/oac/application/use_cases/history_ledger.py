from __future__ import annotations

import logging
from datetime import datetime
from typing import Any
from uuid import uuid4

from oac.application.best_effort import best_effort
from oac.application.metrics.assignment_lifecycle import record_history_write_failure
from oac.application.ports.clock import Clock, SystemClock
from oac.application.ports.repositories import (
    HistoryRepository,
    OrderRepository,
    RestaurantDirectory,
)
from oac.domain.common.ids import ActorId, HistoryEntryId, OrderId, RestaurantId
from oac.domain.history.entities import (
    IDEMPOTENCY_DETAIL_KEY,
    UNKNOWN_RESTAURANT_NAME,
    UNKNOWN_RESTAURANT_SENTINEL,
    ActorKind,
    OrderHistoryEntry,
    as_utc,
    canonical_history_status,
)
from oac.domain.order.entities import Order

logger = logging.getLogger(__name__)


class HistoryLedger:
    """Append-only audit trail of order status transitions.

    Every write here supports some other primary operation, so nothing is
    raised to the caller: failures are logged and reported as ``None`` or
    ``False``.
    """

    def __init__(
        self,
        history_repository: HistoryRepository,
        order_repository: OrderRepository,
        restaurant_directory: RestaurantDirectory,
        clock: Clock | None = None,
    ) -> None:
        self._history_repository = history_repository
        self._order_repository = order_repository
        self._restaurant_directory = restaurant_directory
        self._clock = clock or SystemClock()

    def record(
        self,
        order_id: OrderId,
        status: str,
        restaurant_id: RestaurantId | None = None,
        details: dict[str, Any] | None = None,
        expired_at: datetime | None = None,
        actor_id: ActorId | None = None,
        actor_kind: ActorKind | str = ActorKind.SYSTEM,
        visible: bool = True,
        previous_status: str | None = None,
    ) -> OrderHistoryEntry | None:
        entry = best_effort(
            "history_write_failed",
            self._build_entry,
            order_id=order_id,
            status=status,
            restaurant_id=restaurant_id,
            details=details,
            expired_at=expired_at,
            actor_id=actor_id,
            actor_kind=actor_kind,
            visible=visible,
            previous_status=previous_status,
            extra={"order_id": str(order_id), "status": status},
        )
        if entry is None:
            record_history_write_failure()
            return None

        written = best_effort(
            "history_write_failed",
            self._history_repository.add,
            entry,
            extra={"order_id": str(order_id), "status": entry.status},
        )
        if written is None:
            record_history_write_failure()
            return None
        if not written:
            logger.info(
                "history_duplicate_skipped",
                extra={"order_id": str(order_id), "status": entry.status},
            )
            return None
        return entry

    def record_idempotent(
        self,
        order_id: OrderId,
        status: str,
        idempotency_key: str,
        restaurant_id: RestaurantId | None = None,
        details: dict[str, Any] | None = None,
        actor_kind: ActorKind | str = ActorKind.SYSTEM,
        actor_id: ActorId | None = None,
        expired_at: datetime | None = None,
        visible: bool = True,
        previous_status: str | None = None,
    ) -> bool:
        """Record ``status`` once per ``(order_id, status, idempotency_key)``.

        Returns ``True`` only when a new entry was stored.
        """
        try:
            canonical = canonical_history_status(status)
            existing = self._history_repository.find_by_idempotency_key(
                order_id, canonical, idempotency_key
            )
        except Exception:
            logger.exception(
                "history_idempotency_lookup_failed",
                extra={"order_id": str(order_id), "status": status},
            )
            return False

        if existing is not None:
            logger.info(
                "history_duplicate_skipped",
                extra={"order_id": str(order_id), "status": canonical},
            )
            return False

        payload = dict(details or {})
        payload[IDEMPOTENCY_DETAIL_KEY] = idempotency_key
        entry = self.record(
            order_id=order_id,
            status=canonical,
            restaurant_id=restaurant_id,
            details=payload,
            expired_at=expired_at,
            actor_id=actor_id,
            actor_kind=actor_kind,
            visible=visible,
            previous_status=previous_status,
        )
        return entry is not None

    def list_for_order(
        self,
        order_id: OrderId,
        include_hidden: bool = False,
    ) -> list[OrderHistoryEntry]:
        entries = self._history_repository.list_for_order(order_id, include_hidden=include_hidden)
        return sorted(entries, key=lambda entry: entry.created_at, reverse=True)

    def _build_entry(
        self,
        order_id: OrderId,
        status: str,
        restaurant_id: RestaurantId | None,
        details: dict[str, Any] | None,
        expired_at: datetime | None,
        actor_id: ActorId | None,
        actor_kind: ActorKind | str,
        visible: bool,
        previous_status: str | None,
    ) -> OrderHistoryEntry:
        canonical = canonical_history_status(status)
        order = self._load_order(order_id)

        resolved_restaurant_id = restaurant_id
        if not resolved_restaurant_id or resolved_restaurant_id == UNKNOWN_RESTAURANT_SENTINEL:
            resolved_restaurant_id = order.restaurant_id if order is not None else None

        restaurant_name: str | None = None
        if resolved_restaurant_id is not None:
            restaurant_name = (
                best_effort(
                    "restaurant_name_lookup_failed",
                    self._restaurant_directory.get_name,
                    resolved_restaurant_id,
                    extra={"restaurant_id": str(resolved_restaurant_id)},
                )
                or UNKNOWN_RESTAURANT_NAME
            )

        if previous_status is None:
            previous_status = self._resolve_previous_status(order_id, order)

        if not ActorKind.is_known(actor_kind):
            logger.warning(
                "actor_kind_coerced",
                extra={"order_id": str(order_id), "status": canonical},
            )

        return OrderHistoryEntry(
            entry_id=HistoryEntryId(f"hst_{uuid4().hex[:12]}"),
            order_id=order_id,
            status=canonical,
            previous_status=previous_status,
            restaurant_id=resolved_restaurant_id,
            restaurant_name=restaurant_name,
            details=dict(details or {}),
            changed_by=actor_id,
            changed_by_type=ActorKind.coerce(actor_kind),
            visibility=visible,
            created_at=as_utc(self._clock.now()),
            expired_at=as_utc(expired_at) if expired_at is not None else None,
        )

    def _load_order(self, order_id: OrderId) -> Order | None:
        return best_effort(
            "history_order_lookup_failed",
            self._order_repository.get,
            order_id,
            extra={"order_id": str(order_id)},
        )

    def _resolve_previous_status(self, order_id: OrderId, order: Order | None) -> str | None:
        if order is not None:
            return order.status.value
        latest = best_effort(
            "history_previous_status_lookup_failed",
            self._history_repository.latest_for_order,
            order_id,
            extra={"order_id": str(order_id)},
        )
        return latest.status if latest is not None else None

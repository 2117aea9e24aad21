from __future__ import annotations

from datetime import datetime, timezone

from prometheus_client import Counter, Gauge, Histogram

from oac.domain.order.entities import Order, OrderStatus

ORDER_TRANSITION_TOTAL = Counter(
    "oac_order_transition_total",
    "Total number of order status transitions.",
    ["from", "to", "actor_kind"],
)

ASSIGNMENTS_CREATED_TOTAL = Counter(
    "oac_assignments_created_total",
    "Total number of restaurant assignments created by broadcasts.",
)

ASSIGNMENT_OUTCOME_TOTAL = Counter(
    "oac_assignment_outcome_total",
    "Total number of assignment terminal outcomes.",
    ["status"],
)

ASSIGNMENT_RACE_LOST_TOTAL = Counter(
    "oac_assignment_race_lost_total",
    "Total number of conditional writes that lost to a concurrent actor.",
    ["operation"],
)

WEBHOOK_CALLS_TOTAL = Counter(
    "oac_webhook_calls_total",
    "Total number of outbound order webhook calls.",
    ["action", "result"],
)

ORDER_TIME_TO_ACCEPT_SECONDS = Histogram(
    "oac_order_time_to_accept_seconds",
    "Time between order creation and restaurant acceptance.",
)

HISTORY_WRITE_FAILURES_TOTAL = Counter(
    "oac_history_write_failures_total",
    "Total number of order history writes that failed.",
)

ASSIGNMENT_HEALTH = Gauge(
    "oac_assignment_health",
    "Counts reported by the latest assignment health check.",
    ["check"],
)

ORDER_REPAIR_TOTAL = Counter(
    "oac_order_repair_total",
    "Total number of orders repaired by assignment cleanup.",
    ["repair"],
)


def record_transition(from_status: OrderStatus, to_status: OrderStatus, actor_kind: str) -> None:
    ORDER_TRANSITION_TOTAL.labels(
        **{"from": from_status.value, "to": to_status.value, "actor_kind": actor_kind}
    ).inc()


def record_assignments_created(count: int) -> None:
    ASSIGNMENTS_CREATED_TOTAL.inc(count)


def record_assignment_outcome(status: str, count: int = 1) -> None:
    if count > 0:
        ASSIGNMENT_OUTCOME_TOTAL.labels(status=status).inc(count)


def record_race_lost(operation: str) -> None:
    ASSIGNMENT_RACE_LOST_TOTAL.labels(operation=operation).inc()


def record_webhook_call(action: str, success: bool) -> None:
    WEBHOOK_CALLS_TOTAL.labels(action=action, result="ok" if success else "error").inc()


def record_time_to_accept(order: Order, now: datetime | None = None) -> None:
    current = now or datetime.now(timezone.utc)
    ORDER_TIME_TO_ACCEPT_SECONDS.observe(max((current - order.created_at).total_seconds(), 0.0))


def record_history_write_failure() -> None:
    HISTORY_WRITE_FAILURES_TOTAL.inc()


def record_health(counts: dict[str, int]) -> None:
    for check, value in counts.items():
        ASSIGNMENT_HEALTH.labels(check=check).set(value)


def record_order_repair(repair: str, count: int) -> None:
    if count > 0:
        ORDER_REPAIR_TOTAL.labels(repair=repair).inc(count)

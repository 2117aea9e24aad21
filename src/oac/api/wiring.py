from __future__ import annotations

import os
from functools import lru_cache

from oac.api.middleware.request_id import get_request_id
from oac.application.ports.clock import Clock
from oac.application.ports.publisher import EventPublisher
from oac.application.ports.repositories import RepositoryBundle
from oac.application.ports.webhook import OrderWebhook
from oac.application.use_cases.assignment_health import AssignmentHealthMonitor
from oac.application.use_cases.assignment_queries import AssignmentQueries
from oac.application.use_cases.broadcast_order import DEFAULT_EXPIRATION_MINUTES, BroadcastOrder
from oac.application.use_cases.context import TraceContext
from oac.application.use_cases.expire_assignments import AssignmentExpiryMonitor
from oac.application.use_cases.history_ledger import HistoryLedger
from oac.application.use_cases.order_status import OrderStatusCoordinator
from oac.application.use_cases.respond_to_assignment import RestaurantResponseHandler
from oac.infrastructure.cache.redis_client import redis_configured
from oac.infrastructure.db.repositories.assignment_repo import SqlAlchemyAssignmentRepository
from oac.infrastructure.db.repositories.history_repo import (
    SqlAlchemyAssignmentHistoryRepository,
    SqlAlchemyHistoryRepository,
)
from oac.infrastructure.db.repositories.order_repo import SqlAlchemyOrderRepository
from oac.infrastructure.db.repositories.request_log_repo import SqlAlchemyRequestLogRepository
from oac.infrastructure.db.repositories.restaurant_repo import SqlAlchemyRestaurantDirectory
from oac.infrastructure.db.session import get_engine
from oac.infrastructure.messaging.redis_publisher import NullEventPublisher, RedisEventPublisher
from oac.infrastructure.observability.otel import current_trace_id
from oac.infrastructure.webhook.http_client import (
    HttpxOrderWebhook,
    UnconfiguredOrderWebhook,
    webhook_configured,
)


def sql_repositories() -> RepositoryBundle:
    engine = get_engine()
    return RepositoryBundle(
        orders=SqlAlchemyOrderRepository(engine),
        assignments=SqlAlchemyAssignmentRepository(engine),
        history=SqlAlchemyHistoryRepository(engine),
        assignment_history=SqlAlchemyAssignmentHistoryRepository(engine),
        restaurants=SqlAlchemyRestaurantDirectory(engine),
        request_logs=SqlAlchemyRequestLogRepository(engine),
    )


def event_publisher() -> EventPublisher:
    if redis_configured():
        return RedisEventPublisher()
    return NullEventPublisher()


@lru_cache(maxsize=1)
def _shared_webhook() -> HttpxOrderWebhook:
    return HttpxOrderWebhook()


def order_webhook() -> OrderWebhook:
    if webhook_configured():
        return _shared_webhook()
    return UnconfiguredOrderWebhook()


def close_order_webhook() -> None:
    if _shared_webhook.cache_info().currsize:
        _shared_webhook().close()
    _shared_webhook.cache_clear()


def request_trace_context() -> TraceContext:
    return TraceContext(trace_id=current_trace_id(), request_id=get_request_id())


def assignment_expiration_minutes() -> int:
    return int(os.getenv("ASSIGNMENT_EXPIRATION_MINUTES", str(DEFAULT_EXPIRATION_MINUTES)))


def history_ledger(repos: RepositoryBundle, clock: Clock | None = None) -> HistoryLedger:
    return HistoryLedger(
        history_repository=repos.history,
        order_repository=repos.orders,
        restaurant_directory=repos.restaurants,
        clock=clock,
    )


def order_status_coordinator(
    repos: RepositoryBundle,
    publisher: EventPublisher,
    trace_ctx: TraceContext | None = None,
    clock: Clock | None = None,
) -> OrderStatusCoordinator:
    return OrderStatusCoordinator(
        order_repository=repos.orders,
        assignment_repository=repos.assignments,
        assignment_history_repository=repos.assignment_history,
        history_ledger=history_ledger(repos, clock),
        publisher=publisher,
        clock=clock,
        trace_ctx=trace_ctx,
    )


def response_handler(
    repos: RepositoryBundle,
    publisher: EventPublisher,
    webhook: OrderWebhook,
    trace_ctx: TraceContext | None = None,
    clock: Clock | None = None,
) -> RestaurantResponseHandler:
    return RestaurantResponseHandler(
        assignment_repository=repos.assignments,
        request_log_repository=repos.request_logs,
        webhook=webhook,
        coordinator=order_status_coordinator(repos, publisher, trace_ctx, clock),
        history_ledger=history_ledger(repos, clock),
        clock=clock,
    )


def expiry_monitor(
    repos: RepositoryBundle,
    publisher: EventPublisher,
    webhook: OrderWebhook,
    trace_ctx: TraceContext | None = None,
    clock: Clock | None = None,
) -> AssignmentExpiryMonitor:
    return AssignmentExpiryMonitor(
        order_repository=repos.orders,
        assignment_repository=repos.assignments,
        webhook=webhook,
        coordinator=order_status_coordinator(repos, publisher, trace_ctx, clock),
        history_ledger=history_ledger(repos, clock),
        clock=clock,
    )


def broadcast_order(
    repos: RepositoryBundle,
    publisher: EventPublisher,
    trace_ctx: TraceContext | None = None,
    clock: Clock | None = None,
) -> BroadcastOrder:
    return BroadcastOrder(
        order_repository=repos.orders,
        assignment_repository=repos.assignments,
        coordinator=order_status_coordinator(repos, publisher, trace_ctx, clock),
        publisher=publisher,
        clock=clock,
        trace_ctx=trace_ctx,
    )


def assignment_queries(repos: RepositoryBundle, clock: Clock | None = None) -> AssignmentQueries:
    return AssignmentQueries(assignment_repository=repos.assignments, clock=clock)


def assignment_health_monitor(
    repos: RepositoryBundle,
    publisher: EventPublisher,
    webhook: OrderWebhook,
    trace_ctx: TraceContext | None = None,
    clock: Clock | None = None,
) -> AssignmentHealthMonitor:
    return AssignmentHealthMonitor(
        order_repository=repos.orders,
        assignment_repository=repos.assignments,
        coordinator=order_status_coordinator(repos, publisher, trace_ctx, clock),
        expiry_monitor=expiry_monitor(repos, publisher, webhook, trace_ctx, clock),
        history_ledger=history_ledger(repos, clock),
        clock=clock,
    )

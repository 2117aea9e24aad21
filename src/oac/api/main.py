from __future__ import annotations

import asyncio
import logging
import os
import time
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import Counter, Histogram
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from oac.api import wiring
from oac.api.error_handling import register_exception_handlers
from oac.api.middleware.request_id import RequestIDMiddleware
from oac.api.routes.assignments import router as assignments_router
from oac.api.routes.health import router as health_router
from oac.api.routes.metrics import router as metrics_router
from oac.api.routes.orders import router as orders_router
from oac.application.use_cases.context import TraceContext
from oac.infrastructure.cache.redis_client import close_redis_clients
from oac.infrastructure.db.session import dispose_engines
from oac.infrastructure.observability.logging_config import configure_logging
from oac.infrastructure.observability.otel import configure_otel, get_tracer
from oac.infrastructure.webhook.http_client import webhook_configured

logger = logging.getLogger("oac.api.access")
sweep_logger = logging.getLogger("oac.api.expiry_sweep")

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total number of HTTP requests",
    ["method", "path", "status_code"],
)
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)


def _cors_allow_origins() -> list[str]:
    env = os.getenv("APP_ENV", "dev").lower()

    # Dev/test: unblock everything (no credentials allowed)
    if env in {"dev", "test"}:
        return ["*"]

    raw_value = os.getenv("CORS_ALLOW_ORIGINS", "")
    return [origin.strip() for origin in raw_value.split(",") if origin.strip()]


def _sweep_interval_seconds() -> float:
    return float(os.getenv("EXPIRY_SWEEP_INTERVAL_SECONDS", "60"))


class AccessLogMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        started = time.perf_counter()
        path = request.url.path
        method = request.method
        try:
            response = await call_next(request)
        except Exception:
            duration_ms = (time.perf_counter() - started) * 1000
            REQUEST_COUNT.labels(method=method, path=path, status_code="500").inc()
            REQUEST_LATENCY.labels(method=method, path=path).observe(duration_ms / 1000)
            logger.exception(
                "request_error",
                extra={
                    "method": method,
                    "path": path,
                    "status_code": 500,
                    "duration_ms": round(duration_ms, 2),
                },
            )
            raise

        duration_ms = (time.perf_counter() - started) * 1000
        REQUEST_COUNT.labels(method=method, path=path, status_code=str(response.status_code)).inc()
        REQUEST_LATENCY.labels(method=method, path=path).observe(duration_ms / 1000)
        logger.info(
            "request_complete",
            extra={
                "method": method,
                "path": path,
                "status_code": response.status_code,
                "duration_ms": round(duration_ms, 2),
            },
        )
        return response


def run_expiry_sweep() -> int:
    """One pass of the periodic sweep; returns how many assignments expired locally."""
    monitor = wiring.expiry_monitor(
        wiring.sql_repositories(),
        wiring.event_publisher(),
        wiring.order_webhook(),
        TraceContext.for_job("expiry-sweep"),
    )
    with get_tracer().start_as_current_span("expiry_sweep") as span:
        if webhook_configured():
            span.set_attribute("expiry.mode", "webhook")
            monitor.check_expired()
            return 0
        span.set_attribute("expiry.mode", "local")
        expired = monitor.expire_overdue()
        span.set_attribute("expiry.expired_count", expired)
        return expired


async def _expiry_sweep_loop(interval_seconds: float) -> None:
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await asyncio.to_thread(run_expiry_sweep)
        except Exception:
            sweep_logger.exception("expiry_sweep_failed")


@asynccontextmanager
async def lifespan(app: FastAPI):
    interval = _sweep_interval_seconds()
    sweep_task: asyncio.Task | None = None
    if interval > 0 and os.getenv("DATABASE_URL"):
        sweep_task = asyncio.create_task(_expiry_sweep_loop(interval))
    else:
        sweep_logger.info("expiry_sweep_disabled")
    app.state.expiry_sweep_task = sweep_task
    try:
        yield
    finally:
        if sweep_task is not None:
            sweep_task.cancel()
            with suppress(asyncio.CancelledError):
                await sweep_task
        wiring.close_order_webhook()
        close_redis_clients()
        dispose_engines()


def create_app() -> FastAPI:
    configure_logging()

    app = FastAPI(title="Order Assignment Coordinator", version="0.1.0", lifespan=lifespan)
    register_exception_handlers(app)
    app.include_router(health_router)
    app.include_router(metrics_router)
    app.include_router(orders_router)
    app.include_router(assignments_router)

    app.add_middleware(AccessLogMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_allow_origins(),
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-Id"],
    )

    configure_otel(app)
    return app


app = create_app()

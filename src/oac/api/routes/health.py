from __future__ import annotations

from fastapi import APIRouter, Response, status

from oac.infrastructure.cache.redis_client import ping_redis, redis_configured
from oac.infrastructure.db.session import ping_database
from oac.infrastructure.webhook.http_client import webhook_configured

router = APIRouter()


@router.get("/health/live")
def live() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/health/ready")
def ready(response: Response) -> dict[str, object]:
    """Database is always required; Redis only when events are published."""
    checks: dict[str, bool] = {"database": ping_database(timeout_seconds=1.0)}
    if redis_configured():
        checks["redis"] = ping_redis(timeout_seconds=1.0)

    if all(checks.values()):
        return {"status": "ok", "checks": checks, "webhookConfigured": webhook_configured()}

    response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return {"status": "unavailable", "checks": checks, "webhookConfigured": webhook_configured()}

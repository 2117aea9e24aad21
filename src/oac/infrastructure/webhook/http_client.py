from __future__ import annotations

import logging
import os
import time
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

import httpx

from oac.application.ports.webhook import (
    AssignmentResponseRequest,
    OrderWebhook,
    WebhookResult,
)
from oac.infrastructure.observability.otel import get_tracer

logger = logging.getLogger(__name__)

WEBHOOK_PATH = "/order-webhook"
MAX_BACKOFF_SECONDS = 5.0
# Gateway failures, resent with backoff. Other statuses return on the first try.
RETRYABLE_STATUS_CODES = frozenset({502, 503, 504})


def _webhook_base_url() -> str:
    url = os.getenv("ORDER_WEBHOOK_URL")
    if not url:
        raise RuntimeError("ORDER_WEBHOOK_URL is not set")
    return url


def _timezone_offset_minutes() -> int:
    # Minutes west of UTC, the sign convention browsers report.
    seconds_west = time.altzone if time.localtime().tm_isdst > 0 else time.timezone
    return seconds_west // 60


class HttpxOrderWebhook(OrderWebhook):
    """Calls the order-assignment webhook over HTTPS with a bearer token."""

    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        timeout_seconds: float | None = None,
        client: httpx.Client | None = None,
        max_attempts: int | None = None,
        backoff_seconds: float | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._url = (base_url or _webhook_base_url()).rstrip("/") + WEBHOOK_PATH
        self._token = token if token is not None else os.getenv("ORDER_WEBHOOK_TOKEN")
        if timeout_seconds is None:
            timeout_seconds = float(os.getenv("ORDER_WEBHOOK_TIMEOUT_SECONDS", "5"))
        self._client = client or httpx.Client(timeout=timeout_seconds)
        if max_attempts is None:
            max_attempts = int(os.getenv("ORDER_WEBHOOK_MAX_ATTEMPTS", "3"))
        if backoff_seconds is None:
            backoff_seconds = float(os.getenv("ORDER_WEBHOOK_BACKOFF_SECONDS", "1"))
        self._max_attempts = max(max_attempts, 1)
        self._backoff_seconds = backoff_seconds
        self._sleep = sleep

    @property
    def url(self) -> str:
        return self._url

    def send_response(self, request: AssignmentResponseRequest) -> WebhookResult:
        return self._post(request.to_payload())

    def check_expired(self) -> WebhookResult:
        return self._post(
            {
                "action": "check_expired",
                "client_timestamp": datetime.now(timezone.utc).isoformat(),
                "timezone_offset": _timezone_offset_minutes(),
            }
        )

    def close(self) -> None:
        self._client.close()

    def _post(self, payload: dict[str, Any]) -> WebhookResult:
        if not self._token:
            return WebhookResult(success=False, error="Authentication required")

        action = str(payload.get("action", ""))
        backoff_seconds = self._backoff_seconds
        with get_tracer().start_as_current_span("order_webhook.post") as span:
            span.set_attribute("webhook.action", action)
            if "order_id" in payload:
                span.set_attribute("order.id", str(payload["order_id"]))
            attempt = 1
            while True:
                try:
                    response = self._client.post(
                        self._url,
                        json=payload,
                        headers={"Authorization": f"Bearer {self._token}"},
                    )
                except httpx.TransportError as exc:
                    logger.warning(
                        "webhook_transport_error",
                        extra={"path": WEBHOOK_PATH, "action": action, "count": attempt},
                    )
                    if attempt >= self._max_attempts:
                        span.set_attribute("webhook.attempts", attempt)
                        return WebhookResult(success=False, error=f"Failed to call webhook: {exc}")
                except httpx.HTTPError as exc:
                    span.set_attribute("webhook.attempts", attempt)
                    return WebhookResult(success=False, error=f"Failed to call webhook: {exc}")
                else:
                    if (
                        response.status_code not in RETRYABLE_STATUS_CODES
                        or attempt >= self._max_attempts
                    ):
                        break
                    logger.warning(
                        "webhook_retryable_status",
                        extra={"action": action, "status_code": response.status_code, "count": attempt},
                    )

                logger.info("webhook_retry", extra={"action": action, "count": attempt + 1})
                self._sleep(backoff_seconds)
                backoff_seconds = min(backoff_seconds * 2, MAX_BACKOFF_SECONDS)
                attempt += 1

            span.set_attribute("webhook.attempts", attempt)
            span.set_attribute("http.status_code", response.status_code)

        if response.is_error:
            return WebhookResult(
                success=False,
                error=f"Webhook request failed: {response.status_code} {response.text}".strip(),
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError:
            return WebhookResult(success=True, status_code=response.status_code)
        if not isinstance(body, dict):
            return WebhookResult(success=True, status_code=response.status_code)
        return WebhookResult(
            success=bool(body.get("success", True)),
            error=body.get("error"),
            message=body.get("message"),
            status_code=response.status_code,
        )


class UnconfiguredOrderWebhook(OrderWebhook):
    """Stands in when ORDER_WEBHOOK_URL is unset; every call fails."""

    @property
    def url(self) -> str:
        return WEBHOOK_PATH

    def send_response(self, request: AssignmentResponseRequest) -> WebhookResult:
        return WebhookResult(success=False, error="order webhook is not configured")

    def check_expired(self) -> WebhookResult:
        return WebhookResult(success=False, error="order webhook is not configured")


def webhook_configured() -> bool:
    return bool(os.getenv("ORDER_WEBHOOK_URL"))

from __future__ import annotations

import json
import sys
from pathlib import Path

import httpx

sys.path.insert(0, str(Path(__file__).resolve().parents[3] / "src"))

from oac.application.ports.webhook import AssignmentResponseRequest, Location
from oac.domain.assignment.entities import ResponseAction
from oac.domain.common.ids import AssignmentId, OrderId, RestaurantId
from oac.infrastructure.webhook.http_client import (
    HttpxOrderWebhook,
    UnconfiguredOrderWebhook,
    webhook_configured,
)

REQUEST = AssignmentResponseRequest(
    order_id=OrderId("ord_001"),
    restaurant_id=RestaurantId("rst_1"),
    assignment_id=AssignmentId("asg_001"),
    location=Location(latitude=40.7, longitude=-74.0),
    action=ResponseAction.ACCEPT,
)


def _webhook(
    handler,
    token: str | None = "secret",
    sleeps: list[float] | None = None,
    max_attempts: int = 3,
) -> HttpxOrderWebhook:
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return HttpxOrderWebhook(
        base_url="https://functions.test/",
        token=token,
        client=client,
        max_attempts=max_attempts,
        backoff_seconds=1.0,
        sleep=(sleeps if sleeps is not None else []).append,
    )


def test_send_response_posts_payload_with_bearer_token() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"success": True, "message": "Order accepted"})

    webhook = _webhook(handler)
    result = webhook.send_response(REQUEST)

    assert result.success is True
    assert result.message == "Order accepted"
    assert result.status_code == 200
    assert webhook.url == "https://functions.test/order-webhook"
    assert str(seen[0].url) == "https://functions.test/order-webhook"
    assert seen[0].headers["Authorization"] == "Bearer secret"
    body = json.loads(seen[0].content)
    assert body == {
        "order_id": "ord_001",
        "restaurant_id": "rst_1",
        "assignment_id": "asg_001",
        "latitude": 40.7,
        "longitude": -74.0,
        "action": "accept",
    }


def test_missing_token_short_circuits() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    result = _webhook(handler, token="").send_response(REQUEST)

    assert result.success is False
    assert result.error == "Authentication required"


def test_http_error_status_is_reported_after_retries() -> None:
    sleeps: list[float] = []
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(503, text="unavailable")

    result = _webhook(handler, sleeps=sleeps).send_response(REQUEST)

    assert len(calls) == 3
    assert sleeps == [1.0, 2.0]
    assert result.success is False
    assert result.status_code == 503
    assert result.error == "Webhook request failed: 503 unavailable"


def test_transport_error_is_reported() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    result = _webhook(handler, max_attempts=1).send_response(REQUEST)

    assert result.success is False
    assert result.error == "Failed to call webhook: connection refused"


def test_body_can_report_failure_and_non_json_is_success() -> None:
    refused = _webhook(
        lambda request: httpx.Response(200, json={"success": False, "error": "Already taken"})
    ).send_response(REQUEST)
    plain = _webhook(lambda request: httpx.Response(200, text="ok")).send_response(REQUEST)

    assert refused.success is False
    assert refused.error == "Already taken"
    assert plain.success is True


def test_check_expired_sends_client_clock() -> None:
    seen: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        return httpx.Response(200, json={"success": True})

    assert _webhook(handler).check_expired().success is True
    assert seen[0]["action"] == "check_expired"
    assert "client_timestamp" in seen[0]
    assert isinstance(seen[0]["timezone_offset"], int)


def test_unconfigured_webhook_always_fails(monkeypatch) -> None:
    monkeypatch.delenv("ORDER_WEBHOOK_URL", raising=False)

    assert webhook_configured() is False
    assert UnconfiguredOrderWebhook().send_response(REQUEST).error == "order webhook is not configured"


def test_gateway_error_is_retried_until_success() -> None:
    sleeps: list[float] = []
    responses = iter(
        [
            httpx.Response(502, text="bad gateway"),
            httpx.Response(504, text="timeout"),
            httpx.Response(200, json={"success": True, "message": "Order accepted"}),
        ]
    )

    result = _webhook(lambda request: next(responses), sleeps=sleeps).send_response(REQUEST)

    assert result.success is True
    assert result.message == "Order accepted"
    assert sleeps == [1.0, 2.0]


def test_transport_errors_back_off_with_a_cap() -> None:
    sleeps: list[float] = []
    attempts: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(1)
        raise httpx.ConnectError("connection refused", request=request)

    result = _webhook(handler, sleeps=sleeps, max_attempts=5).send_response(REQUEST)

    assert result.success is False
    assert len(attempts) == 5
    assert sleeps == [1.0, 2.0, 4.0, 5.0]


def test_client_errors_are_not_retried() -> None:
    sleeps: list[float] = []
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(409, json={"success": False, "error": "Already accepted"})

    result = _webhook(handler, sleeps=sleeps).send_response(REQUEST)

    assert result.success is False
    assert result.status_code == 409
    assert len(calls) == 1
    assert sleeps == []


def test_retry_settings_come_from_environment(monkeypatch) -> None:
    monkeypatch.setenv("ORDER_WEBHOOK_MAX_ATTEMPTS", "2")
    monkeypatch.setenv("ORDER_WEBHOOK_BACKOFF_SECONDS", "0.5")
    sleeps: list[float] = []
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(503, text="unavailable")

    webhook = HttpxOrderWebhook(
        base_url="https://functions.test",
        token="secret",
        client=httpx.Client(transport=httpx.MockTransport(handler)),
        sleep=sleeps.append,
    )

    assert webhook.send_response(REQUEST).status_code == 503
    assert len(calls) == 2
    assert sleeps == [0.5]

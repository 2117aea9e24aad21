from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any
from uuid import uuid4

from oac.application.best_effort import best_effort
from oac.application.metrics.assignment_lifecycle import (
    record_assignment_outcome,
    record_race_lost,
    record_webhook_call,
)
from oac.application.ports.clock import Clock, SystemClock
from oac.application.ports.repositories import (
    AssignmentRepository,
    RequestLogEntry,
    RequestLogRepository,
)
from oac.application.ports.webhook import (
    AssignmentResponseRequest,
    Location,
    OrderWebhook,
    WebhookResult,
)
from oac.application.use_cases.history_ledger import HistoryLedger
from oac.application.use_cases.order_status import (
    ALREADY_ACCEPTED_MESSAGE,
    OrderStatusCoordinator,
)
from oac.application.use_cases.outcomes import Outcome, ResponseResult
from oac.domain.assignment.entities import AssignmentStatus, ResponseAction
from oac.domain.common.ids import AssignmentId, OrderId, RestaurantId
from oac.domain.history.entities import ActorKind
from oac.domain.order.entities import OrderStatus

logger = logging.getLogger(__name__)

ALL_REJECTED_REASON = "All restaurants rejected the order"


def no_restaurant_key(order_id: OrderId) -> str:
    return f"{order_id}:{OrderStatus.NO_RESTAURANT_ACCEPTED.value}"


class RestaurantResponseHandler:
    def __init__(
        self,
        assignment_repository: AssignmentRepository,
        request_log_repository: RequestLogRepository,
        webhook: OrderWebhook,
        coordinator: OrderStatusCoordinator,
        history_ledger: HistoryLedger,
        clock: Clock | None = None,
    ) -> None:
        self._assignment_repository = assignment_repository
        self._request_log_repository = request_log_repository
        self._webhook = webhook
        self._coordinator = coordinator
        self._history_ledger = history_ledger
        self._clock = clock or SystemClock()

    def respond(
        self,
        order_id: OrderId,
        restaurant_id: RestaurantId,
        assignment_id: AssignmentId,
        location: Location,
        action: ResponseAction | str,
        notes: str | None = None,
    ) -> ResponseResult:
        try:
            response_action = ResponseAction(action)
        except ValueError:
            return ResponseResult(
                outcome=Outcome.INVALID_STATUS,
                message=f"unsupported action: {action}",
            )

        assignment = self._assignment_repository.get(assignment_id)
        if (
            assignment is None
            or assignment.order_id != order_id
            or assignment.restaurant_id != restaurant_id
        ):
            return ResponseResult(
                outcome=Outcome.NOT_FOUND,
                message=f"assignment {assignment_id} not found for order {order_id}",
            )

        request = AssignmentResponseRequest(
            order_id=order_id,
            restaurant_id=restaurant_id,
            assignment_id=assignment_id,
            location=location,
            action=response_action,
        )
        idempotency_key = f"{assignment_id}:{response_action.value}"
        self._log_request(request, response=None, idempotency_key=idempotency_key)

        webhook_result = self._call_webhook(request)
        record_webhook_call(response_action.value, webhook_result.success)
        self._log_request(
            request,
            response={
                "success": webhook_result.success,
                "error": webhook_result.error,
                "message": webhook_result.message,
                "status_code": webhook_result.status_code,
            },
            idempotency_key=idempotency_key,
        )
        if not webhook_result.success:
            logger.warning(
                "assignment_webhook_failed",
                extra={
                    "order_id": str(order_id),
                    "assignment_id": str(assignment_id),
                    "status_code": webhook_result.status_code,
                },
            )
            return ResponseResult(
                outcome=Outcome.WEBHOOK_FAILED,
                message=webhook_result.error or "webhook request failed",
            )

        now = self._clock.now()
        try:
            claimed = self._assignment_repository.transition_if(
                assignment_id,
                expected=AssignmentStatus.PENDING,
                new_status=response_action.assignment_status,
                responded_at=now,
                notes=notes,
            )
        except Exception:
            logger.exception(
                "assignment_claim_failed",
                extra={"order_id": str(order_id), "assignment_id": str(assignment_id)},
            )
            return ResponseResult(
                outcome=Outcome.LOCAL_WRITE_FAILED,
                message="failed to record the response locally",
            )
        if not claimed:
            record_race_lost("assignment_response")
            return self._lost_race(order_id, assignment_id)

        record_assignment_outcome(response_action.assignment_status.value)
        self._coordinator.append_assignment_history(
            order_id=order_id,
            assignment_id=assignment_id,
            restaurant_id=restaurant_id,
            status=response_action.assignment_status,
            notes=notes,
        )

        details: dict[str, Any] = {
            "assignment_id": str(assignment_id),
            "action": response_action.value,
            "latitude": location.latitude,
            "longitude": location.longitude,
            "webhook_message": webhook_result.message,
        }
        if response_action == ResponseAction.ACCEPT:
            return self._win(order_id, restaurant_id, assignment_id, details, idempotency_key)

        self._history_ledger.record_idempotent(
            order_id=order_id,
            status=OrderStatus.RESTAURANT_REJECTED.value,
            idempotency_key=idempotency_key,
            restaurant_id=restaurant_id,
            details=details,
            actor_kind=ActorKind.RESTAURANT,
        )
        return self._after_reject(order_id)

    def _win(
        self,
        order_id: OrderId,
        restaurant_id: RestaurantId,
        assignment_id: AssignmentId,
        details: dict[str, Any],
        idempotency_key: str,
    ) -> ResponseResult:
        result = self._coordinator.complete_acceptance(
            order_id=order_id,
            restaurant_id=restaurant_id,
            assignment_id=assignment_id,
            metadata=details,
            idempotency_key=idempotency_key,
        )
        if result.outcome in (Outcome.OK, Outcome.ALREADY_ACCEPTED, Outcome.LOCAL_WRITE_FAILED):
            return result
        # The webhook already acknowledged the acceptance; any local miss is
        # reported as a local write failure.
        return replace(result, outcome=Outcome.LOCAL_WRITE_FAILED)

    def _after_reject(self, order_id: OrderId) -> ResponseResult:
        try:
            pending = self._assignment_repository.list_for_order(
                order_id, AssignmentStatus.PENDING
            )
            accepted = self._assignment_repository.list_for_order(
                order_id, AssignmentStatus.ACCEPTED
            )
        except Exception:
            logger.exception("order_reclaim_lookup_failed", extra={"order_id": str(order_id)})
            return ResponseResult(outcome=Outcome.OK)
        if pending or accepted:
            return ResponseResult(outcome=Outcome.OK)

        status_result = self._coordinator.update_status(
            order_id=order_id,
            new_status=OrderStatus.NO_RESTAURANT_ACCEPTED,
            metadata={"reason": ALL_REJECTED_REASON},
            idempotency_key=no_restaurant_key(order_id),
        )
        if not status_result.success:
            logger.warning(
                "order_reclaim_failed",
                extra={"order_id": str(order_id), "outcome": status_result.outcome.value},
            )
        return ResponseResult(outcome=Outcome.OK, order=status_result.order)

    def _lost_race(self, order_id: OrderId, assignment_id: AssignmentId) -> ResponseResult:
        accepted = self._assignment_repository.list_for_order(order_id, AssignmentStatus.ACCEPTED)
        if any(item.assignment_id != assignment_id for item in accepted):
            return ResponseResult(outcome=Outcome.ALREADY_ACCEPTED, message=ALREADY_ACCEPTED_MESSAGE)
        current = self._assignment_repository.get(assignment_id)
        state = current.status.value if current is not None else "missing"
        return ResponseResult(
            outcome=Outcome.CONFLICT,
            message=f"assignment {assignment_id} is no longer pending (status={state})",
        )

    def _call_webhook(self, request: AssignmentResponseRequest) -> WebhookResult:
        try:
            return self._webhook.send_response(request)
        except Exception as exc:
            logger.exception(
                "assignment_webhook_error",
                extra={"order_id": str(request.order_id)},
            )
            return WebhookResult(success=False, error=f"Failed to call webhook: {exc}")

    def _log_request(
        self,
        request: AssignmentResponseRequest,
        response: dict[str, Any] | None,
        idempotency_key: str,
    ) -> None:
        entry = RequestLogEntry(
            log_id=f"rql_{uuid4().hex[:12]}",
            url=self._webhook.url,
            payload=request.to_payload(),
            created_at=self._clock.now(),
            response=response,
            idempotency_key=idempotency_key,
        )
        best_effort(
            "request_log_failed",
            self._request_log_repository.add,
            entry,
            extra={"order_id": str(request.order_id)},
        )

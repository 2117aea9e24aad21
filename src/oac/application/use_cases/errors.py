from __future__ import annotations

from oac.application.use_cases.outcomes import Outcome


class OrderNotFoundError(Exception):
    pass


class AssignmentNotFoundError(Exception):
    pass


class InvalidStatusRequestError(Exception):
    pass


class InvalidOrderTransitionError(Exception):
    pass


class AssignmentConflictError(Exception):
    pass


class OrderAlreadyAcceptedError(Exception):
    pass


class WebhookFailedError(Exception):
    pass


class LocalWriteFailedError(Exception):
    pass


class CoordinationFailedError(Exception):
    pass


_OUTCOME_ERRORS: dict[Outcome, type[Exception]] = {
    Outcome.NOT_FOUND: OrderNotFoundError,
    Outcome.INVALID_STATUS: InvalidStatusRequestError,
    Outcome.INVALID_TRANSITION: InvalidOrderTransitionError,
    Outcome.CONFLICT: AssignmentConflictError,
    Outcome.ALREADY_ACCEPTED: OrderAlreadyAcceptedError,
    Outcome.WEBHOOK_FAILED: WebhookFailedError,
    Outcome.LOCAL_WRITE_FAILED: LocalWriteFailedError,
    Outcome.FAILED: CoordinationFailedError,
}


def raise_for_outcome(
    outcome: Outcome,
    message: str | None,
    not_found: type[Exception] = OrderNotFoundError,
) -> None:
    if outcome == Outcome.OK:
        return
    exc_cls = not_found if outcome == Outcome.NOT_FOUND else _OUTCOME_ERRORS[outcome]
    raise exc_cls(message or outcome.value)

from __future__ import annotations

import logging
from typing import Any, cast

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from oac.api.middleware.request_id import get_request_id
from oac.application.use_cases.errors import (
    AssignmentConflictError,
    AssignmentNotFoundError,
    CoordinationFailedError,
    InvalidOrderTransitionError,
    InvalidStatusRequestError,
    LocalWriteFailedError,
    OrderAlreadyAcceptedError,
    OrderNotFoundError,
    WebhookFailedError,
)

logger = logging.getLogger(__name__)


def _error_response(
    *,
    status_code: int,
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": {
                "code": code,
                "message": message,
                "details": details or {},
            },
            "requestId": get_request_id(),
        },
    )


def _exception_handler(status_code: int, code: str):
    async def handler(request: Request, exc: Exception) -> JSONResponse:
        if status_code >= 500:
            logger.error(
                "request_failed",
                extra={"path": request.url.path, "status_code": status_code, "outcome": code},
            )
        details = getattr(exc, "details", None)
        return _error_response(
            status_code=status_code,
            code=code,
            message=str(exc),
            details=details if isinstance(details, dict) else None,
        )

    return handler


async def _http_exception_handler(_: Request, exc: Exception) -> JSONResponse:
    http_exc = cast(StarletteHTTPException, exc)
    message = str(http_exc.detail) if http_exc.detail else "request failed"
    code = "HTTP_ERROR"
    if http_exc.status_code == 404:
        code = "NOT_FOUND"
    elif http_exc.status_code == 400:
        code = "BAD_REQUEST"
    elif http_exc.status_code == 409:
        code = "CONFLICT"
    return _error_response(
        status_code=http_exc.status_code,
        code=code,
        message=message,
    )


async def _validation_exception_handler(_: Request, exc: Exception) -> JSONResponse:
    validation_exc = cast(RequestValidationError, exc)
    return _error_response(
        status_code=400,
        code="INVALID_REQUEST",
        message="request validation failed",
        details={"errors": validation_exc.errors()},
    )


def register_exception_handlers(app: FastAPI) -> None:
    mappings: list[tuple[type[Exception], int, str]] = [
        (OrderNotFoundError, 404, "ORDER_NOT_FOUND"),
        (AssignmentNotFoundError, 404, "ASSIGNMENT_NOT_FOUND"),
        (InvalidStatusRequestError, 400, "INVALID_STATUS"),
        (InvalidOrderTransitionError, 409, "INVALID_ORDER_TRANSITION"),
        (AssignmentConflictError, 409, "ASSIGNMENT_CONFLICT"),
        (OrderAlreadyAcceptedError, 409, "ORDER_ALREADY_ACCEPTED"),
        (WebhookFailedError, 502, "WEBHOOK_FAILED"),
        (LocalWriteFailedError, 500, "LOCAL_WRITE_FAILED"),
        (CoordinationFailedError, 500, "COORDINATION_FAILED"),
    ]

    for exc_cls, status_code, code in mappings:
        app.add_exception_handler(exc_cls, _exception_handler(status_code, code))

    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)
    app.add_exception_handler(RequestValidationError, _validation_exception_handler)

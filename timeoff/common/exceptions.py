"""Custom exceptions and RFC 7807 Problem Detail error handlers."""

from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

BASE_ERROR_URI = "https://timeoff.management/errors"
GENERIC_DETAIL = "Something went wrong while processing the request."


# ── Exception hierarchy ─────────────────────────────────────────────

class AppException(Exception):
    """Base for all application exceptions → RFC 7807 JSON.

    ``show_to_user`` tells the HTTP layer whether ``detail`` may be
    returned verbatim; when it is False a generic message is sent and the
    real detail only goes to the log.
    """

    show_to_user: bool = True

    def __init__(
        self,
        status_code: int,
        error_type: str,
        title: str,
        detail: str,
        errors: Optional[dict[str, Any]] = None,
        *,
        show_to_user: Optional[bool] = None,
    ) -> None:
        self.status_code = status_code
        self.error_type = error_type
        self.title = title
        self.detail = detail
        self.errors = errors
        if show_to_user is not None:
            self.show_to_user = show_to_user
        super().__init__(detail)


class NotFoundException(AppException):
    """404 — entity not found."""

    def __init__(self, entity_type: str, entity_id: Any) -> None:
        super().__init__(
            status_code=404,
            error_type="not-found",
            title=f"{entity_type} Not Found",
            detail=f"{entity_type} with id '{entity_id}' does not exist.",
        )


class ForbiddenException(AppException):
    """403 — insufficient permissions."""

    def __init__(
        self,
        detail: str = "You do not have permission to perform this action.",
    ) -> None:
        super().__init__(
            status_code=403,
            error_type="forbidden",
            title="Forbidden",
            detail=detail,
        )


class ValidationException(AppException):
    """422 — business-logic validation failures."""

    def __init__(self, errors: dict[str, list[str]]) -> None:
        super().__init__(
            status_code=422,
            error_type="validation-error",
            title="Validation Error",
            detail="One or more fields failed validation.",
            errors=errors,
        )


# ── Domain errors ───────────────────────────────────────────────────

class InvalidTransition(AppException):
    """409 — the leave's current status does not permit the action."""

    def __init__(self, action: str, status_label: str) -> None:
        self.action = action
        self.status_label = status_label
        super().__init__(
            status_code=409,
            error_type="invalid-transition",
            title="Invalid Transition",
            detail=f"Cannot {action.replace('_', ' ')} a leave request that is {status_label}.",
        )


class LeaveTypeMismatch(AppException):
    """422 — leave type belongs to a different company."""

    def __init__(self, leave_type_id: Any) -> None:
        super().__init__(
            status_code=422,
            error_type="leave-type-mismatch",
            title="Leave Type Mismatch",
            detail=f"Leave type '{leave_type_id}' is not available in this company.",
            errors={"leave_type_id": ["Unknown leave type."]},
        )


class BusinessRuleViolation(AppException):
    """409 — a company rule forbids the operation (e.g. removing an admin)."""

    def __init__(self, detail: str) -> None:
        super().__init__(
            status_code=409,
            error_type="business-rule",
            title="Operation Not Allowed",
            detail=detail,
        )


class ScheduleInconsistency(AppException):
    """500 — stored schedules contradict the one-effective-schedule rule."""

    def __init__(self, user_id: Any, count: int) -> None:
        super().__init__(
            status_code=500,
            error_type="schedule-inconsistency",
            title="Schedule Inconsistency",
            detail=f"User '{user_id}' resolves to {count} schedules.",
            show_to_user=False,
        )


# ── RFC 7807 builder ────────────────────────────────────────────────

def _build_problem_detail(exc: AppException, request: Request) -> dict[str, Any]:
    body: dict[str, Any] = {
        "type": f"{BASE_ERROR_URI}/{exc.error_type}",
        "title": exc.title,
        "status": exc.status_code,
        "detail": exc.detail if exc.show_to_user else GENERIC_DETAIL,
        "instance": str(request.url.path),
    }
    if exc.errors and exc.show_to_user:
        body["errors"] = exc.errors
    return body


# ── FastAPI handlers ────────────────────────────────────────────────

async def _handle_app_exception(
    request: Request,
    exc: AppException,
) -> JSONResponse:
    if not exc.show_to_user:
        logger.error(
            "Internal domain error on %s: %s", request.url.path, exc.detail,
        )
    return JSONResponse(
        status_code=exc.status_code,
        content=_build_problem_detail(exc, request),
        media_type="application/problem+json",
    )


async def _handle_validation_error(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    field_errors: dict[str, list[str]] = {}
    for err in exc.errors():
        loc = err.get("loc", ())
        name = (
            ".".join(str(p) for p in loc[1:])
            if len(loc) > 1
            else str(loc[0]) if loc else "unknown"
        )
        field_errors.setdefault(name, []).append(err.get("msg", "Invalid value"))

    return JSONResponse(
        status_code=422,
        content={
            "type": f"{BASE_ERROR_URI}/validation-error",
            "title": "Validation Error",
            "status": 422,
            "detail": "Request validation failed.",
            "instance": str(request.url.path),
            "errors": field_errors,
        },
        media_type="application/problem+json",
    )


# ── Registration helper (called from main.py) ──────────────────────

def register_exception_handlers(app: FastAPI) -> None:
    """Attach all custom exception handlers to the FastAPI app."""
    app.add_exception_handler(AppException, _handle_app_exception)          # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _handle_validation_error)  # type: ignore[arg-type]

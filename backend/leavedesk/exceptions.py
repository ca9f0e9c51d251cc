from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response schema."""

    error: str
    detail: str | None = None
    status_code: int
    details: dict[str, Any] | None = None


class AppError(Exception):
    """Base application exception."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.status_code = status_code
        self.details = details
        super().__init__(self.message)


# ---------------------------------------------------------------------------
# Engine errors
# ---------------------------------------------------------------------------


class InvalidRangeError(AppError):
    """The requested date range or marker combination cannot be booked."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, status.HTTP_400_BAD_REQUEST, details)


class ConflictError(AppError):
    """Another non-rejected leave day already claims one of the requested dates."""

    def __init__(self, conflict_date: date, existing_status: str) -> None:
        self.conflict_date = conflict_date
        self.existing_status = existing_status
        super().__init__(
            f"Leave already exists on {conflict_date.isoformat()} with status {existing_status}",
            status.HTTP_409_CONFLICT,
            {"date": conflict_date.isoformat(), "existing_status": existing_status},
        )


class InsufficientBalanceError(AppError):
    def __init__(self, leave_type: str, available: Decimal, required: Decimal) -> None:
        self.available = available
        self.required = required
        super().__init__(
            f"Insufficient {leave_type} balance: available {available}, required {required}",
            status.HTTP_400_BAD_REQUEST,
            {"leave_type": leave_type, "available": str(available), "required": str(required)},
        )


class MonthlyCapExceededError(AppError):
    def __init__(self, month: str, used: Decimal, requested: Decimal, limit: Decimal) -> None:
        self.month = month
        super().__init__(
            f"Monthly limit of {limit} days exceeded for {month}: {used} already booked, {requested} requested",
            status.HTTP_400_BAD_REQUEST,
            {"month": month, "used": str(used), "requested": str(requested), "limit": str(limit)},
        )


class PriorNoticeViolationError(AppError):
    def __init__(self, message: str, required_notice_days: int, notice_days: int) -> None:
        super().__init__(
            message,
            status.HTTP_400_BAD_REQUEST,
            {"required_notice_days": required_notice_days, "notice_days": notice_days},
        )


class AlreadyFinalizedError(AppError):
    """The request has no pending days left and can no longer change."""

    def __init__(self, message: str = "Leave request has no pending days") -> None:
        super().__init__(message, status.HTTP_409_CONFLICT)


class SelfApprovalError(AppError):
    def __init__(self) -> None:
        super().__init__("You cannot decide on your own leave request", status.HTTP_403_FORBIDDEN)


class TransientError(AppError):
    """Retryable infrastructure failure (lock wait, timeout, dropped connection)."""

    def __init__(self, message: str = "Operation timed out, please retry") -> None:
        super().__init__(message, status.HTTP_503_SERVICE_UNAVAILABLE, {"retryable": True})


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


async def _app_exception_handler(request: Request, exc: AppError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=type(exc).__name__,
            detail=exc.message,
            status_code=exc.status_code,
            details=exc.details,
        ).model_dump(),
    )


async def _validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=ErrorResponse(
            error="ValidationError",
            detail=str(exc.errors()),
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        ).model_dump(),
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Register exception handlers on the application."""
    app.add_exception_handler(AppError, _app_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _validation_exception_handler)  # type: ignore[arg-type]

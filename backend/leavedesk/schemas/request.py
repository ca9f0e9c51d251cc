# ruff: noqa: TC001, TC003
from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Self

from pydantic import BaseModel, Field, model_validator

from leavedesk.models.enums import (
    DayStatus,
    DayType,
    Decision,
    EmployeeRole,
    HalfDayMarker,
    LeaveType,
    RequestStatus,
)

# ---------------------------------------------------------------------------
# Request payloads
# ---------------------------------------------------------------------------


class ApplyLeavePayload(BaseModel):
    """Request body for applying for leave.

    ``employee_id`` defaults to the caller; HR and super admins may file on
    behalf of someone else.
    """

    employee_id: uuid.UUID | None = None
    leave_type: LeaveType
    start_date: date
    end_date: date
    start_marker: HalfDayMarker = HalfDayMarker.FULL
    end_marker: HalfDayMarker = HalfDayMarker.FULL
    reason: str | None = Field(default=None, max_length=2000)
    attachment_ref: str | None = Field(default=None, max_length=1024)


class EditLeavePayload(BaseModel):
    """Request body for editing a still-pending leave request. Replaces the whole day set."""

    leave_type: LeaveType
    start_date: date
    end_date: date
    start_marker: HalfDayMarker = HalfDayMarker.FULL
    end_marker: HalfDayMarker = HalfDayMarker.FULL
    reason: str | None = Field(default=None, max_length=2000)
    attachment_ref: str | None = Field(default=None, max_length=1024)


class DecisionPayload(BaseModel):
    """Request body for approve/reject/partial-approve decisions."""

    decision: Decision
    # When given, must name at least one day; omit it to cover every pending day.
    affected_dates: list[date] | None = Field(default=None, min_length=1)
    comment: str | None = Field(default=None, max_length=1000)

    @model_validator(mode="after")
    def _validate_affected_dates(self) -> Self:
        if self.decision == Decision.PARTIAL_APPROVE and self.affected_dates is None:
            msg = "affected_dates is required for partial_approve"
            raise ValueError(msg)
        return self


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class LeaveDayResponse(BaseModel):
    """A single day of a leave request."""

    leave_date: date
    day_type: DayType
    day_status: DayStatus
    rejection_reason: str | None
    decided_by: uuid.UUID | None
    decided_at: datetime | None


class RequestResponse(BaseModel):
    """Response schema for a leave request with its days."""

    id: uuid.UUID
    employee_id: uuid.UUID
    leave_type: LeaveType
    applied_date: date
    start_date: date
    end_date: date
    start_marker: HalfDayMarker
    end_marker: HalfDayMarker
    reason: str | None
    attachment_ref: str | None
    current_status: RequestStatus
    no_of_days: Decimal
    revision: int
    last_actor_id: uuid.UUID | None
    last_actor_role: EmployeeRole | None
    last_comment: str | None
    last_action_at: datetime | None
    created_at: datetime
    days: list[LeaveDayResponse]


class RequestListResponse(BaseModel):
    """Paginated list of leave requests."""

    items: list[RequestResponse]
    total: int

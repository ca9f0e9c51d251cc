# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal

import sqlalchemy as sa
from sqlmodel import Field

from leavedesk.models.base import LEAVE_AMOUNT, TimestampMixin, UUIDBase, _now_utc
from leavedesk.models.enums import DayStatus, HalfDayMarker, RequestStatus


class LeaveRequest(UUIDBase, TimestampMixin, table=True):
    """Leave request header. Its status is always reduced from its days."""

    __tablename__ = "leave_request"
    __table_args__ = (sa.Index("ix_leave_request_employee_status", "employee_id", "current_status"),)

    employee_id: uuid.UUID = Field(
        sa_column=sa.Column(sa.Uuid, sa.ForeignKey("employee.id", ondelete="CASCADE"), nullable=False, index=True),
    )
    leave_type: str = Field(max_length=50)
    applied_date: date
    start_date: date
    end_date: date = Field(index=True)
    start_marker: str = Field(default=HalfDayMarker.FULL, max_length=20)
    end_marker: str = Field(default=HalfDayMarker.FULL, max_length=20)
    reason: str | None = None
    attachment_ref: str | None = Field(default=None, max_length=1024)
    current_status: str = Field(
        default=RequestStatus.PENDING, max_length=50, sa_column_kwargs={"server_default": "pending"}
    )
    no_of_days: Decimal = Field(sa_type=LEAVE_AMOUNT)
    revision: int = Field(default=1, sa_column_kwargs={"server_default": "1"})
    last_actor_id: uuid.UUID | None = None
    last_actor_role: str | None = Field(default=None, max_length=50)
    last_comment: str | None = None
    last_action_at: datetime | None = Field(default=None, sa_type=sa.DateTime(timezone=True))  # ty: ignore[invalid-argument-type]
    updated_at: datetime = Field(  # type: ignore[call-overload]
        default_factory=_now_utc,
        sa_type=sa.DateTime(timezone=True),
        sa_column_kwargs={"server_default": sa.func.now(), "onupdate": _now_utc},
    )


class LeaveDay(UUIDBase, table=True):
    """One billable calendar day of a leave request, adjudicated independently."""

    __tablename__ = "leave_day"
    __table_args__ = (
        sa.Index("ix_leave_day_employee_date", "employee_id", "leave_date"),
        sa.UniqueConstraint("request_id", "leave_date", name="uq_leave_day_request_date"),
    )

    request_id: uuid.UUID = Field(
        sa_column=sa.Column(sa.Uuid, sa.ForeignKey("leave_request.id", ondelete="CASCADE"), nullable=False, index=True),
    )
    employee_id: uuid.UUID
    leave_type: str = Field(max_length=50)
    leave_date: date
    day_type: str = Field(max_length=20)
    day_status: str = Field(default=DayStatus.PENDING, max_length=20, sa_column_kwargs={"server_default": "pending"})
    rejection_reason: str | None = None
    decided_by: uuid.UUID | None = None
    decided_at: datetime | None = Field(default=None, sa_type=sa.DateTime(timezone=True))  # ty: ignore[invalid-argument-type]

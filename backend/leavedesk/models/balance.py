# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from leavedesk.models.base import LEAVE_AMOUNT, _now_utc


class LeaveBalance(SQLModel, table=True):
    """Running balance per employee and leave type, updated transactionally with ledger writes."""

    __tablename__ = "leave_balance"
    __table_args__ = (
        sa.PrimaryKeyConstraint("employee_id", "leave_type"),
        sa.CheckConstraint("balance >= 0", name="ck_leave_balance_non_negative"),
    )

    employee_id: uuid.UUID = Field(
        sa_column=sa.Column(sa.Uuid, sa.ForeignKey("employee.id", ondelete="CASCADE"), nullable=False),
    )
    leave_type: str = Field(max_length=50)
    balance: Decimal = Field(default=Decimal(0), sa_type=LEAVE_AMOUNT, sa_column_kwargs={"server_default": "0"})
    updated_at: datetime = Field(  # type: ignore[call-overload]
        default_factory=_now_utc,
        sa_type=sa.DateTime(timezone=True),
        sa_column_kwargs={"server_default": sa.func.now(), "onupdate": _now_utc},
    )
    version: int = Field(default=1, sa_column_kwargs={"server_default": "1"})

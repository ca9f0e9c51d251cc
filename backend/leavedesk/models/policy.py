# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal

import sqlalchemy as sa
from sqlmodel import Field

from leavedesk.models.base import LEAVE_AMOUNT, TimestampMixin, UUIDBase


class LeavePolicyConfig(UUIDBase, TimestampMixin, table=True):
    """Per-role, per-leave-type leave rules, versioned by effective_from."""

    __tablename__ = "leave_policy_config"
    __table_args__ = (
        sa.UniqueConstraint("role", "leave_type", "effective_from", name="uq_policy_role_type_effective"),
    )

    role: str = Field(max_length=50, index=True)
    leave_type: str = Field(max_length=50, index=True)
    annual_credit: Decimal = Field(default=Decimal(0), sa_type=LEAVE_AMOUNT)
    # <= 0 means uncapped.
    annual_max: Decimal = Field(default=Decimal(0), sa_type=LEAVE_AMOUNT)
    carry_forward_limit: Decimal = Field(default=Decimal(0), sa_type=LEAVE_AMOUNT)
    # <= 0 means no monthly cap.
    max_leave_per_month: Decimal = Field(default=Decimal(0), sa_type=LEAVE_AMOUNT)
    anniversary_3_year_bonus: Decimal = Field(default=Decimal(0), sa_type=LEAVE_AMOUNT)
    anniversary_5_year_bonus: Decimal = Field(default=Decimal(0), sa_type=LEAVE_AMOUNT)
    year_opening_balance: Decimal | None = Field(default=None, sa_type=LEAVE_AMOUNT)
    effective_from: date
    created_by: uuid.UUID | None = None

# ruff: noqa: TC001, TC003
from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from leavedesk.models.enums import EmployeeRole, LeaveType


class UpsertPolicyRequest(BaseModel):
    """Request body for creating a policy version (or correcting one with the same effective_from)."""

    role: EmployeeRole
    leave_type: LeaveType
    annual_credit: Decimal = Field(default=Decimal(0), ge=0, max_digits=8, decimal_places=2)
    annual_max: Decimal = Field(default=Decimal(0), max_digits=8, decimal_places=2)
    carry_forward_limit: Decimal = Field(default=Decimal(0), ge=0, max_digits=8, decimal_places=2)
    max_leave_per_month: Decimal = Field(default=Decimal(0), max_digits=8, decimal_places=2)
    anniversary_3_year_bonus: Decimal = Field(default=Decimal(0), ge=0, max_digits=8, decimal_places=2)
    anniversary_5_year_bonus: Decimal = Field(default=Decimal(0), ge=0, max_digits=8, decimal_places=2)
    year_opening_balance: Decimal | None = Field(default=None, ge=0, max_digits=8, decimal_places=2)
    effective_from: date


class PolicyResponse(BaseModel):
    """Response schema for a policy version."""

    id: uuid.UUID
    role: EmployeeRole
    leave_type: LeaveType
    annual_credit: Decimal
    annual_max: Decimal
    carry_forward_limit: Decimal
    max_leave_per_month: Decimal
    anniversary_3_year_bonus: Decimal
    anniversary_5_year_bonus: Decimal
    year_opening_balance: Decimal | None
    effective_from: date
    created_by: uuid.UUID | None
    created_at: datetime


class PolicyListResponse(BaseModel):
    """List of policy versions, newest effective_from first."""

    items: list[PolicyResponse]
    total: int

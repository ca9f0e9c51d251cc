# ruff: noqa: TC001, TC003
from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field

from leavedesk.models.enums import LeaveType, LedgerEntryType, LedgerSourceType

# ---------------------------------------------------------------------------
# Balance response schemas
# ---------------------------------------------------------------------------


class BalanceResponse(BaseModel):
    """Balance for a single leave type."""

    leave_type: LeaveType
    balance: Decimal
    updated_at: datetime | None


class BalanceListResponse(BaseModel):
    """All leave balances for an employee."""

    employee_id: uuid.UUID
    items: list[BalanceResponse]


# ---------------------------------------------------------------------------
# Ledger response schemas
# ---------------------------------------------------------------------------


class LedgerEntryResponse(BaseModel):
    """A single ledger entry."""

    id: uuid.UUID
    employee_id: uuid.UUID
    leave_type: LeaveType
    entry_type: LedgerEntryType
    amount: Decimal
    balance_after: Decimal
    effective_date: date
    source_type: LedgerSourceType
    source_id: str
    idempotency_key: str
    metadata_json: dict[str, Any] | None
    created_at: datetime


class LedgerListResponse(BaseModel):
    """Paginated ledger entries."""

    items: list[LedgerEntryResponse]
    total: int


# ---------------------------------------------------------------------------
# Adjustment request schema
# ---------------------------------------------------------------------------


class CreateAdjustmentRequest(BaseModel):
    """Request body for creating an admin balance adjustment."""

    employee_id: uuid.UUID
    leave_type: LeaveType
    amount: Decimal = Field(
        max_digits=8,
        decimal_places=2,
        description="Signed amount of days: positive to add, negative to deduct",
    )
    reason: str = Field(min_length=1, max_length=1000)

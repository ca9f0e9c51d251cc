# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal
from typing import Any

import sqlalchemy as sa
from sqlmodel import Field

from leavedesk.models.base import LEAVE_AMOUNT, TimestampMixin, UUIDBase


class LeaveLedgerEntry(UUIDBase, TimestampMixin, table=True):
    """Append-only ledger entry that records every balance-affecting event."""

    __tablename__ = "leave_ledger_entry"
    __table_args__ = (
        sa.Index("ix_ledger_employee_type", "employee_id", "leave_type"),
        sa.UniqueConstraint("idempotency_key", name="uq_ledger_idempotency"),
    )

    employee_id: uuid.UUID = Field(
        sa_column=sa.Column(sa.Uuid, sa.ForeignKey("employee.id", ondelete="CASCADE"), nullable=False, index=True),
    )
    leave_type: str = Field(max_length=50)
    entry_type: str = Field(max_length=50)
    amount: Decimal = Field(sa_type=LEAVE_AMOUNT)
    balance_after: Decimal = Field(sa_type=LEAVE_AMOUNT)
    effective_date: date
    source_type: str = Field(max_length=50)
    source_id: str = Field(max_length=255)
    idempotency_key: str = Field(max_length=255)
    metadata_json: dict[str, Any] | None = Field(default=None, sa_type=sa.JSON)

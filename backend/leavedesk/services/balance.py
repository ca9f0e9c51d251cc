"""Balance ledger: the only place balances change.

Every mutation appends a LeaveLedgerEntry carrying a unique idempotency key
and moves the LeaveBalance row under a row lock in the same transaction.
Replaying a key is a no-op, so scheduler restarts and retried requests never
double count.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, select, update
from sqlmodel import col

from leavedesk.exceptions import AppError, InsufficientBalanceError, TransientError
from leavedesk.models.balance import LeaveBalance
from leavedesk.models.enums import (
    AuditAction,
    AuditEntityType,
    LeaveType,
    LedgerEntryType,
    LedgerSourceType,
)
from leavedesk.models.ledger import LeaveLedgerEntry
from leavedesk.schemas.balance import (
    BalanceListResponse,
    BalanceResponse,
    LedgerEntryResponse,
    LedgerListResponse,
)
from leavedesk.services.audit import model_to_audit_dict, write_audit_log
from leavedesk.services.employee import ensure_can_view, get_employee_or_404, lock_employee
from leavedesk.services.transaction import operation_scope

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from leavedesk.schemas.auth import AuthContext
    from leavedesk.schemas.balance import CreateAdjustmentRequest

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _build_ledger_entry_response(entry: LeaveLedgerEntry) -> LedgerEntryResponse:
    """Map a ledger entry model to its response schema."""
    return LedgerEntryResponse(
        id=entry.id,
        employee_id=entry.employee_id,
        leave_type=LeaveType(entry.leave_type),
        entry_type=LedgerEntryType(entry.entry_type),
        amount=entry.amount,
        balance_after=entry.balance_after,
        effective_date=entry.effective_date,
        source_type=LedgerSourceType(entry.source_type),
        source_id=entry.source_id,
        idempotency_key=entry.idempotency_key,
        metadata_json=entry.metadata_json,
        created_at=entry.created_at,
    )


async def _get_balance_row_for_update(
    session: AsyncSession,
    employee_id: uuid.UUID,
    leave_type: LeaveType | str,
) -> LeaveBalance | None:
    result = await session.execute(
        select(LeaveBalance)
        .where(
            col(LeaveBalance.employee_id) == employee_id,
            col(LeaveBalance.leave_type) == str(leave_type),
        )
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def read_balance_for_update(
    session: AsyncSession,
    employee_id: uuid.UUID,
    leave_type: LeaveType | str,
) -> Decimal:
    """Current balance under a row lock. A missing row reads as zero."""
    row = await _get_balance_row_for_update(session, employee_id, leave_type)
    return row.balance if row is not None else Decimal(0)


async def ledger_key_exists(session: AsyncSession, idempotency_key: str) -> bool:
    result = await session.execute(
        select(func.count()).select_from(LeaveLedgerEntry).where(col(LeaveLedgerEntry.idempotency_key) == idempotency_key)
    )
    return result.scalar_one() > 0


async def adjust_balance(
    session: AsyncSession,
    *,
    employee_id: uuid.UUID,
    leave_type: LeaveType | str,
    amount: Decimal,
    entry_type: LedgerEntryType,
    source_type: LedgerSourceType,
    source_id: str,
    idempotency_key: str,
    effective_date: date,
    metadata: dict[str, Any] | None = None,
) -> LeaveLedgerEntry | None:
    """Apply a signed balance change exactly once per idempotency key.

    Returns the new ledger entry, or None when the key was already applied.
    Raises InsufficientBalanceError rather than letting the balance go negative.
    """
    if await ledger_key_exists(session, idempotency_key):
        logger.debug("Ledger key %s already applied, skipping", idempotency_key)
        return None

    row = await _get_balance_row_for_update(session, employee_id, leave_type)
    current = row.balance if row is not None else Decimal(0)
    new_balance = current + amount
    if new_balance < 0:
        raise InsufficientBalanceError(str(leave_type), current, -amount)

    if row is None:
        row = LeaveBalance(employee_id=employee_id, leave_type=str(leave_type), balance=new_balance)
        session.add(row)
    else:
        # Compare-and-set on version: a writer that read the row before another
        # transaction committed must not overwrite that change.
        updated = await session.execute(
            update(LeaveBalance)
            .where(
                col(LeaveBalance.employee_id) == employee_id,
                col(LeaveBalance.leave_type) == str(leave_type),
                col(LeaveBalance.version) == row.version,
            )
            .values(balance=new_balance, version=row.version + 1)
        )
        if updated.rowcount != 1:
            logger.warning("Balance %s/%s changed concurrently", employee_id, leave_type)
            raise TransientError("Balance changed concurrently, please retry")

    entry = LeaveLedgerEntry(
        employee_id=employee_id,
        leave_type=str(leave_type),
        entry_type=entry_type.value,
        amount=amount,
        balance_after=new_balance,
        effective_date=effective_date,
        source_type=source_type.value,
        source_id=source_id,
        idempotency_key=idempotency_key,
        metadata_json=metadata,
    )
    session.add(entry)
    await session.flush()
    return entry


async def sum_credits_since(
    session: AsyncSession,
    employee_id: uuid.UUID,
    leave_type: LeaveType | str,
    since: date,
    entry_types: list[LedgerEntryType],
) -> Decimal:
    """Total of positive ledger amounts of the given types effective on or after ``since``."""
    result = await session.execute(
        select(func.coalesce(func.sum(col(LeaveLedgerEntry.amount)), 0)).where(
            col(LeaveLedgerEntry.employee_id) == employee_id,
            col(LeaveLedgerEntry.leave_type) == str(leave_type),
            col(LeaveLedgerEntry.entry_type).in_([t.value for t in entry_types]),
            col(LeaveLedgerEntry.effective_date) >= since,
            col(LeaveLedgerEntry.amount) > 0,
        )
    )
    return Decimal(str(result.scalar_one()))


# ---------------------------------------------------------------------------
# Read path
# ---------------------------------------------------------------------------


async def get_employee_balances(
    session: AsyncSession,
    auth: AuthContext,
    employee_id: uuid.UUID,
) -> BalanceListResponse:
    """Get the balance of every leave type for an employee."""
    employee = await get_employee_or_404(session, employee_id)
    ensure_can_view(auth, employee)

    result = await session.execute(select(LeaveBalance).where(col(LeaveBalance.employee_id) == employee_id))
    rows = {row.leave_type: row for row in result.scalars().all()}

    items: list[BalanceResponse] = []
    for leave_type in LeaveType:
        row = rows.get(leave_type.value)
        items.append(
            BalanceResponse(
                leave_type=leave_type,
                balance=row.balance if row is not None else Decimal(0),
                updated_at=row.updated_at if row is not None else None,
            )
        )
    return BalanceListResponse(employee_id=employee_id, items=items)


async def get_employee_ledger(
    session: AsyncSession,
    auth: AuthContext,
    employee_id: uuid.UUID,
    leave_type: LeaveType | None = None,
    offset: int = 0,
    limit: int = 50,
) -> LedgerListResponse:
    """Get paginated ledger entries for an employee, newest first."""
    employee = await get_employee_or_404(session, employee_id)
    ensure_can_view(auth, employee)

    base_filter = [col(LeaveLedgerEntry.employee_id) == employee_id]
    if leave_type is not None:
        base_filter.append(col(LeaveLedgerEntry.leave_type) == leave_type.value)

    count_result = await session.execute(select(func.count()).select_from(LeaveLedgerEntry).where(*base_filter))
    total = count_result.scalar_one()

    entries_result = await session.execute(
        select(LeaveLedgerEntry)
        .where(*base_filter)
        .order_by(
            col(LeaveLedgerEntry.created_at).desc(),
            col(LeaveLedgerEntry.effective_date).desc(),
        )
        .offset(offset)
        .limit(limit)
    )
    entries = list(entries_result.scalars().all())

    return LedgerListResponse(
        items=[_build_ledger_entry_response(e) for e in entries],
        total=total,
    )


# ---------------------------------------------------------------------------
# Write path: admin adjustments
# ---------------------------------------------------------------------------


async def create_adjustment(
    session: AsyncSession,
    auth: AuthContext,
    payload: CreateAdjustmentRequest,
    today: date,
) -> LedgerEntryResponse:
    """Create an admin balance adjustment. Deductions may not take the balance below zero."""
    if payload.amount == 0:
        raise AppError("Adjustment amount must be non-zero", status_code=400)

    async with operation_scope(session, "adjustment"):
        await lock_employee(session, payload.employee_id)

        entry_id = uuid.uuid4()
        entry = await adjust_balance(
            session,
            employee_id=payload.employee_id,
            leave_type=payload.leave_type,
            amount=payload.amount,
            entry_type=LedgerEntryType.ADJUSTMENT,
            source_type=LedgerSourceType.ADMIN,
            source_id=str(entry_id),
            idempotency_key=f"adjustment:{entry_id}",
            effective_date=today,
            metadata={"reason": payload.reason, "adjusted_by": str(auth.user_id)},
        )
        if entry is None:
            raise AppError("Duplicate adjustment", status_code=409)

        await write_audit_log(
            session,
            actor_id=auth.user_id,
            entity_type=AuditEntityType.ADJUSTMENT,
            entity_id=entry.id,
            action=AuditAction.CREATE,
            after_json=model_to_audit_dict(entry),
        )

        await session.commit()
    await session.refresh(entry)
    return _build_ledger_entry_response(entry)

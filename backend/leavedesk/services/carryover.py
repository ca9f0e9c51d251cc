"""Year-end processing: carry-forward caps, yearly allowance resets and holiday retention."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING

from leavedesk.models.enums import EmploymentStatus, LeaveType, LedgerEntryType, LedgerSourceType
from leavedesk.services.balance import (
    adjust_balance,
    ledger_key_exists,
    read_balance_for_update,
    sum_credits_since,
)
from leavedesk.services.email import EmailPayload, notify
from leavedesk.services.employee import lock_employee
from leavedesk.services.holiday import prune_holidays_before
from leavedesk.services.policy import get_effective_policy
from leavedesk.services.scheduling import JobRunResult, list_employee_ids
from leavedesk.services.transaction import operation_scope

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.ext.asyncio import AsyncSession

    from leavedesk.services.scheduling import Heartbeat

logger = logging.getLogger(__name__)

# Credits that belong to the new year even when posted in December.
_NEW_YEAR_CREDIT_TYPES = [
    LedgerEntryType.MONTHLY_CREDIT,
    LedgerEntryType.ANNIVERSARY_BONUS,
    LedgerEntryType.JOINING_CREDIT,
]
_CARRY_FORWARD_STATUSES = (EmploymentStatus.ACTIVE, EmploymentStatus.ON_NOTICE)


@dataclass
class CarryForwardLine:
    leave_type: LeaveType
    prior_balance: Decimal
    forfeited: Decimal
    opening_balance: Decimal


@dataclass
class CarryForwardSummary:
    email: str
    name: str
    lines: list[CarryForwardLine] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Pure computation helpers (no DB)
# ---------------------------------------------------------------------------


def compute_forfeit(prior_balance: Decimal, carry_forward_limit: Decimal) -> Decimal:
    """Amount of the prior-year balance above the carry-forward limit. Never negative."""
    return max(Decimal(0), prior_balance - max(Decimal(0), carry_forward_limit))


def is_year_start(target_date: date) -> bool:
    return target_date.month == 1 and target_date.day == 1


# ---------------------------------------------------------------------------
# Carry-forward
# ---------------------------------------------------------------------------


async def _carry_forward_employee(
    session: AsyncSession,
    employee_id: uuid.UUID,
    year_start: date,
) -> CarryForwardSummary | None:
    """Cap each prior-year balance at its carry-forward limit and apply any yearly reset.

    New-year credits already posted (December's run credits January) are
    kept out of the capped amount and survive untouched. The forfeit entry is
    written even when nothing is forfeited: its key records that the year-end
    step ran for this leave type, so a re-run never re-reads a balance the
    yearly reset has already moved.
    """
    employee = await lock_employee(session, employee_id)
    prior_year = year_start.year - 1
    summary = CarryForwardSummary(email=employee.email, name=employee.full_name)

    for leave_type in LeaveType:
        policy = await get_effective_policy(session, employee.role, leave_type, year_start)
        if policy is None:
            continue

        year_end_key = f"carry_forward:{employee.id}:{leave_type.value}:{prior_year}"
        if await ledger_key_exists(session, year_end_key):
            continue

        balance = await read_balance_for_update(session, employee.id, leave_type)
        new_year_credits = await sum_credits_since(
            session, employee.id, leave_type, year_start, _NEW_YEAR_CREDIT_TYPES
        )
        prior = max(Decimal(0), balance - new_year_credits)
        forfeit = compute_forfeit(prior, policy.carry_forward_limit)

        entry = await adjust_balance(
            session,
            employee_id=employee.id,
            leave_type=leave_type,
            amount=Decimal(0) - forfeit,
            entry_type=LedgerEntryType.CARRY_FORWARD_FORFEIT,
            source_type=LedgerSourceType.SYSTEM,
            source_id=str(policy.id),
            idempotency_key=year_end_key,
            effective_date=year_start,
            metadata={
                "prior_balance": str(prior),
                "carry_forward_limit": str(policy.carry_forward_limit),
            },
        )
        if entry is not None:
            balance = entry.balance_after
        changed = forfeit > 0

        if policy.year_opening_balance is not None:
            target = policy.year_opening_balance + new_year_credits
            delta = target - balance
            if delta != 0:
                entry = await adjust_balance(
                    session,
                    employee_id=employee.id,
                    leave_type=leave_type,
                    amount=delta,
                    entry_type=LedgerEntryType.YEAR_OPENING,
                    source_type=LedgerSourceType.SYSTEM,
                    source_id=str(policy.id),
                    idempotency_key=f"year_opening:{employee.id}:{leave_type.value}:{year_start.year}",
                    effective_date=year_start,
                    metadata={"year_opening_balance": str(policy.year_opening_balance)},
                )
                if entry is not None:
                    balance = entry.balance_after
                    changed = True

        if changed:
            summary.lines.append(
                CarryForwardLine(
                    leave_type=leave_type,
                    prior_balance=prior,
                    forfeited=forfeit,
                    opening_balance=balance,
                )
            )

    return summary if summary.lines else None


async def run_carry_forward(
    session: AsyncSession,
    target_date: date,
    heartbeat: Heartbeat | None = None,
) -> JobRunResult:
    """Apply carry-forward caps for the year that just ended. Only fires on January 1st."""
    result = JobRunResult(job="carry-forward", target_date=target_date)
    if not is_year_start(target_date):
        result.ran = False
        return result

    employee_ids = await list_employee_ids(session, _CARRY_FORWARD_STATUSES)

    for employee_id in employee_ids:
        if heartbeat is not None and not await heartbeat(session):
            result.aborted = True
            break
        result.processed += 1
        try:
            async with operation_scope(session, "carry forward"):
                summary = await _carry_forward_employee(session, employee_id, target_date)
                await session.commit()
        except Exception:
            logger.exception("Carry-forward failed for employee %s", employee_id)
            await session.rollback()
            result.errors += 1
            continue

        if summary is None:
            result.skipped += 1
            continue

        result.changed += 1
        await notify(
            summary.email,
            EmailPayload(
                template="carry_forward",
                subject=f"Your leave balances for {target_date.year}",
                data={
                    "name": summary.name,
                    "year": target_date.year,
                    "balances": [
                        {
                            "leave_type": line.leave_type.value,
                            "prior_balance": str(line.prior_balance),
                            "forfeited": str(line.forfeited),
                            "opening_balance": str(line.opening_balance),
                        }
                        for line in summary.lines
                    ],
                },
            ),
        )

    logger.info(
        "Carry-forward into %d: processed=%d changed=%d skipped=%d errors=%d",
        target_date.year,
        result.processed,
        result.changed,
        result.skipped,
        result.errors,
    )
    return result


# ---------------------------------------------------------------------------
# Holiday retention
# ---------------------------------------------------------------------------


async def run_holiday_retention(
    session: AsyncSession,
    target_date: date,
    heartbeat: Heartbeat | None = None,
) -> JobRunResult:
    """Delete holidays from before last year. Only fires on January 1st.

    A single short transaction, so the lease never needs renewing.
    """
    result = JobRunResult(job="holiday-retention", target_date=target_date)
    if not is_year_start(target_date):
        result.ran = False
        return result

    try:
        async with operation_scope(session, "holiday retention"):
            removed = await prune_holidays_before(session, date(target_date.year - 1, 1, 1))
            await session.commit()
    except Exception:
        logger.exception("Holiday retention failed for %s", target_date)
        await session.rollback()
        result.errors += 1
        return result

    result.processed = removed
    result.changed = removed
    return result

"""Accrual engine: monthly pro-rata credits and service anniversary bonuses."""

from __future__ import annotations

import logging
from calendar import monthrange
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlmodel import col

from leavedesk.config import get_settings
from leavedesk.models.employee import Employee
from leavedesk.models.enums import (
    EmployeeRole,
    EmploymentStatus,
    LeaveType,
    LedgerEntryType,
    LedgerSourceType,
)
from leavedesk.services.balance import adjust_balance, ledger_key_exists, read_balance_for_update
from leavedesk.services.days import first_of_next_month, is_working_day, month_key
from leavedesk.services.email import EmailPayload, notify
from leavedesk.services.employee import lock_employee
from leavedesk.services.holiday import load_holiday_dates
from leavedesk.services.policy import get_effective_policy
from leavedesk.services.scheduling import JobRunResult, list_employee_ids, same_day_this_year
from leavedesk.services.transaction import operation_scope

if TYPE_CHECKING:
    import uuid
    from collections.abc import Collection

    from sqlalchemy.ext.asyncio import AsyncSession

    from leavedesk.models.policy import LeavePolicyConfig
    from leavedesk.services.scheduling import Heartbeat

logger = logging.getLogger(__name__)

_CENT = Decimal("0.01")
_ANNIVERSARY_STATUSES = (EmploymentStatus.ACTIVE, EmploymentStatus.ON_NOTICE)


@dataclass
class AnniversaryCredit:
    email: str
    name: str
    years: int
    bonus: Decimal
    balance_after: Decimal


# ---------------------------------------------------------------------------
# Pure computation helpers (no DB)
# ---------------------------------------------------------------------------


def last_working_day_of_month(year: int, month: int, holidays: Collection[date] = ()) -> date:
    """Last date of the month that is neither a weekend nor a holiday."""
    day = date(year, month, monthrange(year, month)[1])
    while not is_working_day(day, EmployeeRole.EMPLOYEE, holidays):
        day -= timedelta(days=1)
    return day


def monthly_credit_amount(annual_credit: Decimal) -> Decimal:
    """One month's share of the annual credit, rounded to the cent."""
    return (annual_credit / 12).quantize(_CENT, rounding=ROUND_HALF_UP)


def apply_annual_cap(current: Decimal, amount: Decimal, annual_max: Decimal) -> Decimal:
    """Clamp ``amount`` so the balance does not exceed ``annual_max``.

    A non-positive ``annual_max`` means uncapped. Returns 0 when the balance
    is already at or above the cap.
    """
    if annual_max <= 0:
        return amount

    headroom = annual_max - current
    if headroom <= 0:
        return Decimal(0)

    return min(amount, headroom)


def due_month_ends(target_date: date, holidays: Collection[date], window_days: int) -> list[date]:
    """Month-end credit triggers falling within ``window_days`` up to ``target_date``, oldest first."""
    earliest = target_date - timedelta(days=window_days)
    due = []
    cursor = earliest.replace(day=1)
    while cursor <= target_date:
        trigger = last_working_day_of_month(cursor.year, cursor.month, holidays)
        if earliest <= trigger <= target_date:
            due.append(trigger)
        cursor = first_of_next_month(cursor)
    return due


def recent_anniversary(joined: date, today: date, window_days: int = 0) -> tuple[date, int] | None:
    """Latest service anniversary within ``window_days`` up to ``today`` as ``(date, years)``, else None."""
    earliest = today - timedelta(days=window_days)
    for year in (today.year, today.year - 1):
        years = year - joined.year
        if years <= 0:
            continue
        anniversary = same_day_this_year(joined, year)
        if earliest <= anniversary <= today:
            return anniversary, years
    return None


def anniversary_bonus(policy: LeavePolicyConfig, years: int) -> Decimal:
    """Bonus for an anniversary: 5-year multiples take precedence over 3-year multiples."""
    if years % 5 == 0:
        return policy.anniversary_5_year_bonus
    if years % 3 == 0:
        return policy.anniversary_3_year_bonus
    return Decimal(0)


# ---------------------------------------------------------------------------
# Joining credit
# ---------------------------------------------------------------------------


def joining_credit_types(joined: date, cutoff_day: int) -> tuple[LeaveType, ...]:
    """Leave types credited for the joining month: every type up to ``cutoff_day``, sick leave only after it."""
    if joined.day <= cutoff_day:
        return tuple(LeaveType)
    return (LeaveType.SICK,)


async def post_joining_credit(session: AsyncSession, employee: Employee) -> Decimal:
    """Credit a new employee one month's share of each accruing leave type.

    Amounts come from the policies in effect on the joining date, the same share
    the month-end run posts. Runs inside the caller's transaction; returns the
    total credited.
    """
    joined = employee.date_of_joining
    total = Decimal(0)

    for leave_type in joining_credit_types(joined, get_settings().joining_credit_cutoff_day):
        policy = await get_effective_policy(session, employee.role, leave_type, joined)
        if policy is None or policy.annual_credit <= 0:
            continue

        amount = monthly_credit_amount(policy.annual_credit)
        entry = await adjust_balance(
            session,
            employee_id=employee.id,
            leave_type=leave_type,
            amount=amount,
            entry_type=LedgerEntryType.JOINING_CREDIT,
            source_type=LedgerSourceType.SYSTEM,
            source_id=str(policy.id),
            idempotency_key=f"joining:{employee.id}:{leave_type.value}",
            effective_date=joined,
            metadata={"joined": joined.isoformat()},
        )
        if entry is not None:
            total += amount

    if total > 0:
        logger.info("Posted joining credit of %s day(s) for employee %s", total, employee.id)
    return total


# ---------------------------------------------------------------------------
# Monthly credit
# ---------------------------------------------------------------------------


async def _credit_employee_months(
    session: AsyncSession,
    employee_id: uuid.UUID,
    triggers: list[date],
    today: date,
) -> bool:
    """Credit every accruing leave type for each due month-end trigger. Returns True if anything was posted."""
    employee = await lock_employee(session, employee_id)
    credited = False

    for trigger in triggers:
        if employee.date_of_joining > trigger:
            continue
        credit_month = first_of_next_month(trigger)

        for leave_type in LeaveType:
            policy = await get_effective_policy(session, employee.role, leave_type, credit_month)
            if policy is None or policy.annual_credit <= 0:
                continue

            key = f"monthly_credit:{employee.id}:{leave_type.value}:{month_key(credit_month)}"
            if await ledger_key_exists(session, key):
                continue

            amount = monthly_credit_amount(policy.annual_credit)
            current = await read_balance_for_update(session, employee.id, leave_type)
            capped = apply_annual_cap(current, amount, policy.annual_max)
            if capped <= 0:
                logger.debug(
                    "Employee %s %s balance at cap %s, no credit", employee.id, leave_type, policy.annual_max
                )
                continue

            entry = await adjust_balance(
                session,
                employee_id=employee.id,
                leave_type=leave_type,
                amount=capped,
                entry_type=LedgerEntryType.MONTHLY_CREDIT,
                source_type=LedgerSourceType.SYSTEM,
                source_id=str(policy.id),
                idempotency_key=key,
                effective_date=credit_month,
                metadata={
                    "posted_on": today.isoformat(),
                    "trigger_date": trigger.isoformat(),
                    "uncapped_amount": str(amount),
                },
            )
            credited = credited or entry is not None

    return credited


async def run_monthly_credits(
    session: AsyncSession,
    target_date: date,
    heartbeat: Heartbeat | None = None,
) -> JobRunResult:
    """Credit next month's pro-rata leave on the last working day of the month.

    A month-end trigger missed within ``accrual_catchup_days`` is posted on a
    later run. Each employee is credited in its own transaction; a failure is
    logged and the run moves on. Re-running for the same month posts nothing new.
    """
    result = JobRunResult(job="monthly-credit", target_date=target_date)
    window = get_settings().accrual_catchup_days

    first_month = (target_date - timedelta(days=window)).replace(day=1)
    month_end = date(target_date.year, target_date.month, monthrange(target_date.year, target_date.month)[1])
    holidays = await load_holiday_dates(session, first_month, month_end)
    triggers = due_month_ends(target_date, holidays, window)
    if not triggers:
        result.ran = False
        return result

    employee_ids = await list_employee_ids(session, [EmploymentStatus.ACTIVE])

    for employee_id in employee_ids:
        if heartbeat is not None and not await heartbeat(session):
            result.aborted = True
            break
        result.processed += 1
        try:
            async with operation_scope(session, "monthly credit"):
                credited = await _credit_employee_months(session, employee_id, triggers, target_date)
                await session.commit()
        except Exception:
            logger.exception("Monthly credit failed for employee %s", employee_id)
            await session.rollback()
            result.errors += 1
            continue

        if credited:
            result.changed += 1
        else:
            result.skipped += 1

    logger.info(
        "Monthly credit for %s complete: processed=%d credited=%d skipped=%d errors=%d",
        ", ".join(month_key(first_of_next_month(trigger)) for trigger in triggers),
        result.processed,
        result.changed,
        result.skipped,
        result.errors,
    )
    return result


# ---------------------------------------------------------------------------
# Anniversary bonus
# ---------------------------------------------------------------------------


async def _credit_anniversary(
    session: AsyncSession,
    employee_id: uuid.UUID,
    today: date,
) -> AnniversaryCredit | None:
    employee = await lock_employee(session, employee_id)
    found = recent_anniversary(employee.date_of_joining, today, get_settings().accrual_catchup_days)
    if found is None:
        return None
    anniversary, years = found

    policy = await get_effective_policy(session, employee.role, LeaveType.CASUAL, anniversary)
    if policy is None:
        return None

    bonus = anniversary_bonus(policy, years)
    if bonus <= 0:
        return None

    entry = await adjust_balance(
        session,
        employee_id=employee.id,
        leave_type=LeaveType.CASUAL,
        amount=bonus,
        entry_type=LedgerEntryType.ANNIVERSARY_BONUS,
        source_type=LedgerSourceType.SYSTEM,
        source_id=str(policy.id),
        idempotency_key=f"anniversary:{employee.id}:{years}y",
        effective_date=anniversary,
        metadata={"years": years, "posted_on": today.isoformat()},
    )
    if entry is None:
        return None

    return AnniversaryCredit(
        email=employee.email,
        name=employee.full_name,
        years=years,
        bonus=bonus,
        balance_after=entry.balance_after,
    )


async def run_anniversary_bonuses(
    session: AsyncSession,
    target_date: date,
    heartbeat: Heartbeat | None = None,
) -> JobRunResult:
    """Credit the casual anniversary bonus to everyone whose service anniversary is today.

    Anniversaries within the last ``accrual_catchup_days`` are picked up too;
    the per-anniversary ledger key keeps each bonus to a single posting.
    """
    result = JobRunResult(job="anniversary", target_date=target_date)
    window = get_settings().accrual_catchup_days

    candidates = await session.execute(
        select(col(Employee.id), col(Employee.date_of_joining)).where(
            col(Employee.status).in_([s.value for s in _ANNIVERSARY_STATUSES]),
            col(Employee.role) != EmployeeRole.SUPER_ADMIN.value,
        )
    )
    employee_ids = [
        employee_id
        for employee_id, joined in candidates.all()
        if recent_anniversary(joined, target_date, window) is not None
    ]

    for employee_id in employee_ids:
        if heartbeat is not None and not await heartbeat(session):
            result.aborted = True
            break
        result.processed += 1
        try:
            async with operation_scope(session, "anniversary bonus"):
                credit = await _credit_anniversary(session, employee_id, target_date)
                await session.commit()
        except Exception:
            logger.exception("Anniversary bonus failed for employee %s", employee_id)
            await session.rollback()
            result.errors += 1
            continue

        if credit is None:
            result.skipped += 1
            continue

        result.changed += 1
        await notify(
            credit.email,
            EmailPayload(
                template="anniversary_bonus",
                subject=f"Happy {credit.years}-year work anniversary!",
                data={
                    "name": credit.name,
                    "years": credit.years,
                    "bonus": str(credit.bonus),
                    "casual_balance": str(credit.balance_after),
                },
            ),
        )

    logger.info(
        "Anniversary bonuses for %s: processed=%d credited=%d skipped=%d errors=%d",
        target_date,
        result.processed,
        result.changed,
        result.skipped,
        result.errors,
    )
    return result
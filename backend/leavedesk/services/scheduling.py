"""Shared pieces of the scheduled jobs."""

# ruff: noqa: TC003
from __future__ import annotations

import calendar
import uuid
from dataclasses import dataclass
from datetime import date
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlmodel import col

from leavedesk.models.employee import Employee
from leavedesk.models.enums import EmployeeRole, EmploymentStatus

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Collection

    from sqlalchemy.ext.asyncio import AsyncSession

    # Called between per-employee steps; False means the run lost its lease and must stop.
    Heartbeat = Callable[[AsyncSession], Awaitable[bool]]

# Actor recorded on every change made by a scheduled job.
SYSTEM_ACTOR = uuid.UUID(int=0)


@dataclass
class JobRunResult:
    """Summary of a scheduled job run."""

    job: str
    target_date: date
    ran: bool = True
    processed: int = 0
    changed: int = 0
    skipped: int = 0
    errors: int = 0
    aborted: bool = False


def same_day_this_year(original: date, year: int) -> date:
    """``original``'s month and day in ``year``; Feb 29 falls back to Feb 28 in non-leap years."""
    if original.month == 2 and original.day == 29 and not calendar.isleap(year):
        return date(year, 2, 28)
    return original.replace(year=year)


async def list_employee_ids(
    session: AsyncSession,
    statuses: Collection[EmploymentStatus],
    *,
    exclude_super_admin: bool = True,
) -> list[uuid.UUID]:
    """IDs of employees in the given statuses, in a stable order.

    Jobs iterate over plain IDs so a per-employee rollback never leaves them
    holding expired ORM instances.
    """
    query = select(col(Employee.id)).where(col(Employee.status).in_([s.value for s in statuses]))
    if exclude_super_admin:
        query = query.where(col(Employee.role) != EmployeeRole.SUPER_ADMIN.value)
    result = await session.execute(query.order_by(col(Employee.emp_code)))
    return list(result.scalars().all())

"""Daily notification jobs: pending-leave reminders and birthday wishes.

Both are best effort. A failed delivery is counted and logged, never raised.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import TYPE_CHECKING, Any

from sqlalchemy import select
from sqlalchemy.orm import aliased
from sqlmodel import col

from leavedesk.config import get_settings
from leavedesk.models.employee import Employee
from leavedesk.models.enums import EmployeeRole, EmploymentStatus, RequestStatus
from leavedesk.models.request import LeaveRequest
from leavedesk.services.email import EmailPayload, notify
from leavedesk.services.scheduling import JobRunResult, same_day_this_year

if TYPE_CHECKING:
    from datetime import date

    from sqlalchemy.ext.asyncio import AsyncSession

    from leavedesk.services.scheduling import Heartbeat

logger = logging.getLogger(__name__)


def is_birthday(date_of_birth: date | None, today: date) -> bool:
    """Feb 29 birthdays are celebrated on Feb 28 in non-leap years."""
    if date_of_birth is None or date_of_birth > today:
        return False
    return same_day_this_year(date_of_birth, today.year) == today


def _request_line(request: LeaveRequest, employee: Employee) -> dict[str, Any]:
    return {
        "request_id": str(request.id),
        "employee": employee.full_name,
        "emp_code": employee.emp_code,
        "leave_type": request.leave_type,
        "start_date": request.start_date.isoformat(),
        "end_date": request.end_date.isoformat(),
        "no_of_days": str(request.no_of_days),
    }


async def _deliver(result: JobRunResult, recipient: str, payload: EmailPayload) -> None:
    if await notify(recipient, payload):
        result.changed += 1
    else:
        result.errors += 1


async def run_pending_reminders(
    session: AsyncSession,
    target_date: date,
    heartbeat: Heartbeat | None = None,
) -> JobRunResult:
    """Remind each reporting manager of their reports' pending requests and send HR one digest."""
    result = JobRunResult(job="reminders", target_date=target_date)
    manager = aliased(Employee)

    rows = await session.execute(
        select(LeaveRequest, Employee, col(manager.email))
        .join(Employee, col(Employee.id) == col(LeaveRequest.employee_id))
        .outerjoin(manager, col(manager.id) == col(Employee.reporting_manager_id))
        .where(col(LeaveRequest.current_status) == RequestStatus.PENDING.value)
        .order_by(col(LeaveRequest.start_date))
    )

    by_manager: dict[str, list[dict[str, Any]]] = defaultdict(list)
    all_lines: list[dict[str, Any]] = []
    for request, employee, manager_email in rows.all():
        result.processed += 1
        line = _request_line(request, employee)
        all_lines.append(line)
        if manager_email is not None:
            by_manager[manager_email].append(line)

    if not all_lines:
        return result

    for manager_email, lines in by_manager.items():
        if heartbeat is not None and not await heartbeat(session):
            result.aborted = True
            break
        await _deliver(
            result,
            manager_email,
            EmailPayload(
                template="pending_leave_reminder",
                subject=f"{len(lines)} leave request(s) awaiting your review",
                data={"date": target_date.isoformat(), "requests": lines},
            ),
        )

    if get_settings().hr_digest_enabled:
        hr_result = await session.execute(
            select(col(Employee.email)).where(
                col(Employee.role) == EmployeeRole.HR.value,
                col(Employee.status) == EmploymentStatus.ACTIVE.value,
            )
        )
        for hr_email in hr_result.scalars().all():
            await _deliver(
                result,
                hr_email,
                EmailPayload(
                    template="pending_leave_digest",
                    subject=f"{len(all_lines)} leave request(s) pending across the organisation",
                    data={"date": target_date.isoformat(), "requests": all_lines},
                ),
            )

    logger.info(
        "Pending reminders for %s: pending=%d sent=%d failed=%d",
        target_date,
        result.processed,
        result.changed,
        result.errors,
    )
    return result


async def run_birthday_wishes(
    session: AsyncSession,
    target_date: date,
    heartbeat: Heartbeat | None = None,
) -> JobRunResult:
    result = JobRunResult(job="birthdays", target_date=target_date)

    rows = await session.execute(
        select(Employee).where(
            col(Employee.status) == EmploymentStatus.ACTIVE.value,
            col(Employee.date_of_birth).is_not(None),
        )
    )
    celebrants = [
        (employee.email, employee.first_name, employee.full_name)
        for employee in rows.scalars().all()
        if is_birthday(employee.date_of_birth, target_date)
    ]
    for email, first_name, full_name in celebrants:
        if heartbeat is not None and not await heartbeat(session):
            result.aborted = True
            break
        result.processed += 1
        await _deliver(
            result,
            email,
            EmailPayload(
                template="birthday_wish",
                subject=f"Happy birthday, {first_name}!",
                data={"name": full_name},
            ),
        )

    return result

"""Auto-transition of lapsed requests.

A request whose dates have fully elapsed while days are still pending is
resolved by approving every remaining pending day on behalf of the system.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlmodel import col

from leavedesk.models.enums import AuditAction, AuditEntityType, DayStatus, EmployeeRole
from leavedesk.models.request import LeaveDay, LeaveRequest
from leavedesk.services.audit import model_to_audit_dict, write_audit_log
from leavedesk.services.email import EmailPayload, notify
from leavedesk.services.employee import lock_employee
from leavedesk.services.request import load_days, resolve_days
from leavedesk.services.scheduling import SYSTEM_ACTOR, JobRunResult
from leavedesk.services.transaction import operation_scope

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.ext.asyncio import AsyncSession

    from leavedesk.services.scheduling import Heartbeat

logger = logging.getLogger(__name__)

AUTO_APPROVE_COMMENT = "Auto-approved: leave dates elapsed without review"


async def _lapsed_requests_by_employee(
    session: AsyncSession,
    target_date: date,
) -> dict[uuid.UUID, list[uuid.UUID]]:
    """Requests ending before ``target_date`` that still have pending days, grouped by employee."""
    result = await session.execute(
        select(col(LeaveRequest.employee_id), col(LeaveRequest.id))
        .where(
            col(LeaveRequest.end_date) < target_date,
            col(LeaveRequest.id).in_(
                select(col(LeaveDay.request_id)).where(col(LeaveDay.day_status) == DayStatus.PENDING.value)
            ),
        )
        .order_by(col(LeaveRequest.end_date))
    )
    grouped: dict[uuid.UUID, list[uuid.UUID]] = defaultdict(list)
    for employee_id, request_id in result.all():
        grouped[employee_id].append(request_id)
    return grouped


async def _approve_lapsed(
    session: AsyncSession,
    employee_id: uuid.UUID,
    request_ids: list[uuid.UUID],
    target_date: date,
) -> tuple[str, list[uuid.UUID]]:
    """Approve the remaining pending days of one employee's lapsed requests in one transaction."""
    employee = await lock_employee(session, employee_id)
    resolved: list[uuid.UUID] = []

    for request_id in request_ids:
        result = await session.execute(
            select(LeaveRequest)
            .where(col(LeaveRequest.id) == request_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        leave_request = result.scalar_one_or_none()
        if leave_request is None or leave_request.end_date >= target_date:
            continue

        days = await load_days(session, request_id)
        pending_dates = {day.leave_date for day in days if day.day_status == DayStatus.PENDING}
        if not pending_dates:
            continue

        before_dict = model_to_audit_dict(leave_request)
        await resolve_days(
            session,
            leave_request,
            days,
            approve_dates=pending_dates,
            reject_dates=set(),
            actor_id=SYSTEM_ACTOR,
            actor_role=EmployeeRole.SUPER_ADMIN,
            comment=AUTO_APPROVE_COMMENT,
            today=target_date,
        )
        await write_audit_log(
            session,
            actor_id=SYSTEM_ACTOR,
            entity_type=AuditEntityType.REQUEST,
            entity_id=leave_request.id,
            action=AuditAction.AUTO_APPROVE,
            before_json=before_dict,
            after_json=model_to_audit_dict(leave_request),
        )
        resolved.append(leave_request.id)

    return employee.email, resolved


async def run_auto_transition(
    session: AsyncSession,
    target_date: date,
    heartbeat: Heartbeat | None = None,
) -> JobRunResult:
    """Approve every still-pending day of requests that ended before ``target_date``.

    Already resolved requests are never touched, so re-running is a no-op.
    """
    result = JobRunResult(job="auto-transition", target_date=target_date)
    lapsed = await _lapsed_requests_by_employee(session, target_date)

    for employee_id, request_ids in lapsed.items():
        if heartbeat is not None and not await heartbeat(session):
            result.aborted = True
            break
        result.processed += len(request_ids)
        try:
            async with operation_scope(session, "auto transition"):
                email, resolved = await _approve_lapsed(session, employee_id, request_ids, target_date)
                await session.commit()
        except Exception:
            logger.exception("Auto-transition failed for employee %s", employee_id)
            await session.rollback()
            result.errors += len(request_ids)
            continue

        result.changed += len(resolved)
        result.skipped += len(request_ids) - len(resolved)
        for request_id in resolved:
            await notify(
                email,
                EmailPayload(
                    template="leave_auto_approved",
                    subject="Your leave request was approved automatically",
                    data={"request_id": str(request_id), "comment": AUTO_APPROVE_COMMENT},
                ),
            )

    logger.info(
        "Auto-transition for %s: requests=%d approved=%d skipped=%d errors=%d",
        target_date,
        result.processed,
        result.changed,
        result.skipped,
        result.errors,
    )
    return result

# ruff: noqa: TC003
"""Leave request lifecycle: apply, edit, withdraw and decide.

Every operation locks the employee row first, runs its checks and writes in
one transaction, and only notifies once that transaction has committed.
"""

from __future__ import annotations

import logging
import uuid
from collections import defaultdict
from dataclasses import dataclass
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import delete, func, or_, select
from sqlmodel import col

from leavedesk.exceptions import (
    AlreadyFinalizedError,
    AppError,
    InsufficientBalanceError,
    InvalidRangeError,
    MonthlyCapExceededError,
    PriorNoticeViolationError,
    SelfApprovalError,
)
from leavedesk.models.employee import Employee
from leavedesk.models.enums import (
    AuditAction,
    AuditEntityType,
    DayStatus,
    DayType,
    Decision,
    EmployeeRole,
    EmploymentStatus,
    HalfDayMarker,
    LeaveType,
    LedgerEntryType,
    LedgerSourceType,
    RequestStatus,
)
from leavedesk.models.request import LeaveDay, LeaveRequest
from leavedesk.schemas.request import LeaveDayResponse, RequestListResponse, RequestResponse
from leavedesk.services.audit import model_to_audit_dict, write_audit_log
from leavedesk.services.balance import adjust_balance, read_balance_for_update
from leavedesk.services.conflict import ExistingClaim, check_conflicts
from leavedesk.services.days import LeaveDayPlan, calculate_leave_days, day_amount, first_of_next_month, month_key
from leavedesk.services.email import EmailPayload, notify
from leavedesk.services.employee import ensure_can_view, get_employee_or_404, lock_employee
from leavedesk.services.holiday import load_holiday_dates
from leavedesk.services.policy import get_effective_policy, resolve_monthly_cap
from leavedesk.services.status import derive_request_status
from leavedesk.services.transaction import operation_scope

if TYPE_CHECKING:
    from collections.abc import Iterable

    from sqlalchemy.ext.asyncio import AsyncSession

    from leavedesk.schemas.auth import AuthContext
    from leavedesk.schemas.request import ApplyLeavePayload, DecisionPayload, EditLeavePayload

logger = logging.getLogger(__name__)

_CLOSED_STATUSES = frozenset({EmploymentStatus.RESIGNED, EmploymentStatus.INACTIVE})
_DECISION_ACTIONS = {
    Decision.APPROVE: AuditAction.APPROVE,
    Decision.REJECT: AuditAction.REJECT,
    Decision.PARTIAL_APPROVE: AuditAction.PARTIAL_APPROVE,
}


@dataclass(frozen=True)
class LeaveRange:
    """The part of a payload that determines the billable days."""

    leave_type: LeaveType
    start_date: date
    end_date: date
    start_marker: HalfDayMarker
    end_marker: HalfDayMarker


# ---------------------------------------------------------------------------
# Pure rules
# ---------------------------------------------------------------------------


def required_casual_notice(requested_days: Decimal) -> int:
    """Minimum days of notice for casual leave, tiered by request length."""
    if requested_days <= 2:
        return 3
    if requested_days <= 5:
        return 7
    return 30


def check_prior_notice(leave_type: LeaveType, start: date, requested_days: Decimal, today: date) -> None:
    """Enforce how far ahead of (or behind) today a request may start.

    Casual leave needs tiered advance notice. Sick leave may start up to three
    days in the past or tomorrow at the latest. Loss-of-pay may not start in
    the past.
    """
    notice = (start - today).days

    if leave_type == LeaveType.CASUAL:
        required = required_casual_notice(requested_days)
        if notice < required:
            raise PriorNoticeViolationError(
                f"Casual leave of {requested_days} days needs {required} days' notice, got {notice}",
                required_notice_days=required,
                notice_days=notice,
            )
    elif leave_type == LeaveType.SICK:
        if notice < -3:
            raise PriorNoticeViolationError(
                "Sick leave cannot start more than 3 days in the past",
                required_notice_days=-3,
                notice_days=notice,
            )
        if notice > 1:
            raise PriorNoticeViolationError(
                "Sick leave can start at most 1 day in the future",
                required_notice_days=1,
                notice_days=notice,
            )
    elif notice < 0:
        raise PriorNoticeViolationError(
            "Loss-of-pay leave cannot start in the past",
            required_notice_days=0,
            notice_days=notice,
        )


def check_balance(leave_type: LeaveType, available: Decimal, required: Decimal) -> None:
    if available <= 0 or required > available:
        raise InsufficientBalanceError(leave_type.value, available, required)


def totals_by_month(days: Iterable[tuple[date, Decimal]]) -> dict[str, Decimal]:
    totals: dict[str, Decimal] = defaultdict(Decimal)
    for leave_date, amount in days:
        totals[month_key(leave_date)] += amount
    return dict(totals)


def check_monthly_cap(requested: dict[str, Decimal], used: dict[str, Decimal], limit: Decimal) -> None:
    """Raise for the first month where already-booked plus requested days exceed ``limit``."""
    for month in sorted(requested):
        already = used.get(month, Decimal(0))
        if already + requested[month] > limit:
            raise MonthlyCapExceededError(month, already, requested[month], limit)


def partition_decision(
    pending_dates: set[date],
    decision: Decision,
    affected_dates: Iterable[date] | None,
) -> tuple[set[date], set[date]]:
    """Split pending dates into (to_approve, to_reject) for a decision.

    Without affected dates a decision covers every pending day. A partial
    approval approves the affected dates and rejects the remaining pending days.
    An explicitly empty list of dates covers nothing and is refused.
    """
    targets = set(affected_dates) if affected_dates is not None else set(pending_dates)
    if not targets:
        raise InvalidRangeError("Decision must name at least one pending day")
    unknown = targets - pending_dates
    if unknown:
        raise InvalidRangeError(
            "Decision dates must be pending days of this request",
            {"dates": [d.isoformat() for d in sorted(unknown)]},
        )

    if decision == Decision.APPROVE:
        return targets, set()
    if decision == Decision.REJECT:
        return set(), targets
    return targets, pending_dates - targets


def reserved_amount(days: Iterable[LeaveDay]) -> Decimal:
    """Balance currently held by a request: every day not rejected."""
    return sum(
        (day_amount(day.day_type) for day in days if day.day_status != DayStatus.REJECTED),
        Decimal(0),
    )


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _build_day_response(day: LeaveDay) -> LeaveDayResponse:
    return LeaveDayResponse(
        leave_date=day.leave_date,
        day_type=DayType(day.day_type),
        day_status=DayStatus(day.day_status),
        rejection_reason=day.rejection_reason,
        decided_by=day.decided_by,
        decided_at=day.decided_at,
    )


def _build_request_response(request: LeaveRequest, days: list[LeaveDay]) -> RequestResponse:
    """Map a request and its days to the response schema. Status is re-derived from the days."""
    ordered = sorted(days, key=lambda d: d.leave_date)
    return RequestResponse(
        id=request.id,
        employee_id=request.employee_id,
        leave_type=LeaveType(request.leave_type),
        applied_date=request.applied_date,
        start_date=request.start_date,
        end_date=request.end_date,
        start_marker=HalfDayMarker(request.start_marker),
        end_marker=HalfDayMarker(request.end_marker),
        reason=request.reason,
        attachment_ref=request.attachment_ref,
        current_status=derive_request_status(d.day_status for d in ordered),
        no_of_days=request.no_of_days,
        revision=request.revision,
        last_actor_id=request.last_actor_id,
        last_actor_role=EmployeeRole(request.last_actor_role) if request.last_actor_role else None,
        last_comment=request.last_comment,
        last_action_at=request.last_action_at,
        created_at=request.created_at,
        days=[_build_day_response(d) for d in ordered],
    )


async def _get_request_or_404(
    session: AsyncSession,
    request_id: uuid.UUID,
    *,
    for_update: bool = False,
) -> LeaveRequest:
    """Fetch a request by ID. Raises 404 if not found."""
    query = select(LeaveRequest).where(col(LeaveRequest.id) == request_id)
    if for_update:
        query = query.with_for_update().execution_options(populate_existing=True)
    result = await session.execute(query)
    request = result.scalar_one_or_none()
    if request is None:
        raise AppError("Leave request not found", status_code=404)
    return request


async def load_days(session: AsyncSession, request_id: uuid.UUID) -> list[LeaveDay]:
    result = await session.execute(
        select(LeaveDay)
        .where(col(LeaveDay.request_id) == request_id)
        .order_by(col(LeaveDay.leave_date))
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def _load_existing_claims(
    session: AsyncSession,
    employee_id: uuid.UUID,
    dates: list[date],
    exclude_request_id: uuid.UUID | None,
) -> list[ExistingClaim]:
    query = (
        select(LeaveDay, col(LeaveRequest.current_status))
        .join(LeaveRequest, col(LeaveRequest.id) == col(LeaveDay.request_id))
        .where(
            col(LeaveDay.employee_id) == employee_id,
            col(LeaveDay.leave_date).in_(dates),
            col(LeaveDay.day_status) != DayStatus.REJECTED.value,
        )
    )
    if exclude_request_id is not None:
        query = query.where(col(LeaveDay.request_id) != exclude_request_id)

    result = await session.execute(query)
    return [
        ExistingClaim(
            request_id=day.request_id,
            leave_date=day.leave_date,
            day_type=DayType(day.day_type),
            day_status=DayStatus(day.day_status),
            request_status=request_status,
        )
        for day, request_status in result.all()
    ]


async def _used_by_month(
    session: AsyncSession,
    employee_id: uuid.UUID,
    leave_type: LeaveType,
    plan: LeaveDayPlan,
    exclude_request_id: uuid.UUID | None,
) -> dict[str, Decimal]:
    first = plan.days[0].leave_date.replace(day=1)
    last = plan.days[-1].leave_date
    query = select(LeaveDay).where(
        col(LeaveDay.employee_id) == employee_id,
        col(LeaveDay.leave_type) == leave_type.value,
        col(LeaveDay.day_status) != DayStatus.REJECTED.value,
        col(LeaveDay.leave_date) >= first,
        col(LeaveDay.leave_date) < first_of_next_month(last),
    )
    if exclude_request_id is not None:
        query = query.where(col(LeaveDay.request_id) != exclude_request_id)

    result = await session.execute(query)
    return totals_by_month((day.leave_date, day_amount(day.day_type)) for day in result.scalars().all())


def _ensure_can_apply(employee: Employee) -> None:
    if employee.role == EmployeeRole.SUPER_ADMIN:
        raise AppError("Super admins cannot apply for leave", status_code=400)
    if employee.status in _CLOSED_STATUSES:
        raise AppError(f"Employees with status {employee.status} cannot apply for leave", status_code=400)


def _ensure_all_pending(days: list[LeaveDay]) -> None:
    if any(day.day_status != DayStatus.PENDING for day in days):
        raise AlreadyFinalizedError("Only requests whose days are all still pending can be changed")


def _ensure_can_decide(auth: AuthContext, employee: Employee) -> None:
    if auth.role in (EmployeeRole.EMPLOYEE, EmployeeRole.INTERN):
        raise AppError("Not authorized to decide on leave requests", status_code=403)
    if auth.role == EmployeeRole.MANAGER and employee.reporting_manager_id != auth.user_id:
        raise AppError("Managers can only decide on their direct reports' requests", status_code=403)


async def _admit(
    session: AsyncSession,
    employee: Employee,
    leave_range: LeaveRange,
    today: date,
    replacing: LeaveRequest | None = None,
    replacing_days: list[LeaveDay] | None = None,
) -> LeaveDayPlan:
    """Run the admission pipeline and return the billable day plan.

    Order: day calculation, conflict check, balance check, monthly cap, prior
    notice. When editing, the request being replaced is ignored by the
    conflict and cap checks and its own reservation counts as available.
    """
    holidays = await load_holiday_dates(session, leave_range.start_date, leave_range.end_date)
    plan = calculate_leave_days(
        leave_range.start_date,
        leave_range.end_date,
        leave_range.start_marker,
        leave_range.end_marker,
        leave_range.leave_type,
        EmployeeRole(employee.role),
        holidays,
    )

    exclude_id = replacing.id if replacing is not None else None

    existing = await _load_existing_claims(session, employee.id, plan.dates, exclude_id)
    check_conflicts(plan.days, existing)

    available = await read_balance_for_update(session, employee.id, leave_range.leave_type)
    if replacing is not None and replacing.leave_type == leave_range.leave_type:
        available += reserved_amount(replacing_days or [])
    check_balance(leave_range.leave_type, available, plan.total)

    policy = await get_effective_policy(session, employee.role, leave_range.leave_type, today)
    cap = resolve_monthly_cap(policy, leave_range.leave_type)
    if cap is not None:
        used = await _used_by_month(session, employee.id, leave_range.leave_type, plan, exclude_id)
        requested = totals_by_month((day.leave_date, day.amount) for day in plan.days)
        check_monthly_cap(requested, used, cap)

    check_prior_notice(leave_range.leave_type, leave_range.start_date, plan.total, today)
    return plan


def _add_days(session: AsyncSession, request: LeaveRequest, plan: LeaveDayPlan) -> list[LeaveDay]:
    days = [
        LeaveDay(
            request_id=request.id,
            employee_id=request.employee_id,
            leave_type=request.leave_type,
            leave_date=planned.leave_date,
            day_type=planned.day_type.value,
        )
        for planned in plan.days
    ]
    session.add_all(days)
    return days


async def _reserve(session: AsyncSession, request: LeaveRequest, today: date) -> None:
    await adjust_balance(
        session,
        employee_id=request.employee_id,
        leave_type=request.leave_type,
        amount=-request.no_of_days,
        entry_type=LedgerEntryType.RESERVATION,
        source_type=LedgerSourceType.REQUEST,
        source_id=str(request.id),
        idempotency_key=f"reserve:{request.id}:{request.revision}",
        effective_date=today,
    )


async def _release(session: AsyncSession, request: LeaveRequest, days: list[LeaveDay], today: date) -> None:
    amount = reserved_amount(days)
    if amount == 0:
        return
    await adjust_balance(
        session,
        employee_id=request.employee_id,
        leave_type=request.leave_type,
        amount=amount,
        entry_type=LedgerEntryType.RELEASE,
        source_type=LedgerSourceType.REQUEST,
        source_id=str(request.id),
        idempotency_key=f"release:{request.id}:{request.revision}",
        effective_date=today,
    )


async def _manager_email(session: AsyncSession, employee: Employee) -> str | None:
    if employee.reporting_manager_id is None:
        return None
    result = await session.execute(select(col(Employee.email)).where(col(Employee.id) == employee.reporting_manager_id))
    return result.scalar_one_or_none()


async def resolve_days(
    session: AsyncSession,
    request: LeaveRequest,
    days: list[LeaveDay],
    *,
    approve_dates: set[date],
    reject_dates: set[date],
    actor_id: uuid.UUID,
    actor_role: EmployeeRole,
    comment: str | None,
    today: date,
) -> RequestStatus:
    """Move pending days to approved or rejected and re-derive the header status.

    Approving leaves the balance alone since it was reserved at apply time.
    Rejecting refunds each day's amount to the request's leave type.
    """
    now = datetime.now(UTC)

    for day in days:
        if day.day_status != DayStatus.PENDING:
            continue
        if day.leave_date in approve_dates:
            day.day_status = DayStatus.APPROVED.value
        elif day.leave_date in reject_dates:
            day.day_status = DayStatus.REJECTED.value
            day.rejection_reason = comment
            await adjust_balance(
                session,
                employee_id=request.employee_id,
                leave_type=request.leave_type,
                amount=day_amount(day.day_type),
                entry_type=LedgerEntryType.REFUND,
                source_type=LedgerSourceType.REQUEST,
                source_id=str(request.id),
                idempotency_key=f"refund:{request.id}:{request.revision}:{day.leave_date.isoformat()}",
                effective_date=today,
                metadata={"leave_date": day.leave_date.isoformat()},
            )
        else:
            continue
        day.decided_by = actor_id
        day.decided_at = now

    status = derive_request_status(day.day_status for day in days)
    request.current_status = status.value
    request.last_actor_id = actor_id
    request.last_actor_role = actor_role.value
    request.last_comment = comment
    request.last_action_at = now
    await session.flush()
    return status


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def apply_leave(
    session: AsyncSession,
    auth: AuthContext,
    payload: ApplyLeavePayload,
    today: date,
) -> RequestResponse:
    """Apply for leave: admit, create the request with its days, reserve the balance."""
    employee_id = payload.employee_id or auth.user_id
    if employee_id != auth.user_id and not auth.is_admin:
        raise AppError("Not authorized to apply on behalf of another employee", status_code=403)

    leave_range = LeaveRange(
        leave_type=payload.leave_type,
        start_date=payload.start_date,
        end_date=payload.end_date,
        start_marker=payload.start_marker,
        end_marker=payload.end_marker,
    )

    async with operation_scope(session, "apply leave"):
        employee = await lock_employee(session, employee_id)
        _ensure_can_apply(employee)

        plan = await _admit(session, employee, leave_range, today)

        leave_request = LeaveRequest(
            employee_id=employee.id,
            leave_type=payload.leave_type.value,
            applied_date=today,
            start_date=payload.start_date,
            end_date=payload.end_date,
            start_marker=payload.start_marker.value,
            end_marker=payload.end_marker.value,
            reason=payload.reason,
            attachment_ref=payload.attachment_ref,
            current_status=RequestStatus.PENDING.value,
            no_of_days=plan.total,
            last_actor_id=auth.user_id,
            last_actor_role=auth.role.value,
            last_action_at=datetime.now(UTC),
        )
        session.add(leave_request)
        days = _add_days(session, leave_request, plan)
        await session.flush()

        await _reserve(session, leave_request, today)

        await write_audit_log(
            session,
            actor_id=auth.user_id,
            entity_type=AuditEntityType.REQUEST,
            entity_id=leave_request.id,
            action=AuditAction.APPLY,
            after_json=model_to_audit_dict(leave_request),
        )

        manager_email = await _manager_email(session, employee)
        await session.commit()

    logger.info(
        "Leave %s applied for employee %s: %s day(s) %s..%s",
        leave_request.id,
        employee_id,
        plan.total,
        payload.start_date,
        payload.end_date,
    )

    if manager_email is not None:
        await notify(
            manager_email,
            EmailPayload(
                template="leave_applied",
                subject=f"Leave request from {employee.full_name}",
                data={
                    "request_id": str(leave_request.id),
                    "employee": employee.full_name,
                    "leave_type": payload.leave_type.value,
                    "start_date": payload.start_date.isoformat(),
                    "end_date": payload.end_date.isoformat(),
                    "no_of_days": str(plan.total),
                },
            ),
        )

    return _build_request_response(leave_request, days)


async def edit_leave(
    session: AsyncSession,
    auth: AuthContext,
    request_id: uuid.UUID,
    payload: EditLeavePayload,
    today: date,
) -> RequestResponse:
    """Replace the day set of a fully pending request: release, re-admit and reserve again."""
    leave_range = LeaveRange(
        leave_type=payload.leave_type,
        start_date=payload.start_date,
        end_date=payload.end_date,
        start_marker=payload.start_marker,
        end_marker=payload.end_marker,
    )

    async with operation_scope(session, "edit leave"):
        leave_request = await _get_request_or_404(session, request_id)
        if leave_request.employee_id != auth.user_id:
            raise AppError("Only the employee who applied can edit this request", status_code=403)

        employee = await lock_employee(session, leave_request.employee_id)
        leave_request = await _get_request_or_404(session, request_id, for_update=True)
        old_days = await load_days(session, request_id)
        _ensure_all_pending(old_days)

        before_dict = model_to_audit_dict(leave_request)
        plan = await _admit(session, employee, leave_range, today, replacing=leave_request, replacing_days=old_days)

        await _release(session, leave_request, old_days, today)
        await session.execute(delete(LeaveDay).where(col(LeaveDay.request_id) == leave_request.id))

        leave_request.revision += 1
        leave_request.leave_type = payload.leave_type.value
        leave_request.start_date = payload.start_date
        leave_request.end_date = payload.end_date
        leave_request.start_marker = payload.start_marker.value
        leave_request.end_marker = payload.end_marker.value
        leave_request.reason = payload.reason
        leave_request.attachment_ref = payload.attachment_ref
        leave_request.no_of_days = plan.total
        leave_request.current_status = RequestStatus.PENDING.value
        leave_request.last_actor_id = auth.user_id
        leave_request.last_actor_role = auth.role.value
        leave_request.last_action_at = datetime.now(UTC)

        days = _add_days(session, leave_request, plan)
        await session.flush()

        await _reserve(session, leave_request, today)

        await write_audit_log(
            session,
            actor_id=auth.user_id,
            entity_type=AuditEntityType.REQUEST,
            entity_id=leave_request.id,
            action=AuditAction.EDIT,
            before_json=before_dict,
            after_json=model_to_audit_dict(leave_request),
        )

        await session.commit()

    return _build_request_response(leave_request, days)


async def withdraw_leave(
    session: AsyncSession,
    auth: AuthContext,
    request_id: uuid.UUID,
    today: date,
) -> None:
    """Delete a fully pending request and return its reservation."""
    async with operation_scope(session, "withdraw leave"):
        leave_request = await _get_request_or_404(session, request_id)
        if leave_request.employee_id != auth.user_id:
            raise AppError("Only the employee who applied can withdraw this request", status_code=403)

        await lock_employee(session, leave_request.employee_id)
        leave_request = await _get_request_or_404(session, request_id, for_update=True)
        days = await load_days(session, request_id)
        _ensure_all_pending(days)

        await _release(session, leave_request, days, today)

        await write_audit_log(
            session,
            actor_id=auth.user_id,
            entity_type=AuditEntityType.REQUEST,
            entity_id=leave_request.id,
            action=AuditAction.WITHDRAW,
            before_json=model_to_audit_dict(leave_request),
        )

        await session.execute(delete(LeaveDay).where(col(LeaveDay.request_id) == leave_request.id))
        await session.delete(leave_request)
        await session.commit()


async def decide_leave(
    session: AsyncSession,
    auth: AuthContext,
    request_id: uuid.UUID,
    payload: DecisionPayload,
    today: date,
) -> RequestResponse:
    """Approve, reject or partially approve the pending days of a request."""
    async with operation_scope(session, "decide leave"):
        leave_request = await _get_request_or_404(session, request_id)
        if leave_request.employee_id == auth.user_id:
            raise SelfApprovalError()

        employee = await lock_employee(session, leave_request.employee_id)
        _ensure_can_decide(auth, employee)

        leave_request = await _get_request_or_404(session, request_id, for_update=True)
        days = await load_days(session, request_id)
        pending_dates = {day.leave_date for day in days if day.day_status == DayStatus.PENDING}
        if not pending_dates:
            raise AlreadyFinalizedError()

        approve_dates, reject_dates = partition_decision(pending_dates, payload.decision, payload.affected_dates)

        before_dict = model_to_audit_dict(leave_request)
        status = await resolve_days(
            session,
            leave_request,
            days,
            approve_dates=approve_dates,
            reject_dates=reject_dates,
            actor_id=auth.user_id,
            actor_role=auth.role,
            comment=payload.comment,
            today=today,
        )

        await write_audit_log(
            session,
            actor_id=auth.user_id,
            entity_type=AuditEntityType.REQUEST,
            entity_id=leave_request.id,
            action=_DECISION_ACTIONS[payload.decision],
            before_json=before_dict,
            after_json=model_to_audit_dict(leave_request),
        )

        await session.commit()

    logger.info(
        "Leave %s decided by %s (%s): approved=%d rejected=%d status=%s",
        leave_request.id,
        auth.user_id,
        payload.decision,
        len(approve_dates),
        len(reject_dates),
        status,
    )

    await notify(
        employee.email,
        EmailPayload(
            template="leave_decision",
            subject=f"Your leave request is {status.value.replace('_', ' ')}",
            data={
                "request_id": str(leave_request.id),
                "status": status.value,
                "approved_dates": [d.isoformat() for d in sorted(approve_dates)],
                "rejected_dates": [d.isoformat() for d in sorted(reject_dates)],
                "comment": payload.comment,
            },
        ),
    )

    return _build_request_response(leave_request, days)


async def convert_lop_to_casual(
    session: AsyncSession,
    auth: AuthContext,
    request_id: uuid.UUID,
    today: date,
) -> RequestResponse:
    """Re-book a loss-of-pay request against casual leave once proof has been attached.

    The amount the request still holds is returned to loss-of-pay and taken from
    casual leave; the request and its days become casual. Later refunds and
    releases then go to casual leave.
    """
    async with operation_scope(session, "convert leave"):
        leave_request = await _get_request_or_404(session, request_id)
        if leave_request.employee_id == auth.user_id:
            raise AppError("Cannot convert your own leave request", status_code=403)

        employee = await lock_employee(session, leave_request.employee_id)
        leave_request = await _get_request_or_404(session, request_id, for_update=True)
        if leave_request.leave_type != LeaveType.LOP.value:
            raise AppError("Only loss-of-pay requests can be converted to casual leave", status_code=400)
        if not leave_request.attachment_ref:
            raise AppError("Converting to casual leave requires an attached document", status_code=400)

        days = await load_days(session, request_id)
        amount = reserved_amount(days)
        if amount == 0:
            raise AppError("Request holds no leave to convert", status_code=409)

        before_dict = model_to_audit_dict(leave_request)
        casual = await read_balance_for_update(session, employee.id, LeaveType.CASUAL)
        check_balance(LeaveType.CASUAL, casual, amount)

        source_id = str(leave_request.id)
        key_prefix = f"convert:{leave_request.id}:{leave_request.revision}"
        await adjust_balance(
            session,
            employee_id=employee.id,
            leave_type=LeaveType.LOP,
            amount=amount,
            entry_type=LedgerEntryType.REFUND,
            source_type=LedgerSourceType.REQUEST,
            source_id=source_id,
            idempotency_key=f"{key_prefix}:lop",
            effective_date=today,
            metadata={"converted_to": LeaveType.CASUAL.value},
        )
        await adjust_balance(
            session,
            employee_id=employee.id,
            leave_type=LeaveType.CASUAL,
            amount=-amount,
            entry_type=LedgerEntryType.RESERVATION,
            source_type=LedgerSourceType.REQUEST,
            source_id=source_id,
            idempotency_key=f"{key_prefix}:casual",
            effective_date=today,
            metadata={"converted_from": LeaveType.LOP.value},
        )

        leave_request.revision += 1
        leave_request.leave_type = LeaveType.CASUAL.value
        leave_request.last_actor_id = auth.user_id
        leave_request.last_actor_role = auth.role.value
        leave_request.last_action_at = datetime.now(UTC)
        for day in days:
            day.leave_type = LeaveType.CASUAL.value
        await session.flush()

        await write_audit_log(
            session,
            actor_id=auth.user_id,
            entity_type=AuditEntityType.REQUEST,
            entity_id=leave_request.id,
            action=AuditAction.CONVERT,
            before_json=before_dict,
            after_json=model_to_audit_dict(leave_request),
        )

        await session.commit()

    logger.info("Leave %s converted from lop to casual by %s: %s day(s)", leave_request.id, auth.user_id, amount)

    await notify(
        employee.email,
        EmailPayload(
            template="leave_converted",
            subject="Your loss-of-pay leave was converted to casual leave",
            data={"request_id": str(leave_request.id), "days": str(amount)},
        ),
    )

    return _build_request_response(leave_request, days)


async def get_request(
    session: AsyncSession,
    auth: AuthContext,
    request_id: uuid.UUID,
) -> RequestResponse:
    """Get a single request with its days."""
    leave_request = await _get_request_or_404(session, request_id)
    employee = await get_employee_or_404(session, leave_request.employee_id)
    ensure_can_view(auth, employee)
    days = await load_days(session, request_id)
    return _build_request_response(leave_request, days)


async def list_requests(
    session: AsyncSession,
    auth: AuthContext,
    employee_id: uuid.UUID | None = None,
    status_filter: RequestStatus | None = None,
    leave_type: LeaveType | None = None,
    offset: int = 0,
    limit: int = 50,
) -> RequestListResponse:
    """List requests visible to the caller, newest first.

    HR and super admins see everything; everyone else sees their own requests
    and those of their direct reports.
    """
    base_filters = []

    if employee_id is not None:
        employee = await get_employee_or_404(session, employee_id)
        ensure_can_view(auth, employee)
        base_filters.append(col(LeaveRequest.employee_id) == employee_id)
    elif not auth.is_admin:
        reports = select(col(Employee.id)).where(col(Employee.reporting_manager_id) == auth.user_id)
        base_filters.append(
            or_(col(LeaveRequest.employee_id) == auth.user_id, col(LeaveRequest.employee_id).in_(reports))
        )

    if status_filter is not None:
        base_filters.append(col(LeaveRequest.current_status) == status_filter.value)
    if leave_type is not None:
        base_filters.append(col(LeaveRequest.leave_type) == leave_type.value)

    count_result = await session.execute(select(func.count()).select_from(LeaveRequest).where(*base_filters))
    total = count_result.scalar_one()

    result = await session.execute(
        select(LeaveRequest)
        .where(*base_filters)
        .order_by(col(LeaveRequest.created_at).desc())
        .offset(offset)
        .limit(limit)
    )
    requests = list(result.scalars().all())

    days_by_request: dict[uuid.UUID, list[LeaveDay]] = defaultdict(list)
    if requests:
        days_result = await session.execute(
            select(LeaveDay).where(col(LeaveDay.request_id).in_([r.id for r in requests]))
        )
        for day in days_result.scalars().all():
            days_by_request[day.request_id].append(day)

    return RequestListResponse(
        items=[_build_request_response(r, days_by_request[r.id]) for r in requests],
        total=total,
    )

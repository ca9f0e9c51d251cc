from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlmodel import col

from leavedesk.exceptions import AppError
from leavedesk.models.balance import LeaveBalance
from leavedesk.models.employee import Employee
from leavedesk.models.enums import AuditAction, AuditEntityType, EmployeeRole, EmploymentStatus, LeaveType
from leavedesk.schemas.employee import EmployeeListResponse, EmployeeResponse
from leavedesk.services.audit import model_to_audit_dict, write_audit_log

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.ext.asyncio import AsyncSession

    from leavedesk.schemas.auth import AuthContext
    from leavedesk.schemas.employee import CreateEmployeeRequest


def _build_employee_response(employee: Employee) -> EmployeeResponse:
    return EmployeeResponse(
        id=employee.id,
        emp_code=employee.emp_code,
        first_name=employee.first_name,
        last_name=employee.last_name,
        email=employee.email,
        role=EmployeeRole(employee.role),
        status=EmploymentStatus(employee.status),
        reporting_manager_id=employee.reporting_manager_id,
        date_of_joining=employee.date_of_joining,
        date_of_birth=employee.date_of_birth,
    )


async def get_employee_or_404(session: AsyncSession, employee_id: uuid.UUID) -> Employee:
    """Fetch an employee by ID. Raises 404 if not found."""
    result = await session.execute(select(Employee).where(col(Employee.id) == employee_id))
    employee = result.scalar_one_or_none()
    if employee is None:
        raise AppError("Employee not found", status_code=404)
    return employee


async def lock_employee(session: AsyncSession, employee_id: uuid.UUID) -> Employee:
    """Take the per-employee write lock and return a fresh copy of the row.

    Every operation that touches an employee's balance or leave days goes
    through here first, so operations on the same employee serialize.
    """
    result = await session.execute(
        select(Employee)
        .where(col(Employee.id) == employee_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    employee = result.scalar_one_or_none()
    if employee is None:
        raise AppError("Employee not found", status_code=404)
    return employee


def ensure_can_view(auth: AuthContext, employee: Employee) -> None:
    """Employees see their own data, managers their direct reports, HR and super admins everyone."""
    if auth.is_admin or auth.user_id == employee.id or employee.reporting_manager_id == auth.user_id:
        return
    raise AppError("Not authorized to view this employee", status_code=403)


async def create_employee(
    session: AsyncSession,
    auth: AuthContext,
    payload: CreateEmployeeRequest,
) -> EmployeeResponse:
    """Register an employee, open a balance for every leave type and post the joining month's credit."""
    # Imported here: the accrual module depends on this one.
    from leavedesk.services.accrual import post_joining_credit

    if payload.reporting_manager_id is not None:
        await get_employee_or_404(session, payload.reporting_manager_id)

    employee = Employee(
        emp_code=payload.emp_code,
        first_name=payload.first_name,
        last_name=payload.last_name,
        email=payload.email,
        role=payload.role.value,
        status=payload.status.value,
        reporting_manager_id=payload.reporting_manager_id,
        date_of_joining=payload.date_of_joining,
        date_of_birth=payload.date_of_birth,
    )
    session.add(employee)

    try:
        await session.flush()
    except IntegrityError:
        await session.rollback()
        raise AppError(f"Employee code {payload.emp_code} already exists", status_code=409) from None

    for leave_type in LeaveType:
        session.add(LeaveBalance(employee_id=employee.id, leave_type=leave_type.value))
    await session.flush()
    await post_joining_credit(session, employee)

    await write_audit_log(
        session,
        actor_id=auth.user_id,
        entity_type=AuditEntityType.EMPLOYEE,
        entity_id=employee.id,
        action=AuditAction.CREATE,
        after_json=model_to_audit_dict(employee),
    )

    await session.commit()
    await session.refresh(employee)
    return _build_employee_response(employee)


async def get_employee(session: AsyncSession, auth: AuthContext, employee_id: uuid.UUID) -> EmployeeResponse:
    employee = await get_employee_or_404(session, employee_id)
    ensure_can_view(auth, employee)
    return _build_employee_response(employee)


async def list_employees(
    session: AsyncSession,
    role: EmployeeRole | None = None,
    status: EmploymentStatus | None = None,
    reporting_manager_id: uuid.UUID | None = None,
    offset: int = 0,
    limit: int = 50,
) -> EmployeeListResponse:
    """List employees with optional filters, ordered by employee code."""
    filters = []
    if role is not None:
        filters.append(col(Employee.role) == role.value)
    if status is not None:
        filters.append(col(Employee.status) == status.value)
    if reporting_manager_id is not None:
        filters.append(col(Employee.reporting_manager_id) == reporting_manager_id)

    count_result = await session.execute(select(func.count()).select_from(Employee).where(*filters))
    total = count_result.scalar_one()

    result = await session.execute(
        select(Employee).where(*filters).order_by(col(Employee.emp_code)).offset(offset).limit(limit)
    )
    employees = list(result.scalars().all())

    return EmployeeListResponse(items=[_build_employee_response(e) for e in employees], total=total)

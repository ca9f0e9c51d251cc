# ruff: noqa: B008, TC001, TC003
from __future__ import annotations

import uuid

from fastapi import APIRouter, Query, status

from leavedesk.api.deps import AdminDep, AuthDep
from leavedesk.db import SessionDep
from leavedesk.models.enums import EmployeeRole, EmploymentStatus
from leavedesk.schemas.employee import CreateEmployeeRequest, EmployeeListResponse, EmployeeResponse
from leavedesk.services import employee as employee_service

employees_router = APIRouter(
    prefix="/employees",
    tags=["employees"],
)


@employees_router.post("", response_model=EmployeeResponse, status_code=status.HTTP_201_CREATED)
async def create_employee(
    payload: CreateEmployeeRequest,
    session: SessionDep,
    auth: AdminDep,
) -> EmployeeResponse:
    """Create an employee with zero balances for every leave type (HR or super admin)."""
    return await employee_service.create_employee(session, auth, payload)


@employees_router.get("", response_model=EmployeeListResponse)
async def list_employees(
    session: SessionDep,
    auth: AuthDep,
    role: EmployeeRole | None = Query(default=None),
    status_filter: EmploymentStatus | None = Query(default=None, alias="status"),
    reporting_manager_id: uuid.UUID | None = Query(default=None),
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=100),
) -> EmployeeListResponse:
    """List employees with optional filters."""
    return await employee_service.list_employees(
        session, role, status_filter, reporting_manager_id, offset, limit
    )


@employees_router.get("/{employee_id}", response_model=EmployeeResponse)
async def get_employee(
    employee_id: uuid.UUID,
    session: SessionDep,
    auth: AuthDep,
) -> EmployeeResponse:
    return await employee_service.get_employee(session, auth, employee_id)

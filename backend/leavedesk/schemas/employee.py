# ruff: noqa: TC001, TC003
from __future__ import annotations

import uuid
from datetime import date

from pydantic import BaseModel, Field

from leavedesk.models.enums import EmployeeRole, EmploymentStatus


class CreateEmployeeRequest(BaseModel):
    """Request body for registering an employee."""

    emp_code: str = Field(min_length=1, max_length=50)
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    email: str = Field(min_length=3, max_length=255)
    role: EmployeeRole = EmployeeRole.EMPLOYEE
    status: EmploymentStatus = EmploymentStatus.ACTIVE
    reporting_manager_id: uuid.UUID | None = None
    date_of_joining: date
    date_of_birth: date | None = None


class EmployeeResponse(BaseModel):
    """Response schema for an employee."""

    id: uuid.UUID
    emp_code: str
    first_name: str
    last_name: str
    email: str
    role: EmployeeRole
    status: EmploymentStatus
    reporting_manager_id: uuid.UUID | None
    date_of_joining: date
    date_of_birth: date | None


class EmployeeListResponse(BaseModel):
    """List of employees."""

    items: list[EmployeeResponse]
    total: int

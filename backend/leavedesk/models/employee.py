# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import date

import sqlalchemy as sa
from sqlmodel import Field

from leavedesk.models.base import TimestampMixin, UUIDBase
from leavedesk.models.enums import EmployeeRole, EmploymentStatus


class Employee(UUIDBase, TimestampMixin, table=True):
    """An employee record. Its row doubles as the per-employee lock for engine operations."""

    __tablename__ = "employee"

    emp_code: str = Field(max_length=50, unique=True)
    first_name: str = Field(max_length=100)
    last_name: str = Field(max_length=100)
    email: str = Field(max_length=255, index=True)
    role: str = Field(default=EmployeeRole.EMPLOYEE, max_length=50, index=True)
    status: str = Field(default=EmploymentStatus.ACTIVE, max_length=50, index=True)
    reporting_manager_id: uuid.UUID | None = Field(
        default=None,
        sa_column=sa.Column(sa.Uuid, sa.ForeignKey("employee.id", ondelete="SET NULL"), nullable=True, index=True),
    )
    date_of_joining: date
    date_of_birth: date | None = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

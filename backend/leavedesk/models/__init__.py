from sqlmodel import SQLModel

from leavedesk.models.audit import AuditLog
from leavedesk.models.balance import LeaveBalance
from leavedesk.models.base import TimestampMixin, UUIDBase
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
    LedgerEntryType,
    LedgerSourceType,
    LeaveType,
    RequestStatus,
)
from leavedesk.models.holiday import Holiday
from leavedesk.models.lease import JobLease
from leavedesk.models.ledger import LeaveLedgerEntry
from leavedesk.models.policy import LeavePolicyConfig
from leavedesk.models.request import LeaveDay, LeaveRequest

__all__ = [
    "AuditAction",
    "AuditEntityType",
    "AuditLog",
    "DayStatus",
    "DayType",
    "Decision",
    "Employee",
    "EmployeeRole",
    "EmploymentStatus",
    "HalfDayMarker",
    "Holiday",
    "JobLease",
    "LeaveBalance",
    "LeaveDay",
    "LeaveLedgerEntry",
    "LeavePolicyConfig",
    "LeaveRequest",
    "LeaveType",
    "LedgerEntryType",
    "LedgerSourceType",
    "RequestStatus",
    "SQLModel",
    "TimestampMixin",
    "UUIDBase",
]

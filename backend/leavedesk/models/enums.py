from __future__ import annotations

import enum


class EmployeeRole(enum.StrEnum):
    """Role of an employee; drives policy lookup, weekends and approval rights."""

    EMPLOYEE = "employee"
    INTERN = "intern"
    MANAGER = "manager"
    HR = "hr"
    SUPER_ADMIN = "super_admin"


class EmploymentStatus(enum.StrEnum):
    """Employment lifecycle status."""

    ACTIVE = "active"
    ON_NOTICE = "on_notice"
    RESIGNED = "resigned"
    INACTIVE = "inactive"


class LeaveType(enum.StrEnum):
    """Leave category, one balance per employee each."""

    CASUAL = "casual"
    SICK = "sick"
    LOP = "lop"


class HalfDayMarker(enum.StrEnum):
    """Which part of the boundary day a request covers."""

    FULL = "full"
    FIRST_HALF = "first_half"
    SECOND_HALF = "second_half"


class DayType(enum.StrEnum):
    FULL = "full"
    HALF = "half"


class DayStatus(enum.StrEnum):
    """Adjudication state of a single leave day."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class RequestStatus(enum.StrEnum):
    """Header status, always derived from the day statuses."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    PARTIALLY_APPROVED = "partially_approved"


class Decision(enum.StrEnum):
    """Actor decision on a leave request."""

    APPROVE = "approve"
    REJECT = "reject"
    PARTIAL_APPROVE = "partial_approve"


class LedgerEntryType(enum.StrEnum):
    """Type of ledger entry affecting balance."""

    RESERVATION = "RESERVATION"
    RELEASE = "RELEASE"
    REFUND = "REFUND"
    MONTHLY_CREDIT = "MONTHLY_CREDIT"
    ANNIVERSARY_BONUS = "ANNIVERSARY_BONUS"
    JOINING_CREDIT = "JOINING_CREDIT"
    CARRY_FORWARD_FORFEIT = "CARRY_FORWARD_FORFEIT"
    YEAR_OPENING = "YEAR_OPENING"
    ADJUSTMENT = "ADJUSTMENT"


class LedgerSourceType(enum.StrEnum):
    """Origin of a ledger entry."""

    REQUEST = "REQUEST"
    ADMIN = "ADMIN"
    SYSTEM = "SYSTEM"


class AuditEntityType(enum.StrEnum):
    """Entity type recorded in the audit log."""

    EMPLOYEE = "EMPLOYEE"
    POLICY = "POLICY"
    REQUEST = "REQUEST"
    HOLIDAY = "HOLIDAY"
    ADJUSTMENT = "ADJUSTMENT"


class AuditAction(enum.StrEnum):
    """Action recorded in the audit log."""

    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    APPLY = "APPLY"
    EDIT = "EDIT"
    WITHDRAW = "WITHDRAW"
    APPROVE = "APPROVE"
    REJECT = "REJECT"
    PARTIAL_APPROVE = "PARTIAL_APPROVE"
    AUTO_APPROVE = "AUTO_APPROVE"
    CONVERT = "CONVERT"

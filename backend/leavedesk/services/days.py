"""Day-requested calculator.

Turns a date range plus half-day markers into the billable days of a leave
request. Loss-of-pay bills every calendar day; every other leave type bills
working days only, so weekends and holidays never get a LeaveDay row.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING

from leavedesk.exceptions import InvalidRangeError
from leavedesk.models.enums import DayType, EmployeeRole, HalfDayMarker, LeaveType

if TYPE_CHECKING:
    from collections.abc import Collection

FULL_DAY = Decimal("1")
HALF_DAY = Decimal("0.5")

_SATURDAY = 5
_SUNDAY = 6


@dataclass(frozen=True)
class PlannedDay:
    """A billable date that becomes one LeaveDay row."""

    leave_date: date
    day_type: DayType

    @property
    def amount(self) -> Decimal:
        return day_amount(self.day_type)


@dataclass(frozen=True)
class LeaveDayPlan:
    """Result of the day calculation: billable days in date order and their total."""

    days: tuple[PlannedDay, ...]
    total: Decimal

    @property
    def dates(self) -> list[date]:
        return [day.leave_date for day in self.days]


def day_amount(day_type: DayType | str) -> Decimal:
    """Balance weight of a single leave day."""
    return FULL_DAY if day_type == DayType.FULL else HALF_DAY


def is_working_day(day: date, role: EmployeeRole | str, holidays: Collection[date] = ()) -> bool:
    """Sundays and holidays are off for everyone; Saturdays are off for everyone except interns."""
    weekday = day.weekday()
    if weekday == _SUNDAY:
        return False
    if weekday == _SATURDAY and role != EmployeeRole.INTERN:
        return False
    return day not in holidays


def _boundary_day_type(marker: HalfDayMarker) -> DayType:
    return DayType.FULL if marker == HalfDayMarker.FULL else DayType.HALF


def calculate_leave_days(
    start: date,
    end: date,
    start_marker: HalfDayMarker,
    end_marker: HalfDayMarker,
    leave_type: LeaveType,
    role: EmployeeRole,
    holidays: Collection[date] = (),
) -> LeaveDayPlan:
    """Compute the billable days of a leave request.

    Single-day requests use the start marker only and require the end marker
    to match it. Multi-day requests discount the first day by the start marker
    and the last day by the end marker; interior days always count 1.0.

    Raises InvalidRangeError when the range is inverted, when a non-LOP
    request starts or ends on a non-working day, or when nothing is billable.
    """
    if start > end:
        raise InvalidRangeError(
            "Start date must be on or before end date",
            {"start_date": start.isoformat(), "end_date": end.isoformat()},
        )
    if start == end and start_marker != end_marker:
        raise InvalidRangeError(
            "Single-day requests must use the same start and end half-day marker",
            {"start_marker": str(start_marker), "end_marker": str(end_marker)},
        )

    bills_every_day = leave_type == LeaveType.LOP

    if not bills_every_day:
        for label, boundary in (("start", start), ("end", end)):
            if not is_working_day(boundary, role, holidays):
                raise InvalidRangeError(
                    f"Leave cannot {label} on a weekend or holiday",
                    {f"{label}_date": boundary.isoformat()},
                )

    days: list[PlannedDay] = []
    current = start
    while current <= end:
        if bills_every_day or is_working_day(current, role, holidays):
            if current == start:
                day_type = _boundary_day_type(start_marker)
            elif current == end:
                day_type = _boundary_day_type(end_marker)
            else:
                day_type = DayType.FULL
            days.append(PlannedDay(leave_date=current, day_type=day_type))
        current += timedelta(days=1)

    total = sum((day.amount for day in days), Decimal(0))
    if total == 0:
        raise InvalidRangeError(
            "Requested range contains no billable days",
            {"start_date": start.isoformat(), "end_date": end.isoformat()},
        )

    return LeaveDayPlan(days=tuple(days), total=total)


def month_key(day: date) -> str:
    """Calendar month of ``day`` as YYYY-MM."""
    return f"{day.year:04d}-{day.month:02d}"


def first_of_next_month(day: date) -> date:
    if day.month == 12:
        return date(day.year + 1, 1, 1)
    return date(day.year, day.month + 1, 1)

"""Conflict detection between a proposed day set and the employee's existing leave days."""

# ruff: noqa: TC003
from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import date
from typing import TYPE_CHECKING

from leavedesk.exceptions import ConflictError
from leavedesk.models.enums import DayStatus, DayType

if TYPE_CHECKING:
    from collections.abc import Iterable

    from leavedesk.services.days import PlannedDay


@dataclass(frozen=True)
class ExistingClaim:
    """A leave day already held by another request of the same employee."""

    request_id: uuid.UUID
    leave_date: date
    day_type: DayType
    day_status: DayStatus
    request_status: str


def find_conflict(planned: Iterable[PlannedDay], existing: Iterable[ExistingClaim]) -> ExistingClaim | None:
    """Return the earliest existing claim that collides with a planned day, if any.

    Any non-rejected claim on a planned date collides. There is no sub-day
    slot negotiation: full/full, full/half and half/half all conflict.
    """
    planned_dates = {day.leave_date for day in planned}
    collisions = [
        claim
        for claim in existing
        if claim.leave_date in planned_dates and claim.day_status != DayStatus.REJECTED
    ]
    if not collisions:
        return None
    return min(collisions, key=lambda claim: claim.leave_date)


def check_conflicts(planned: Iterable[PlannedDay], existing: Iterable[ExistingClaim]) -> None:
    """Raise ConflictError naming the first colliding date and the existing request's status."""
    conflict = find_conflict(planned, existing)
    if conflict is not None:
        raise ConflictError(conflict.leave_date, conflict.request_status)

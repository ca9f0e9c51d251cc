from __future__ import annotations

from typing import TYPE_CHECKING

from leavedesk.models.enums import DayStatus, RequestStatus

if TYPE_CHECKING:
    from collections.abc import Iterable


def derive_request_status(day_statuses: Iterable[DayStatus | str]) -> RequestStatus:
    """Reduce the multiset of day statuses to the request header status.

    Any pending day keeps the request pending. With nothing pending, all
    approved is approved, all rejected (or no days at all) is rejected, and a
    mix is partially approved.
    """
    statuses = {DayStatus(status) for status in day_statuses}
    if not statuses:
        return RequestStatus.REJECTED
    if DayStatus.PENDING in statuses:
        return RequestStatus.PENDING
    if statuses == {DayStatus.APPROVED}:
        return RequestStatus.APPROVED
    if statuses == {DayStatus.REJECTED}:
        return RequestStatus.REJECTED
    return RequestStatus.PARTIALLY_APPROVED

"""Tests for the leave request lifecycle: apply, edit, withdraw, get and list.

Covers admission (conflicts, balance, monthly cap, prior notice), the
reservation ledger entries and visibility rules.
"""

from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy import select
from sqlmodel import col

from leavedesk.models.audit import AuditLog
from leavedesk.models.enums import EmployeeRole, EmploymentStatus, LeaveType, LedgerEntryType
from leavedesk.models.holiday import Holiday
from leavedesk.models.ledger import LeaveLedgerEntry
from leavedesk.models.request import LeaveDay

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from httpx import AsyncClient
    from sqlalchemy.ext.asyncio import AsyncSession

    from leavedesk.models.employee import Employee
    from leavedesk.services.email import InMemoryEmailDispatcher

    Factory = Callable[..., Awaitable[Any]]

REQUESTS_URL = "/requests"

# Today is Monday 2026-03-02.
MON = date(2026, 3, 9)
TUE = date(2026, 3, 10)
WED = date(2026, 3, 11)
FRI = date(2026, 3, 13)
SAT = date(2026, 3, 14)
NEXT_MON = date(2026, 3, 16)


def _headers(employee: Employee | uuid.UUID, role: str = "employee") -> dict[str, str]:
    user_id = employee if isinstance(employee, uuid.UUID) else employee.id
    return {"X-User-Id": str(user_id), "X-Role": role}


def _payload(
    start: date,
    end: date | None = None,
    leave_type: str = "casual",
    **extra: Any,
) -> dict[str, Any]:
    return {
        "leave_type": leave_type,
        "start_date": start.isoformat(),
        "end_date": (end or start).isoformat(),
        **extra,
    }


async def _apply(
    client: AsyncClient,
    employee: Employee,
    start: date,
    end: date | None = None,
    leave_type: str = "casual",
    **extra: Any,
) -> Any:
    return await client.post(
        REQUESTS_URL,
        json=_payload(start, end, leave_type, **extra),
        headers=_headers(employee, employee.role),
    )


# ---------------------------------------------------------------------------
# Apply
# ---------------------------------------------------------------------------


async def test_apply_reserves_balance(
    async_client: AsyncClient,
    make_employee: Factory,
    standard_policies: Factory,
    grant: Factory,
    read_balance: Factory,
) -> None:
    await standard_policies()
    employee = await make_employee()
    await grant(employee, LeaveType.CASUAL, 5)

    resp = await _apply(async_client, employee, MON, WED)
    assert resp.status_code == 201
    data = resp.json()
    assert data["current_status"] == "pending"
    assert Decimal(data["no_of_days"]) == Decimal("3")
    assert data["applied_date"] == "2026-03-02"
    assert data["revision"] == 1
    assert [d["leave_date"] for d in data["days"]] == ["2026-03-09", "2026-03-10", "2026-03-11"]
    assert all(d["day_status"] == "pending" for d in data["days"])

    assert await read_balance(employee.id, LeaveType.CASUAL) == Decimal("2")


async def test_apply_writes_reservation_entry(
    async_client: AsyncClient,
    db_session: AsyncSession,
    make_employee: Factory,
    standard_policies: Factory,
    grant: Factory,
) -> None:
    await standard_policies()
    employee = await make_employee()
    await grant(employee, LeaveType.CASUAL, 5)

    resp = await _apply(async_client, employee, MON, TUE)
    request_id = resp.json()["id"]

    result = await db_session.execute(
        select(LeaveLedgerEntry).where(col(LeaveLedgerEntry.entry_type) == LedgerEntryType.RESERVATION.value)
    )
    entries = list(result.scalars().all())
    assert len(entries) == 1
    assert entries[0].amount == Decimal("-2")
    assert entries[0].balance_after == Decimal("3")
    assert entries[0].idempotency_key == f"reserve:{request_id}:1"


async def test_apply_half_day(
    async_client: AsyncClient,
    make_employee: Factory,
    standard_policies: Factory,
    grant: Factory,
    read_balance: Factory,
) -> None:
    await standard_policies()
    employee = await make_employee()
    await grant(employee, LeaveType.CASUAL, 1)

    resp = await _apply(async_client, employee, MON, start_marker="first_half", end_marker="first_half")
    assert resp.status_code == 201
    assert Decimal(resp.json()["no_of_days"]) == Decimal("0.5")
    assert resp.json()["days"][0]["day_type"] == "half"
    assert await read_balance(employee.id, LeaveType.CASUAL) == Decimal("0.5")


async def test_apply_skips_holiday_in_range(
    async_client: AsyncClient,
    db_session: AsyncSession,
    make_employee: Factory,
    standard_policies: Factory,
    grant: Factory,
    read_balance: Factory,
) -> None:
    await standard_policies()
    db_session.add(Holiday(date=TUE, name="Holi"))
    await db_session.commit()
    employee = await make_employee()
    await grant(employee, LeaveType.CASUAL, 5)

    resp = await _apply(async_client, employee, MON, WED)
    assert resp.status_code == 201
    assert Decimal(resp.json()["no_of_days"]) == Decimal("2")

    result = await db_session.execute(select(col(LeaveDay.leave_date)).order_by(col(LeaveDay.leave_date)))
    assert list(result.scalars().all()) == [MON, WED]
    assert await read_balance(employee.id, LeaveType.CASUAL) == Decimal("3")


async def test_apply_intern_saturday_counts(
    async_client: AsyncClient,
    make_employee: Factory,
    standard_policies: Factory,
    grant: Factory,
) -> None:
    await standard_policies()
    intern = await make_employee(role=EmployeeRole.INTERN)
    await grant(intern, LeaveType.CASUAL, 5)

    resp = await _apply(async_client, intern, FRI, NEXT_MON)
    assert resp.status_code == 201
    data = resp.json()
    assert Decimal(data["no_of_days"]) == Decimal("3")
    assert "2026-03-14" in [d["leave_date"] for d in data["days"]]


async def test_apply_sends_manager_email(
    async_client: AsyncClient,
    outbox: InMemoryEmailDispatcher,
    make_employee: Factory,
    standard_policies: Factory,
    grant: Factory,
) -> None:
    await standard_policies()
    manager = await make_employee(role=EmployeeRole.MANAGER)
    employee = await make_employee(manager=manager)
    await grant(employee, LeaveType.CASUAL, 5)

    resp = await _apply(async_client, employee, MON)
    assert resp.status_code == 201

    assert outbox.templates_for(manager.email) == ["leave_applied"]
    _, payload = outbox.sent[0]
    assert payload.data["request_id"] == resp.json()["id"]
    assert payload.data["no_of_days"] == "1"


async def test_apply_without_manager_sends_nothing(
    async_client: AsyncClient,
    outbox: InMemoryEmailDispatcher,
    make_employee: Factory,
    standard_policies: Factory,
    grant: Factory,
) -> None:
    await standard_policies()
    employee = await make_employee()
    await grant(employee, LeaveType.CASUAL, 5)

    resp = await _apply(async_client, employee, MON)
    assert resp.status_code == 201
    assert outbox.sent == []


async def test_apply_email_failure_does_not_fail_request(
    async_client: AsyncClient,
    outbox: InMemoryEmailDispatcher,
    make_employee: Factory,
    standard_policies: Factory,
    grant: Factory,
) -> None:
    await standard_policies()
    manager = await make_employee(role=EmployeeRole.MANAGER)
    employee = await make_employee(manager=manager)
    await grant(employee, LeaveType.CASUAL, 5)
    outbox.error = RuntimeError("smtp down")

    resp = await _apply(async_client, employee, MON)
    assert resp.status_code == 201


async def test_apply_writes_audit_log(
    async_client: AsyncClient,
    db_session: AsyncSession,
    make_employee: Factory,
    standard_policies: Factory,
    grant: Factory,
) -> None:
    await standard_policies()
    employee = await make_employee()
    await grant(employee, LeaveType.CASUAL, 5)

    resp = await _apply(async_client, employee, MON)
    request_id = uuid.UUID(resp.json()["id"])

    result = await db_session.execute(select(AuditLog).where(col(AuditLog.entity_id) == request_id))
    logs = list(result.scalars().all())
    assert [log.action for log in logs] == ["APPLY"]
    assert logs[0].actor_id == employee.id
    assert logs[0].after_json is not None


async def test_apply_on_behalf_by_hr(
    async_client: AsyncClient,
    make_employee: Factory,
    standard_policies: Factory,
    grant: Factory,
    read_balance: Factory,
) -> None:
    await standard_policies()
    hr = await make_employee(role=EmployeeRole.HR)
    employee = await make_employee()
    await grant(employee, LeaveType.CASUAL, 5)

    resp = await async_client.post(
        REQUESTS_URL,
        json=_payload(MON, employee_id=str(employee.id)),
        headers=_headers(hr, "hr"),
    )
    assert resp.status_code == 201
    assert resp.json()["employee_id"] == str(employee.id)
    assert resp.json()["last_actor_role"] == "hr"
    assert await read_balance(employee.id, LeaveType.CASUAL) == Decimal("4")


async def test_apply_on_behalf_by_employee_forbidden(
    async_client: AsyncClient,
    make_employee: Factory,
    standard_policies: Factory,
) -> None:
    await standard_policies()
    colleague = await make_employee()
    employee = await make_employee()

    resp = await async_client.post(
        REQUESTS_URL,
        json=_payload(MON, employee_id=str(colleague.id)),
        headers=_headers(employee),
    )
    assert resp.status_code == 403


async def test_apply_super_admin_rejected(
    async_client: AsyncClient,
    make_employee: Factory,
    grant: Factory,
) -> None:
    admin = await make_employee(role=EmployeeRole.SUPER_ADMIN)
    await grant(admin, LeaveType.CASUAL, 5)

    resp = await _apply(async_client, admin, MON)
    assert resp.status_code == 400
    assert "Super admins" in resp.json()["detail"]


async def test_apply_resigned_rejected(
    async_client: AsyncClient,
    make_employee: Factory,
    standard_policies: Factory,
    grant: Factory,
) -> None:
    await standard_policies()
    employee = await make_employee(status=EmploymentStatus.RESIGNED)
    await grant(employee, LeaveType.CASUAL, 5)

    resp = await _apply(async_client, employee, MON)
    assert resp.status_code == 400
    assert "resigned" in resp.json()["detail"]


async def test_apply_on_notice_allowed(
    async_client: AsyncClient,
    make_employee: Factory,
    standard_policies: Factory,
    grant: Factory,
) -> None:
    await standard_policies()
    employee = await make_employee(status=EmploymentStatus.ON_NOTICE)
    await grant(employee, LeaveType.CASUAL, 5)

    resp = await _apply(async_client, employee, MON)
    assert resp.status_code == 201


async def test_apply_unknown_employee(async_client: AsyncClient) -> None:
    resp = await async_client.post(REQUESTS_URL, json=_payload(MON), headers=_headers(uuid.uuid4()))
    assert resp.status_code == 404


# ---------------------------------------------------------------------------
# Admission errors
# ---------------------------------------------------------------------------


async def test_apply_invalid_range(
    async_client: AsyncClient,
    make_employee: Factory,
    standard_policies: Factory,
    grant: Factory,
    read_balance: Factory,
) -> None:
    await standard_policies()
    employee = await make_employee()
    await grant(employee, LeaveType.CASUAL, 5)

    resp = await _apply(async_client, employee, WED, MON)
    assert resp.status_code == 400
    assert resp.json()["error"] == "InvalidRangeError"
    assert await read_balance(employee.id, LeaveType.CASUAL) == Decimal("5")


async def test_apply_starting_on_weekend(
    async_client: AsyncClient,
    make_employee: Factory,
    standard_policies: Factory,
    grant: Factory,
) -> None:
    await standard_policies()
    employee = await make_employee()
    await grant(employee, LeaveType.CASUAL, 5)

    resp = await _apply(async_client, employee, SAT, NEXT_MON)
    assert resp.status_code == 400
    assert resp.json()["error"] == "InvalidRangeError"


async def test_apply_insufficient_balance(
    async_client: AsyncClient,
    make_employee: Factory,
    standard_policies: Factory,
    grant: Factory,
) -> None:
    await standard_policies()
    employee = await make_employee()
    await grant(employee, LeaveType.CASUAL, 2)

    resp = await _apply(async_client, employee, MON, WED)
    assert resp.status_code == 400
    body = resp.json()
    assert body["error"] == "InsufficientBalanceError"
    assert Decimal(body["details"]["available"]) == Decimal("2")
    assert Decimal(body["details"]["required"]) == Decimal("3")


async def test_apply_zero_balance(
    async_client: AsyncClient,
    make_employee: Factory,
    standard_policies: Factory,
) -> None:
    await standard_policies()
    employee = await make_employee()

    resp = await _apply(async_client, employee, MON, start_marker="first_half", end_marker="first_half")
    assert resp.status_code == 400
    assert resp.json()["error"] == "InsufficientBalanceError"


async def test_apply_conflict_with_pending(
    async_client: AsyncClient,
    make_employee: Factory,
    standard_policies: Factory,
    grant: Factory,
) -> None:
    await standard_policies()
    employee = await make_employee()
    await grant(employee, LeaveType.CASUAL, 5)

    assert (await _apply(async_client, employee, MON)).status_code == 201
    resp = await _apply(async_client, employee, MON, TUE)
    assert resp.status_code == 409
    body = resp.json()
    assert body["error"] == "ConflictError"
    assert body["details"] == {"date": "2026-03-09", "existing_status": "pending"}


async def test_apply_conflict_across_leave_types(
    async_client: AsyncClient,
    make_employee: Factory,
    standard_policies: Factory,
    grant: Factory,
) -> None:
    await standard_policies()
    employee = await make_employee()
    await grant(employee, LeaveType.CASUAL, 5)
    await grant(employee, LeaveType.LOP, 5)

    assert (await _apply(async_client, employee, MON)).status_code == 201
    resp = await _apply(async_client, employee, MON, leave_type="lop")
    assert resp.status_code == 409


async def test_apply_half_day_conflicts_with_other_half(
    async_client: AsyncClient,
    make_employee: Factory,
    standard_policies: Factory,
    grant: Factory,
) -> None:
    await standard_policies()
    employee = await make_employee()
    await grant(employee, LeaveType.CASUAL, 5)

    first = await _apply(async_client, employee, MON, start_marker="first_half", end_marker="first_half")
    assert first.status_code == 201
    second = await _apply(async_client, employee, MON, start_marker="second_half", end_marker="second_half")
    assert second.status_code == 409


async def test_apply_adjacent_requests_do_not_conflict(
    async_client: AsyncClient,
    make_employee: Factory,
    standard_policies: Factory,
    grant: Factory,
) -> None:
    await standard_policies()
    employee = await make_employee()
    await grant(employee, LeaveType.CASUAL, 5)

    assert (await _apply(async_client, employee, MON)).status_code == 201
    assert (await _apply(async_client, employee, TUE)).status_code == 201


async def test_apply_monthly_cap_exceeded(
    async_client: AsyncClient,
    make_employee: Factory,
    standard_policies: Factory,
    grant: Factory,
) -> None:
    await standard_policies()
    employee = await make_employee()
    await grant(employee, LeaveType.CASUAL, 15)

    # Ten working days, 6 to 17 April, uses the whole April cap.
    first = await _apply(async_client, employee, date(2026, 4, 6), date(2026, 4, 17))
    assert first.status_code == 201

    resp = await _apply(async_client, employee, date(2026, 4, 20))
    assert resp.status_code == 400
    body = resp.json()
    assert body["error"] == "MonthlyCapExceededError"
    assert body["details"]["month"] == "2026-04"
    assert Decimal(body["details"]["used"]) == Decimal("10")


async def test_apply_cap_checked_per_month(
    async_client: AsyncClient,
    make_employee: Factory,
    standard_policies: Factory,
    grant: Factory,
) -> None:
    await standard_policies()
    employee = await make_employee()
    await grant(employee, LeaveType.CASUAL, 15)

    assert (await _apply(async_client, employee, date(2026, 4, 6), date(2026, 4, 17))).status_code == 201
    # May has its own allowance.
    assert (await _apply(async_client, employee, date(2026, 5, 4))).status_code == 201


async def test_apply_lop_cap(
    async_client: AsyncClient,
    make_employee: Factory,
    standard_policies: Factory,
    grant: Factory,
) -> None:
    await standard_policies()
    employee = await make_employee()
    await grant(employee, LeaveType.LOP, 10)

    # Loss-of-pay counts calendar days: 9 to 14 March is six days against a cap of five.
    resp = await _apply(async_client, employee, MON, SAT, leave_type="lop")
    assert resp.status_code == 400
    assert resp.json()["error"] == "MonthlyCapExceededError"


async def test_apply_casual_short_notice(
    async_client: AsyncClient,
    make_employee: Factory,
    standard_policies: Factory,
    grant: Factory,
) -> None:
    await standard_policies()
    employee = await make_employee()
    await grant(employee, LeaveType.CASUAL, 5)

    resp = await _apply(async_client, employee, date(2026, 3, 4))
    assert resp.status_code == 400
    body = resp.json()
    assert body["error"] == "PriorNoticeViolationError"
    assert body["details"] == {"required_notice_days": 3, "notice_days": 2}


async def test_apply_casual_longer_leave_needs_more_notice(
    async_client: AsyncClient,
    make_employee: Factory,
    standard_policies: Factory,
    grant: Factory,
) -> None:
    await standard_policies()
    employee = await make_employee()
    await grant(employee, LeaveType.CASUAL, 10)

    # Fri 6 to Tue 10 March is three working days, four days out.
    resp = await _apply(async_client, employee, date(2026, 3, 6), date(2026, 3, 10))
    assert resp.status_code == 400
    assert resp.json()["details"]["required_notice_days"] == 7


async def test_apply_sick_for_today(
    async_client: AsyncClient,
    make_employee: Factory,
    standard_policies: Factory,
    grant: Factory,
) -> None:
    await standard_policies()
    employee = await make_employee()
    await grant(employee, LeaveType.SICK, 3)

    resp = await _apply(async_client, employee, date(2026, 3, 2), leave_type="sick")
    assert resp.status_code == 201


async def test_apply_sick_backdated_within_window(
    async_client: AsyncClient,
    make_employee: Factory,
    standard_policies: Factory,
    grant: Factory,
) -> None:
    await standard_policies()
    employee = await make_employee()
    await grant(employee, LeaveType.SICK, 3)

    # Friday 27 February is three days back.
    resp = await _apply(async_client, employee, date(2026, 2, 27), leave_type="sick")
    assert resp.status_code == 201


async def test_apply_sick_too_far_ahead(
    async_client: AsyncClient,
    make_employee: Factory,
    standard_policies: Factory,
    grant: Factory,
) -> None:
    await standard_policies()
    employee = await make_employee()
    await grant(employee, LeaveType.SICK, 3)

    resp = await _apply(async_client, employee, date(2026, 3, 4), leave_type="sick")
    assert resp.status_code == 400
    assert resp.json()["error"] == "PriorNoticeViolationError"


async def test_apply_sick_too_far_back(
    async_client: AsyncClient,
    make_employee: Factory,
    standard_policies: Factory,
    grant: Factory,
) -> None:
    await standard_policies()
    employee = await make_employee()
    await grant(employee, LeaveType.SICK, 3)

    resp = await _apply(async_client, employee, date(2026, 2, 26), leave_type="sick")
    assert resp.status_code == 400
    assert resp.json()["error"] == "PriorNoticeViolationError"


async def test_apply_lop_in_past(
    async_client: AsyncClient,
    make_employee: Factory,
    standard_policies: Factory,
    grant: Factory,
) -> None:
    await standard_policies()
    employee = await make_employee()
    await grant(employee, LeaveType.LOP, 5)

    resp = await _apply(async_client, employee, date(2026, 2, 27), leave_type="lop")
    assert resp.status_code == 400
    assert resp.json()["error"] == "PriorNoticeViolationError"


async def test_apply_lop_today(
    async_client: AsyncClient,
    make_employee: Factory,
    standard_policies: Factory,
    grant: Factory,
) -> None:
    await standard_policies()
    employee = await make_employee()
    await grant(employee, LeaveType.LOP, 5)

    resp = await _apply(async_client, employee, date(2026, 3, 2), leave_type="lop")
    assert resp.status_code == 201


async def test_apply_rejects_unknown_leave_type(async_client: AsyncClient, make_employee: Factory) -> None:
    employee = await make_employee()
    resp = await _apply(async_client, employee, MON, leave_type="vacation")
    assert resp.status_code == 422


# ---------------------------------------------------------------------------
# Edit
# ---------------------------------------------------------------------------


async def test_edit_replaces_days_and_rebalances(
    async_client: AsyncClient,
    db_session: AsyncSession,
    make_employee: Factory,
    standard_policies: Factory,
    grant: Factory,
    read_balance: Factory,
) -> None:
    await standard_policies()
    employee = await make_employee()
    await grant(employee, LeaveType.CASUAL, 5)

    created = await _apply(async_client, employee, MON, WED)
    request_id = created.json()["id"]
    assert await read_balance(employee.id, LeaveType.CASUAL) == Decimal("2")

    resp = await async_client.put(
        f"{REQUESTS_URL}/{request_id}",
        json=_payload(MON, reason="Shorter trip"),
        headers=_headers(employee),
    )
    assert resp.status_code == 200
    data = resp.json()
    assert data["revision"] == 2
    assert Decimal(data["no_of_days"]) == Decimal("1")
    assert data["reason"] == "Shorter trip"
    assert [d["leave_date"] for d in data["days"]] == ["2026-03-09"]
    assert await read_balance(employee.id, LeaveType.CASUAL) == Decimal("4")

    result = await db_session.execute(
        select(col(LeaveLedgerEntry.idempotency_key)).order_by(col(LeaveLedgerEntry.created_at))
    )
    keys = list(result.scalars().all())
    assert f"reserve:{request_id}:1" in keys
    assert f"release:{request_id}:1" in keys
    assert f"reserve:{request_id}:2" in keys


async def test_edit_can_grow_into_own_reservation(
    async_client: AsyncClient,
    make_employee: Factory,
    standard_policies: Factory,
    grant: Factory,
    read_balance: Factory,
) -> None:
    await standard_policies()
    employee = await make_employee()
    await grant(employee, LeaveType.CASUAL, 3)

    created = await _apply(async_client, employee, MON, TUE)
    assert await read_balance(employee.id, LeaveType.CASUAL) == Decimal("1")

    # Own reservation counts as available, so 2 held + 1 free covers three days.
    resp = await async_client.put(
        f"{REQUESTS_URL}/{created.json()['id']}",
        json=_payload(MON, WED),
        headers=_headers(employee),
    )
    assert resp.status_code == 200
    assert await read_balance(employee.id, LeaveType.CASUAL) == Decimal("0")


async def test_edit_does_not_conflict_with_itself(
    async_client: AsyncClient,
    make_employee: Factory,
    standard_policies: Factory,
    grant: Factory,
) -> None:
    await standard_policies()
    employee = await make_employee()
    await grant(employee, LeaveType.CASUAL, 5)

    created = await _apply(async_client, employee, MON, TUE)
    resp = await async_client.put(
        f"{REQUESTS_URL}/{created.json()['id']}",
        json=_payload(TUE, WED),
        headers=_headers(employee),
    )
    assert resp.status_code == 200


async def test_edit_failure_keeps_original(
    async_client: AsyncClient,
    make_employee: Factory,
    standard_policies: Factory,
    grant: Factory,
    read_balance: Factory,
) -> None:
    await standard_policies()
    employee = await make_employee()
    await grant(employee, LeaveType.CASUAL, 2)

    created = await _apply(async_client, employee, MON)
    request_id = created.json()["id"]

    resp = await async_client.put(
        f"{REQUESTS_URL}/{request_id}",
        json=_payload(MON, FRI),
        headers=_headers(employee),
    )
    assert resp.status_code == 400
    assert resp.json()["error"] == "InsufficientBalanceError"
    assert await read_balance(employee.id, LeaveType.CASUAL) == Decimal("1")

    fetched = await async_client.get(f"{REQUESTS_URL}/{request_id}", headers=_headers(employee))
    assert fetched.json()["revision"] == 1
    assert [d["leave_date"] for d in fetched.json()["days"]] == ["2026-03-09"]


async def test_edit_by_other_employee_forbidden(
    async_client: AsyncClient,
    make_employee: Factory,
    standard_policies: Factory,
    grant: Factory,
) -> None:
    await standard_policies()
    employee = await make_employee()
    hr = await make_employee(role=EmployeeRole.HR)
    await grant(employee, LeaveType.CASUAL, 5)

    created = await _apply(async_client, employee, MON)
    resp = await async_client.put(
        f"{REQUESTS_URL}/{created.json()['id']}",
        json=_payload(TUE),
        headers=_headers(hr, "hr"),
    )
    assert resp.status_code == 403


async def test_edit_after_decision_rejected(
    async_client: AsyncClient,
    make_employee: Factory,
    standard_policies: Factory,
    grant: Factory,
) -> None:
    await standard_policies()
    manager = await make_employee(role=EmployeeRole.MANAGER)
    employee = await make_employee(manager=manager)
    await grant(employee, LeaveType.CASUAL, 5)

    created = await _apply(async_client, employee, MON, TUE)
    request_id = created.json()["id"]
    decided = await async_client.post(
        f"{REQUESTS_URL}/{request_id}/decision",
        json={"decision": "partial_approve", "affected_dates": ["2026-03-09"]},
        headers=_headers(manager, "manager"),
    )
    assert decided.status_code == 200

    resp = await async_client.put(f"{REQUESTS_URL}/{request_id}", json=_payload(WED), headers=_headers(employee))
    assert resp.status_code == 409
    assert resp.json()["error"] == "AlreadyFinalizedError"


async def test_edit_not_found(async_client: AsyncClient, make_employee: Factory) -> None:
    employee = await make_employee()
    resp = await async_client.put(f"{REQUESTS_URL}/{uuid.uuid4()}", json=_payload(MON), headers=_headers(employee))
    assert resp.status_code == 404


# ---------------------------------------------------------------------------
# Withdraw
# ---------------------------------------------------------------------------


async def test_withdraw_releases_balance(
    async_client: AsyncClient,
    db_session: AsyncSession,
    make_employee: Factory,
    standard_policies: Factory,
    grant: Factory,
    read_balance: Factory,
) -> None:
    await standard_policies()
    employee = await make_employee()
    await grant(employee, LeaveType.CASUAL, 5)

    created = await _apply(async_client, employee, MON, WED)
    request_id = created.json()["id"]

    resp = await async_client.delete(f"{REQUESTS_URL}/{request_id}", headers=_headers(employee))
    assert resp.status_code == 204
    assert await read_balance(employee.id, LeaveType.CASUAL) == Decimal("5")

    fetched = await async_client.get(f"{REQUESTS_URL}/{request_id}", headers=_headers(employee))
    assert fetched.status_code == 404

    result = await db_session.execute(select(col(LeaveDay.id)))
    assert result.scalars().all() == []

    audit = await db_session.execute(
        select(col(AuditLog.action)).where(col(AuditLog.entity_id) == uuid.UUID(request_id))
    )
    assert list(audit.scalars().all()) == ["APPLY", "WITHDRAW"]


async def test_withdraw_frees_dates_for_new_request(
    async_client: AsyncClient,
    make_employee: Factory,
    standard_policies: Factory,
    grant: Factory,
) -> None:
    await standard_policies()
    employee = await make_employee()
    await grant(employee, LeaveType.CASUAL, 5)

    created = await _apply(async_client, employee, MON)
    await async_client.delete(f"{REQUESTS_URL}/{created.json()['id']}", headers=_headers(employee))
    assert (await _apply(async_client, employee, MON)).status_code == 201


async def test_withdraw_by_manager_forbidden(
    async_client: AsyncClient,
    make_employee: Factory,
    standard_policies: Factory,
    grant: Factory,
) -> None:
    await standard_policies()
    manager = await make_employee(role=EmployeeRole.MANAGER)
    employee = await make_employee(manager=manager)
    await grant(employee, LeaveType.CASUAL, 5)

    created = await _apply(async_client, employee, MON)
    resp = await async_client.delete(f"{REQUESTS_URL}/{created.json()['id']}", headers=_headers(manager, "manager"))
    assert resp.status_code == 403


async def test_withdraw_after_approval_rejected(
    async_client: AsyncClient,
    make_employee: Factory,
    standard_policies: Factory,
    grant: Factory,
    read_balance: Factory,
) -> None:
    await standard_policies()
    manager = await make_employee(role=EmployeeRole.MANAGER)
    employee = await make_employee(manager=manager)
    await grant(employee, LeaveType.CASUAL, 5)

    created = await _apply(async_client, employee, MON)
    request_id = created.json()["id"]
    await async_client.post(
        f"{REQUESTS_URL}/{request_id}/decision",
        json={"decision": "approve"},
        headers=_headers(manager, "manager"),
    )

    resp = await async_client.delete(f"{REQUESTS_URL}/{request_id}", headers=_headers(employee))
    assert resp.status_code == 409
    assert await read_balance(employee.id, LeaveType.CASUAL) == Decimal("4")


# ---------------------------------------------------------------------------
# Get / list
# ---------------------------------------------------------------------------


async def test_get_request_visibility(
    async_client: AsyncClient,
    make_employee: Factory,
    standard_policies: Factory,
    grant: Factory,
) -> None:
    await standard_policies()
    manager = await make_employee(role=EmployeeRole.MANAGER)
    other_manager = await make_employee(role=EmployeeRole.MANAGER)
    hr = await make_employee(role=EmployeeRole.HR)
    employee = await make_employee(manager=manager)
    colleague = await make_employee(manager=manager)
    await grant(employee, LeaveType.CASUAL, 5)

    created = await _apply(async_client, employee, MON)
    url = f"{REQUESTS_URL}/{created.json()['id']}"

    assert (await async_client.get(url, headers=_headers(employee))).status_code == 200
    assert (await async_client.get(url, headers=_headers(manager, "manager"))).status_code == 200
    assert (await async_client.get(url, headers=_headers(hr, "hr"))).status_code == 200
    assert (await async_client.get(url, headers=_headers(other_manager, "manager"))).status_code == 403
    assert (await async_client.get(url, headers=_headers(colleague))).status_code == 403


async def test_list_requests_scoped_to_caller(
    async_client: AsyncClient,
    make_employee: Factory,
    standard_policies: Factory,
    grant: Factory,
) -> None:
    await standard_policies()
    manager = await make_employee(role=EmployeeRole.MANAGER)
    hr = await make_employee(role=EmployeeRole.HR)
    first = await make_employee(manager=manager)
    second = await make_employee(manager=manager)
    outsider = await make_employee()
    for employee in (first, second, outsider):
        await grant(employee, LeaveType.CASUAL, 5)
        assert (await _apply(async_client, employee, MON)).status_code == 201

    own = await async_client.get(REQUESTS_URL, headers=_headers(first))
    assert own.json()["total"] == 1
    assert own.json()["items"][0]["employee_id"] == str(first.id)

    team = await async_client.get(REQUESTS_URL, headers=_headers(manager, "manager"))
    assert team.json()["total"] == 2
    assert {item["employee_id"] for item in team.json()["items"]} == {str(first.id), str(second.id)}

    everyone = await async_client.get(REQUESTS_URL, headers=_headers(hr, "hr"))
    assert everyone.json()["total"] == 3


async def test_list_requests_filters(
    async_client: AsyncClient,
    make_employee: Factory,
    standard_policies: Factory,
    grant: Factory,
) -> None:
    await standard_policies()
    hr = await make_employee(role=EmployeeRole.HR)
    employee = await make_employee()
    await grant(employee, LeaveType.CASUAL, 5)
    await grant(employee, LeaveType.LOP, 5)
    await _apply(async_client, employee, MON)
    await _apply(async_client, employee, TUE, leave_type="lop")

    by_type = await async_client.get(REQUESTS_URL, params={"leave_type": "lop"}, headers=_headers(hr, "hr"))
    assert by_type.json()["total"] == 1
    assert by_type.json()["items"][0]["leave_type"] == "lop"

    by_status = await async_client.get(REQUESTS_URL, params={"status": "approved"}, headers=_headers(hr, "hr"))
    assert by_status.json()["total"] == 0

    by_employee = await async_client.get(
        REQUESTS_URL, params={"employee_id": str(employee.id)}, headers=_headers(hr, "hr")
    )
    assert by_employee.json()["total"] == 2


async def test_list_requests_for_unrelated_employee_forbidden(
    async_client: AsyncClient,
    make_employee: Factory,
) -> None:
    employee = await make_employee()
    stranger = await make_employee()
    resp = await async_client.get(
        REQUESTS_URL, params={"employee_id": str(stranger.id)}, headers=_headers(employee)
    )
    assert resp.status_code == 403


async def test_list_requests_pagination(
    async_client: AsyncClient,
    make_employee: Factory,
    standard_policies: Factory,
    grant: Factory,
) -> None:
    await standard_policies()
    employee = await make_employee()
    await grant(employee, LeaveType.CASUAL, 5)
    for start in (MON, TUE, WED):
        await _apply(async_client, employee, start)

    resp = await async_client.get(REQUESTS_URL, params={"offset": 1, "limit": 1}, headers=_headers(employee))
    assert resp.json()["total"] == 3
    assert len(resp.json()["items"]) == 1


async def test_requests_require_user_header(async_client: AsyncClient) -> None:
    resp = await async_client.get(REQUESTS_URL)
    assert resp.status_code == 422

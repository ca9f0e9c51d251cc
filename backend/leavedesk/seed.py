"""Seed script for development data.

Run with:  python -m leavedesk.seed
The API must already be running at BASE_URL.
"""

from __future__ import annotations

import asyncio
import sys
from datetime import date, timedelta
from typing import Any

import httpx

BASE_URL = "http://localhost:8000"

# Bootstrap identity. Dev auth trusts the headers, so the seed acts as a
# super admin that does not need its own employee row.
BOOTSTRAP_ADMIN_ID = "00000000-0000-0000-0000-000000000001"

ADMIN_HEADERS = {
    "Content-Type": "application/json",
    "X-User-Id": BOOTSTRAP_ADMIN_ID,
    "X-Role": "super_admin",
}

POLICY_EFFECTIVE_FROM = "2024-01-01"

POLICIES: list[dict[str, Any]] = [
    {
        "role": role,
        "leave_type": "casual",
        "annual_credit": "12",
        "annual_max": "99",
        "carry_forward_limit": "8",
        "max_leave_per_month": "10",
        "anniversary_3_year_bonus": "3",
        "anniversary_5_year_bonus": "5",
    }
    for role in ("employee", "manager", "hr")
] + [
    {"role": role, "leave_type": "sick", "annual_credit": "6", "carry_forward_limit": "0"}
    for role in ("employee", "manager", "hr", "intern")
] + [
    {"role": role, "leave_type": "lop", "year_opening_balance": "10", "max_leave_per_month": "5"}
    for role in ("employee", "manager", "hr", "intern")
] + [
    {
        "role": "intern",
        "leave_type": "casual",
        "annual_credit": "6",
        "annual_max": "99",
        "carry_forward_limit": "0",
        "max_leave_per_month": "10",
    },
]

# Created in order; "manager" refers to an emp_code created earlier.
EMPLOYEES: list[dict[str, Any]] = [
    {
        "emp_code": "HR001",
        "first_name": "Priya",
        "last_name": "Raman",
        "email": "priya.raman@example.com",
        "role": "hr",
        "date_of_joining": "2019-04-01",
        "date_of_birth": "1988-07-12",
    },
    {
        "emp_code": "MGR001",
        "first_name": "Arjun",
        "last_name": "Mehta",
        "email": "arjun.mehta@example.com",
        "role": "manager",
        "date_of_joining": "2020-02-17",
        "date_of_birth": "1985-11-03",
    },
    {
        "emp_code": "EMP001",
        "first_name": "Kavya",
        "last_name": "Iyer",
        "email": "kavya.iyer@example.com",
        "role": "employee",
        "manager": "MGR001",
        "date_of_joining": "2021-06-14",
        "date_of_birth": "1994-02-28",
    },
    {
        "emp_code": "EMP002",
        "first_name": "Rohan",
        "last_name": "Das",
        "email": "rohan.das@example.com",
        "role": "employee",
        "manager": "MGR001",
        "date_of_joining": "2023-09-01",
    },
    {
        "emp_code": "INT001",
        "first_name": "Meera",
        "last_name": "Nair",
        "email": "meera.nair@example.com",
        "role": "intern",
        "manager": "MGR001",
        "date_of_joining": "2025-07-01",
    },
]

HOLIDAYS = [
    {"date": "2026-01-26", "name": "Republic Day"},
    {"date": "2026-03-04", "name": "Holi"},
    {"date": "2026-08-15", "name": "Independence Day"},
    {"date": "2026-10-02", "name": "Gandhi Jayanti"},
    {"date": "2026-11-09", "name": "Diwali"},
    {"date": "2026-12-25", "name": "Christmas"},
]


async def _safe_post(
    client: httpx.AsyncClient,
    path: str,
    json: dict[str, Any],
    label: str,
    headers: dict[str, str] = ADMIN_HEADERS,
) -> dict[str, Any] | None:
    """POST with 409-conflict tolerance so the script can be re-run."""
    resp = await client.post(f"{BASE_URL}{path}", json=json, headers=headers)
    if resp.status_code in (200, 201):
        print(f"  [OK] {label}")
        return resp.json()
    if resp.status_code == 409:
        print(f"  [SKIP] {label} (already exists)")
        return None
    print(f"  [ERROR] {label}: {resp.status_code} {resp.text[:200]}")
    return None


async def seed_policies(client: httpx.AsyncClient) -> None:
    print("\n--- Seeding policies ---")
    for policy in POLICIES:
        await _safe_post(
            client,
            "/policies",
            {**policy, "effective_from": POLICY_EFFECTIVE_FROM},
            f"Policy: {policy['role']}/{policy['leave_type']}",
        )


async def _existing_employee_ids(client: httpx.AsyncClient) -> dict[str, str]:
    resp = await client.get(f"{BASE_URL}/employees", headers=ADMIN_HEADERS, params={"limit": 100})
    if resp.status_code != 200:
        return {}
    return {item["emp_code"]: item["id"] for item in resp.json().get("items", [])}


async def seed_employees(client: httpx.AsyncClient) -> dict[str, str]:
    """Create employees and return an emp_code -> id mapping."""
    print("\n--- Seeding employees ---")
    ids = await _existing_employee_ids(client)

    for employee in EMPLOYEES:
        code = employee["emp_code"]
        if code in ids:
            print(f"  [SKIP] {code} (already exists)")
            continue
        body = {k: v for k, v in employee.items() if k != "manager"}
        if "manager" in employee:
            body["reporting_manager_id"] = ids.get(employee["manager"])
        result = await _safe_post(client, "/employees", body, f"Employee: {code}")
        if result:
            ids[code] = result["id"]

    return ids


async def seed_holidays(client: httpx.AsyncClient) -> None:
    print("\n--- Seeding holidays ---")
    for holiday in HOLIDAYS:
        await _safe_post(client, "/holidays", holiday, f"Holiday: {holiday['name']}")


OPENING_BALANCES = {"casual": "4", "sick": "6"}


async def _current_balances(client: httpx.AsyncClient, employee_id: str) -> dict[str, str]:
    resp = await client.get(f"{BASE_URL}/employees/{employee_id}/balances", headers=ADMIN_HEADERS)
    if resp.status_code != 200:
        return {}
    return {item["leave_type"]: item["balance"] for item in resp.json().get("items", [])}


async def seed_balances(client: httpx.AsyncClient, ids: dict[str, str]) -> None:
    """Give each non-admin employee an opening casual and sick balance (skipped when already non-zero)."""
    print("\n--- Seeding balances ---")
    for code in ("EMP001", "EMP002", "INT001"):
        employee_id = ids.get(code)
        if employee_id is None:
            continue
        current = await _current_balances(client, employee_id)
        for leave_type, amount in OPENING_BALANCES.items():
            if float(current.get(leave_type, "0")) > 0:
                print(f"  [SKIP] {code} {leave_type} (balance already {current[leave_type]})")
                continue
            await _safe_post(
                client,
                "/adjustments",
                {"employee_id": employee_id, "leave_type": leave_type, "amount": amount, "reason": "Opening balance"},
                f"Opening {leave_type} balance: {code} +{amount}",
            )


def _next_weekday(start: date, days_ahead: int) -> date:
    candidate = start + timedelta(days=days_ahead)
    while candidate.weekday() >= 5:
        candidate += timedelta(days=1)
    return candidate


async def seed_requests(client: httpx.AsyncClient, ids: dict[str, str]) -> None:
    """File one pending casual request for Kavya a couple of weeks out."""
    print("\n--- Seeding requests ---")
    employee_id = ids.get("EMP001")
    if employee_id is None:
        print("  [SKIP] EMP001 not found")
        return

    start = _next_weekday(date.today(), 14)
    headers = {**ADMIN_HEADERS, "X-User-Id": employee_id, "X-Role": "employee"}
    await _safe_post(
        client,
        "/requests",
        {
            "leave_type": "casual",
            "start_date": start.isoformat(),
            "end_date": start.isoformat(),
            "reason": "Family function",
        },
        "Request: Kavya 1-day casual (pending)",
        headers=headers,
    )


async def main() -> None:
    print("=" * 60)
    print("  LeaveDesk: Development Seed Script")
    print("=" * 60)

    async with httpx.AsyncClient(timeout=30.0) as client:
        try:
            resp = await client.get(f"{BASE_URL}/health")
            if resp.status_code != 200:
                print(f"API health check failed: {resp.status_code}")
                sys.exit(1)
            print("\n[OK] API is healthy")
        except httpx.ConnectError:
            print("ERROR: Cannot connect to API at", BASE_URL)
            sys.exit(1)

        await seed_policies(client)
        ids = await seed_employees(client)
        await seed_holidays(client)
        await seed_balances(client, ids)
        await seed_requests(client, ids)

    print("\n" + "=" * 60)
    print("  Seeding complete!")
    print("=" * 60)


if __name__ == "__main__":
    asyncio.run(main())

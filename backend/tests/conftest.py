from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING, Any

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import col

from leavedesk.clock import FixedClock, SystemClock, set_clock
from leavedesk.db import get_session
from leavedesk.main import app
from leavedesk.models import Employee, LeaveBalance, LeavePolicyConfig, SQLModel
from leavedesk.models.enums import EmployeeRole, EmploymentStatus, LeaveType, LedgerEntryType, LedgerSourceType
from leavedesk.services.balance import adjust_balance
from leavedesk.services.email import InMemoryEmailDispatcher, LoggingEmailDispatcher, set_email_dispatcher

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable, Iterator

    from sqlalchemy.ext.asyncio import AsyncEngine

# A Monday. Every test runs with this as "today" unless it moves the clock.
TODAY = date(2026, 3, 2)

TEST_DATABASE_URL = "sqlite+aiosqlite://"


@pytest.fixture
async def engine() -> AsyncIterator[AsyncEngine]:
    """Fresh in-memory SQLite database per test."""
    _engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with _engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield _engine
    await _engine.dispose()


@pytest.fixture
async def db_session(engine: AsyncEngine) -> AsyncIterator[AsyncSession]:
    async with AsyncSession(engine, expire_on_commit=False) as session:
        yield session


@pytest.fixture
async def async_client(db_session: AsyncSession) -> AsyncIterator[AsyncClient]:
    """Async HTTP client with the database session dependency overridden."""

    async def _override_get_session() -> AsyncIterator[AsyncSession]:
        yield db_session

    app.dependency_overrides[get_session] = _override_get_session
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def clock() -> Iterator[FixedClock]:
    fixed = FixedClock(TODAY)
    set_clock(fixed)
    yield fixed
    set_clock(SystemClock())


@pytest.fixture(autouse=True)
def outbox() -> Iterator[InMemoryEmailDispatcher]:
    """Captures every notification sent during the test."""
    dispatcher = InMemoryEmailDispatcher()
    set_email_dispatcher(dispatcher)
    yield dispatcher
    set_email_dispatcher(LoggingEmailDispatcher())


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------


@pytest.fixture
def make_employee(db_session: AsyncSession) -> Callable[..., Awaitable[Employee]]:
    """Insert an employee with zero balances for every leave type."""

    async def _make(
        *,
        role: EmployeeRole = EmployeeRole.EMPLOYEE,
        status: EmploymentStatus = EmploymentStatus.ACTIVE,
        manager: Employee | None = None,
        joined: date = date(2024, 6, 10),
        born: date | None = None,
        name: str | None = None,
    ) -> Employee:
        code = f"E{uuid.uuid4().hex[:8].upper()}"
        first_name = name or code.title()
        employee = Employee(
            emp_code=code,
            first_name=first_name,
            last_name="Tester",
            email=f"{first_name.lower()}.{code.lower()}@example.com",
            role=role.value,
            status=status.value,
            reporting_manager_id=manager.id if manager is not None else None,
            date_of_joining=joined,
            date_of_birth=born,
        )
        db_session.add(employee)
        await db_session.flush()
        for leave_type in LeaveType:
            db_session.add(LeaveBalance(employee_id=employee.id, leave_type=leave_type.value))
        await db_session.commit()
        # Detached so later rollbacks in the session under test never expire it.
        db_session.expunge(employee)
        return employee

    return _make


@pytest.fixture
def make_policy(db_session: AsyncSession) -> Callable[..., Awaitable[LeavePolicyConfig]]:
    async def _make(
        role: EmployeeRole,
        leave_type: LeaveType,
        *,
        effective_from: date = date(2020, 1, 1),
        **fields: Any,
    ) -> LeavePolicyConfig:
        policy = LeavePolicyConfig(
            role=role.value,
            leave_type=leave_type.value,
            effective_from=effective_from,
            **{key: Decimal(str(value)) if value is not None else None for key, value in fields.items()},
        )
        db_session.add(policy)
        await db_session.commit()
        db_session.expunge(policy)
        return policy

    return _make


@pytest.fixture
def standard_policies(make_policy: Callable[..., Awaitable[LeavePolicyConfig]]) -> Callable[[], Awaitable[None]]:
    """Default policy set for regular employees and interns."""

    async def _make() -> None:
        for role in (EmployeeRole.EMPLOYEE, EmployeeRole.MANAGER, EmployeeRole.HR):
            await make_policy(
                role,
                LeaveType.CASUAL,
                annual_credit=12,
                annual_max=99,
                carry_forward_limit=8,
                max_leave_per_month=10,
                anniversary_3_year_bonus=3,
                anniversary_5_year_bonus=5,
            )
            await make_policy(role, LeaveType.SICK, annual_credit=6, carry_forward_limit=0)
            await make_policy(role, LeaveType.LOP, year_opening_balance=10, max_leave_per_month=5)
        await make_policy(
            EmployeeRole.INTERN,
            LeaveType.CASUAL,
            annual_credit=6,
            annual_max=99,
            carry_forward_limit=0,
            max_leave_per_month=10,
        )

    return _make


@pytest.fixture
def grant(db_session: AsyncSession) -> Callable[..., Awaitable[None]]:
    """Credit a balance directly through the ledger."""

    async def _grant(employee: Employee, leave_type: LeaveType, amount: Decimal | int | str) -> None:
        await adjust_balance(
            db_session,
            employee_id=employee.id,
            leave_type=leave_type,
            amount=Decimal(str(amount)),
            entry_type=LedgerEntryType.ADJUSTMENT,
            source_type=LedgerSourceType.ADMIN,
            source_id="test",
            idempotency_key=f"adjustment:{uuid.uuid4()}",
            effective_date=TODAY,
        )
        await db_session.commit()

    return _grant


@pytest.fixture
def read_balance(db_session: AsyncSession) -> Callable[[uuid.UUID, LeaveType], Awaitable[Decimal]]:
    """Read a balance straight from the table, bypassing the identity map."""

    async def _read(employee_id: uuid.UUID, leave_type: LeaveType) -> Decimal:
        result = await db_session.execute(
            select(col(LeaveBalance.balance)).where(
                col(LeaveBalance.employee_id) == employee_id,
                col(LeaveBalance.leave_type) == leave_type.value,
            )
        )
        return Decimal(str(result.scalar_one()))

    return _read

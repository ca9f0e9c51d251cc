# ruff: noqa: B008, TC001, TC003
from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Query, status

from leavedesk.api.deps import AdminDep, AuthDep
from leavedesk.clock import TodayDep
from leavedesk.db import SessionDep
from leavedesk.models.enums import EmployeeRole, LeaveType
from leavedesk.schemas.policy import PolicyListResponse, PolicyResponse, UpsertPolicyRequest
from leavedesk.services import policy as policy_service

router = APIRouter(
    prefix="/policies",
    tags=["policies"],
)


@router.post("", response_model=PolicyResponse, status_code=status.HTTP_201_CREATED)
async def upsert_policy(
    payload: UpsertPolicyRequest,
    session: SessionDep,
    auth: AdminDep,
) -> PolicyResponse:
    """Create a policy version, or correct the version with the same effective_from."""
    return await policy_service.upsert_policy(session, auth, payload)


@router.get("", response_model=PolicyListResponse)
async def list_policies(
    session: SessionDep,
    auth: AuthDep,
    role: EmployeeRole | None = Query(default=None),
    leave_type: LeaveType | None = Query(default=None),
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=100),
) -> PolicyListResponse:
    """List policy versions with optional filters."""
    return await policy_service.list_policies(session, role, leave_type, offset, limit)


@router.get("/effective", response_model=PolicyResponse)
async def get_effective_policy(
    session: SessionDep,
    auth: AuthDep,
    today: TodayDep,
    role: EmployeeRole = Query(),
    leave_type: LeaveType = Query(),
    on_date: date | None = Query(default=None),
) -> PolicyResponse:
    """Get the policy version in effect for a role and leave type (today unless ``on_date`` is given)."""
    return await policy_service.get_effective_policy_response(session, role, leave_type, on_date or today)

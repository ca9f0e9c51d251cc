# ruff: noqa: B008, TC001, TC003
from __future__ import annotations

import uuid

from fastapi import APIRouter, Query, status

from leavedesk.api.deps import AdminDep, AuthDep
from leavedesk.clock import TodayDep
from leavedesk.db import SessionDep
from leavedesk.models.enums import LeaveType, RequestStatus
from leavedesk.schemas.request import (
    ApplyLeavePayload,
    DecisionPayload,
    EditLeavePayload,
    RequestListResponse,
    RequestResponse,
)
from leavedesk.services import request as request_service

requests_router = APIRouter(
    prefix="/requests",
    tags=["requests"],
)


@requests_router.post("", response_model=RequestResponse, status_code=status.HTTP_201_CREATED)
async def apply_leave(
    payload: ApplyLeavePayload,
    session: SessionDep,
    auth: AuthDep,
    today: TodayDep,
) -> RequestResponse:
    """Apply for leave. HR and super admins may apply on behalf of another employee."""
    return await request_service.apply_leave(session, auth, payload, today)


@requests_router.get("", response_model=RequestListResponse)
async def list_requests(
    session: SessionDep,
    auth: AuthDep,
    employee_id: uuid.UUID | None = Query(default=None),
    status_filter: RequestStatus | None = Query(default=None, alias="status"),
    leave_type: LeaveType | None = Query(default=None),
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=100),
) -> RequestListResponse:
    """List leave requests visible to the caller with optional filters."""
    return await request_service.list_requests(
        session, auth, employee_id, status_filter, leave_type, offset, limit
    )


@requests_router.get("/{request_id}", response_model=RequestResponse)
async def get_request(
    request_id: uuid.UUID,
    session: SessionDep,
    auth: AuthDep,
) -> RequestResponse:
    """Get a single leave request with its days."""
    return await request_service.get_request(session, auth, request_id)


@requests_router.put("/{request_id}", response_model=RequestResponse)
async def edit_leave(
    request_id: uuid.UUID,
    payload: EditLeavePayload,
    session: SessionDep,
    auth: AuthDep,
    today: TodayDep,
) -> RequestResponse:
    """Edit a request whose days are all still pending."""
    return await request_service.edit_leave(session, auth, request_id, payload, today)


@requests_router.delete("/{request_id}", status_code=status.HTTP_204_NO_CONTENT)
async def withdraw_leave(
    request_id: uuid.UUID,
    session: SessionDep,
    auth: AuthDep,
    today: TodayDep,
) -> None:
    """Withdraw a request whose days are all still pending."""
    await request_service.withdraw_leave(session, auth, request_id, today)


@requests_router.post("/{request_id}/decision", response_model=RequestResponse)
async def decide_leave(
    request_id: uuid.UUID,
    payload: DecisionPayload,
    session: SessionDep,
    auth: AuthDep,
    today: TodayDep,
) -> RequestResponse:
    """Approve, reject or partially approve a request (reporting manager, HR or super admin)."""
    return await request_service.decide_leave(session, auth, request_id, payload, today)


@requests_router.post("/{request_id}/convert-lop-to-casual", response_model=RequestResponse)
async def convert_lop_to_casual(
    request_id: uuid.UUID,
    session: SessionDep,
    auth: AdminDep,
    today: TodayDep,
) -> RequestResponse:
    """Move a loss-of-pay request with attached proof onto casual leave (HR or super admin)."""
    return await request_service.convert_lop_to_casual(session, auth, request_id, today)

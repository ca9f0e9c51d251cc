# ruff: noqa: B008, TC001, TC003
"""Admin trigger for the scheduled jobs, for backfills and manual runs."""

from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Query

from leavedesk.api.deps import AdminDep
from leavedesk.clock import TodayDep
from leavedesk.db import SessionDep
from leavedesk.schemas.jobs import JobRunResponse
from leavedesk.services.jobs import JobName, run_job

jobs_router = APIRouter(
    prefix="/jobs",
    tags=["jobs"],
)


@jobs_router.post("/{name}", response_model=JobRunResponse)
async def trigger_job(
    name: JobName,
    session: SessionDep,
    auth: AdminDep,
    today: TodayDep,
    target_date: date | None = Query(default=None),
) -> JobRunResponse:
    """Run one scheduled job for ``target_date`` (defaults to today).

    Returns ``ran=false`` when the job has nothing to do on that date or
    another run currently holds its lease.
    """
    result = await run_job(session, name, target_date or today)
    return JobRunResponse(
        job=result.job,
        target_date=result.target_date,
        ran=result.ran,
        processed=result.processed,
        changed=result.changed,
        skipped=result.skipped,
        errors=result.errors,
        aborted=result.aborted,
    )

"""Registry of scheduled jobs and the lease-guarded runner shared by the worker and the admin API."""

from __future__ import annotations

import enum
import logging
from typing import TYPE_CHECKING

from leavedesk.config import get_settings
from leavedesk.services.accrual import run_anniversary_bonuses, run_monthly_credits
from leavedesk.services.auto_transition import run_auto_transition
from leavedesk.services.carryover import run_carry_forward, run_holiday_retention
from leavedesk.services.lease import LeaseHeartbeat, acquire_lease, new_holder_id, release_lease
from leavedesk.services.notifications import run_birthday_wishes, run_pending_reminders
from leavedesk.services.scheduling import JobRunResult

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from datetime import date

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from leavedesk.services.scheduling import Heartbeat

logger = logging.getLogger(__name__)


class JobName(enum.StrEnum):
    """Scheduled jobs, in the order the daily run executes them."""

    AUTO_TRANSITION = "auto-transition"
    CARRY_FORWARD = "carry-forward"
    HOLIDAY_RETENTION = "holiday-retention"
    MONTHLY_CREDIT = "monthly-credit"
    ANNIVERSARY = "anniversary"
    REMINDERS = "reminders"
    BIRTHDAYS = "birthdays"


JOBS: dict[JobName, Callable[[AsyncSession, date, Heartbeat | None], Awaitable[JobRunResult]]] = {
    JobName.AUTO_TRANSITION: run_auto_transition,
    # Carry-forward runs before the anniversary bonus so a January 1st bonus is never capped.
    JobName.CARRY_FORWARD: run_carry_forward,
    JobName.HOLIDAY_RETENTION: run_holiday_retention,
    JobName.MONTHLY_CREDIT: run_monthly_credits,
    JobName.ANNIVERSARY: run_anniversary_bonuses,
    JobName.REMINDERS: run_pending_reminders,
    JobName.BIRTHDAYS: run_birthday_wishes,
}


async def run_job(session: AsyncSession, name: JobName, target_date: date) -> JobRunResult:
    """Run one job under its lease. Returns a result with ``ran=False`` when another run holds it.

    The lease is renewed between per-employee steps; a run that finds its lease
    taken over stops early with ``aborted=True``.
    """
    holder = new_holder_id()
    settings = get_settings()

    if not await acquire_lease(session, name.value, holder, settings.job_lease_seconds):
        return JobRunResult(job=name.value, target_date=target_date, ran=False)

    try:
        heartbeat = LeaseHeartbeat(name.value, holder, settings.job_lease_seconds, settings.job_heartbeat_seconds)
        return await JOBS[name](session, target_date, heartbeat)
    finally:
        await session.rollback()
        await release_lease(session, name.value, holder)


async def run_daily_jobs(
    session_factory: async_sessionmaker[AsyncSession],
    target_date: date,
) -> list[JobRunResult]:
    """Run every job once for ``target_date``, each in its own session.

    One job failing outright is logged and does not stop the others.
    """
    results: list[JobRunResult] = []
    for name in JOBS:
        try:
            async with session_factory() as session:
                result = await run_job(session, name, target_date)
        except Exception:
            logger.exception("Job %s failed for %s", name, target_date)
            continue
        if result.ran:
            logger.info(
                "Job %s for %s: processed=%d changed=%d skipped=%d errors=%d",
                name,
                target_date,
                result.processed,
                result.changed,
                result.skipped,
                result.errors,
            )
        results.append(result)
    return results

"""Expiring job leases: at most one live run of each scheduled job."""

from __future__ import annotations

import logging
import os
import socket
import uuid
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import col

from leavedesk.models.lease import JobLease

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


def new_holder_id() -> str:
    """Identity of one job run: host, process and a random suffix."""
    return f"{socket.gethostname()}:{os.getpid()}:{uuid.uuid4().hex[:8]}"


async def acquire_lease(session: AsyncSession, job_name: str, holder: str, ttl_seconds: int) -> bool:
    """Claim ``job_name`` for ``holder`` and commit. Returns False while another live lease exists.

    An expired lease is taken over, so a crashed run never blocks the job for
    longer than its time to live.
    """
    now = datetime.now(UTC)
    expires_at = now + timedelta(seconds=ttl_seconds)

    result = await session.execute(
        select(JobLease)
        .where(col(JobLease.job_name) == job_name)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    lease = result.scalar_one_or_none()

    if lease is None:
        session.add(JobLease(job_name=job_name, holder=holder, acquired_at=now, expires_at=expires_at))
        try:
            await session.commit()
        except IntegrityError:
            await session.rollback()
            logger.info("Job %s was claimed concurrently, skipping", job_name)
            return False
        return True

    live = await session.execute(
        select(col(JobLease.holder)).where(
            col(JobLease.job_name) == job_name,
            col(JobLease.expires_at) > now,
        )
    )
    live_holder = live.scalar_one_or_none()
    if live_holder is not None and live_holder != holder:
        await session.rollback()
        logger.info("Job %s is held by %s, skipping", job_name, live_holder)
        return False

    lease.holder = holder
    lease.acquired_at = now
    lease.expires_at = expires_at
    await session.commit()
    return True


async def release_lease(session: AsyncSession, job_name: str, holder: str) -> None:
    await session.execute(
        delete(JobLease).where(col(JobLease.job_name) == job_name, col(JobLease.holder) == holder)
    )
    await session.commit()


async def renew_lease(session: AsyncSession, job_name: str, holder: str, ttl_seconds: int) -> bool:
    """Extend ``holder``'s lease on ``job_name`` by ``ttl_seconds`` from now and commit.

    Returns False when the lease has been taken over or released.
    """
    result = await session.execute(
        update(JobLease)
        .where(col(JobLease.job_name) == job_name, col(JobLease.holder) == holder)
        .values(expires_at=datetime.now(UTC) + timedelta(seconds=ttl_seconds))
    )
    await session.commit()
    if result.rowcount == 0:
        logger.warning("Lease on job %s is no longer held by %s", job_name, holder)
        return False
    return True


class LeaseHeartbeat:
    """Keeps a running job's lease alive.

    Jobs call the heartbeat between per-employee steps. It renews the lease at
    most once per ``interval_seconds`` and answers False once the lease has
    been lost, at which point the job stops.
    """

    def __init__(self, job_name: str, holder: str, ttl_seconds: int, interval_seconds: float) -> None:
        self.job_name = job_name
        self.holder = holder
        self.ttl_seconds = ttl_seconds
        self.interval = timedelta(seconds=interval_seconds)
        self.renewals = 0
        self._last_renewed = datetime.now(UTC)

    async def __call__(self, session: AsyncSession) -> bool:
        now = datetime.now(UTC)
        if now - self._last_renewed < self.interval:
            return True
        if not await renew_lease(session, self.job_name, self.holder, self.ttl_seconds):
            return False
        self._last_renewed = now
        self.renewals += 1
        return True

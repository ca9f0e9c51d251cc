"""Worker process for the scheduled leave jobs.

Runs an asyncio loop that executes every daily job (auto-transition,
carry-forward, holiday retention, monthly credit, anniversary bonuses,
reminders and birthday wishes) once per interval.
"""

from __future__ import annotations

import asyncio
import logging

from leavedesk.clock import get_clock
from leavedesk.config import get_settings
from leavedesk.db import get_session_factory

logger = logging.getLogger(__name__)


async def run_worker_loop() -> None:
    """Main worker loop. Each iteration evaluates the jobs against the clock's current date."""
    from leavedesk.services.jobs import run_daily_jobs

    settings = get_settings()
    logger.info("Leave worker started, interval=%ds", settings.worker_interval_seconds)
    session_factory = get_session_factory()

    while True:
        today = get_clock().today()
        logger.info("Running daily leave jobs for %s", today)
        try:
            results = await run_daily_jobs(session_factory, today)
            logger.info("Daily leave jobs complete for %s: %d job(s) ran", today, sum(r.ran for r in results))
        except Exception:
            logger.exception("Daily leave jobs failed for %s", today)

        await asyncio.sleep(settings.worker_interval_seconds)


def main() -> None:
    """Entry point for the worker process."""
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")
    asyncio.run(run_worker_loop())


if __name__ == "__main__":
    main()

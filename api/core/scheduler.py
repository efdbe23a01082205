"""
Interval jobs started from the app lifespan, run by APScheduler.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from .config import env_bool, env_float

logger = logging.getLogger(__name__)

Job = Callable[[], Awaitable[int]]


def scheduler_enabled() -> bool:
    return env_bool("SCHEDULER_ENABLED", True)


def scheduler_interval_s() -> float:
    return max(1.0, env_float("SCHEDULER_INTERVAL_S", 60.0))


async def run_job(name: str, job: Job) -> int:
    # Errors propagate to APScheduler, which logs them and keeps the job scheduled.
    handled = await job()
    if handled:
        logger.info("scheduled_job_ran name=%s handled=%s", name, handled)
    return handled


def build_scheduler(jobs: dict[str, Job], interval_s: float) -> AsyncIOScheduler:
    """
    Register every job on one interval trigger; the caller starts and shuts the scheduler down.

    A tick that is still running when the next one is due is skipped rather than stacked.
    """
    scheduler = AsyncIOScheduler()
    for name, job in jobs.items():
        scheduler.add_job(
            run_job,
            IntervalTrigger(seconds=interval_s),
            args=[name, job],
            id=name,
            name=name,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
    return scheduler

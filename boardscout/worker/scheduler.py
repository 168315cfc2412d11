"""APScheduler job definitions."""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from boardscout.config import settings
from boardscout.worker.tasks import TaskRunner, task_runner

logger = logging.getLogger(__name__)


def setup_scheduler(runner: TaskRunner = task_runner) -> AsyncIOScheduler:
    """
    Setup and configure APScheduler.

    A single interval job re-runs the full pipeline every
    ``pipeline_interval_hours``; the warm HTTP cache keeps re-runs cheap.

    Returns:
        Configured scheduler instance
    """
    scheduler = AsyncIOScheduler()
    interval = max(1, int(settings.pipeline_interval_hours))

    scheduler.add_job(
        runner.scheduled_run,
        IntervalTrigger(hours=interval),
        id="pipeline_run",
        name="Refresh listings and specs",
        max_instances=1,  # Prevent overlapping runs
        coalesce=True,
        misfire_grace_time=600,
        replace_existing=True,
    )

    logger.info("Scheduler configured: full pipeline every %d hours", interval)
    return scheduler

"""Scheduler for the periodic expiry-check tick."""

import logging
from typing import TYPE_CHECKING

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from timeblock.core.config import constants, settings
from timeblock.services.timer_engine import handle_tick


if TYPE_CHECKING:
    from timeblock.services.context import SchedulerContext


logger = logging.getLogger(__name__)

# Global scheduler instance
scheduler = AsyncIOScheduler()


def start_scheduler(ctx: "SchedulerContext", *, interval_seconds: float | None = None) -> None:
    """Start the scheduler and register the tick job.

    This should be called during FastAPI app startup, from inside the running loop.
    """
    interval = interval_seconds or settings.tick_interval_seconds
    logger.info("Starting scheduler")

    # A tick that is still running when the next is due is skipped, not queued
    scheduler.add_job(
        handle_tick,
        trigger=IntervalTrigger(seconds=interval),
        args=[ctx],
        id=constants.TICK_JOB_ID,
        name="Check Running Activity Expiry",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    logger.info(f"Scheduled activity tick job: every {interval}s")

    if not scheduler.running:
        scheduler.start()
        logger.info("Scheduler started")


def stop_scheduler() -> None:
    """Stop the scheduler gracefully.

    This should be called during FastAPI app shutdown.
    """
    if scheduler.running:
        logger.info("Stopping scheduler")
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")

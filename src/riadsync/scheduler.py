"""APScheduler setup for periodic feed syncs."""

from __future__ import annotations

import logging

from apscheduler.schedulers.background import BackgroundScheduler

from riadsync.config import section

logger = logging.getLogger(__name__)


def create_scheduler(syncer=None) -> BackgroundScheduler:
    """Create and configure the background scheduler."""
    from riadsync.modules.calendar_sync import CalendarSyncer

    scheduler = BackgroundScheduler()
    sched_config = section("scheduler")
    syncer = syncer or CalendarSyncer()

    # Each feed keeps its own interval; this job only looks for due ones.
    scheduler.add_job(
        syncer.sync_due_feeds,
        "interval",
        minutes=sched_config.get("tick_interval", 5),
        id="ical_feed_sync",
        name="iCal Feed Sync",
        max_instances=1,
        coalesce=True,
    )

    logger.info("Scheduler configured with %d jobs", len(scheduler.get_jobs()))
    return scheduler

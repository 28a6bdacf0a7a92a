"""
APScheduler timer that requests a full, notifying sync once per interval.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone

from apscheduler.schedulers.background import BackgroundScheduler

from tress.models import SyncScope
from tress.schedulers.worker import SyncWorker

logger = logging.getLogger(__name__)

FULL_SYNC_JOB_ID = "sync_all_feeds"


def build_scheduler(worker: SyncWorker, interval_seconds: int = 3600) -> BackgroundScheduler:
    scheduler = BackgroundScheduler(timezone="UTC")

    def job_full_sync():
        logger.info("Scheduled sync of all feeds")
        worker.enqueue_sync(SyncScope.all_feeds(), notify=True)

    scheduler.add_job(
        job_full_sync,
        "interval",
        seconds=interval_seconds,
        id=FULL_SYNC_JOB_ID,
        next_run_time=datetime.now(timezone.utc),
        coalesce=True,
        max_instances=1,
        misfire_grace_time=None,
    )
    return scheduler

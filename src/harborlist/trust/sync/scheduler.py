"""Periodic synchronizer runs with APScheduler."""

import logging
from datetime import datetime, timezone

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED, JobExecutionEvent
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from harborlist.trust.models import SyncReport
from harborlist.trust.sync.synchronizer import OriginTrustSynchronizer

logger = logging.getLogger(__name__)

JOB_ID = "edge-trust-sync"


class SyncScheduler:
    """Runs OriginTrustSynchronizer.run_once on a fixed interval."""

    def __init__(self, synchronizer: OriginTrustSynchronizer, interval_seconds: int = 604800):
        self._synchronizer = synchronizer
        self._interval_seconds = interval_seconds
        self.scheduler = AsyncIOScheduler(
            job_defaults={
                "coalesce": True,
                "max_instances": 1,
                "misfire_grace_time": 300,
            }
        )
        self.scheduler.add_listener(self._on_job_event, EVENT_JOB_EXECUTED | EVENT_JOB_ERROR)
        self.last_report: SyncReport | None = None

    @property
    def running(self) -> bool:
        return self.scheduler.running

    def start(self, run_immediately: bool = True) -> None:
        """Schedule the sync job and start the scheduler. Needs a running event loop."""
        kwargs = {}
        if run_immediately:
            # next_run_time=None would add the job paused
            kwargs["next_run_time"] = datetime.now(timezone.utc)
        self.scheduler.add_job(
            self._tick,
            IntervalTrigger(seconds=self._interval_seconds),
            id=JOB_ID,
            name="Edge trust sync",
            replace_existing=True,
            **kwargs,
        )
        self.scheduler.start()
        logger.info("Sync scheduler started interval_seconds=%s", self._interval_seconds)

    def shutdown(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        logger.info("Sync scheduler shutdown")

    def trigger_now(self) -> None:
        """Move the next run to now. Overlapping runs are coalesced."""
        self.scheduler.modify_job(JOB_ID, next_run_time=datetime.now(timezone.utc))

    def next_run_time(self) -> datetime | None:
        job = self.scheduler.get_job(JOB_ID)
        return job.next_run_time if job else None

    async def _tick(self) -> None:
        self.last_report = await self._synchronizer.run_once()

    def _on_job_event(self, event: JobExecutionEvent) -> None:
        if event.exception:
            logger.error("Sync job raised job=%s error=%s", event.job_id, event.exception)
        elif self.last_report is not None:
            logger.info(
                "Sync job finished job=%s outcome=%s",
                event.job_id,
                self.last_report.outcome.value,
            )

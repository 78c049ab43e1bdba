"""
Timer wiring for the sync jobs.

  full_refresh      daily at 03:00
  cleanup           daily at 04:00
  incremental_sync  every sync_interval_seconds (10-300, default 20)

Every scheduled run and every manual trigger ends up in SyncEngine.run().
"""

import logging

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from newbook_cache.domain.settings import MAX_SYNC_INTERVAL, MIN_SYNC_INTERVAL, Settings
from newbook_cache.domain.state import CLEANUP, FULL_REFRESH, INCREMENTAL_SYNC
from newbook_cache.sync import SyncEngine, SyncReport

FULL_REFRESH_HOUR = 3
CLEANUP_HOUR = 4
SCHEDULER_TIMEZONE = "UTC"

log = logging.getLogger(__name__)


class SyncScheduler:

    def __init__(self, engine: SyncEngine, settings: Settings, scheduler: BackgroundScheduler | None = None):
        self._engine = engine
        self._settings = settings
        self._scheduler = scheduler or BackgroundScheduler(timezone=SCHEDULER_TIMEZONE)
        self._interval = settings.sync_interval()

        self._scheduler.add_job(
            self._engine.run,
            CronTrigger(hour=FULL_REFRESH_HOUR, minute=0, timezone=SCHEDULER_TIMEZONE),
            args=[FULL_REFRESH],
            id=FULL_REFRESH,
            name="Full refresh (daily)",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self._scheduler.add_job(
            self._engine.run,
            CronTrigger(hour=CLEANUP_HOUR, minute=0, timezone=SCHEDULER_TIMEZONE),
            args=[CLEANUP],
            id=CLEANUP,
            name="Cleanup (daily)",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self._scheduler.add_job(
            self._engine.run,
            IntervalTrigger(seconds=self._interval),
            args=[INCREMENTAL_SYNC],
            id=INCREMENTAL_SYNC,
            name=f"Incremental sync (every {self._interval}s)",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )

    @property
    def interval(self) -> int:
        return self._interval

    def job(self, name: str):
        return self._scheduler.get_job(name)

    def start(self) -> None:
        self._scheduler.start()
        log.info(
            "Scheduler started: full refresh %02d:00, cleanup %02d:00, incremental every %ds (%s)",
            FULL_REFRESH_HOUR, CLEANUP_HOUR, self._interval, SCHEDULER_TIMEZONE,
        )

    def shutdown(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            log.info("Scheduler stopped")

    def reschedule_incremental(self) -> bool:
        """Pick up a changed sync_interval_seconds. True if the job was rescheduled."""
        interval = self._settings.sync_interval()
        if interval == self._interval:
            return False
        self._scheduler.reschedule_job(INCREMENTAL_SYNC, trigger=IntervalTrigger(seconds=interval))
        log.info("Incremental sync rescheduled", extra={"context": {"old_interval": self._interval, "new_interval": interval}})
        self._interval = interval
        return True

    def set_sync_interval(self, seconds: int) -> bool:
        if not MIN_SYNC_INTERVAL <= seconds <= MAX_SYNC_INTERVAL:
            raise ValueError(
                f"sync interval must be between {MIN_SYNC_INTERVAL} and {MAX_SYNC_INTERVAL} seconds"
            )
        self._settings.set("sync_interval_seconds", seconds)
        return self.reschedule_incremental()

    def run_now(self, name: str) -> SyncReport:
        """Manual trigger: same code path as the timers, run synchronously."""
        log.info("Manual %s triggered", name)
        return self._engine.run(name)

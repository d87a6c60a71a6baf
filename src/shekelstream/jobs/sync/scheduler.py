from __future__ import annotations

from collections.abc import Callable
from datetime import datetime

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger
from loguru import logger

from shekelstream.core.logging import timezoned

SYNC_JOB_ID = "sync"


def build_cron_trigger(schedule: str, *, timezone: str) -> CronTrigger:
    """Build a trigger from a 5-field crontab or a 6-field one led by seconds.

    Raises:
        ValueError: If the expression has another field count or a bad value
    """
    fields = schedule.split()
    if len(fields) == 5:
        return CronTrigger.from_crontab(schedule, timezone=timezone)
    if len(fields) == 6:
        second, minute, hour, day, month, day_of_week = fields
        return CronTrigger(
            second=second,
            minute=minute,
            hour=hour,
            day=day,
            month=month,
            day_of_week=day_of_week,
            timezone=timezone,
        )
    raise ValueError(
        f"Wrong number of fields in {schedule!r}; got {len(fields)}, expected 5 or 6"
    )


class SyncScheduler:
    """
    Cron-driven trigger for periodic syncs.

    Runs in the foreground until interrupted. An error escaping a run is
    logged and the schedule continues.
    """

    def __init__(
        self,
        schedule: str,
        job: Callable[[], object],
        *,
        timezone: str,
    ) -> None:
        self._timezone = timezone
        self._job = job
        self.trigger = build_cron_trigger(schedule, timezone=timezone)
        self.scheduler = BlockingScheduler(timezone=timezone)
        self.scheduler.add_job(
            self._run,
            trigger=self.trigger,
            id=SYNC_JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

    def next_run_time(self) -> datetime | None:
        job = self.scheduler.get_job(SYNC_JOB_ID)
        if job is None:
            return None
        # Before start() the job is still pending and has no next_run_time
        next_run = getattr(job, "next_run_time", None)
        if next_run is None:
            next_run = self.trigger.get_next_fire_time(None, datetime.now(self.trigger.timezone))
        return next_run

    def log_next_run(self) -> None:
        next_run = self.next_run_time()
        if next_run is not None:
            logger.info("Next scheduled sync: {}", timezoned(next_run, self._timezone))

    def _run(self) -> None:
        try:
            self._job()
        except Exception as e:
            logger.opt(exception=e).error("Scheduled sync failed: {}", e)
        self.log_next_run()

    def start(self) -> None:
        """Block, running the job on schedule, until interrupted."""
        self.log_next_run()
        try:
            self.scheduler.start()
        except (KeyboardInterrupt, SystemExit):
            logger.info("Scheduler stopped")

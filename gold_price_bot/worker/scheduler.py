"""APScheduler wiring for periodic scrapes."""

import logging
from datetime import datetime, timezone

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from gold_price_bot.ingest.base import ConfigurationError
from gold_price_bot.worker.tasks import TaskRunner

logger = logging.getLogger(__name__)

SCRAPE_JOB_ID = "gold_price_scrape"
HEARTBEAT_JOB_ID = "status_heartbeat"
PURGE_JOB_ID = "retention_purge"


def build_cron_trigger(expression: str, timezone_name: str) -> CronTrigger:
    """Parse a five-field crontab expression in a named timezone."""
    try:
        return CronTrigger.from_crontab(expression, timezone=timezone_name)
    except (ValueError, LookupError) as e:
        raise ConfigurationError(
            f"Invalid schedule {expression!r} ({timezone_name}): {e}"
        ) from e


class ScrapeScheduler:
    """Owns the AsyncIOScheduler and the jobs that drive the task runner."""

    def __init__(
        self,
        task_runner: TaskRunner,
        cron_expression: str = "0 * * * *",
        timezone_name: str = "Asia/Shanghai",
        run_immediately: bool = True,
        status_interval_seconds: int = 60,
        retention_days: int = 0,
    ):
        self.task_runner = task_runner
        self.cron_expression = cron_expression
        self.timezone_name = timezone_name
        self.run_immediately = run_immediately
        self.status_interval_seconds = status_interval_seconds
        self.retention_days = retention_days

        self._trigger = build_cron_trigger(cron_expression, timezone_name)
        self.scheduler = AsyncIOScheduler(timezone=self._trigger.timezone)
        self._configure_jobs()

    @classmethod
    def from_settings(cls, task_runner: TaskRunner, settings) -> "ScrapeScheduler":
        return cls(
            task_runner,
            cron_expression=settings.gold_price_schedule,
            timezone_name=settings.scheduler_timezone,
            run_immediately=settings.scheduler_run_immediately,
            status_interval_seconds=settings.status_log_interval_seconds,
            retention_days=settings.retention_days,
        )

    async def _scheduled_scrape(self) -> None:
        outcome = await self.task_runner.scrape_and_save()
        if not outcome.success:
            logger.warning(f"Scheduled scrape finished with status {outcome.status}")

    def _configure_jobs(self) -> None:
        scrape_kwargs = {}
        if self.run_immediately:
            scrape_kwargs["next_run_time"] = datetime.now(timezone.utc)

        self.scheduler.add_job(
            self._scheduled_scrape,
            self._trigger,
            id=SCRAPE_JOB_ID,
            name="Scrape and save gold price",
            max_instances=1,  # Prevent overlapping runs
            coalesce=True,
            misfire_grace_time=300,
            replace_existing=True,
            **scrape_kwargs,
        )

        if self.status_interval_seconds > 0:
            self.scheduler.add_job(
                self.task_runner.log_status,
                IntervalTrigger(seconds=self.status_interval_seconds),
                id=HEARTBEAT_JOB_ID,
                name="Log service status",
                max_instances=1,
                coalesce=True,
                replace_existing=True,
            )

        if self.retention_days > 0:
            self.scheduler.add_job(
                self.task_runner.purge_old_records,
                CronTrigger(hour=3, minute=0, timezone=self._trigger.timezone),
                id=PURGE_JOB_ID,
                name="Delete records past retention",
                max_instances=1,
                coalesce=True,
                replace_existing=True,
            )

        logger.info(
            "Scheduler configured: scrape on %r (%s)%s, heartbeat every %ds, retention %s",
            self.cron_expression,
            self.timezone_name,
            " with immediate first run" if self.run_immediately else "",
            self.status_interval_seconds,
            f"{self.retention_days} days" if self.retention_days > 0 else "disabled",
        )

    def job_ids(self) -> list[str]:
        return [job.id for job in self.scheduler.get_jobs()]

    def stop_heartbeat(self) -> None:
        """Cancel the status heartbeat; safe when it is already gone."""
        try:
            self.scheduler.remove_job(HEARTBEAT_JOB_ID)
        except JobLookupError:
            pass

    def start(self) -> None:
        self.scheduler.start()
        logger.info("Scheduler started")

    def shutdown(self, wait: bool = False) -> None:
        if self.scheduler.running:
            self.stop_heartbeat()
            self.scheduler.shutdown(wait=wait)
            logger.info("Scheduler stopped")

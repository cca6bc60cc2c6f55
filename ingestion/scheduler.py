import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

logger = logging.getLogger(__name__)


class ExportScheduler:
    """
    Delayed-job and timer scheduler backed by APScheduler.

    Retries are one-shot DateTrigger jobs; the buffer deadline check is an
    interval job. Jobs are fire-and-forget: callers never wait on them.
    """

    def __init__(self, scheduler: Optional[AsyncIOScheduler] = None):
        self.scheduler = scheduler or AsyncIOScheduler()

    @property
    def running(self) -> bool:
        return bool(self.scheduler.running)

    def schedule_after(
        self,
        delay_ms: int,
        job: Callable[..., Any],
        *args: Any,
        job_id: Optional[str] = None
    ) -> None:
        """Run ``job(*args)`` once, ``delay_ms`` milliseconds from now"""
        run_date = datetime.now(timezone.utc) + timedelta(milliseconds=delay_ms)
        self.scheduler.add_job(
            job,
            trigger=DateTrigger(run_date=run_date),
            args=list(args),
            id=job_id,
            replace_existing=job_id is not None,
            misfire_grace_time=None,  # a late retry is still a retry
        )
        logger.debug(f"Scheduled {job_id or 'job'} for {run_date.isoformat()}")

    def add_interval(self, job: Callable[..., Any], seconds: float, job_id: str) -> None:
        self.scheduler.add_job(
            job,
            trigger=IntervalTrigger(seconds=seconds),
            id=job_id,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

    def start(self):
        """Start the scheduler"""
        if not self.running:
            self.scheduler.start()
            logger.info("Export scheduler started")

    def stop(self):
        if self.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Export scheduler stopped")

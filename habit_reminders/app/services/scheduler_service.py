"""Durable delayed execution for reminder fires (APScheduler entrypoints)."""

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable

from apscheduler.jobstores.base import JobLookupError
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.jobstores.sqlalchemy import SQLAlchemyJobStore
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.date import DateTrigger

from habit_reminders.app.core.config import settings

logger = logging.getLogger(__name__)

JOB_PREFIX = "habit-reminder"

_scheduler: BackgroundScheduler | None = None


def build_scheduler(jobstore_url: str | None = None) -> BackgroundScheduler:
    """Create a scheduler backed by SQLAlchemy when a URL is given, memory otherwise."""
    if jobstore_url:
        jobstore = SQLAlchemyJobStore(url=jobstore_url)
    else:
        jobstore = MemoryJobStore()
    return BackgroundScheduler(
        jobstores={"default": jobstore},
        timezone=timezone.utc,
        job_defaults={
            "coalesce": True,
            # Late fires still run; the drift check skips them and re-arms.
            "misfire_grace_time": None,
        },
    )


def get_scheduler() -> BackgroundScheduler:
    global _scheduler
    if _scheduler is None:
        _scheduler = build_scheduler(settings.scheduler_db_url)
    return _scheduler


def start_scheduler() -> None:
    """Boot the scheduler; persisted jobs resume from the job store."""
    scheduler = get_scheduler()
    if scheduler.running:
        return
    scheduler.start()
    logger.info("Reminder scheduler started with %d pending job(s)", len(scheduler.get_jobs()))


def shutdown_scheduler() -> None:
    scheduler = get_scheduler()
    if scheduler.running:
        scheduler.shutdown(wait=False)


def job_id_for(habit_id: int, run_at: datetime) -> str:
    return f"{JOB_PREFIX}:{habit_id}:{int(run_at.timestamp())}"


def schedule_delayed(delay: timedelta, func: Callable, habit_id: int, now: datetime | None = None) -> str:
    """Run `func(habit_id=...)` once after `delay`.

    The job id is derived from the habit and target instant, so arming the same
    instant twice leaves a single job.
    """
    now = now or datetime.now(timezone.utc)
    run_at = now + max(delay, timedelta(0))
    job_id = job_id_for(habit_id, run_at)
    get_scheduler().add_job(
        func=func,
        trigger=DateTrigger(run_date=run_at, timezone=timezone.utc),
        kwargs={"habit_id": habit_id},
        id=job_id,
        replace_existing=True,
    )
    return job_id


def remove_habit_jobs(habit_id: int) -> int:
    """Best-effort removal of pending jobs for a habit; returns how many were removed."""
    scheduler = get_scheduler()
    prefix = f"{JOB_PREFIX}:{habit_id}:"
    removed = 0
    for job in scheduler.get_jobs():
        if not job.id.startswith(prefix):
            continue
        try:
            scheduler.remove_job(job.id)
            removed += 1
        except JobLookupError:
            # Already executed or removed concurrently.
            logger.debug("Job %s vanished before removal", job.id)
    return removed

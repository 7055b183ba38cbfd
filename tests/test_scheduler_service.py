"""Tests for the delayed-execution wrapper around APScheduler."""
import threading
from datetime import datetime, timedelta, timezone

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED, EVENT_JOB_MISSED
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.jobstores.sqlalchemy import SQLAlchemyJobStore

from habit_reminders.app.db.habit_queries import get_habit
from habit_reminders.app.services import scheduler_service
from habit_reminders.app.services.reminder_dispatch import fire_scheduled_reminder
from habit_reminders.app.services.scheduler_service import (
    build_scheduler,
    job_id_for,
    remove_habit_jobs,
    schedule_delayed,
)

NOW = datetime(2024, 1, 9, 8, 0, tzinfo=timezone.utc)


def noop(habit_id):
    return habit_id


def test_job_id_encodes_habit_and_instant():
    assert job_id_for(7, NOW) == f"habit-reminder:7:{int(NOW.timestamp())}"


def test_schedule_delayed_runs_once_at_target(scheduler):
    job_id = schedule_delayed(timedelta(minutes=30), noop, 7, now=NOW)
    job = scheduler.get_job(job_id)
    assert job.next_run_time == NOW + timedelta(minutes=30)
    assert job.kwargs == {"habit_id": 7}


def test_negative_delay_is_clamped_to_now(scheduler):
    job_id = schedule_delayed(timedelta(minutes=-5), noop, 7, now=NOW)
    assert scheduler.get_job(job_id).next_run_time == NOW


def test_same_instant_replaces_existing_job(scheduler):
    schedule_delayed(timedelta(hours=1), noop, 7, now=NOW)
    schedule_delayed(timedelta(minutes=50), noop, 7, now=NOW + timedelta(minutes=10))
    assert len(scheduler.get_jobs()) == 1


def test_remove_habit_jobs_only_touches_that_habit(scheduler):
    schedule_delayed(timedelta(hours=1), noop, 7, now=NOW)
    schedule_delayed(timedelta(hours=2), noop, 7, now=NOW)
    schedule_delayed(timedelta(hours=1), noop, 70, now=NOW)
    assert remove_habit_jobs(7) == 2
    assert [job.kwargs["habit_id"] for job in scheduler.get_jobs()] == [70]


def test_build_scheduler_picks_job_store(tmp_path):
    durable = build_scheduler(f"sqlite:///{tmp_path / 'jobs.db'}")
    assert isinstance(durable._jobstores["default"], SQLAlchemyJobStore)
    assert isinstance(build_scheduler("")._jobstores["default"], MemoryJobStore)


def test_fire_hours_late_still_runs_and_rearms(monkeypatch, mwf_habit):
    live = build_scheduler(None)
    events = []
    done = threading.Event()

    def on_event(event):
        events.append(event.code)
        done.set()

    live.add_listener(on_event, EVENT_JOB_EXECUTED | EVENT_JOB_ERROR | EVENT_JOB_MISSED)
    monkeypatch.setattr(scheduler_service, "_scheduler", live)
    live.start()
    try:
        two_hours_ago = datetime.now(timezone.utc) - timedelta(hours=2)
        schedule_delayed(timedelta(0), fire_scheduled_reminder, mwf_habit, now=two_hours_ago)
        assert done.wait(timeout=10)
        assert events[0] == EVENT_JOB_EXECUTED

        next_at = get_habit(mwf_habit)["next_reminder_at"]
        assert next_at is not None
        rearmed = job_id_for(mwf_habit, datetime.fromisoformat(next_at))
        assert live.get_job(rearmed) is not None
    finally:
        live.shutdown(wait=False)

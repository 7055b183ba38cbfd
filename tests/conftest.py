"""Shared fixtures: a throwaway SQLite database and a paused in-memory scheduler per test."""
import pytest

from habit_reminders.app.core.config import settings
from habit_reminders.app.db.account_queries import add_account, add_channel
from habit_reminders.app.db.conn import init_db
from habit_reminders.app.db.habit_queries import add_habit
from habit_reminders.app.services import scheduler_service


@pytest.fixture(autouse=True)
def temp_db(tmp_path, monkeypatch):
    """Point the app at a fresh database file for every test."""
    monkeypatch.setattr(settings, "db_path", str(tmp_path / "habits.db"))
    monkeypatch.setattr(settings, "default_timezone", "UTC")
    init_db()
    return settings.db_path


@pytest.fixture(autouse=True)
def scheduler(monkeypatch):
    """A started-but-paused scheduler so jobs are stored and never executed."""
    sched = scheduler_service.build_scheduler(None)
    sched.start(paused=True)
    monkeypatch.setattr(scheduler_service, "_scheduler", sched)
    yield sched
    sched.shutdown(wait=False)


@pytest.fixture
def warsaw_account() -> int:
    return add_account("Gym crew", "Europe/Warsaw")


@pytest.fixture
def log_channel(warsaw_account) -> int:
    return add_channel(warsaw_account, "log", "gym-crew")


@pytest.fixture
def mwf_habit(warsaw_account) -> int:
    """08:00 on Mon/Wed/Fri, Warsaw time."""
    return add_habit(
        owner_id=warsaw_account,
        name="Morning stretch",
        description="Ten minutes of mobility work.",
        reminder_time="08:00",
        schedule_days=["mon", "wed", "fri"],
    )
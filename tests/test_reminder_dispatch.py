"""Tests for the arm/fire/re-arm loop against a temporary database and paused scheduler."""
from datetime import datetime, timedelta, timezone

import pytest

from habit_reminders.app.db.account_queries import deactivate_channel
from habit_reminders.app.db.completion_queries import mark_completed
from habit_reminders.app.db.habit_queries import add_habit, delete_habit, get_habit, update_habit
from habit_reminders.app.db.reminder_queries import list_recent_deliveries
from habit_reminders.app.services import reminder_dispatch
from habit_reminders.app.services.occurrence_service import RecurrenceRule, ResolvedOccurrence
from habit_reminders.app.services.reminder_dispatch import (
    arm_habit_reminder,
    compose_reminder_text,
    fire_habit_reminder,
    fire_scheduled_reminder,
    rearm_all_active_habits,
    unarm_habit_reminder,
)
from habit_reminders.app.services.reminder_plan import PlanEntry
from habit_reminders.app.services.scheduler_service import job_id_for


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


TUESDAY_0900_WARSAW = utc(2024, 1, 9, 8, 0)
WEDNESDAY_0800_WARSAW = utc(2024, 1, 10, 7, 0)
FRIDAY_0800_WARSAW = utc(2024, 1, 12, 7, 0)


@pytest.fixture
def outbox(monkeypatch, log_channel):
    """Capture sent notifications instead of hitting a transport."""
    sent = []

    def fake_send(channel, text):
        sent.append((channel["platform"], text))
        return True

    monkeypatch.setattr(reminder_dispatch, "send_notification", fake_send)
    return sent


def job_ids(scheduler) -> set[str]:
    return {job.id for job in scheduler.get_jobs()}


def test_arm_schedules_next_occurrence(scheduler, mwf_habit):
    fire = arm_habit_reminder(mwf_habit, TUESDAY_0900_WARSAW)
    assert fire.utc_instant == WEDNESDAY_0800_WARSAW
    assert job_ids(scheduler) == {job_id_for(mwf_habit, WEDNESDAY_0800_WARSAW)}
    job = scheduler.get_job(job_id_for(mwf_habit, WEDNESDAY_0800_WARSAW))
    assert job.kwargs == {"habit_id": mwf_habit}
    assert job.func is fire_scheduled_reminder
    assert job.next_run_time == WEDNESDAY_0800_WARSAW
    assert get_habit(mwf_habit)["next_reminder_at"] == "2024-01-10T07:00:00+00:00"


def test_arm_is_idempotent_for_same_instant(scheduler, mwf_habit):
    arm_habit_reminder(mwf_habit, TUESDAY_0900_WARSAW)
    arm_habit_reminder(mwf_habit, TUESDAY_0900_WARSAW + timedelta(minutes=10))
    assert len(scheduler.get_jobs()) == 1


def test_arm_inactive_habit_clears_state(scheduler, mwf_habit):
    arm_habit_reminder(mwf_habit, TUESDAY_0900_WARSAW)
    update_habit(mwf_habit, {"is_active": False})
    assert arm_habit_reminder(mwf_habit, TUESDAY_0900_WARSAW) is None
    assert get_habit(mwf_habit)["next_reminder_at"] is None


def test_arm_without_time_or_plan_stays_unarmed(scheduler, warsaw_account):
    habit_id = add_habit(owner_id=warsaw_account, name="Read")
    assert arm_habit_reminder(habit_id, TUESDAY_0900_WARSAW) is None
    assert scheduler.get_jobs() == []


def test_arm_missing_habit(scheduler):
    assert arm_habit_reminder(999, TUESDAY_0900_WARSAW) is None
    assert scheduler.get_jobs() == []


def test_fire_ninety_seconds_late_sends_and_rearms(scheduler, mwf_habit, outbox):
    outcome = fire_habit_reminder(mwf_habit, WEDNESDAY_0800_WARSAW + timedelta(seconds=90))
    assert outcome.status == "sent"
    assert outcome.sent
    assert outcome.next_fire.utc_instant == FRIDAY_0800_WARSAW
    assert outbox == [("log", "⏰ Reminder: Morning stretch\n\nTen minutes of mobility work.")]
    assert job_id_for(mwf_habit, FRIDAY_0800_WARSAW) in job_ids(scheduler)


def test_fire_five_minutes_late_skips_but_rearms(scheduler, mwf_habit, outbox):
    outcome = fire_habit_reminder(mwf_habit, WEDNESDAY_0800_WARSAW + timedelta(minutes=5))
    assert outcome.status == "not_scheduled_now"
    assert not outcome.sent
    assert outcome.next_fire.utc_instant == FRIDAY_0800_WARSAW
    assert outbox == []
    assert job_id_for(mwf_habit, FRIDAY_0800_WARSAW) in job_ids(scheduler)


def test_fire_on_unscheduled_day_rearms(scheduler, mwf_habit, outbox):
    outcome = fire_habit_reminder(mwf_habit, TUESDAY_0900_WARSAW)
    assert outcome.status == "no_today_config"
    assert outcome.next_fire.utc_instant == WEDNESDAY_0800_WARSAW
    assert outbox == []


def test_fire_suppressed_when_already_completed(scheduler, mwf_habit, outbox):
    mark_completed(mwf_habit, "2024-01-10")
    outcome = fire_habit_reminder(mwf_habit, WEDNESDAY_0800_WARSAW)
    assert outcome.status == "already_completed"
    assert outcome.next_fire.utc_instant == FRIDAY_0800_WARSAW
    assert outbox == []


def test_early_fire_then_redelivery_sends_once(scheduler, mwf_habit, outbox):
    early = fire_habit_reminder(mwf_habit, WEDNESDAY_0800_WARSAW - timedelta(seconds=60))
    assert early.status == "sent"
    # The instant is still ahead, so the loop re-arms the same occurrence.
    assert early.next_fire.utc_instant == WEDNESDAY_0800_WARSAW

    again = fire_habit_reminder(mwf_habit, WEDNESDAY_0800_WARSAW)
    assert again.status == "already_delivered"
    assert again.next_fire.utc_instant == FRIDAY_0800_WARSAW
    assert len(outbox) == 1


def test_send_exception_does_not_break_chain(scheduler, mwf_habit, log_channel, monkeypatch):
    def boom(channel, text):
        raise RuntimeError("transport down")

    monkeypatch.setattr(reminder_dispatch, "send_notification", boom)
    outcome = fire_habit_reminder(mwf_habit, WEDNESDAY_0800_WARSAW)
    assert outcome.status == "send_failed"
    assert outcome.next_fire.utc_instant == FRIDAY_0800_WARSAW


def test_send_returning_failure_is_logged(scheduler, mwf_habit, log_channel, monkeypatch):
    monkeypatch.setattr(reminder_dispatch, "send_notification", lambda channel, text: False)
    outcome = fire_habit_reminder(mwf_habit, WEDNESDAY_0800_WARSAW)
    assert outcome.status == "send_failed"
    statuses = [d["status"] for d in list_recent_deliveries(mwf_habit)]
    assert statuses == ["send_failed"]


def test_channel_lookup_error_is_skip_with_rearm(scheduler, mwf_habit, monkeypatch):
    def broken(owner_id):
        raise RuntimeError("db gone")

    monkeypatch.setattr(reminder_dispatch, "resolve_channel", broken)
    outcome = fire_habit_reminder(mwf_habit, WEDNESDAY_0800_WARSAW)
    assert outcome.status == "no_channel"
    assert outcome.next_fire is not None


def test_no_active_channel(scheduler, mwf_habit, log_channel, outbox):
    deactivate_channel(log_channel)
    outcome = fire_habit_reminder(mwf_habit, WEDNESDAY_0800_WARSAW)
    assert outcome.status == "no_channel"
    assert outcome.next_fire.utc_instant == FRIDAY_0800_WARSAW
    assert outbox == []


def test_fire_after_delete_ends_chain(scheduler, mwf_habit, outbox):
    delete_habit(mwf_habit)
    outcome = fire_habit_reminder(mwf_habit, WEDNESDAY_0800_WARSAW)
    assert outcome.status == "habit_not_found"
    assert outcome.terminal
    assert outcome.next_fire is None
    assert scheduler.get_jobs() == []


def test_fire_after_deactivation_ends_chain(scheduler, mwf_habit, outbox):
    arm_habit_reminder(mwf_habit, TUESDAY_0900_WARSAW)
    update_habit(mwf_habit, {"is_active": False})
    outcome = fire_habit_reminder(mwf_habit, WEDNESDAY_0800_WARSAW)
    assert outcome.status == "inactive_or_missing_time"
    assert outcome.terminal
    assert outbox == []
    # Only the stale job armed before the edit remains.
    assert job_ids(scheduler) == {job_id_for(mwf_habit, WEDNESDAY_0800_WARSAW)}


def test_edit_between_arm_and_fire_is_respected(scheduler, mwf_habit, outbox):
    arm_habit_reminder(mwf_habit, TUESDAY_0900_WARSAW)
    update_habit(mwf_habit, {"reminder_time": "09:00"})
    # The old 08:00 job fires; 08:00 is no longer today's time.
    stale = fire_habit_reminder(mwf_habit, WEDNESDAY_0800_WARSAW)
    assert stale.status == "not_scheduled_now"
    assert stale.next_fire.utc_instant == WEDNESDAY_0800_WARSAW + timedelta(hours=1)


def test_plan_override_fire_includes_phase(scheduler, warsaw_account, outbox):
    habit_id = add_habit(
        owner_id=warsaw_account,
        name="Run",
        reminder_time="08:00",
        schedule_days=["mon", "wed", "fri"],
        reminder_plan=[PlanEntry(date="2024-01-12", reminder_time="18:30", min_start_time="18:00", phase_label="D3")],
    )
    outcome = fire_habit_reminder(habit_id, utc(2024, 1, 12, 17, 31))
    assert outcome.status == "sent"
    assert outbox[0][1] == "⏰ Reminder: Run\nPhase: D3\nWindow opens at: 18:00"


def test_unarm_removes_pending_jobs(scheduler, mwf_habit, warsaw_account):
    other = add_habit(owner_id=warsaw_account, name="Water", reminder_time="10:00")
    arm_habit_reminder(mwf_habit, TUESDAY_0900_WARSAW)
    arm_habit_reminder(other, TUESDAY_0900_WARSAW)
    assert unarm_habit_reminder(mwf_habit) == 1
    assert all(job.kwargs["habit_id"] == other for job in scheduler.get_jobs())
    assert get_habit(mwf_habit)["next_reminder_at"] is None


def test_rearm_all_active_habits(scheduler, mwf_habit, warsaw_account):
    add_habit(owner_id=warsaw_account, name="Water", reminder_time="10:00")
    add_habit(owner_id=warsaw_account, name="Paused", reminder_time="10:00", is_active=False)
    add_habit(owner_id=warsaw_account, name="No time")
    assert rearm_all_active_habits(TUESDAY_0900_WARSAW) == 2
    assert len(scheduler.get_jobs()) == 2


def test_fire_outcomes_are_logged(scheduler, mwf_habit, outbox):
    fire_habit_reminder(mwf_habit, WEDNESDAY_0800_WARSAW)
    fire_habit_reminder(mwf_habit, WEDNESDAY_0800_WARSAW + timedelta(seconds=30))
    rows = list_recent_deliveries(mwf_habit)
    assert [r["status"] for r in rows] == ["already_delivered", "sent"]
    assert rows[1]["occurrence_at"] == "2024-01-10T07:00:00+00:00"


def test_compose_reminder_text_truncates_details():
    long_rule = RecurrenceRule(habit_id=1, name="Journal", description="x" * 900)
    text = compose_reminder_text(long_rule, ResolvedOccurrence(reminder_time="21:00", source="base"))
    header, details = text.split("\n\n")
    assert header == "⏰ Reminder: Journal"
    assert len(details) == 800
    assert details.endswith("…")

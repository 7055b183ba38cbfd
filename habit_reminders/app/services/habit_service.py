"""Habit mutations that feed the reminder loop (plan derivation + re-arm triggers)."""

import logging
from datetime import date as Date, datetime

from habit_reminders.app.db import habit_queries
from habit_reminders.app.db.account_queries import get_account
from habit_reminders.app.db.completion_queries import completed_habit_ids, mark_completed
from habit_reminders.app.services.calendar_service import now_utc, project
from habit_reminders.app.services.occurrence_service import is_scheduled_for_date, resolve_for_date
from habit_reminders.app.services.reminder_dispatch import arm_habit_reminder, unarm_habit_reminder
from habit_reminders.app.services.reminder_plan import (
    derive_plan_from_description,
    derive_plan_if_needed,
    normalize_plan,
    plan_to_dicts,
)

logger = logging.getLogger(__name__)

# Changing any of these can move the next fire instant.
SCHEDULING_FIELDS = {"reminder_time", "schedule_days", "reminder_plan", "is_active"}


def _account_today(owner_id: int, now: datetime | None = None) -> str:
    account = get_account(owner_id)
    tz_name = account["timezone"] if account else None
    return project(now or now_utc(), tz_name).date.isoformat()


def create_habit(
    owner_id: int,
    name: str,
    description: str | None = None,
    reminder_time: str | None = None,
    schedule_days: list[str] | None = None,
    reminder_plan: list | None = None,
    now: datetime | None = None,
) -> int:
    """Insert a habit (deriving a plan from its description if none was given) and arm it."""
    plan = derive_plan_if_needed(reminder_plan, description, _account_today(owner_id, now))
    habit_id = habit_queries.add_habit(
        owner_id=owner_id,
        name=name,
        description=description,
        reminder_time=reminder_time,
        schedule_days=schedule_days,
        reminder_plan=plan,
    )
    if reminder_time or plan:
        arm_habit_reminder(habit_id, now)
    return habit_id


def update_habit(habit_id: int, changes: dict, now: datetime | None = None) -> dict | None:
    """Apply a partial update and re-arm when a scheduling field changed.

    An explicit `reminder_plan` replaces the stored one. A new description
    only produces a derived plan when the habit has no plan yet.
    """
    habit = habit_queries.get_habit(habit_id)
    if habit is None:
        return None

    patch = dict(changes)
    if "reminder_plan" in patch:
        patch["reminder_plan"] = normalize_plan(patch["reminder_plan"])
    elif "description" in patch and not normalize_plan(habit["reminder_plan"]):
        derived = derive_plan_from_description(patch["description"], _account_today(habit["owner_id"], now))
        if derived:
            patch["reminder_plan"] = derived

    habit_queries.update_habit(habit_id, patch)
    if patch.keys() & SCHEDULING_FIELDS:
        arm_habit_reminder(habit_id, now)
    return habit_queries.get_habit(habit_id)


def delete_habit(habit_id: int) -> bool:
    if habit_queries.get_habit(habit_id) is None:
        return False
    unarm_habit_reminder(habit_id)
    habit_queries.delete_habit(habit_id)
    logger.info("Deleted habit %s", habit_id)
    return True


def habits_with_today(owner_id: int, now: datetime | None = None) -> dict:
    """List an owner's habits with the reminder time effective for today."""
    today_str = _account_today(owner_id, now)
    today_date = Date.fromisoformat(today_str)
    completed = completed_habit_ids(today_str)
    result = []
    for habit in habit_queries.list_habits(owner_id):
        rule = habit_queries.load_rule(habit["id"])
        occurrence = resolve_for_date(rule, today_date) if rule.active else None
        result.append({
            "id": habit["id"],
            "name": habit["name"],
            "is_active": habit["is_active"],
            "reminder_time": habit["reminder_time"],
            "schedule_days": habit["schedule_days"],
            "reminder_plan": plan_to_dicts(rule.reminder_plan),
            "next_reminder_at": habit["next_reminder_at"],
            "scheduled_today": is_scheduled_for_date(rule, today_date),
            "completed_today": habit["id"] in completed,
            "effective_today_reminder_time": occurrence.reminder_time if occurrence else None,
            "today_phase_label": occurrence.plan_entry.phase_label if occurrence and occurrence.plan_entry else None,
        })
    return {"date": today_str, "habits": result}


def complete_habit(habit_id: int, date_yyyy_mm_dd: str | None = None, now: datetime | None = None) -> str | None:
    """Record a completion (defaults to the owner's today); suppresses that day's reminder."""
    habit = habit_queries.get_habit(habit_id)
    if habit is None:
        return None
    day = date_yyyy_mm_dd or _account_today(habit["owner_id"], now)
    mark_completed(habit_id, day)
    return day

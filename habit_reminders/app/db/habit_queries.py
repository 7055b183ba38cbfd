"""Habit CRUD helpers and the rule loader used by the reminder loop."""

import json
from datetime import datetime
from habit_reminders.app.db.conn import get_conn
from habit_reminders.app.services.occurrence_service import RecurrenceRule
from habit_reminders.app.services.reminder_plan import PlanEntry, plan_to_dicts

_UPDATABLE = {"name", "description", "reminder_time", "schedule_days", "reminder_plan", "is_active"}

def _encode(column: str, value):
    if column == "schedule_days":
        return json.dumps(list(value)) if value else None
    if column == "reminder_plan":
        return json.dumps(plan_to_dicts(value)) if value else None
    if column == "is_active":
        return 1 if value else 0
    return value

def _decode_json(raw: str | None) -> list:
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except ValueError:
        return []
    return value if isinstance(value, list) else []

def add_habit(
    owner_id: int,
    name: str,
    description: str | None = None,
    reminder_time: str | None = None,
    schedule_days: list[str] | None = None,
    reminder_plan: list[PlanEntry] | None = None,
    is_active: bool = True,
) -> int:
    with get_conn() as conn:
        cur = conn.execute(
            """INSERT INTO habits
               (owner_id, name, description, reminder_time, schedule_days, reminder_plan, is_active, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?);""",
            (
                owner_id,
                name,
                description,
                reminder_time,
                _encode("schedule_days", schedule_days),
                _encode("reminder_plan", reminder_plan),
                _encode("is_active", is_active),
                datetime.now().isoformat(timespec="seconds"),
            ),
        )
        conn.commit()
        return int(cur.lastrowid)

def update_habit(habit_id: int, patch: dict) -> None:
    """Apply a partial update; unknown keys are ignored."""
    columns = [c for c in patch if c in _UPDATABLE]
    if not columns:
        return
    assignments = ", ".join(f"{c}=?" for c in columns)
    values = [_encode(c, patch[c]) for c in columns]
    with get_conn() as conn:
        conn.execute(f"UPDATE habits SET {assignments} WHERE id=?;", (*values, habit_id))
        conn.commit()

def delete_habit(habit_id: int) -> None:
    with get_conn() as conn:
        conn.execute("DELETE FROM habit_completions WHERE habit_id=?;", (habit_id,))
        conn.execute("DELETE FROM habits WHERE id=?;", (habit_id,))
        conn.commit()

def get_habit(habit_id: int) -> dict | None:
    with get_conn() as conn:
        row = conn.execute(
            """SELECT h.*, a.timezone AS timezone
               FROM habits h LEFT JOIN accounts a ON a.id = h.owner_id
               WHERE h.id=?;""",
            (habit_id,),
        ).fetchone()
    if row is None:
        return None
    habit = dict(row)
    habit["schedule_days"] = _decode_json(habit["schedule_days"])
    habit["reminder_plan"] = _decode_json(habit["reminder_plan"])
    habit["is_active"] = bool(habit["is_active"])
    return habit

def load_rule(habit_id: int) -> RecurrenceRule | None:
    """Fresh RecurrenceRule for a habit, timezone resolved from the owning account."""
    habit = get_habit(habit_id)
    if habit is None:
        return None
    return RecurrenceRule(
        habit_id=habit["id"],
        owner_id=habit["owner_id"],
        name=habit["name"] or "Habit",
        description=habit["description"],
        base_time=habit["reminder_time"],
        schedule_days=habit["schedule_days"],
        reminder_plan=habit["reminder_plan"],
        timezone=habit["timezone"],
        active=habit["is_active"],
    )

def list_habits(owner_id: int) -> list[dict]:
    with get_conn() as conn:
        rows = conn.execute("SELECT id FROM habits WHERE owner_id=? ORDER BY id ASC;", (owner_id,)).fetchall()
    return [get_habit(r["id"]) for r in rows]

def list_active_habit_ids() -> list[int]:
    with get_conn() as conn:
        rows = conn.execute("SELECT id FROM habits WHERE is_active=1 ORDER BY id ASC;").fetchall()
    return [r["id"] for r in rows]

def set_next_reminder_at(habit_id: int, next_reminder_at_iso: str | None) -> None:
    with get_conn() as conn:
        conn.execute("UPDATE habits SET next_reminder_at=? WHERE id=?;", (next_reminder_at_iso, habit_id))
        conn.commit()

"""Habit completion records (read by the reminder loop, written by the API)."""

from datetime import datetime
from habit_reminders.app.db.conn import get_conn

def mark_completed(habit_id: int, date_yyyy_mm_dd: str) -> None:
    with get_conn() as conn:
        conn.execute(
            """INSERT INTO habit_completions (habit_id, date, created_at) VALUES (?, ?, ?)
               ON CONFLICT(habit_id, date) DO NOTHING;""",
            (habit_id, date_yyyy_mm_dd, datetime.now().isoformat(timespec="seconds")),
        )
        conn.commit()

def has_completion(habit_id: int, date_yyyy_mm_dd: str) -> bool:
    with get_conn() as conn:
        row = conn.execute(
            "SELECT 1 FROM habit_completions WHERE habit_id=? AND date=? LIMIT 1;",
            (habit_id, date_yyyy_mm_dd),
        ).fetchone()
    return row is not None

def completed_habit_ids(date_yyyy_mm_dd: str) -> set[int]:
    with get_conn() as conn:
        rows = conn.execute(
            "SELECT habit_id FROM habit_completions WHERE date=?;",
            (date_yyyy_mm_dd,),
        ).fetchall()
    return {r["habit_id"] for r in rows}

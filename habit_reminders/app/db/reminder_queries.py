"""Reminder delivery log: one row per fire outcome, doubling as the sent-occurrence token."""

from datetime import datetime
from habit_reminders.app.db.conn import get_conn

def log_delivery(habit_id: int, status: str, occurrence_at_iso: str | None = None, detail: str | None = None):
    """Insert a delivery log row."""
    with get_conn() as conn:
        conn.execute(
            """INSERT INTO reminder_deliveries (habit_id, occurrence_at, status, detail, ts)
               VALUES (?, ?, ?, ?, ?);""",
            (habit_id, occurrence_at_iso, status, detail, datetime.now().isoformat(timespec="seconds")),
        )
        conn.commit()

def was_delivered(habit_id: int, occurrence_at_iso: str) -> bool:
    """True if a reminder for this exact occurrence instant was already sent."""
    with get_conn() as conn:
        row = conn.execute(
            """SELECT 1 FROM reminder_deliveries
               WHERE habit_id=? AND occurrence_at=? AND status='sent'
               LIMIT 1;""",
            (habit_id, occurrence_at_iso),
        ).fetchone()
    return row is not None

def list_recent_deliveries(habit_id: int, limit: int = 20) -> list[dict]:
    """List recent delivery outcomes for a habit (default last 20)."""
    with get_conn() as conn:
        rows = conn.execute(
            """SELECT id, habit_id, occurrence_at, status, detail, ts
               FROM reminder_deliveries
               WHERE habit_id=?
               ORDER BY id DESC
               LIMIT ?;""",
            (habit_id, limit),
        ).fetchall()
    return [dict(r) for r in rows]

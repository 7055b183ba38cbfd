"""Account (timezone owner) and notification channel helpers."""

from datetime import datetime
from habit_reminders.app.db.conn import get_conn

def add_account(name: str, timezone: str | None) -> int:
    with get_conn() as conn:
        cur = conn.execute(
            "INSERT INTO accounts (name, timezone, created_at) VALUES (?, ?, ?);",
            (name, timezone, datetime.now().isoformat(timespec="seconds")),
        )
        conn.commit()
        return int(cur.lastrowid)

def get_account(account_id: int):
    with get_conn() as conn:
        return conn.execute(
            "SELECT id, name, timezone FROM accounts WHERE id=?;",
            (account_id,),
        ).fetchone()

def set_account_timezone(account_id: int, timezone: str | None) -> None:
    with get_conn() as conn:
        conn.execute("UPDATE accounts SET timezone=? WHERE id=?;", (timezone, account_id))
        conn.commit()

def add_channel(owner_id: int, platform: str, target: str) -> int:
    with get_conn() as conn:
        cur = conn.execute(
            """INSERT INTO notification_channels (owner_id, platform, target, is_active, created_at)
               VALUES (?, ?, ?, 1, ?);""",
            (owner_id, platform, target, datetime.now().isoformat(timespec="seconds")),
        )
        conn.commit()
        return int(cur.lastrowid)

def deactivate_channel(channel_id: int) -> None:
    with get_conn() as conn:
        conn.execute("UPDATE notification_channels SET is_active=0 WHERE id=?;", (channel_id,))
        conn.commit()

def resolve_channel(owner_id: int | None) -> dict | None:
    """Return the newest active channel for the owner, or None."""
    if owner_id is None:
        return None
    with get_conn() as conn:
        row = conn.execute(
            """SELECT id, owner_id, platform, target
               FROM notification_channels
               WHERE owner_id=? AND is_active=1
               ORDER BY id DESC LIMIT 1;""",
            (owner_id,),
        ).fetchone()
    return dict(row) if row else None

import sqlite3
from pathlib import Path
from habit_reminders.app.core.config import settings

def get_conn() -> sqlite3.Connection:
    Path(settings.db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(settings.db_path)
    conn.row_factory = sqlite3.Row
    return conn

def init_db() -> None:
    schema_path = Path(__file__).with_name("schema.sql")
    with get_conn() as conn:
        conn.executescript(schema_path.read_text())
        habit_columns = [r["name"] for r in conn.execute("PRAGMA table_info(habits);")]
        if "next_reminder_at" not in habit_columns:
            conn.execute("ALTER TABLE habits ADD COLUMN next_reminder_at TEXT;")
        conn.commit()

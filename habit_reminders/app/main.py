import logging

from fastapi import FastAPI
from dotenv import load_dotenv
from habit_reminders.app.core.config import settings
from habit_reminders.app.db.conn import init_db
from habit_reminders.app.services.scheduler_service import start_scheduler, shutdown_scheduler
from habit_reminders.app.services.reminder_dispatch import rearm_all_active_habits
from habit_reminders.app.api.routes_accounts import router as accounts_router
from habit_reminders.app.api.routes_habits import router as habits_router

load_dotenv()
logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
app = FastAPI(title="Habit Reminders")
_log = logging.getLogger(__name__)

@app.on_event("startup")
def _startup():
    init_db()
    start_scheduler()
    # Jobs persisted in the job store resume on their own; this covers habits
    # whose chain was never stored (or whose store was wiped).
    rearm_all_active_habits()

@app.on_event("shutdown")
def _shutdown():
    shutdown_scheduler()
    _log.info("Reminder scheduler stopped")

@app.get("/health")
def health():
    return {"status": "ok"}

app.include_router(accounts_router)
app.include_router(habits_router)

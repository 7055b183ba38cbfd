"""Account timezone and notification channel endpoints."""

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from habit_reminders.app.db.account_queries import add_account, add_channel, get_account, set_account_timezone
from habit_reminders.app.db.habit_queries import list_habits
from habit_reminders.app.services.calendar_service import get_zone
from habit_reminders.app.services.notifier_service import SENDERS
from habit_reminders.app.services.reminder_dispatch import arm_habit_reminder

router = APIRouter()

def _require_known_zone(name: str) -> None:
    if get_zone(name).key != name:
        raise HTTPException(status_code=400, detail="Unknown timezone")

class NewAccount(BaseModel):
    name: str
    timezone: str | None = None  # IANA name, e.g. Europe/Warsaw

class TimezoneBody(BaseModel):
    timezone: str

class NewChannel(BaseModel):
    platform: str  # "webhook" | "log"
    target: str

@router.post("/api/accounts")
def create_account(body: NewAccount):
    if body.timezone is not None:
        _require_known_zone(body.timezone)
    account_id = add_account(body.name, body.timezone)
    return {"ok": True, "id": account_id}

@router.put("/api/accounts/{account_id}/timezone")
def update_timezone(account_id: int, body: TimezoneBody):
    """Change the account timezone and re-arm its habits (wall-clock times move in UTC)."""
    if get_account(account_id) is None:
        raise HTTPException(status_code=404, detail="Account not found")
    _require_known_zone(body.timezone)
    set_account_timezone(account_id, body.timezone)
    rearmed = 0
    for habit in list_habits(account_id):
        if habit["is_active"] and arm_habit_reminder(habit["id"]) is not None:
            rearmed += 1
    return {"ok": True, "rearmed": rearmed}

@router.post("/api/accounts/{account_id}/channels")
def register_channel(account_id: int, body: NewChannel):
    if get_account(account_id) is None:
        raise HTTPException(status_code=404, detail="Account not found")
    if body.platform not in SENDERS:
        raise HTTPException(status_code=400, detail=f"Unsupported platform {body.platform!r}")
    channel_id = add_channel(account_id, body.platform, body.target)
    return {"ok": True, "id": channel_id}

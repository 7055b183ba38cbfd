"""Habit endpoints: the mutation glue that keeps reminder chains armed."""

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field, field_validator

from habit_reminders.app.db.account_queries import get_account
from habit_reminders.app.db.habit_queries import load_rule
from habit_reminders.app.db.reminder_queries import list_recent_deliveries
from habit_reminders.app.services import habit_service
from habit_reminders.app.services.calendar_service import now_utc, parse_reminder_time
from habit_reminders.app.services.occurrence_service import find_next
from habit_reminders.app.services.reminder_plan import is_plan_date

router = APIRouter()

class PlanEntryBody(BaseModel):
    date: str  # YYYY-MM-DD (account calendar date)
    reminder_time: str = Field(alias="reminderTime")  # HH:MM
    min_start_time: str | None = Field(default=None, alias="minStartTime")
    phase_label: str | None = Field(default=None, alias="phaseLabel")

    model_config = {"populate_by_name": True}

def _check_time(value: str | None) -> str | None:
    if value is not None and parse_reminder_time(value) is None:
        raise ValueError("reminder_time must be HH:MM (24h)")
    return value

class NewHabit(BaseModel):
    owner_id: int
    name: str
    description: str | None = None
    reminder_time: str | None = None  # HH:MM
    schedule_days: list[str] | None = None  # ["mon", "wed", "fri"]
    reminder_plan: list[PlanEntryBody] | None = None

    @field_validator("reminder_time")
    @classmethod
    def check_reminder_time(cls, value):
        return _check_time(value)

class HabitPatch(BaseModel):
    name: str | None = None
    description: str | None = None
    reminder_time: str | None = None
    schedule_days: list[str] | None = None
    reminder_plan: list[PlanEntryBody] | None = None
    is_active: bool | None = None

    @field_validator("reminder_time")
    @classmethod
    def check_reminder_time(cls, value):
        return _check_time(value)

class CompleteBody(BaseModel):
    date: str | None = None  # YYYY-MM-DD, defaults to the owner's today

    @field_validator("date")
    @classmethod
    def check_date(cls, value):
        if value is not None and not is_plan_date(value):
            raise ValueError("date must be YYYY-MM-DD")
        return value

def _plan_rows(plan: list[PlanEntryBody] | None) -> list[dict] | None:
    if plan is None:
        return None
    return [p.model_dump() for p in plan]

@router.post("/api/habits")
def create_habit(body: NewHabit):
    if get_account(body.owner_id) is None:
        raise HTTPException(status_code=404, detail="Account not found")
    habit_id = habit_service.create_habit(
        owner_id=body.owner_id,
        name=body.name,
        description=body.description,
        reminder_time=body.reminder_time,
        schedule_days=body.schedule_days,
        reminder_plan=_plan_rows(body.reminder_plan),
    )
    return {"ok": True, "id": habit_id}

@router.get("/api/habits")
def list_habits(owner_id: int):
    """List an owner's habits with today's effective reminder time."""
    return habit_service.habits_with_today(owner_id)

@router.patch("/api/habits/{habit_id}")
def update_habit(habit_id: int, body: HabitPatch):
    changes = body.model_dump(exclude_unset=True)
    if "reminder_plan" in changes:
        changes["reminder_plan"] = _plan_rows(body.reminder_plan) or []
    habit = habit_service.update_habit(habit_id, changes)
    if habit is None:
        raise HTTPException(status_code=404, detail="Habit not found")
    return {"ok": True, "habit": habit}

@router.delete("/api/habits/{habit_id}")
def delete_habit(habit_id: int):
    if not habit_service.delete_habit(habit_id):
        raise HTTPException(status_code=404, detail="Habit not found")
    return {"ok": True}

@router.post("/api/habits/{habit_id}/complete")
def complete_habit(habit_id: int, body: CompleteBody | None = None):
    day = habit_service.complete_habit(habit_id, body.date if body else None)
    if day is None:
        raise HTTPException(status_code=404, detail="Habit not found")
    return {"ok": True, "date": day}

@router.get("/api/habits/{habit_id}/next-reminder")
def next_reminder(habit_id: int):
    """Preview the next fire instant without arming anything."""
    rule = load_rule(habit_id)
    if rule is None:
        raise HTTPException(status_code=404, detail="Habit not found")
    nxt = find_next(rule, now_utc())
    if nxt is None:
        return {"habit_id": habit_id, "next": None}
    return {
        "habit_id": habit_id,
        "next": {
            "at": nxt.utc_instant.isoformat(timespec="seconds"),
            "date": nxt.date,
            "reminder_time": nxt.reminder_time,
            "source": nxt.source,
            "phase_label": nxt.plan_entry.phase_label if nxt.plan_entry else None,
            "timezone": rule.timezone,
        },
    }

@router.get("/api/habits/{habit_id}/deliveries")
def deliveries(habit_id: int, limit: int = 20):
    return {"habit_id": habit_id, "deliveries": list_recent_deliveries(habit_id, limit)}

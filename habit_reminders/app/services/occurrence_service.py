"""Resolve which time (if any) a habit reminds at on a date, and find the next fire instant."""

from dataclasses import dataclass, field
from datetime import date as Date, datetime, timedelta
from typing import Literal

from habit_reminders.app.core.config import settings
from habit_reminders.app.services.calendar_service import (
    add_days,
    normalize_weekday_key,
    parse_reminder_time,
    project,
    to_instant,
    weekday_key,
)
from habit_reminders.app.services.reminder_plan import PlanEntry, lookup, normalize_plan

BOUNDARY_GUARD = timedelta(seconds=1)


@dataclass
class RecurrenceRule:
    """Scheduling view of one habit. `timezone` comes from the owning account."""
    habit_id: int
    base_time: str | None = None
    schedule_days: list[str] | None = None
    reminder_plan: list[PlanEntry] = field(default_factory=list)
    timezone: str | None = None
    active: bool = True
    owner_id: int | None = None
    name: str = "Habit"
    description: str | None = None

    def __post_init__(self):
        self.reminder_plan = normalize_plan(self.reminder_plan)
        self.schedule_days = [normalize_weekday_key(d) for d in self.schedule_days or [] if d]

    @property
    def has_reminder_source(self) -> bool:
        return parse_reminder_time(self.base_time) is not None or bool(self.reminder_plan)


@dataclass(frozen=True)
class ResolvedOccurrence:
    reminder_time: str
    source: Literal["plan", "base"]
    plan_entry: PlanEntry | None = None


@dataclass(frozen=True)
class ScheduledFire:
    utc_instant: datetime
    date: str
    reminder_time: str
    source: Literal["plan", "base"]
    plan_entry: PlanEntry | None = None


def resolve_for_date(rule: RecurrenceRule, day: Date) -> ResolvedOccurrence | None:
    """Plan entries win over the weekday rule; the base time only applies on scheduled weekdays."""
    entry = lookup(rule.reminder_plan, day.isoformat())
    if entry is not None:
        return ResolvedOccurrence(reminder_time=entry.reminder_time, source="plan", plan_entry=entry)
    if parse_reminder_time(rule.base_time) is None:
        return None
    if rule.schedule_days and weekday_key(day) not in rule.schedule_days:
        return None
    return ResolvedOccurrence(reminder_time=rule.base_time, source="base")


def is_scheduled_for_date(rule: RecurrenceRule, day: Date) -> bool:
    return rule.active and resolve_for_date(rule, day) is not None


def occurrence_instant(rule: RecurrenceRule, day: Date, occurrence: ResolvedOccurrence) -> datetime:
    hour, minute = parse_reminder_time(occurrence.reminder_time)
    return to_instant(rule.timezone, day.year, day.month, day.day, hour, minute)


def find_next(rule: RecurrenceRule, now: datetime, lookahead_days: int | None = None) -> ScheduledFire | None:
    """First resolved instant strictly after `now` (+1s guard) within the lookahead window.

    None means the chain should stop, not that the search should be retried.
    """
    if not rule.active or not rule.has_reminder_source:
        return None
    if lookahead_days is None:
        lookahead_days = settings.lookahead_days
    today = project(now, rule.timezone).date
    threshold = now + BOUNDARY_GUARD
    for offset in range(lookahead_days + 1):
        day = add_days(today, offset)
        occurrence = resolve_for_date(rule, day)
        if occurrence is None:
            continue
        candidate = occurrence_instant(rule, day, occurrence)
        if candidate > threshold:
            return ScheduledFire(
                utc_instant=candidate,
                date=day.isoformat(),
                reminder_time=occurrence.reminder_time,
                source=occurrence.source,
                plan_entry=occurrence.plan_entry,
            )
    return None


def should_send_now(
    rule: RecurrenceRule,
    now: datetime,
    tolerance: timedelta | None = None,
) -> tuple[bool, ResolvedOccurrence | None, datetime | None]:
    """Check `now` against today's resolved instant.

    Returns (within_tolerance, today's occurrence, today's instant).
    """
    if tolerance is None:
        tolerance = timedelta(seconds=settings.drift_tolerance_seconds)
    today = project(now, rule.timezone).date
    occurrence = resolve_for_date(rule, today)
    if occurrence is None:
        return False, None, None
    expected = occurrence_instant(rule, today, occurrence)
    return abs(now - expected) <= tolerance, occurrence, expected

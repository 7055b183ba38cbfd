"""Habit reminder loop: arm the next occurrence, fire, re-validate, send, re-arm.

Per habit the loop moves Unarmed -> Armed -> Firing -> Armed (or back to
Unarmed when no future occurrence exists). Only the habit id travels with a
scheduled job; every fire reloads the habit so edits made after arming are
honoured, and a fire that turns out to be stale is a no-op tick that re-arms.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from habit_reminders.app.core.config import settings
from habit_reminders.app.db.account_queries import resolve_channel
from habit_reminders.app.db.completion_queries import has_completion
from habit_reminders.app.db.habit_queries import list_active_habit_ids, load_rule, set_next_reminder_at
from habit_reminders.app.db.reminder_queries import log_delivery, was_delivered
from habit_reminders.app.services.calendar_service import now_utc, project
from habit_reminders.app.services.notifier_service import send_notification
from habit_reminders.app.services.occurrence_service import (
    RecurrenceRule,
    ResolvedOccurrence,
    ScheduledFire,
    find_next,
    should_send_now,
)
from habit_reminders.app.services.scheduler_service import remove_habit_jobs, schedule_delayed

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = {"habit_not_found", "inactive_or_missing_time"}


@dataclass(frozen=True)
class FireOutcome:
    status: str
    sent: bool = False
    next_fire: ScheduledFire | None = None

    @property
    def terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


def compose_reminder_text(rule: RecurrenceRule, occurrence: ResolvedOccurrence) -> str:
    """Build the notification body: name, optional phase/window lines, then details."""
    lines = [f"⏰ Reminder: {rule.name or 'Habit'}"]
    entry = occurrence.plan_entry
    if entry and entry.phase_label:
        lines.append(f"Phase: {entry.phase_label}")
    if entry and entry.min_start_time:
        lines.append(f"Window opens at: {entry.min_start_time}")
    header = "\n".join(lines)

    details = (rule.description or "").strip()
    limit = settings.details_max_length
    if len(details) > limit:
        details = f"{details[: limit - 1]}…"
    return f"{header}\n\n{details}" if details else header


def arm_habit_reminder(habit_id: int, now: datetime | None = None) -> ScheduledFire | None:
    """Compute the next occurrence and register one delayed fire for it.

    Safe to call repeatedly: it is invoked on every scheduling-relevant
    mutation and at the end of every fire.
    """
    now = now or now_utc()
    rule = load_rule(habit_id)
    if rule is None:
        logger.info("Habit %s not found; reminder chain stopped", habit_id)
        return None
    if not rule.active or not rule.has_reminder_source:
        logger.info(
            "Habit %s inactive or without reminder time/plan (active=%s); not arming",
            habit_id, rule.active,
        )
        set_next_reminder_at(habit_id, None)
        return None

    next_fire = find_next(rule, now)
    if next_fire is None:
        logger.info(
            "No reminder for habit %s within %d days (time=%s days=%s plan=%d tz=%s); chain dormant",
            habit_id, settings.lookahead_days, rule.base_time, rule.schedule_days,
            len(rule.reminder_plan), rule.timezone,
        )
        set_next_reminder_at(habit_id, None)
        return None

    delay = max(next_fire.utc_instant - now, timedelta(0))
    job_id = schedule_delayed(delay, fire_scheduled_reminder, habit_id, now=now)
    set_next_reminder_at(habit_id, next_fire.utc_instant.isoformat(timespec="seconds"))
    logger.info(
        "Scheduling habit %s reminder at %s (%s %s, source=%s, phase=%s, tz=%s, delay=%ss, job=%s)",
        habit_id,
        next_fire.utc_instant.isoformat(timespec="seconds"),
        next_fire.date,
        next_fire.reminder_time,
        next_fire.source,
        next_fire.plan_entry.phase_label if next_fire.plan_entry else None,
        rule.timezone,
        int(delay.total_seconds()),
        job_id,
    )
    return next_fire


def unarm_habit_reminder(habit_id: int) -> int:
    """Stop a habit's chain. A fire already in flight finds the habit gone and ends there."""
    removed = remove_habit_jobs(habit_id)
    set_next_reminder_at(habit_id, None)
    logger.info("Unarmed habit %s (%d pending job(s) removed)", habit_id, removed)
    return removed


def _attempt_delivery(rule: RecurrenceRule, now: datetime) -> tuple[str, str | None]:
    """Decide whether this fire should notify, and send if so. Returns (status, occurrence_at)."""
    within_tolerance, occurrence, expected = should_send_now(rule, now)
    if occurrence is None:
        logger.info("Habit %s has no reminder configured for today; skipping", rule.habit_id)
        return "no_today_config", None

    occurrence_at = expected.isoformat(timespec="seconds")
    if not within_tolerance:
        logger.info(
            "Habit %s fired at %s, outside tolerance of %s (%s); skipping",
            rule.habit_id, now.isoformat(timespec="seconds"), occurrence_at, occurrence.source,
        )
        return "not_scheduled_now", occurrence_at

    today = project(now, rule.timezone).date.isoformat()
    if has_completion(rule.habit_id, today):
        logger.info("Habit %s already completed for %s; skipping", rule.habit_id, today)
        return "already_completed", occurrence_at
    if was_delivered(rule.habit_id, occurrence_at):
        logger.info("Habit %s reminder for %s already sent; skipping duplicate fire", rule.habit_id, occurrence_at)
        return "already_delivered", occurrence_at

    try:
        channel = resolve_channel(rule.owner_id)
    except Exception:
        logger.exception("Channel lookup failed for habit %s", rule.habit_id)
        return "no_channel", occurrence_at
    if channel is None:
        logger.info("No active channel for habit %s (owner %s)", rule.habit_id, rule.owner_id)
        return "no_channel", occurrence_at

    text = compose_reminder_text(rule, occurrence)
    try:
        delivered = send_notification(channel, text)
    except Exception:
        logger.exception("Sending reminder for habit %s over channel %s failed", rule.habit_id, channel["id"])
        return "send_failed", occurrence_at
    if not delivered:
        return "send_failed", occurrence_at

    logger.info(
        "Sent habit %s reminder (%s, source=%s) over %s",
        rule.habit_id, occurrence.reminder_time, occurrence.source, channel["platform"],
    )
    return "sent", occurrence_at


def fire_habit_reminder(habit_id: int, now: datetime | None = None) -> FireOutcome:
    """Handle one delayed fire: reload, re-validate, maybe send, and always re-arm."""
    now = now or now_utc()
    rule = load_rule(habit_id)
    if rule is None:
        logger.info("Habit %s not found at fire time; chain ends", habit_id)
        log_delivery(habit_id, "habit_not_found")
        return FireOutcome(status="habit_not_found")
    if not rule.active or not rule.has_reminder_source:
        logger.info("Habit %s inactive or missing reminder at fire time; chain ends", habit_id)
        set_next_reminder_at(habit_id, None)
        log_delivery(habit_id, "inactive_or_missing_time")
        return FireOutcome(status="inactive_or_missing_time")

    status, occurrence_at = "error", None
    try:
        status, occurrence_at = _attempt_delivery(rule, now)
    finally:
        next_fire = arm_habit_reminder(habit_id, now)
        log_delivery(habit_id, status, occurrence_at)
    return FireOutcome(status=status, sent=status == "sent", next_fire=next_fire)


def fire_scheduled_reminder(habit_id: int) -> None:
    """Scheduler job target; referenced by import path in the persistent job store."""
    fire_habit_reminder(habit_id)


def rearm_all_active_habits(now: datetime | None = None) -> int:
    """Arm every active habit; run at startup to restore chains lost while down."""
    now = now or now_utc()
    armed = 0
    for habit_id in list_active_habit_ids():
        if arm_habit_reminder(habit_id, now) is not None:
            armed += 1
    logger.info("Startup re-arm: %d habit(s) armed", armed)
    return armed

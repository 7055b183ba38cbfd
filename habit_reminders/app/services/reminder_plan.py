"""Per-date reminder overrides: normalization, lookup, and derivation from free text."""

import logging
import re
from dataclasses import asdict, dataclass
from datetime import date as Date
from typing import Any, Iterable

from habit_reminders.app.core.config import settings
from habit_reminders.app.services.calendar_service import add_days, parse_reminder_time

logger = logging.getLogger(__name__)

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$", re.ASCII)
# "D1 ... 07:30", "D2-D5 ... 7:30", "d10-12 ... 18:00"
_PLAN_LINE_RE = re.compile(
    r"\b[Dd](?P<start>\d{1,3})(?:\s*[-–—]\s*[Dd]?(?P<end>\d{1,3}))?\b"
    r".*?(?<![\d:])(?P<hour>\d{1,2}):(?P<minute>\d{2})(?![\d:])",
    re.ASCII,
)


@dataclass(frozen=True)
class PlanEntry:
    date: str
    reminder_time: str
    min_start_time: str | None = None
    phase_label: str | None = None


def _field(raw: Any, *names: str) -> Any:
    if isinstance(raw, PlanEntry):
        return getattr(raw, names[0], None)
    if isinstance(raw, dict):
        for name in names:
            if name in raw:
                return raw[name]
    return None


def is_plan_date(value: Any) -> bool:
    """True for a strict `YYYY-MM-DD` string naming a real calendar date."""
    if not isinstance(value, str) or not _DATE_RE.match(value):
        return False
    try:
        Date.fromisoformat(value)
    except ValueError:
        return False
    return True


def normalize_plan(raw_entries: Iterable[Any] | None) -> list[PlanEntry]:
    """Drop malformed rows, keep the last row per date, and sort by date."""
    by_date: dict[str, PlanEntry] = {}
    for raw in raw_entries or []:
        entry_date = _field(raw, "date")
        reminder_time = _field(raw, "reminder_time", "reminderTime")
        if not is_plan_date(entry_date) or parse_reminder_time(reminder_time) is None:
            logger.debug("Dropping malformed plan row %r", raw)
            continue
        min_start = _field(raw, "min_start_time", "minStartTime")
        if parse_reminder_time(min_start) is None:
            min_start = None
        label = _field(raw, "phase_label", "phaseLabel")
        label = label.strip() if isinstance(label, str) else None
        # Re-inserting moves the date to the end, so the last row wins.
        by_date.pop(entry_date, None)
        by_date[entry_date] = PlanEntry(
            date=entry_date,
            reminder_time=reminder_time.strip(),
            min_start_time=min_start.strip() if min_start else None,
            phase_label=label or None,
        )
    return sorted(by_date.values(), key=lambda e: e.date)


def lookup(plan: Iterable[PlanEntry], date_yyyy_mm_dd: str) -> PlanEntry | None:
    """Exact-date lookup; no range matching."""
    for entry in plan:
        if entry.date == date_yyyy_mm_dd:
            return entry
    return None


def plan_to_dicts(plan: Iterable[PlanEntry]) -> list[dict]:
    return [{k: v for k, v in asdict(e).items() if v is not None} for e in plan]


def derive_plan_from_description(
    description: str | None,
    start_date: str | Date,
    max_day: int | None = None,
) -> list[PlanEntry]:
    """Best-effort scan of a habit description for `D<n>[-<m>] ... HH:MM` lines.

    Day numbers are 1-based offsets from `start_date`. Lines that do not match
    are ignored; the result may be empty but this never raises.
    """
    if not description:
        return []
    if isinstance(start_date, str):
        if not is_plan_date(start_date):
            return []
        start_date = Date.fromisoformat(start_date)
    max_day = settings.plan_max_day if max_day is None else max_day

    entries: list[PlanEntry] = []
    for line in description.splitlines():
        match = _PLAN_LINE_RE.search(line)
        if not match:
            continue
        reminder_time = f"{int(match['hour']):02d}:{match['minute']}"
        if parse_reminder_time(reminder_time) is None:
            continue
        first = int(match["start"])
        last = int(match["end"]) if match["end"] else first
        if last < first:
            first, last = last, first
        label = f"D{first}" if first == last else f"D{first}-{last}"
        for day in range(max(first, 1), min(last, max_day) + 1):
            entries.append(
                PlanEntry(
                    date=add_days(start_date, day - 1).isoformat(),
                    reminder_time=reminder_time,
                    min_start_time=reminder_time,
                    phase_label=label,
                )
            )
    return normalize_plan(entries)


def derive_plan_if_needed(
    reminder_plan: Iterable[Any] | None,
    description: str | None,
    start_date: str | Date,
) -> list[PlanEntry]:
    """Keep an explicit plan when present; otherwise derive one from the description."""
    normalized = normalize_plan(reminder_plan)
    if normalized:
        return normalized
    return derive_plan_from_description(description, start_date)

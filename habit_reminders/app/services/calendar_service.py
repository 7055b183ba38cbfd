"""Civil-time projection helpers: UTC instants <-> wall-clock fields in a named zone."""

import logging
import re
from datetime import date as Date, datetime, timedelta, timezone
from typing import NamedTuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from habit_reminders.app.core.config import settings

logger = logging.getLogger(__name__)

WEEKDAY_KEYS = ("sun", "mon", "tue", "wed", "thu", "fri", "sat")
_HHMM_RE = re.compile(r"^(\d{2}):(\d{2})$", re.ASCII)


class CivilTime(NamedTuple):
    year: int
    month: int
    day: int
    weekday: str
    hour: int
    minute: int
    second: int

    @property
    def date(self) -> Date:
        return Date(self.year, self.month, self.day)


def get_zone(name: str | None) -> ZoneInfo:
    """Return the ZoneInfo for `name`, falling back to the configured default zone."""
    if name:
        try:
            return ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning("Unknown timezone %r; falling back to %s", name, settings.default_timezone)
    return ZoneInfo(settings.default_timezone)


def weekday_key(day: Date) -> str:
    """Map a date to its `sun`..`sat` key (Python counts Monday as 0)."""
    return WEEKDAY_KEYS[(day.weekday() + 1) % 7]


def normalize_weekday_key(raw: str) -> str:
    return raw.strip().lower()[:3]


def project(instant: datetime, tz_name: str | None) -> CivilTime:
    """Project an aware instant onto the wall clock of `tz_name`."""
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    local = instant.astimezone(get_zone(tz_name))
    return CivilTime(
        year=local.year,
        month=local.month,
        day=local.day,
        weekday=weekday_key(local.date()),
        hour=local.hour,
        minute=local.minute,
        second=local.second,
    )


def utc_offset(tz_name: str | None, instant: datetime) -> timedelta:
    """Offset the zone applies at `instant`, derived from the forward projection."""
    civil = project(instant, tz_name)
    as_utc = datetime(
        civil.year, civil.month, civil.day, civil.hour, civil.minute, civil.second,
        tzinfo=timezone.utc,
    )
    return as_utc - instant.astimezone(timezone.utc).replace(microsecond=0)


def to_instant(tz_name: str | None, year: int, month: int, day: int, hour: int, minute: int) -> datetime:
    """Convert wall-clock fields in `tz_name` to a UTC instant.

    The civil fields are first read as if they were UTC; projecting that guess
    reveals the offset in force near it, which is then subtracted. Within an
    hour or so of a transition the guess can sit on the wrong side of it, so
    the offset is taken once more at the candidate and kept if it reproduces
    the requested wall time. Wall times inside a DST gap never round-trip and
    keep the first candidate; overlap times take whichever side the guess
    lands on.
    """
    guess = datetime(year, month, day, hour, minute, tzinfo=timezone.utc)
    candidate = guess - utc_offset(tz_name, guess)
    wanted = (year, month, day, hour, minute)
    if _wall_fields(candidate, tz_name) == wanted:
        return candidate
    refined = guess - utc_offset(tz_name, candidate)
    if _wall_fields(refined, tz_name) == wanted:
        return refined
    return candidate


def _wall_fields(instant: datetime, tz_name: str | None) -> tuple[int, int, int, int, int]:
    civil = project(instant, tz_name)
    return civil.year, civil.month, civil.day, civil.hour, civil.minute


def add_days(day: Date, delta: int) -> Date:
    return day + timedelta(days=delta)


def parse_reminder_time(value: str | None) -> tuple[int, int] | None:
    """Parse a strict `HH:MM` 24h string into (hour, minute), or None."""
    if not value or not isinstance(value, str):
        return None
    match = _HHMM_RE.match(value.strip())
    if not match:
        return None
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        return None
    return hour, minute


def now_utc() -> datetime:
    return datetime.now(timezone.utc)

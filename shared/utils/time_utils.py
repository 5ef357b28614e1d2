"""
shared/utils/time_utils.py
Wall-clock helpers: HH:MM parsing and arithmetic, facility timezone,
and the injectable clock used by the booking engine.
"""

import re
from datetime import date, datetime, time, timezone
from typing import Callable

from config.settings import settings
from shared.exceptions import InvalidTimeFormat

MINUTES_PER_DAY = 24 * 60

_HHMM = re.compile(r"^(\d{1,2}):(\d{2})$")

# Time source: returns an aware datetime. Injected so tests control "now".
Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def get_clock() -> Clock:
    """FastAPI dependency; overridden in tests with a fixed clock."""
    return utcnow


def facility_tz() -> timezone:
    return settings.facility_timezone


# ── HH:MM arithmetic ──────────────────────────────────────────

def to_minutes(value: str) -> int:
    """
    "HH:MM" → minutes since midnight. "24:00" is accepted as end of day.
    Raises InvalidTimeFormat for anything else.
    """
    if not value or not isinstance(value, str):
        raise InvalidTimeFormat(value)
    match = _HHMM.match(value.strip())
    if not match:
        raise InvalidTimeFormat(value)
    hours, minutes = int(match.group(1)), int(match.group(2))
    if minutes > 59 or hours > 24 or (hours == 24 and minutes != 0):
        raise InvalidTimeFormat(value)
    return hours * 60 + minutes


def from_minutes(total: int) -> str:
    total %= MINUTES_PER_DAY
    return f"{total // 60:02d}:{total % 60:02d}"


def add_minutes(value: str, minutes: int) -> str:
    return from_minutes(to_minutes(value) + minutes)


def span_minutes(start: str, end: str) -> tuple[int, int]:
    """Minute range for [start, end); end <= start means end is on the next day."""
    start_min = to_minutes(start)
    end_min = to_minutes(end)
    if end_min <= start_min:
        end_min += MINUTES_PER_DAY
    return start_min, end_min


def duration_minutes(start: str, end: str) -> int:
    start_min, end_min = span_minutes(start, end)
    return end_min - start_min


def intervals_overlap(a_start: str, a_end: str, b_start: str, b_end: str) -> bool:
    """Half-open intersection of two same-day wall-clock ranges."""
    a0, a1 = span_minutes(a_start, a_end)
    b0, b1 = span_minutes(b_start, b_end)
    return a0 < b1 and b0 < a1


# ── Calendar ──────────────────────────────────────────────────

def day_of_week(d: date) -> int:
    """0 = Sunday … 6 = Saturday."""
    return (d.weekday() + 1) % 7


def facility_datetime(d: date, hhmm: str) -> datetime:
    """Combine a facility-local date and HH:MM into an aware datetime."""
    minutes = to_minutes(hhmm) % MINUTES_PER_DAY
    return datetime.combine(d, time(minutes // 60, minutes % 60), tzinfo=facility_tz())


def facility_today(now: datetime) -> date:
    return now.astimezone(facility_tz()).date()

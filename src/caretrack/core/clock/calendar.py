"""Calendar and time-of-day arithmetic.

Everything that reasons about "minutes since midnight", local calendar days
or elapsed hours goes through this module so the scheduler and the insight
engines agree on rollover and window semantics.
"""

from __future__ import annotations

import re
from datetime import date, datetime, timedelta, timezone
from typing import Protocol, runtime_checkable

MINUTES_PER_DAY = 24 * 60

_TIME_24H = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*$")
_TIME_12H = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*([AaPp][Mm])\s*$")


# ---------------------------------------------------------------------------
# Clocks
# ---------------------------------------------------------------------------

@runtime_checkable
class Clock(Protocol):
    """Source of the current instant. Always timezone-aware."""

    def now(self) -> datetime:
        ...


class SystemClock:
    """Wall clock in the host's local timezone."""

    def now(self) -> datetime:
        return datetime.now().astimezone()


class FixedClock:
    """A clock that only moves when told to.

    Usage::

        clock = FixedClock(datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc))
        clock.advance(minutes=15)
    """

    def __init__(self, instant: datetime) -> None:
        self._instant = _as_aware(instant)

    def now(self) -> datetime:
        return self._instant

    def set(self, instant: datetime) -> None:
        self._instant = _as_aware(instant)

    def advance(self, **delta: float) -> datetime:
        """Move forward by ``timedelta(**delta)`` and return the new instant."""
        self._instant = self._instant + timedelta(**delta)
        return self._instant


def _as_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# ---------------------------------------------------------------------------
# Minute-of-day arithmetic
# ---------------------------------------------------------------------------

def parse_time_to_minutes(text: str) -> int:
    """Parse ``"HH:MM"`` (24h) or ``"H:MM AM"`` into minutes since midnight.

    Raises:
        ValueError: If the string is not a valid time of day.
    """
    if not isinstance(text, str):
        raise ValueError(f"Time of day must be a string, got {type(text).__name__}")

    match = _TIME_12H.match(text)
    if match:
        hour, minute = int(match.group(1)), int(match.group(2))
        if not 1 <= hour <= 12 or minute > 59:
            raise ValueError(f"Malformed time of day: {text!r}")
        hour = hour % 12
        if match.group(3).upper() == "PM":
            hour += 12
        return hour * 60 + minute

    match = _TIME_24H.match(text)
    if match is None:
        raise ValueError(f"Malformed time of day: {text!r}")
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        raise ValueError(f"Malformed time of day: {text!r}")
    return hour * 60 + minute


def normalize_minute_of_day(minutes: int) -> int:
    """Wrap any minute offset into ``[0, 1440)``."""
    return minutes % MINUTES_PER_DAY


def minutes_to_hour_minute(minutes: int) -> tuple[int, int]:
    return divmod(normalize_minute_of_day(minutes), 60)


def shift_time_of_day(hour: int, minute: int, delta_minutes: int) -> tuple[int, int]:
    """Shift a wall-clock time by ``delta_minutes`` with day rollover.

    ``shift_time_of_day(0, 3, -5)`` is ``(23, 58)``.
    """
    return minutes_to_hour_minute(hour * 60 + minute + delta_minutes)


def minute_of_day(moment: datetime) -> int:
    return moment.hour * 60 + moment.minute


def in_daily_window(now_minutes: int, start_minutes: int, end_minutes: int) -> bool:
    """Whether ``now`` falls in the half-open daily window ``[start, end)``.

    A window whose start is after its end runs overnight. A window whose
    start equals its end is empty.
    """
    if start_minutes <= end_minutes:
        return start_minutes <= now_minutes < end_minutes
    return now_minutes >= start_minutes or now_minutes < end_minutes


def format_hhmm(hour: int, minute: int) -> str:
    return f"{hour:02d}:{minute:02d}"


def to_12_hour(minutes: int) -> str:
    hour, minute = minutes_to_hour_minute(minutes)
    suffix = "PM" if hour >= 12 else "AM"
    display = hour % 12 or 12
    return f"{display}:{minute:02d} {suffix}"


def time_slot(minutes: int) -> str:
    """Coarse part of day: morning, afternoon, evening or night."""
    minutes = normalize_minute_of_day(minutes)
    if 5 * 60 <= minutes < 12 * 60:
        return "morning"
    if 12 * 60 <= minutes < 17 * 60:
        return "afternoon"
    if 17 * 60 <= minutes < 21 * 60:
        return "evening"
    return "night"


# ---------------------------------------------------------------------------
# Calendar days and instants
# ---------------------------------------------------------------------------

def parse_instant(text: str) -> datetime:
    """Parse an ISO 8601 instant. Naive values are taken as UTC.

    Raises:
        ValueError: If the string is not ISO 8601.
    """
    if not isinstance(text, str) or not text:
        raise ValueError("Timestamp must be a non-empty ISO 8601 string")
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return _as_aware(datetime.fromisoformat(text))


def local_date_of(timestamp: str) -> date:
    """Calendar day of an instant, in the offset it was recorded with."""
    return parse_instant(timestamp).date()


def is_same_day(first: datetime, second: datetime) -> bool:
    second = _as_aware(second)
    return _as_aware(first).astimezone(second.tzinfo).date() == second.date()


def hours_since(earlier: datetime, now: datetime) -> float:
    return (_as_aware(now) - _as_aware(earlier)).total_seconds() / 3600


def days_between(start: date, end: date) -> int:
    return (end - start).days


def last_n_dates(today: date, count: int) -> list[date]:
    """The ``count`` calendar days ending at ``today``, oldest first."""
    return [today - timedelta(days=offset) for offset in range(count - 1, -1, -1)]

"""
Shared, pure date and time helpers used by every engine component.

Times of day are ``datetime.time`` values truncated to the minute; instants
are timezone-aware pendulum ``DateTime`` objects. Nothing in here reads the
system clock: callers always pass ``now`` explicitly.
"""

from datetime import date, datetime, time
from typing import Union

import pendulum
from pendulum import DateTime

TimeLike = Union[time, str]
DateLike = Union[date, str]

MINUTES_PER_DAY = 24 * 60


def parse_time(value: TimeLike) -> time:
    """
    Normalise an ``HH:MM`` string (or ``time``) to a minute-precision time.

    Accepts single-digit hours ("8:30") and ``HH:MM:SS`` strings, seconds are
    dropped.

    Raises:
        ValueError: If the value is not a valid time of day
    """
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0, tzinfo=None)

    parts = str(value).strip().split(":")
    if len(parts) not in (2, 3) or not all(p.isdigit() for p in parts):
        raise ValueError(f"Invalid time of day: '{value}' (expected HH:MM)")

    hour, minute = int(parts[0]), int(parts[1])
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise ValueError(f"Invalid time of day: '{value}'")

    return time(hour=hour, minute=minute)


def format_time(value: time) -> str:
    """Format a time of day as 24-hour ``HH:MM``."""
    return f"{value.hour:02d}:{value.minute:02d}"


def parse_date(value: DateLike) -> date:
    """
    Normalise a ``YYYY-MM-DD`` string (an ISO datetime is cut at 'T') or a
    date/datetime to a plain ``date``.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    text = str(value).strip().split("T")[0]
    try:
        parsed = pendulum.from_format(text, "YYYY-MM-DD")
    except ValueError as exc:
        raise ValueError(f"Invalid date: '{value}' (expected YYYY-MM-DD)") from exc
    return parsed.date()


def to_minutes(value: time) -> int:
    """Minutes elapsed since midnight."""
    return value.hour * 60 + value.minute


def from_minutes(minutes: int) -> time:
    """
    Build a time of day from minutes since midnight.

    Raises:
        ValueError: If the result would fall outside a single day
    """
    if not 0 <= minutes < MINUTES_PER_DAY:
        raise ValueError(f"{minutes} minutes is outside a single day")
    return time(hour=minutes // 60, minute=minutes % 60)


def add_minutes(value: time, minutes: int) -> time:
    """Shift a time of day by ``minutes`` without wrapping past midnight."""
    return from_minutes(to_minutes(value) + minutes)


def minutes_between(start: time, end: time) -> int:
    """Signed number of minutes from ``start`` to ``end`` on the same day."""
    return to_minutes(end) - to_minutes(start)


def day_index(value: date) -> int:
    """Weekday index with 0 = Sunday, 1 = Monday ... 6 = Saturday."""
    return value.isoweekday() % 7


def combine(day: date, at: time, tz: str) -> DateTime:
    """Build the instant for a calendar day and time of day in ``tz``."""
    return pendulum.datetime(
        day.year, day.month, day.day, at.hour, at.minute, tz=tz
    )


def as_instant(value: datetime, tz: str) -> DateTime:
    """
    Coerce ``value`` into a pendulum DateTime expressed in ``tz``.

    Naive datetimes are interpreted as wall-clock time in ``tz``.
    """
    if value.tzinfo is None:
        return pendulum.instance(value, tz=tz)
    return pendulum.instance(value).in_timezone(tz)


def ranges_overlap(start_a: time, end_a: time, start_b: time, end_b: time) -> bool:
    """Half-open overlap test for two time-of-day ranges."""
    return start_a < end_b and start_b < end_a

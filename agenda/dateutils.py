"""Calendar and clock helpers.

All dates are plain calendar days (``datetime.date``) and all clock values
are wall-clock times (``datetime.time``). Nothing in here knows about
timezones: a date string is parsed field by field, never through a
timestamp, so "2024-01-08" is always Monday the 8th regardless of where
the process runs.
"""
import re
from calendar import monthrange
from datetime import date, datetime, time, timedelta
from enum import IntEnum
from typing import List, Tuple, Union

DATE_PATTERN = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
TIME_PATTERN = re.compile(r"^([01]?[0-9]|2[0-3]):([0-5][0-9])(?::([0-5][0-9]))?$")

MINUTES_PER_DAY = 24 * 60
MAX_RANGE_MONTHS = 12


class Weekday(IntEnum):
    """Day of week, numbered from Sunday (0) to Saturday (6)."""
    SUNDAY = 0
    MONDAY = 1
    TUESDAY = 2
    WEDNESDAY = 3
    THURSDAY = 4
    FRIDAY = 5
    SATURDAY = 6


WEEKDAYS = [
    Weekday.MONDAY,
    Weekday.TUESDAY,
    Weekday.WEDNESDAY,
    Weekday.THURSDAY,
    Weekday.FRIDAY,
]


def weekday_of(day: date) -> Weekday:
    """Weekday of a calendar date (Sunday-based numbering)."""
    return Weekday((day.weekday() + 1) % 7)


def parse_date(value: Union[str, date]) -> date:
    """
    Parse a calendar date.

    Accepts ``date`` objects (a ``datetime`` is truncated to its date) and
    ``YYYY-MM-DD`` strings. Strings are split into fields explicitly so no
    timezone conversion can shift the day.

    Raises:
        ValueError: If the value is not a valid calendar date
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise ValueError(f"Invalid date: {value!r}")

    match = DATE_PATTERN.match(value.strip())
    if not match:
        raise ValueError(f"Invalid date format (expected YYYY-MM-DD): {value!r}")

    year, month, day = (int(part) for part in match.groups())
    return date(year, month, day)


def parse_time(value: Union[str, time]) -> time:
    """
    Parse a wall-clock time.

    Accepts ``time`` objects and ``H:MM``, ``HH:MM`` or ``HH:MM:SS``
    strings. Any date or timezone component is dropped.

    Raises:
        ValueError: If the value is not a valid time
    """
    if isinstance(value, datetime):
        return value.time().replace(tzinfo=None)
    if isinstance(value, time):
        return value.replace(tzinfo=None)
    if not isinstance(value, str):
        raise ValueError(f"Invalid time: {value!r}")

    match = TIME_PATTERN.match(value.strip())
    if not match:
        raise ValueError(f"Invalid time format (expected HH:MM): {value!r}")

    hours, minutes, seconds = match.groups()
    return time(int(hours), int(minutes), int(seconds or 0))


def format_time(value: time) -> str:
    """Format a time as ``HH:MM``."""
    return f"{value.hour:02d}:{value.minute:02d}"


def time_to_minutes(value: time) -> int:
    """Minutes since midnight."""
    return value.hour * 60 + value.minute


def minutes_to_time(minutes: int) -> time:
    """
    Convert minutes since midnight back to a clock time.

    Raises:
        ValueError: If minutes falls outside a single day
    """
    if minutes < 0 or minutes >= MINUTES_PER_DAY:
        raise ValueError(f"Minutes out of range for a single day: {minutes}")
    return time(minutes // 60, minutes % 60)


def add_days(day: date, days: int) -> date:
    return day + timedelta(days=days)


def time_slots(start: time, end: time, duration_minutes: int) -> List[time]:
    """
    Start times of consecutive slots between ``start`` and ``end``.

    A slot is listed when its start is strictly before ``end``; the last
    slot may run past ``end``.

    Example:
        >>> [format_time(t) for t in time_slots(time(8), time(9), 20)]
        ['08:00', '08:20', '08:40']
    """
    if duration_minutes <= 0:
        raise ValueError("Slot duration must be positive")

    slots = []
    current = time_to_minutes(start)
    last = time_to_minutes(end)
    while current < last:
        slots.append(minutes_to_time(current))
        current += duration_minutes
    return slots


def week_days(day: date) -> List[date]:
    """The Monday-to-Sunday week containing ``day``."""
    monday = day - timedelta(days=day.weekday())
    return [monday + timedelta(days=offset) for offset in range(7)]


def month_days(day: date) -> List[date]:
    """
    Six-week calendar grid (42 days) for the month of ``day``.

    The grid starts on the Monday on or before the first of the month and
    is padded with days of the following month.
    """
    first = day.replace(day=1)
    start = first - timedelta(days=first.weekday())
    return [start + timedelta(days=offset) for offset in range(42)]


def month_bounds(year: int, month: int) -> Tuple[date, date]:
    """First and last day of a calendar month."""
    last_day = monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def calculate_age(birth_date: date, today: date) -> int:
    """Age in completed years at ``today``."""
    age = today.year - birth_date.year
    if (today.month, today.day) < (birth_date.month, birth_date.day):
        age -= 1
    return age


def validate_date_range(start: date, end: date) -> List[str]:
    """
    Validate a reporting/query date range.

    Returns:
        List of human-readable errors (empty when the range is valid)
    """
    errors = []
    if start > end:
        errors.append("Start date must be on or before end date")

    months = (end.year - start.year) * 12 + (end.month - start.month)
    if months > MAX_RANGE_MONTHS:
        errors.append(f"Range cannot span more than {MAX_RANGE_MONTHS} months")

    return errors

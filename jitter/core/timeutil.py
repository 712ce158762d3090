"""
Time helpers: consumption durations and wall-clock strings.

Nothing in here raises on malformed input. Durations fall back to an
instant (0 min) and clock strings fall back to midday, so a bad field in a
caller's record never aborts a calculation.
"""

import logging
import math
from datetime import date, datetime, time, timedelta
from typing import Optional, Union

from dateutil.parser import parse as parse_date

log = logging.getLogger("jitter.time")

MIDDAY = time(12, 0)


def parse_duration_minutes(value: Union[str, timedelta, float, int, None]) -> float:
    """
    Consumption duration in minutes.

    Accepts "HH:MM:SS", "MM:SS", a timedelta or a number of seconds.
    Anything else (or a negative value) reads as 0, i.e. an instant bolus.
    """
    if value is None:
        return 0.0
    if isinstance(value, timedelta):
        seconds = value.total_seconds()
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        seconds = float(value)
    elif isinstance(value, str):
        parts = value.strip().split(":")
        try:
            numbers = [float(p) for p in parts]
        except ValueError:
            log.debug("Malformed duration %r, treating as instant", value)
            return 0.0
        if len(numbers) == 3:
            seconds = numbers[0] * 3600 + numbers[1] * 60 + numbers[2]
        elif len(numbers) == 2:
            seconds = numbers[0] * 60 + numbers[1]
        else:
            log.debug("Malformed duration %r, treating as instant", value)
            return 0.0
    else:
        return 0.0

    if not math.isfinite(seconds) or seconds < 0:
        return 0.0
    return seconds / 60.0


def to_local_naive(moment: datetime) -> datetime:
    """Wall-clock time in the local zone; naive values pass through."""
    if moment.tzinfo is None or moment.utcoffset() is None:
        return moment
    return moment.astimezone().replace(tzinfo=None)


def resolve_time(
    value: Union[datetime, time, str, None],
    on_date: date,
    fallback: time = MIDDAY,
) -> datetime:
    """
    Anchor a clock value on `on_date`.

    datetimes pass through, bare times are combined with the date
    and strings ("14:30", "2:30 PM", ISO) are parsed with dateutil using the
    date as default. Unparseable strings fall back to `fallback` (midday).
    Timezone-aware results are converted to local wall-clock time.
    """
    if isinstance(value, datetime):
        return to_local_naive(value)
    if isinstance(value, time):
        return to_local_naive(datetime.combine(on_date, value))
    if isinstance(value, str) and value.strip():
        default = datetime.combine(on_date, time(0, 0))
        try:
            return to_local_naive(parse_date(value, default=default))
        except (ValueError, OverflowError) as exc:
            log.warning("Unparseable time %r (%s), using %s", value, exc, fallback)
    return datetime.combine(on_date, fallback)


def hour_of_day(moment: datetime) -> float:
    """Fractional hour, e.g. 14:30 -> 14.5."""
    return moment.hour + moment.minute / 60.0


def minutes_between(earlier: datetime, later: datetime) -> float:
    return (later - earlier).total_seconds() / 60.0


def floor_to_minutes(moment: datetime, step: int) -> datetime:
    """Round down to a multiple of `step` minutes."""
    minute = moment.minute - moment.minute % step
    return moment.replace(minute=minute, second=0, microsecond=0)


def format_clock(moment: Optional[datetime]) -> str:
    """Human clock label, e.g. '2pm' or '9:30am'."""
    if moment is None:
        return ""
    hour = moment.hour % 12 or 12
    suffix = "am" if moment.hour < 12 else "pm"
    if moment.minute:
        return f"{hour}:{moment.minute:02d}{suffix}"
    return f"{hour}{suffix}"

# backend/slotwise/domain/time_arithmetic.py
"""
Time arithmetic for bookings.

All arithmetic happens on absolute instants (UTC), so adding a duration
rolls over hour, day and DST boundaries correctly. Local wall-clock values
(a business's opening hours on a given date) are converted to instants
with pytz before any arithmetic.
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Iterator

import pytz

from ..core.exceptions import ValidationException


def _require_aware(value: datetime, field_name: str) -> None:
    if value.tzinfo is None or value.tzinfo.utcoffset(value) is None:
        raise ValidationException(f"{field_name} must be timezone-aware")


def _require_positive_minutes(minutes: int, field_name: str) -> None:
    if isinstance(minutes, bool) or not isinstance(minutes, int) or minutes <= 0:
        raise ValidationException(
            f"{field_name} must be a positive number of minutes",
            details={field_name: minutes},
        )


def end_time(start_time: datetime, duration_minutes: int) -> datetime:
    """
    Return ``start_time + duration_minutes`` as an absolute instant.

    The result is expressed in the same timezone as ``start_time``.

    Raises:
        ValidationException: If the duration is not positive or the start is naive.
    """
    _require_positive_minutes(duration_minutes, "duration_minutes")
    _require_aware(start_time, "start_time")
    start_utc = start_time.astimezone(timezone.utc)
    return (start_utc + timedelta(minutes=duration_minutes)).astimezone(start_time.tzinfo)


def intervals_overlap(
    start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime
) -> bool:
    """
    General half-open interval overlap test: ``[a) ∩ [b) ≠ ∅``.

    Covers start-during, end-during and containment in one comparison.
    Adjacent intervals (``end_a == start_b``) do not overlap.
    """
    return start_a < end_b and start_b < end_a


class SlotSequence:
    """
    Candidate start times from ``day_start`` (inclusive) to ``day_end`` (exclusive).

    Lazy and finite; iterating again restarts from ``day_start``.
    """

    def __init__(self, day_start: datetime, day_end: datetime, step_minutes: int) -> None:
        _require_positive_minutes(step_minutes, "step_minutes")
        _require_aware(day_start, "day_start")
        _require_aware(day_end, "day_end")
        if day_end < day_start:
            raise ValidationException("day_end must not be before day_start")
        self.day_start = day_start
        self.day_end = day_end
        self.step = timedelta(minutes=step_minutes)

    def __iter__(self) -> Iterator[datetime]:
        tz = self.day_start.tzinfo
        current = self.day_start.astimezone(timezone.utc)
        stop = self.day_end.astimezone(timezone.utc)
        while current < stop:
            yield current.astimezone(tz)
            current += self.step

    def __repr__(self) -> str:
        return f"SlotSequence({self.day_start.isoformat()}..{self.day_end.isoformat()}, step={self.step})"


def generate_slots(day_start: datetime, day_end: datetime, step_minutes: int) -> SlotSequence:
    """Generate discrete offerable start times within business hours."""
    return SlotSequence(day_start, day_end, step_minutes)


def parse_hhmm(value: str) -> time:
    """Parse an ``HH:MM`` wall-clock string."""
    try:
        hour, minute = value.split(":")
        return time(int(hour), int(minute))
    except (ValueError, AttributeError):
        raise ValidationException(f"Invalid time format: {value}. Expected HH:MM format.")


def localize(day: date, wall_time: time, tz_name: str) -> datetime:
    """Attach a business timezone to a local date and wall-clock time."""
    try:
        tz = pytz.timezone(tz_name)
    except pytz.UnknownTimeZoneError:
        raise ValidationException(f"Unknown timezone: {tz_name}")
    return tz.localize(datetime.combine(day, wall_time))


def local_day_bounds(day: date, tz_name: str) -> tuple[datetime, datetime]:
    """Return ``[midnight, next midnight)`` of ``day`` in the given timezone."""
    start = localize(day, time(0, 0), tz_name)
    end = localize(day + timedelta(days=1), time(0, 0), tz_name)
    return start, end

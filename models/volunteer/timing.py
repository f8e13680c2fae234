"""
Turning a shift's calendar date and wall-clock "HH:MM" strings into real
instants.

Shift times are entered as local times at the venue, so they're interpreted
in `shift_tz` regardless of where the server is. A shift which runs past
midnight isn't representable: its end is before its start, so it's treated
as zero-length.
"""

from datetime import UTC, datetime, time, timedelta
from typing import TYPE_CHECKING

import pytz

if TYPE_CHECKING:
    from .shift import Shift, Signup

__all__ = [
    "shift_tz",
    "parse_clock",
    "shift_start",
    "scheduled_minutes",
    "shift_end",
    "is_past",
    "effective_worked_minutes",
]

shift_tz = pytz.timezone("Europe/Oslo")


def _to_int(part: str) -> int | None:
    try:
        return int(part.strip())
    except ValueError:
        return None


def parse_clock(value: str | None) -> tuple[int, int] | None:
    """Split "HH:MM" into (hours, minutes). Returns None if either part
    isn't a number."""
    if not value:
        return None
    hours, _, minutes = value.partition(":")
    h, m = _to_int(hours), _to_int(minutes)
    if h is None or m is None:
        return None
    return h, m


def shift_start(shift: "Shift") -> datetime:
    """The instant the shift starts. No start time means midnight, and a
    part of the time which won't parse counts as zero."""
    hours, _, minutes = (shift.start_time or "00:00").partition(":")
    h = _to_int(hours) or 0
    m = _to_int(minutes) or 0
    wall_clock = datetime.combine(shift.date, time(0, 0)) + timedelta(hours=h, minutes=m)
    try:
        return shift_tz.localize(wall_clock, is_dst=None)
    except pytz.NonExistentTimeError:
        # Skipped when the clocks went forward, so read it as summer time
        return shift_tz.normalize(shift_tz.localize(wall_clock, is_dst=True))
    except pytz.AmbiguousTimeError:
        # Happens twice when the clocks go back: the second one counts
        return shift_tz.localize(wall_clock, is_dst=False)


def scheduled_minutes(start_time: str | None, end_time: str | None) -> int:
    start = parse_clock(start_time)
    end = parse_clock(end_time)
    if start is None or end is None:
        return 0
    diff = (end[0] * 60 + end[1]) - (start[0] * 60 + start[1])
    return diff if diff > 0 else 0


def shift_end(shift: "Shift") -> datetime:
    start = shift_start(shift)
    if not shift.start_time or not shift.end_time:
        return start
    return shift_tz.normalize(start + timedelta(minutes=scheduled_minutes(shift.start_time, shift.end_time)))


def is_past(shift: "Shift", now: datetime | None = None) -> bool:
    if now is None:
        now = datetime.now(UTC)
    return shift_end(shift) <= now


def effective_worked_minutes(signup: "Signup", shift: "Shift | None" = None) -> int:
    """Minutes to credit the volunteer with: the admin's override if one has
    been recorded (zero included), otherwise the scheduled length."""
    if shift is None:
        shift = signup.shift
    if signup.worked_minutes is not None and signup.worked_minutes >= 0:
        return signup.worked_minutes
    return scheduled_minutes(shift.start_time, shift.end_time)

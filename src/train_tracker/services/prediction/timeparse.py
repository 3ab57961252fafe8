"""Schedule time helpers: "HH:MM" strings to concrete timestamps.

The service never compares schedule strings directly; every scheduled time is
first anchored to the calendar day of a reference ``now`` (in ``now``'s
timezone) so that arithmetic against recorded arrivals is possible.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

_DEFAULT_ROLLOVER = timedelta(hours=6)

_NO_TIME_DISPLAY = "--:-- --"


def elapsed(later: datetime, earlier: datetime) -> timedelta:
    """Real time between two aware datetimes, correct across DST changes."""
    return later.astimezone(timezone.utc) - earlier.astimezone(timezone.utc)


def shift(moment: datetime, delta: timedelta) -> datetime:
    """Move an aware datetime by real elapsed time, keeping its timezone."""
    return (moment.astimezone(timezone.utc) + delta).astimezone(moment.tzinfo)


def _split_hhmm(value: Optional[str]) -> Optional[tuple[int, int]]:
    if not value or ":" not in value:
        return None
    parts = value.strip().split(":")
    try:
        hours, minutes = int(parts[0]), int(parts[1])
    except (ValueError, IndexError):
        return None
    if not (0 <= hours <= 23 and 0 <= minutes <= 59):
        return None
    return hours, minutes


def parse_time_to_today(
    value: Optional[str],
    add_day: bool = False,
    *,
    now: datetime,
    rollover_threshold: timedelta = _DEFAULT_ROLLOVER,
) -> Optional[datetime]:
    """Anchor an ``HH:MM`` schedule string to ``now``'s calendar day.

    Returns ``None`` when the string is empty or not a valid time; callers
    must treat that as "unknown", never as a real timestamp.

    ``add_day`` moves the result exactly one day forward. Without it, a time
    more than ``rollover_threshold`` in the past is assumed to belong to the
    next day (schedules that cross midnight).
    """
    parsed = _split_hhmm(value)
    if parsed is None:
        return None

    hours, minutes = parsed
    anchored = now.replace(hour=hours, minute=minutes, second=0, microsecond=0)
    if add_day:
        return anchored + timedelta(days=1)

    if elapsed(now, anchored) > rollover_threshold:
        anchored += timedelta(days=1)
    return anchored


def format_24_hour_time(value: Optional[str]) -> str:
    """Render ``"13:10"`` as ``"01:10 PM"``.

    Empty input gives a placeholder and unparsable input is echoed back.
    """
    if not value:
        return _NO_TIME_DISPLAY
    parsed = _split_hhmm(value)
    if parsed is None:
        return value
    hours, minutes = parsed
    suffix = "PM" if hours >= 12 else "AM"
    return f"{hours % 12 or 12:02d}:{minutes:02d} {suffix}"


def format_clock(moment: Optional[datetime]) -> str:
    """Render a timestamp as a 24-hour ``HH:MM`` string."""
    if moment is None:
        return _NO_TIME_DISPLAY
    return moment.strftime("%H:%M")

"""Free/busy arithmetic for one resource on one local day.

Everything here works in minutes since local midnight. Callers convert
``HH:mm`` strings with :func:`timeslots.time_to_minutes` and look up the data
(sessions, holds, overrides) beforehand, so these functions stay pure.
"""

from datetime import date
from typing import NamedTuple
from uuid import UUID

from practice_scheduler.schemas.organizations import OrganizationSettings, StaffMember, TimeOff
from practice_scheduler.scheduling.timeslots import time_to_minutes, weekday_name


class Busy(NamedTuple):
    """An occupied interval and what occupies it."""

    start: int
    end: int
    kind: str
    source_id: UUID | None = None


class WorkingDay(NamedTuple):
    """A staff member's bookable window for a day, or why there is none."""

    window: tuple[int, int] | None
    reason: str | None
    time_off: list[Busy]


def business_window(settings: OrganizationSettings, day: date) -> tuple[int, int] | None:
    """Opening hours of the organization on a date, in minutes."""
    hours = settings.business_day(weekday_name(day))
    if hours is None:
        return None
    return time_to_minutes(hours.start), time_to_minutes(hours.end)


def working_day(
    settings: OrganizationSettings,
    member: StaffMember,
    day: date,
    overrides: list[TimeOff],
) -> WorkingDay:
    """
    Resolve a staff member's working window for one date.

    An approved custom window replaces the default weekly hours. Whole-day
    time-off empties the day, partial time-off becomes busy blocks. The
    result is clamped to the organization's business hours.

    Args:
        settings: Organization settings
        member: Staff member
        day: Local calendar date
        overrides: Approved overrides for this staff member on this date

    Returns:
        Working window, reason when unavailable, and time-off blocks
    """
    weekday = weekday_name(day)
    business = business_window(settings, day)
    if business is None:
        return WorkingDay(None, f"Organization is closed on {weekday}", [])

    if any(o.is_whole_day for o in overrides):
        reason = next((o.reason for o in overrides if o.is_whole_day and o.reason), None)
        return WorkingDay(None, f"Time off: {reason}" if reason else "Time off", [])

    custom = next((o for o in overrides if o.available and o.start_time and o.end_time), None)
    if custom is not None:
        start, end = time_to_minutes(custom.start_time), time_to_minutes(custom.end_time)
    else:
        hours = member.default_hours.get(weekday)
        if hours is None:
            return WorkingDay(None, f"Not scheduled to work on {weekday}", [])
        start, end = time_to_minutes(hours.start), time_to_minutes(hours.end)

    start, end = max(start, business[0]), min(end, business[1])
    if start >= end:
        return WorkingDay(None, "Working hours fall outside business hours", [])

    time_off = [
        Busy(time_to_minutes(o.start_time), time_to_minutes(o.end_time), "time_off")
        for o in overrides
        if not o.available and o.start_time and o.end_time
    ]
    return WorkingDay((start, end), None, time_off)


def merge_intervals(intervals: list[tuple[int, int]]) -> list[tuple[int, int]]:
    """Merge overlapping or touching intervals into a sorted disjoint list."""
    merged: list[tuple[int, int]] = []
    for start, end in sorted(intervals):
        if merged and start <= merged[-1][1]:
            merged[-1] = (merged[-1][0], max(merged[-1][1], end))
        else:
            merged.append((start, end))
    return merged


def free_windows(window: tuple[int, int], busy: list[Busy]) -> list[tuple[int, int]]:
    """Subtract busy intervals from a window."""
    free: list[tuple[int, int]] = []
    cursor = window[0]
    for start, end in merge_intervals([(b.start, b.end) for b in busy]):
        if end <= cursor:
            continue
        if start >= window[1]:
            break
        if start > cursor:
            free.append((cursor, start))
        cursor = max(cursor, end)
    if cursor < window[1]:
        free.append((cursor, window[1]))
    return free


def first_conflict(start: int, end: int, busy: list[Busy]) -> Busy | None:
    """The earliest busy interval overlapping ``[start, end)``, if any."""
    hits = [b for b in busy if b.start < end and start < b.end]
    return min(hits, key=lambda b: (b.start, b.end)) if hits else None


def slot_starts(
    window: tuple[int, int],
    busy: list[Busy],
    duration: int,
    interval: int,
) -> list[tuple[int, int]]:
    """
    Candidate slots on the window's grid that are entirely free.

    Args:
        window: Working window in minutes
        busy: Occupied intervals
        duration: Slot length in minutes
        interval: Grid step in minutes, anchored at the window start

    Returns:
        (start, end) pairs in minutes
    """
    slots = []
    for start in range(window[0], window[1] - duration + 1, interval):
        end = start + duration
        if first_conflict(start, end, busy) is None:
            slots.append((start, end))
    return slots

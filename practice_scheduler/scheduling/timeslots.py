"""Calendar math for organization-local dates and wall-clock times.

Dates travel through the system in two shapes: an organization-local
``YYYY-MM-DD`` calendar date, and the absolute UTC instant of that date's
local midnight (the persisted form). Times of day are ``HH:mm`` strings that
only mean something together with the organization's IANA timezone.

Every conversion between those shapes goes through this module.
"""

from datetime import UTC, date, datetime, time, timedelta
from functools import lru_cache
from typing import TypeVar
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from practice_scheduler.core.exceptions import ValidationException

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

_T = TypeVar("_T", int, datetime)


@lru_cache(maxsize=64)
def get_zone(timezone: str) -> ZoneInfo:
    """Resolve an IANA timezone name.

    Raises:
        ValidationException: If the name is not a known timezone
    """
    try:
        return ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValidationException(f"Unknown timezone: {timezone}") from e


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


def ensure_utc(value: datetime) -> datetime:
    """Normalize a datetime to aware UTC; naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def parse_date(value: str | date) -> date:
    """Parse a strict ``YYYY-MM-DD`` string."""
    if isinstance(value, datetime):
        raise ValidationException("Expected a calendar date, got a datetime")
    if isinstance(value, date):
        return value
    try:
        if len(value) != 10:
            raise ValueError(value)
        return date.fromisoformat(value)
    except (TypeError, ValueError) as e:
        raise ValidationException(f"Invalid date format (expected YYYY-MM-DD): {value}") from e


def parse_time(value: str) -> time:
    """Parse a strict ``HH:mm`` wall-clock time."""
    try:
        hours_str, minutes_str = value.split(":")
        if len(hours_str) != 2 or len(minutes_str) != 2:
            raise ValueError(value)
        return time(int(hours_str), int(minutes_str))
    except (AttributeError, TypeError, ValueError) as e:
        raise ValidationException(f"Invalid time format (expected HH:mm): {value}") from e


def time_to_minutes(value: str) -> int:
    """Minutes since local midnight for an ``HH:mm`` string."""
    parsed = parse_time(value)
    return parsed.hour * 60 + parsed.minute


def minutes_to_time(minutes: int) -> str:
    """Inverse of :func:`time_to_minutes`."""
    if minutes < 0 or minutes >= 24 * 60:
        raise ValidationException(f"Minutes out of range for a day: {minutes}")
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def _wall_clock(instant: datetime, zone: ZoneInfo) -> datetime:
    # Through UTC: astimezone() into the datetime's own zone is a no-op
    return instant.astimezone(UTC).astimezone(zone).replace(tzinfo=None)


def to_absolute_instant(day: str | date, time_hhmm: str, timezone: str) -> datetime:
    """
    Combine a local calendar date and wall-clock time into a UTC instant.

    Ambiguous wall times (DST fall-back) resolve to the later instant.
    Nonexistent wall times (DST spring-forward gap) resolve to the first
    valid instant after the gap.

    Args:
        day: Local calendar date
        time_hhmm: Local wall-clock time as ``HH:mm``
        timezone: IANA timezone name

    Returns:
        Aware UTC datetime
    """
    zone = get_zone(timezone)
    wall = datetime.combine(parse_date(day), parse_time(time_hhmm))
    earlier = wall.replace(tzinfo=zone, fold=0)
    later = wall.replace(tzinfo=zone, fold=1)

    if earlier.utcoffset() == later.utcoffset():
        return earlier.astimezone(UTC)

    # Both folds round-trip only when the wall time occurs twice.
    if _wall_clock(later, zone) == wall and _wall_clock(earlier, zone) == wall:
        return max(earlier.astimezone(UTC), later.astimezone(UTC))

    # Gap: walk forward from the earliest candidate to the first instant whose
    # wall clock reaches the requested time. Transitions fall on whole minutes.
    candidate = min(earlier.astimezone(UTC), later.astimezone(UTC))
    candidate = candidate.replace(second=0, microsecond=0)
    while _wall_clock(candidate, zone) < wall:
        candidate += timedelta(minutes=1)
    return candidate


def parse_local_date_start(day: str | date, timezone: str) -> datetime:
    """UTC instant of local midnight at the start of ``day``."""
    return to_absolute_instant(day, "00:00", timezone)


def parse_local_date_end(day: str | date, timezone: str) -> datetime:
    """UTC instant of the last microsecond of local ``day``."""
    next_day = parse_date(day) + timedelta(days=1)
    return parse_local_date_start(next_day, timezone) - timedelta(microseconds=1)


def format_local_date(instant: datetime, timezone: str) -> str:
    """Render an absolute instant as the organization-local ``YYYY-MM-DD``."""
    return ensure_utc(instant).astimezone(get_zone(timezone)).date().isoformat()


def local_date(instant: datetime, timezone: str) -> date:
    """Organization-local calendar date of an absolute instant."""
    return date.fromisoformat(format_local_date(instant, timezone))


def weekday_name(day: str | date) -> str:
    """Lowercase English weekday name of a calendar date."""
    return WEEKDAYS[parse_date(day).weekday()]


def week_start_for(day: str | date) -> date:
    """The Monday of the local calendar week containing ``day``."""
    local_day = parse_date(day)
    return local_day - timedelta(days=local_day.weekday())


def date_for_day_of_week(week_start: str | date | datetime, day_name: str, timezone: str) -> date:
    """
    Calendar date of a named weekday inside the week starting at ``week_start``.

    Args:
        week_start: The week's Monday, as a local date or as its stored instant
        day_name: Weekday name, case-insensitive
        timezone: IANA timezone used to read an instant in the local calendar

    Returns:
        Local calendar date

    Raises:
        ValidationException: If week_start is not a Monday or day_name is unknown
    """
    if isinstance(week_start, datetime):
        monday = local_date(week_start, timezone)
    else:
        monday = parse_date(week_start)

    if monday.weekday() != 0:
        raise ValidationException(f"Week start must be a Monday: {monday.isoformat()}")

    normalized = day_name.strip().lower()
    if normalized not in WEEKDAYS:
        raise ValidationException(f"Unknown day of week: {day_name}")

    return monday + timedelta(days=WEEKDAYS.index(normalized))


def _validate_interval(start: _T, end: _T) -> None:
    if end <= start:
        raise ValidationException(f"Invalid interval: end ({end}) must be after start ({start})")


def overlaps(a_start: _T, a_end: _T, b_start: _T, b_end: _T) -> bool:
    """
    Half-open interval overlap test.

    Raises:
        ValidationException: If either interval is empty or inverted
    """
    _validate_interval(a_start, a_end)
    _validate_interval(b_start, b_end)
    return a_start < b_end and b_start < a_end


def times_overlap(a_start: str, a_end: str, b_start: str, b_end: str) -> bool:
    """:func:`overlaps` for ``HH:mm`` wall-clock strings on the same date."""
    return overlaps(
        time_to_minutes(a_start),
        time_to_minutes(a_end),
        time_to_minutes(b_start),
        time_to_minutes(b_end),
    )


def validate_time_range(start_time: str, end_time: str) -> tuple[int, int]:
    """Parse an ``HH:mm`` range and reject empty or inverted ones."""
    start = time_to_minutes(start_time)
    end = time_to_minutes(end_time)
    _validate_interval(start, end)
    return start, end

"""Shared occupancy rules and the locking protocol for check-then-write paths.

Every transaction that checks a slot and then writes to it follows the same
steps: upsert the resource-lock rows it touches (sorted, so competing writers
queue in the same order), re-check conflicts, then write. The conflict rule
used here is the same one the availability resolver reports from.
"""

from collections.abc import Iterable, Mapping
from datetime import date, datetime
from typing import Any
from uuid import UUID, uuid4

import structlog
from sqlalchemy import and_, exists, func, insert, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import ColumnElement

from practice_scheduler.core.exceptions import (
    ConflictException,
    NotFoundException,
    ValidationException,
)
from practice_scheduler.database import dialect_insert
from practice_scheduler.models.holds import appointment_holds, resource_locks
from practice_scheduler.models.schedules import schedules, sessions
from practice_scheduler.schemas.organizations import OrganizationSettings, StaffMember, TimeOff
from practice_scheduler.scheduling.availability import business_window, working_day
from practice_scheduler.scheduling.state_machine import BLOCKING_STATUSES
from practice_scheduler.scheduling.timeslots import (
    ensure_utc,
    local_date,
    parse_local_date_start,
    time_to_minutes,
    utc_now,
    week_start_for,
)

logger = structlog.get_logger(__name__)

BLOCKING_STATUS_VALUES = sorted(status.value for status in BLOCKING_STATUSES)


def lock_key(organization_id: UUID, kind: str, resource_id: UUID | str, day: date | str) -> str:
    """Key of the lock row for one resource on one local date."""
    return f"{organization_id}:{kind}:{resource_id}:{day}"


def booking_lock_keys(
    organization_id: UUID,
    day: date,
    staff_id: UUID | None = None,
    room_id: UUID | None = None,
    patient_id: UUID | None = None,
) -> list[str]:
    """Lock keys for every resource a hold or session occupies."""
    keys = []
    for kind, resource_id in (("staff", staff_id), ("room", room_id), ("patient", patient_id)):
        if resource_id is not None:
            keys.append(lock_key(organization_id, kind, resource_id, day.isoformat()))
    return keys


async def acquire_locks(db: AsyncSession, keys: Iterable[str]) -> None:
    """
    Upsert lock rows in sorted order inside the current transaction.

    On PostgreSQL the upsert holds a row lock until commit or rollback. On
    SQLite the first write takes the database write lock.
    """
    now = utc_now()
    for key in sorted(set(keys)):
        stmt = (
            dialect_insert(db, resource_locks)
            .values(lock_key=key, version=1, updated_at=now)
            .on_conflict_do_update(
                index_elements=[resource_locks.c.lock_key],
                set_={"version": resource_locks.c.version + 1, "updated_at": now},
            )
        )
        await db.execute(stmt)


def active_hold_clause(now: datetime) -> ColumnElement[bool]:
    """SQL form of the active-hold predicate."""
    return and_(
        appointment_holds.c.expires_at > now,
        appointment_holds.c.released_at.is_(None),
        appointment_holds.c.converted_to_session_id.is_(None),
    )


def is_hold_active(hold: Mapping[str, Any], now: datetime) -> bool:
    """Python form of the active-hold predicate."""
    return (
        ensure_utc(hold["expires_at"]) > ensure_utc(now)
        and hold["released_at"] is None
        and hold["converted_to_session_id"] is None
    )


def shadowed_schedule_ids() -> Any:
    """Published schedules superseded by a live draft."""
    superseding = schedules.alias("superseding")
    return select(superseding.c.source_schedule_id).where(
        and_(superseding.c.status == "draft", superseding.c.source_schedule_id.is_not(None))
    )


def blocking_session_clause() -> ColumnElement[bool]:
    """Sessions that occupy their slot. Requires ``sessions`` joined to ``schedules``."""
    return and_(
        sessions.c.status.in_(BLOCKING_STATUS_VALUES),
        schedules.c.status != "archived",
        schedules.c.id.not_in(shadowed_schedule_ids()),
    )


def blocking_sessions_query() -> Any:
    return select(sessions).join(schedules, sessions.c.schedule_id == schedules.c.id)


async def find_conflict(
    db: AsyncSession,
    organization_id: UUID,
    day_start: datetime,
    start_time: str,
    end_time: str,
    now: datetime,
    staff_id: UUID | None = None,
    room_id: UUID | None = None,
    patient_id: UUID | None = None,
    exclude_session_id: UUID | None = None,
    exclude_hold_id: UUID | None = None,
) -> dict[str, Any] | None:
    """
    The earliest blocking session or active hold overlapping a slot.

    ``HH:mm`` strings are zero-padded, so lexical comparison in SQL matches
    time order.

    Args:
        db: Database session
        organization_id: Organization ID
        day_start: Stored instant of the local date
        start_time: Slot start
        end_time: Slot end
        now: Reference time for hold expiry
        staff_id: Staff member occupying the slot
        room_id: Room occupying the slot
        patient_id: Patient occupying the slot
        exclude_session_id: Session to ignore (the one being moved)
        exclude_hold_id: Hold to ignore (the one being converted)

    Returns:
        Conflict description, or None when the slot is free
    """
    resource_match = []
    if staff_id is not None:
        resource_match.append(sessions.c.staff_id == staff_id)
    if room_id is not None:
        resource_match.append(sessions.c.room_id == room_id)
    if patient_id is not None:
        resource_match.append(sessions.c.patient_id == patient_id)
    if not resource_match:
        return None

    session_conditions = [
        sessions.c.organization_id == organization_id,
        sessions.c.date == day_start,
        sessions.c.start_time < end_time,
        sessions.c.end_time > start_time,
        or_(*resource_match),
        blocking_session_clause(),
    ]
    if exclude_session_id is not None:
        session_conditions.append(sessions.c.id != exclude_session_id)

    result = await db.execute(
        blocking_sessions_query().where(and_(*session_conditions)).order_by(sessions.c.start_time)
    )
    row = result.fetchone()
    if row is not None:
        return _describe_conflict("session", row, staff_id, room_id, patient_id)

    hold_match = []
    if staff_id is not None:
        hold_match.append(appointment_holds.c.staff_id == staff_id)
    if room_id is not None:
        hold_match.append(appointment_holds.c.room_id == room_id)
    if not hold_match:
        return None

    hold_conditions = [
        appointment_holds.c.organization_id == organization_id,
        appointment_holds.c.date == day_start,
        appointment_holds.c.start_time < end_time,
        appointment_holds.c.end_time > start_time,
        or_(*hold_match),
        active_hold_clause(now),
    ]
    if exclude_hold_id is not None:
        hold_conditions.append(appointment_holds.c.id != exclude_hold_id)

    result = await db.execute(
        select(appointment_holds)
        .where(and_(*hold_conditions))
        .order_by(appointment_holds.c.start_time, appointment_holds.c.created_at)
    )
    row = result.fetchone()
    if row is not None:
        return _describe_conflict("hold", row, staff_id, room_id, None)
    return None


def _describe_conflict(
    kind: str,
    row: Any,
    staff_id: UUID | None,
    room_id: UUID | None,
    patient_id: UUID | None,
) -> dict[str, Any]:
    if staff_id is not None and row.staff_id == staff_id:
        resource = "staff"
    elif room_id is not None and row.room_id == room_id:
        resource = "room"
    else:
        resource = "patient"
    conflict = {
        "type": kind,
        "id": str(row.id),
        "resource": resource,
        "start_time": row.start_time,
        "end_time": row.end_time,
    }
    if kind == "hold":
        conflict["expires_at"] = ensure_utc(row.expires_at).isoformat()
    return conflict


def conflict_message(conflict: dict[str, Any]) -> str:
    label = "hold" if conflict["type"] == "hold" else "session"
    return (
        f"The {conflict['resource']} is already taken by {label} {conflict['id']} "
        f"({conflict['start_time']}-{conflict['end_time']})"
    )


def working_hours_violation(
    org_settings: OrganizationSettings,
    member: StaffMember,
    day: date,
    start_time: str,
    end_time: str,
    overrides: list[TimeOff],
) -> str | None:
    """Why a staff member cannot take a slot on a day, or None."""
    working = working_day(org_settings, member, day, overrides)
    if working.window is None:
        return working.reason
    start, end = time_to_minutes(start_time), time_to_minutes(end_time)
    if start < working.window[0] or end > working.window[1]:
        return f"{start_time}-{end_time} is outside {member.name}'s working hours"
    if any(block.start < end and start < block.end for block in working.time_off):
        return f"{member.name} has time off during {start_time}-{end_time}"
    return None


def business_hours_violation(
    org_settings: OrganizationSettings, day: date, start_time: str, end_time: str
) -> str | None:
    """Why the organization cannot host a slot on a day, or None."""
    window = business_window(org_settings, day)
    if window is None:
        return f"Organization is closed on {day.isoformat()}"
    start, end = time_to_minutes(start_time), time_to_minutes(end_time)
    if start < window[0] or end > window[1]:
        return f"{start_time}-{end_time} is outside business hours"
    return None


async def is_shadowed(db: AsyncSession, schedule_id: UUID) -> bool:
    """Whether a live draft supersedes the schedule."""
    superseding = schedules.alias("superseding")
    stmt = select(
        exists().where(
            and_(
                superseding.c.status == "draft",
                superseding.c.source_schedule_id == schedule_id,
            )
        )
    )
    result = await db.execute(stmt)
    return bool(result.scalar())


async def next_version(db: AsyncSession, organization_id: UUID, week_start: datetime) -> int:
    """Next schedule version number for an organization's week."""
    result = await db.execute(
        select(func.max(schedules.c.version)).where(
            and_(
                schedules.c.organization_id == organization_id,
                schedules.c.week_start_date == week_start,
            )
        )
    )
    return (result.scalar() or 0) + 1


def week_lock_key(organization_id: UUID, week_start: date) -> str:
    return lock_key(organization_id, "schedule-week", "all", week_start.isoformat())


async def resolve_booking_schedule(
    db: AsyncSession,
    org_settings: OrganizationSettings,
    organization_id: UUID,
    day: date,
    schedule_id: UUID | None,
    created_by_id: UUID | None,
) -> UUID:
    """
    The schedule a new booking goes into.

    An explicit schedule must belong to the organization and accept
    bookings. Without one, the newest live schedule of the booking date's
    week is used, and a draft is created when the week has none.

    Raises:
        NotFoundException: If an explicit schedule is not in the organization
        ConflictException: If the schedule is archived or superseded
        ValidationException: If the schedule covers another week
    """
    monday = week_start_for(day)
    week_start = parse_local_date_start(monday, org_settings.timezone)
    # Serializes with draft creation, copying and publishing of the same week
    await acquire_locks(db, [week_lock_key(organization_id, monday)])

    if schedule_id is not None:
        result = await db.execute(
            select(schedules).where(
                and_(schedules.c.id == schedule_id, schedules.c.organization_id == organization_id)
            )
        )
        row = result.fetchone()
        if row is None:
            raise NotFoundException("Schedule not found")
        if ensure_utc(row.week_start_date) != week_start:
            raise ValidationException(
                f"Schedule covers the week of {local_date(row.week_start_date, org_settings.timezone)}, "
                f"not the week of {monday}"
            )
        if row.status == "archived":
            raise ConflictException("Cannot book into an archived schedule")
        if row.status == "published" and await is_shadowed(db, schedule_id):
            raise ConflictException(
                "Schedule is superseded by a draft; book into the draft instead",
                details={"schedule_id": str(schedule_id)},
            )
        return schedule_id

    existing = await live_schedule_id(db, organization_id, week_start)
    if existing is not None:
        return existing
    new_id = uuid4()
    await db.execute(
        insert(schedules).values(
            id=new_id,
            organization_id=organization_id,
            week_start_date=week_start,
            status="draft",
            version=await next_version(db, organization_id, week_start),
            created_by_id=created_by_id,
        )
    )
    logger.info(
        "schedule_created_for_booking",
        organization_id=str(organization_id),
        schedule_id=str(new_id),
        week_start=monday.isoformat(),
    )
    return new_id


async def live_schedule_id(
    db: AsyncSession,
    organization_id: UUID,
    week_start: datetime,
    status: str | None = None,
) -> UUID | None:
    """Newest schedule of a week that is neither archived nor superseded."""
    conditions = [
        schedules.c.organization_id == organization_id,
        schedules.c.week_start_date == week_start,
        schedules.c.status != "archived",
        schedules.c.id.not_in(shadowed_schedule_ids()),
    ]
    if status is not None:
        conditions.append(schedules.c.status == status)
    result = await db.execute(
        select(schedules.c.id)
        .where(and_(*conditions))
        .order_by(schedules.c.version.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()

"""Availability resolver: bookable slots computed from working hours and occupancy."""

from collections import defaultdict
from datetime import date, datetime, timedelta
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from practice_scheduler.config import get_settings
from practice_scheduler.core.exceptions import NotFoundException, ValidationException
from practice_scheduler.models.holds import appointment_holds
from practice_scheduler.models.schedules import sessions
from practice_scheduler.schemas.availability import (
    AvailableSlot,
    AvailableSlotsResponse,
    BusyInterval,
    SlotCheckResponse,
    StaffDayAvailability,
    TimeWindow,
)
from practice_scheduler.schemas.organizations import (
    OrganizationSettings,
    RoomRecord,
    TimeOff,
)
from practice_scheduler.scheduling.availability import (
    Busy,
    free_windows,
    slot_starts,
    working_day,
)
from practice_scheduler.scheduling.timeslots import (
    local_date,
    minutes_to_time,
    parse_local_date_end,
    parse_local_date_start,
    time_to_minutes,
    to_absolute_instant,
    utc_now,
    validate_time_range,
)
from practice_scheduler.services.organization_service import OrganizationService
from practice_scheduler.services.slot_guard import (
    active_hold_clause,
    blocking_session_clause,
    blocking_sessions_query,
    conflict_message,
    find_conflict,
    working_hours_violation,
)

logger = structlog.get_logger(__name__)


class AvailabilityService:
    """Service for free/busy queries."""

    def __init__(self, db: AsyncSession):
        """Initialize service with database session."""
        self.db = db

    async def _occupancy(
        self,
        org_settings: OrganizationSettings,
        organization_id: UUID,
        date_from: date,
        date_to: date,
        now: datetime,
        staff_id: UUID | None = None,
        room_id: UUID | None = None,
        patient_id: UUID | None = None,
    ) -> dict[tuple[str, UUID, date], list[Busy]]:
        """
        Busy intervals keyed by (resource kind, resource id, local date).

        Staff occupancy is always loaded. Room and patient occupancy are
        loaded only for the requested room or patient.
        """
        tz = org_settings.timezone
        range_start = parse_local_date_start(date_from, tz)
        range_end = parse_local_date_end(date_to, tz)
        busy: dict[tuple[str, UUID, date], list[Busy]] = defaultdict(list)

        if staff_id is not None:
            resource_match = [sessions.c.staff_id == staff_id]
        else:
            resource_match = [sessions.c.staff_id.is_not(None)]
        if room_id is not None:
            resource_match.append(sessions.c.room_id == room_id)
        if patient_id is not None:
            resource_match.append(sessions.c.patient_id == patient_id)

        result = await self.db.execute(
            blocking_sessions_query().where(
                and_(
                    sessions.c.organization_id == organization_id,
                    sessions.c.date >= range_start,
                    sessions.c.date <= range_end,
                    or_(*resource_match),
                    blocking_session_clause(),
                )
            )
        )
        for row in result.fetchall():
            day = local_date(row.date, tz)
            interval = Busy(
                time_to_minutes(row.start_time), time_to_minutes(row.end_time), "session", row.id
            )
            busy[("staff", row.staff_id, day)].append(interval)
            if room_id is not None and row.room_id == room_id:
                busy[("room", room_id, day)].append(interval)
            if patient_id is not None and row.patient_id == patient_id:
                busy[("patient", patient_id, day)].append(interval)

        hold_match = [appointment_holds.c.staff_id.is_not(None)]
        if room_id is not None:
            hold_match.append(appointment_holds.c.room_id == room_id)

        result = await self.db.execute(
            select(appointment_holds).where(
                and_(
                    appointment_holds.c.organization_id == organization_id,
                    appointment_holds.c.date >= range_start,
                    appointment_holds.c.date <= range_end,
                    or_(*hold_match),
                    active_hold_clause(now),
                )
            )
        )
        for row in result.fetchall():
            day = local_date(row.date, tz)
            interval = Busy(
                time_to_minutes(row.start_time), time_to_minutes(row.end_time), "hold", row.id
            )
            if row.staff_id is not None:
                busy[("staff", row.staff_id, day)].append(interval)
            if room_id is not None and row.room_id == room_id:
                busy[("room", room_id, day)].append(interval)

        return busy

    async def get_available_slots(
        self,
        org_settings: OrganizationSettings,
        organization_id: UUID,
        date_from: date,
        date_to: date,
        duration_minutes: int | None = None,
        staff_id: UUID | None = None,
        room_id: UUID | None = None,
        patient_id: UUID | None = None,
        now: datetime | None = None,
    ) -> AvailableSlotsResponse:
        """
        Find bookable slots across a date range.

        Args:
            org_settings: Organization settings
            organization_id: Organization ID
            date_from: First local date, inclusive
            date_to: Last local date, inclusive
            duration_minutes: Slot length, defaults to the organization's session duration
            staff_id: Only this staff member
            room_id: Room the session would use; its occupancy is subtracted too
            patient_id: Patient the session is for; their sessions are subtracted too
            now: Reference time, slots starting earlier are dropped

        Returns:
            Slots sorted by date, start time and staff name

        Raises:
            ValidationException: If the range is inverted or too long
            NotFoundException: If a filtered room does not belong to the organization
        """
        max_days = get_settings().max_availability_range_days
        if date_to < date_from:
            raise ValidationException("date_to must not be before date_from")
        if (date_to - date_from).days > max_days:
            raise ValidationException(f"Date range cannot exceed {max_days} days")

        now = now or utc_now()
        duration = duration_minutes or org_settings.default_session_duration
        if duration <= 0:
            raise ValidationException("duration_minutes must be positive")

        staff_members = await OrganizationService.list_staff(self.db, organization_id)
        if staff_id is not None:
            staff_members = [m for m in staff_members if m.id == staff_id]

        room: RoomRecord | None = None
        if room_id is not None:
            room = await OrganizationService.get_room(self.db, organization_id, room_id)
            if room is None:
                raise NotFoundException("Room not found")

        if not staff_members:
            return AvailableSlotsResponse(slots=[])

        overrides = await OrganizationService.list_time_off(
            self.db, org_settings, organization_id, date_from, date_to, staff_id
        )
        overrides_by_key = _group_overrides(overrides)
        busy = await self._occupancy(
            org_settings, organization_id, date_from, date_to, now, staff_id, room_id, patient_id
        )

        slots: list[AvailableSlot] = []
        day = date_from
        while day <= date_to:
            for member in staff_members:
                working = working_day(
                    org_settings, member, day, overrides_by_key.get((member.id, day), [])
                )
                if working.window is None:
                    continue
                occupied = busy.get(("staff", member.id, day), []) + working.time_off
                if room_id is not None:
                    occupied += busy.get(("room", room_id, day), [])
                if patient_id is not None:
                    occupied += busy.get(("patient", patient_id, day), [])

                for start, end in slot_starts(
                    working.window, occupied, duration, org_settings.slot_interval
                ):
                    start_time = minutes_to_time(start)
                    start_at = to_absolute_instant(day, start_time, org_settings.timezone)
                    if start_at < now:
                        continue
                    slots.append(
                        AvailableSlot(
                            staff_id=member.id,
                            staff_name=member.name,
                            room_id=room.id if room else None,
                            room_name=room.name if room else None,
                            date=day,
                            start_time=start_time,
                            end_time=minutes_to_time(end),
                            start_at=start_at,
                        )
                    )
            day += timedelta(days=1)

        slots.sort(key=lambda s: (s.date, s.start_time, s.staff_name))
        logger.debug(
            "availability_resolved",
            organization_id=str(organization_id),
            date_from=date_from.isoformat(),
            date_to=date_to.isoformat(),
            slots=len(slots),
        )
        return AvailableSlotsResponse(slots=slots)

    async def get_staff_day_availability(
        self,
        org_settings: OrganizationSettings,
        organization_id: UUID,
        staff_id: UUID,
        day: date,
        now: datetime | None = None,
    ) -> StaffDayAvailability | None:
        """
        Working hours, busy intervals and free windows of one staff member.

        Returns:
            Breakdown, or None for an unknown or inactive staff member
        """
        now = now or utc_now()
        member = await OrganizationService.get_staff_member(self.db, organization_id, staff_id)
        if member is None or not member.is_active:
            return None

        overrides = await OrganizationService.list_time_off(
            self.db, org_settings, organization_id, day, day, staff_id
        )
        working = working_day(org_settings, member, day, overrides)
        if working.window is None:
            return StaffDayAvailability(
                staff_id=member.id,
                staff_name=member.name,
                date=day,
                available=False,
                reason=working.reason,
                busy=[],
                free=[],
            )

        busy = await self._occupancy(org_settings, organization_id, day, day, now, staff_id)
        occupied = sorted(
            busy.get(("staff", member.id, day), []) + working.time_off,
            key=lambda b: (b.start, b.end),
        )
        free = free_windows(working.window, occupied)
        return StaffDayAvailability(
            staff_id=member.id,
            staff_name=member.name,
            date=day,
            available=bool(free),
            reason=None if free else "Fully booked",
            working_hours=TimeWindow(
                start_time=minutes_to_time(working.window[0]),
                end_time=minutes_to_time(working.window[1]),
            ),
            busy=[
                BusyInterval(
                    start_time=minutes_to_time(b.start),
                    end_time=minutes_to_time(b.end),
                    kind=b.kind,
                    source_id=b.source_id,
                )
                for b in occupied
            ],
            free=[
                TimeWindow(start_time=minutes_to_time(start), end_time=minutes_to_time(end))
                for start, end in free
            ],
        )

    async def is_slot_available(
        self,
        org_settings: OrganizationSettings,
        organization_id: UUID,
        staff_id: UUID,
        day: date,
        start_time: str,
        end_time: str,
        exclude_session_id: UUID | None = None,
        room_id: UUID | None = None,
        now: datetime | None = None,
    ) -> SlotCheckResponse:
        """
        Check one slot for a staff member, and optionally a room.

        Raises:
            ValidationException: If the time range is invalid
        """
        validate_time_range(start_time, end_time)
        now = now or utc_now()

        member = await OrganizationService.get_staff_member(self.db, organization_id, staff_id)
        if member is None or not member.is_active:
            return SlotCheckResponse(available=False, reason="Staff member not found")

        overrides = await OrganizationService.list_time_off(
            self.db, org_settings, organization_id, day, day, staff_id
        )
        reason = working_hours_violation(org_settings, member, day, start_time, end_time, overrides)
        if reason:
            return SlotCheckResponse(available=False, reason=reason)

        conflict: dict[str, Any] | None = await find_conflict(
            self.db,
            organization_id,
            parse_local_date_start(day, org_settings.timezone),
            start_time,
            end_time,
            now,
            staff_id=staff_id,
            room_id=room_id,
            exclude_session_id=exclude_session_id,
        )
        if conflict is not None:
            return SlotCheckResponse(
                available=False, reason=conflict_message(conflict), conflict=conflict
            )
        return SlotCheckResponse(available=True)


def _group_overrides(overrides: list[TimeOff]) -> dict[tuple[UUID, date], list[TimeOff]]:
    grouped: dict[tuple[UUID, date], list[TimeOff]] = defaultdict(list)
    for entry in overrides:
        grouped[(entry.staff_id, entry.date)].append(entry)
    return grouped

"""Booking committer: turns holds and direct requests into sessions."""

from datetime import date, datetime
from typing import Any
from uuid import UUID, uuid4

import structlog
from sqlalchemy import and_, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from practice_scheduler.core.exceptions import (
    ConflictException,
    NotFoundException,
    ValidationException,
)
from practice_scheduler.models.holds import appointment_holds
from practice_scheduler.models.schedules import sessions
from practice_scheduler.schemas.bookings import BookDirectRequest, BookFromHoldRequest, BookingResult
from practice_scheduler.schemas.holds import HoldErrorCode
from practice_scheduler.schemas.organizations import OrganizationSettings
from practice_scheduler.schemas.sessions import SessionStatus
from practice_scheduler.scheduling.timeslots import (
    ensure_utc,
    local_date,
    parse_local_date_start,
    utc_now,
    week_start_for,
)
from practice_scheduler.services.organization_service import OrganizationService
from practice_scheduler.services.slot_guard import (
    acquire_locks,
    active_hold_clause,
    booking_lock_keys,
    conflict_message,
    find_conflict,
    resolve_booking_schedule,
    week_lock_key,
    working_hours_violation,
)

logger = structlog.get_logger(__name__)


class BookingFailed(Exception):
    """Internal signal carrying a failed booking outcome out of a transaction."""

    def __init__(self, result: BookingResult):
        super().__init__(result.error)
        self.result = result


def _failure(code: HoldErrorCode, error: str, conflict: dict[str, Any] | None = None) -> BookingFailed:
    return BookingFailed(BookingResult(success=False, error=error, error_code=code, conflict=conflict))


def _error_code(exc: Exception) -> HoldErrorCode:
    if isinstance(exc, NotFoundException):
        return HoldErrorCode.NOT_FOUND
    if isinstance(exc, ValidationException):
        return HoldErrorCode.VALIDATION
    return HoldErrorCode.CONFLICT


def initial_status(org_settings: OrganizationSettings) -> SessionStatus:
    """Status of a newly booked session."""
    if org_settings.require_booking_approval:
        return SessionStatus.PENDING
    return SessionStatus.SCHEDULED


class BookingService:
    """Service for committing bookings."""

    def __init__(self, db: AsyncSession):
        """Initialize service with database session."""
        self.db = db

    async def insert_checked_session(
        self,
        org_settings: OrganizationSettings,
        organization_id: UUID,
        *,
        session_id: UUID,
        schedule_id: UUID | None,
        staff_id: UUID,
        patient_id: UUID,
        room_id: UUID | None,
        day: date,
        start_time: str,
        end_time: str,
        notes: str | None,
        booked_via: str,
        booked_by_id: UUID | None,
        now: datetime,
        exclude_hold_id: UUID | None = None,
        rescheduled_from_id: UUID | None = None,
        exclude_session_id: UUID | None = None,
        session_spec_id: UUID | None = None,
    ) -> UUID:
        """
        Lock, re-check and insert one session inside the caller's transaction.

        Returns:
            ID of the schedule the session was written to

        Raises:
            BookingFailed: If a resource is unknown or the slot is taken
            NotFoundException: If an explicit schedule is not in the organization
            ConflictException: If the schedule does not accept bookings
        """
        patient = await OrganizationService.get_patient(self.db, organization_id, patient_id)
        if patient is None or patient.status.value != "active":
            raise _failure(HoldErrorCode.NOT_FOUND, "Patient not found")
        member = await OrganizationService.get_staff_member(self.db, organization_id, staff_id)
        if member is None or not member.is_active:
            raise _failure(HoldErrorCode.NOT_FOUND, "Staff member not found")
        if room_id is not None:
            room = await OrganizationService.get_room(self.db, organization_id, room_id)
            if room is None or room.status.value != "active":
                raise _failure(HoldErrorCode.NOT_FOUND, "Room not found")

        await acquire_locks(
            self.db,
            booking_lock_keys(organization_id, day, staff_id, room_id, patient_id)
            + [week_lock_key(organization_id, week_start_for(day))],
        )

        overrides = await OrganizationService.list_time_off(
            self.db, org_settings, organization_id, day, day, staff_id
        )
        reason = working_hours_violation(org_settings, member, day, start_time, end_time, overrides)
        if reason:
            raise _failure(HoldErrorCode.VALIDATION, reason)

        day_start = parse_local_date_start(day, org_settings.timezone)
        conflict = await find_conflict(
            self.db,
            organization_id,
            day_start,
            start_time,
            end_time,
            now,
            staff_id=staff_id,
            room_id=room_id,
            patient_id=patient_id,
            exclude_session_id=exclude_session_id,
            exclude_hold_id=exclude_hold_id,
        )
        if conflict is not None:
            raise _failure(HoldErrorCode.CONFLICT, conflict_message(conflict), conflict)

        target_schedule = await resolve_booking_schedule(
            self.db, org_settings, organization_id, day, schedule_id, booked_by_id
        )
        await self.db.execute(
            insert(sessions).values(
                id=session_id,
                schedule_id=target_schedule,
                organization_id=organization_id,
                staff_id=staff_id,
                patient_id=patient_id,
                room_id=room_id,
                date=day_start,
                start_time=start_time,
                end_time=end_time,
                status=initial_status(org_settings).value,
                notes=notes,
                booked_via=booked_via,
                booked_by_id=booked_by_id,
                rescheduled_from_id=rescheduled_from_id,
                session_spec_id=session_spec_id,
                created_at=now,
                updated_at=now,
            )
        )
        return target_schedule

    async def book_from_hold(
        self,
        org_settings: OrganizationSettings,
        organization_id: UUID,
        data: BookFromHoldRequest,
        booked_by_user_id: UUID | None = None,
        now: datetime | None = None,
    ) -> BookingResult:
        """
        Convert an active hold into a session.

        The hold is claimed first with a conditional update, so it can be
        converted at most once. Everything after the claim runs in the same
        transaction and is rolled back with it on failure.

        Args:
            org_settings: Organization settings
            organization_id: Organization ID
            data: Booking request
            booked_by_user_id: Requesting user
            now: Reference time

        Returns:
            The new session ID, or the reason the booking failed
        """
        now = now or utc_now()
        session_id = uuid4()

        try:
            claim = await self.db.execute(
                update(appointment_holds)
                .where(
                    and_(
                        appointment_holds.c.id == data.hold_id,
                        appointment_holds.c.organization_id == organization_id,
                        active_hold_clause(now),
                    )
                )
                .values(converted_to_session_id=session_id)
            )
            if claim.rowcount != 1:
                raise await self._unclaimable(data.hold_id, organization_id, now)

            result = await self.db.execute(
                select(appointment_holds).where(appointment_holds.c.id == data.hold_id)
            )
            hold = result.fetchone()
            if hold.staff_id is None:
                raise _failure(
                    HoldErrorCode.VALIDATION, "Hold has no staff member and cannot become a session"
                )

            schedule_id = await self.insert_checked_session(
                org_settings,
                organization_id,
                session_id=session_id,
                schedule_id=data.schedule_id,
                staff_id=hold.staff_id,
                patient_id=data.patient_id,
                room_id=hold.room_id,
                day=local_date(hold.date, org_settings.timezone),
                start_time=hold.start_time,
                end_time=hold.end_time,
                notes=data.notes,
                booked_via=data.booked_via.value,
                booked_by_id=booked_by_user_id,
                now=now,
                exclude_hold_id=data.hold_id,
            )
            await self.db.commit()
        except BookingFailed as e:
            await self.db.rollback()
            logger.info(
                "booking_rejected",
                organization_id=str(organization_id),
                hold_id=str(data.hold_id),
                error_code=e.result.error_code.value if e.result.error_code else None,
            )
            return e.result
        except (NotFoundException, ConflictException, ValidationException) as e:
            await self.db.rollback()
            return BookingResult(success=False, error=e.message, error_code=_error_code(e))
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            "booking_committed",
            organization_id=str(organization_id),
            session_id=str(session_id),
            hold_id=str(data.hold_id),
            booked_via=data.booked_via.value,
        )
        logger.info(
            "audit",
            action="create",
            entity="session",
            entity_id=str(session_id),
            user_id=str(booked_by_user_id) if booked_by_user_id else None,
            after={"status": initial_status(org_settings).value, "hold_id": str(data.hold_id)},
        )
        return BookingResult(success=True, session_id=session_id, schedule_id=schedule_id)

    async def _unclaimable(
        self, hold_id: UUID, organization_id: UUID, now: datetime
    ) -> BookingFailed:
        """Explain why a hold could not be claimed."""
        result = await self.db.execute(
            select(appointment_holds).where(
                and_(
                    appointment_holds.c.id == hold_id,
                    appointment_holds.c.organization_id == organization_id,
                )
            )
        )
        hold = result.fetchone()
        if hold is None:
            return _failure(HoldErrorCode.NOT_FOUND, "Hold not found")
        if hold.converted_to_session_id is not None:
            return _failure(HoldErrorCode.CONSUMED, "Hold has already been booked")
        if hold.released_at is not None:
            return _failure(HoldErrorCode.CONSUMED, "Hold has been released")
        if ensure_utc(hold.expires_at) <= now:
            return _failure(HoldErrorCode.EXPIRED, "Hold has expired")
        return _failure(HoldErrorCode.CONFLICT, "Hold changed concurrently")

    async def book_direct(
        self,
        org_settings: OrganizationSettings,
        organization_id: UUID,
        data: BookDirectRequest,
        created_by_user_id: UUID | None = None,
        now: datetime | None = None,
    ) -> BookingResult:
        """
        Book a session without a hold, with the same lock-and-recheck.

        Args:
            org_settings: Organization settings
            organization_id: Organization ID
            data: Booking request
            created_by_user_id: Requesting user
            now: Reference time

        Returns:
            The new session ID, or the reason the booking failed
        """
        now = now or utc_now()
        session_id = uuid4()
        try:
            schedule_id = await self.insert_checked_session(
                org_settings,
                organization_id,
                session_id=session_id,
                schedule_id=data.schedule_id,
                staff_id=data.staff_id,
                patient_id=data.patient_id,
                room_id=data.room_id,
                day=data.date,
                start_time=data.start_time,
                end_time=data.end_time,
                notes=data.notes,
                booked_via=data.booked_via.value,
                booked_by_id=created_by_user_id,
                now=now,
            )
            await self.db.commit()
        except BookingFailed as e:
            await self.db.rollback()
            logger.info(
                "booking_rejected",
                organization_id=str(organization_id),
                staff_id=str(data.staff_id),
                error_code=e.result.error_code.value if e.result.error_code else None,
            )
            return e.result
        except (NotFoundException, ConflictException, ValidationException) as e:
            await self.db.rollback()
            return BookingResult(success=False, error=e.message, error_code=_error_code(e))
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            "booking_committed",
            organization_id=str(organization_id),
            session_id=str(session_id),
            booked_via=data.booked_via.value,
        )
        logger.info(
            "audit",
            action="create",
            entity="session",
            entity_id=str(session_id),
            user_id=str(created_by_user_id) if created_by_user_id else None,
            after={"status": initial_status(org_settings).value},
        )
        return BookingResult(success=True, session_id=session_id, schedule_id=schedule_id)

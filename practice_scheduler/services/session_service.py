"""Session lifecycle: status transitions, quick actions, rescheduling and reads."""

from datetime import date, datetime
from typing import Any
from uuid import UUID, uuid4

import structlog
from sqlalchemy import and_, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from practice_scheduler.core.exceptions import (
    ConflictException,
    InvalidTransitionException,
    NotFoundException,
    ValidationException,
)
from practice_scheduler.models.schedules import schedules, sessions
from practice_scheduler.schemas.holds import HoldErrorCode
from practice_scheduler.schemas.organizations import OrganizationSettings
from practice_scheduler.schemas.sessions import (
    CancellationReason,
    RescheduleRequest,
    SessionFilters,
    SessionListResponse,
    SessionResponse,
    SessionStatus,
    StatusCounts,
)
from practice_scheduler.scheduling.state_machine import (
    CANCELLATION_STATUSES,
    allowed_transitions,
    is_terminal,
    resolve_transition,
)
from practice_scheduler.scheduling.timeslots import (
    local_date,
    parse_local_date_end,
    parse_local_date_start,
    to_absolute_instant,
    utc_now,
)
from practice_scheduler.services.booking_service import BookingFailed, BookingService

logger = structlog.get_logger(__name__)


def session_response(row: Any, timezone: str) -> SessionResponse:
    """Build a response with the session's local date."""
    data = dict(row._mapping)
    data["date"] = local_date(row.date, timezone)
    return SessionResponse.model_validate(data)


def _audit_fields(
    status: SessionStatus,
    now: datetime,
    user_id: UUID | None,
    reason: CancellationReason | None,
    notes: str | None,
) -> dict[str, Any]:
    """Timestamps and actor columns stamped on entering a status."""
    if status == SessionStatus.CONFIRMED:
        return {"confirmed_at": now, "confirmed_by_id": user_id}
    if status == SessionStatus.CHECKED_IN:
        return {"checked_in_at": now}
    if status == SessionStatus.IN_PROGRESS:
        return {"actual_start_time": now}
    if status == SessionStatus.COMPLETED:
        return {"actual_end_time": now}
    if status in CANCELLATION_STATUSES:
        return {
            "cancelled_at": now,
            "cancelled_by_id": user_id,
            "cancellation_reason": reason.value if reason else None,
            "cancellation_notes": notes,
        }
    return {}


class SessionService:
    """Service for managing session status and reads."""

    def __init__(self, db: AsyncSession):
        """Initialize service with database session."""
        self.db = db

    async def _fetch(self, organization_id: UUID, session_id: UUID) -> Any:
        result = await self.db.execute(
            select(sessions).where(
                and_(sessions.c.id == session_id, sessions.c.organization_id == organization_id)
            )
        )
        row = result.fetchone()
        if not row:
            raise NotFoundException("Session not found")
        return row

    async def get_session(
        self, org_settings: OrganizationSettings, organization_id: UUID, session_id: UUID
    ) -> SessionResponse:
        """
        Get session by ID.

        Raises:
            NotFoundException: If the session is not in the organization
        """
        row = await self._fetch(organization_id, session_id)
        return session_response(row, org_settings.timezone)

    async def update_status(
        self,
        org_settings: OrganizationSettings,
        organization_id: UUID,
        session_id: UUID,
        target: SessionStatus,
        reason: CancellationReason | None = None,
        notes: str | None = None,
        user_id: UUID | None = None,
        now: datetime | None = None,
    ) -> SessionResponse:
        """
        Move a session to a new status.

        Cancellations inside the organization's late-cancel window are stored
        as ``late_cancel`` when that transition is legal. The write is a
        compare-and-set on the status read here.

        Args:
            org_settings: Organization settings
            organization_id: Organization ID
            session_id: Session ID
            target: Requested status
            reason: Cancellation reason, required when cancelling
            notes: Cancellation notes, or session notes otherwise
            user_id: Acting user
            now: Reference time

        Returns:
            Updated session

        Raises:
            NotFoundException: If the session is not in the organization
            ValidationException: If a cancellation has no reason
            InvalidTransitionException: If the transition is not allowed
            ConflictException: If the status changed concurrently
        """
        now = now or utc_now()
        tz = org_settings.timezone
        row = await self._fetch(organization_id, session_id)
        current = SessionStatus(row.status)

        if target in CANCELLATION_STATUSES and reason is None:
            raise ValidationException("A cancellation reason is required")

        session_start = to_absolute_instant(local_date(row.date, tz), row.start_time, tz)
        stored = resolve_transition(
            current,
            target,
            session_start=session_start,
            late_cancel_window_hours=org_settings.late_cancel_window_hours,
            now=now,
        )

        values: dict[str, Any] = {
            "status": stored.value,
            "status_updated_at": now,
            "status_updated_by_id": user_id,
            "updated_at": now,
            **_audit_fields(stored, now, user_id, reason, notes),
        }
        if notes is not None and stored not in CANCELLATION_STATUSES:
            values["notes"] = notes

        stmt = (
            update(sessions)
            .where(and_(sessions.c.id == session_id, sessions.c.status == current.value))
            .values(**values)
            .returning(sessions)
        )
        result = await self.db.execute(stmt)
        updated = result.fetchone()
        if updated is None:
            await self.db.rollback()
            raise ConflictException(
                "Session status changed concurrently", details={"session_id": str(session_id)}
            )
        await self.db.commit()

        logger.info(
            "session_status_changed",
            organization_id=str(organization_id),
            session_id=str(session_id),
            from_status=current.value,
            to_status=stored.value,
            requested_status=target.value,
        )
        logger.info(
            "audit",
            action="status_change",
            entity="session",
            entity_id=str(session_id),
            user_id=str(user_id) if user_id else None,
            before={"status": current.value},
            after={"status": stored.value},
        )
        return session_response(updated, tz)

    async def confirm(
        self,
        org_settings: OrganizationSettings,
        organization_id: UUID,
        session_id: UUID,
        user_id: UUID | None = None,
        now: datetime | None = None,
    ) -> SessionResponse:
        """Confirm a scheduled session."""
        return await self.update_status(
            org_settings, organization_id, session_id, SessionStatus.CONFIRMED, user_id=user_id, now=now
        )

    async def check_in(
        self,
        org_settings: OrganizationSettings,
        organization_id: UUID,
        session_id: UUID,
        user_id: UUID | None = None,
        now: datetime | None = None,
    ) -> SessionResponse:
        """Record the patient's arrival."""
        return await self.update_status(
            org_settings, organization_id, session_id, SessionStatus.CHECKED_IN, user_id=user_id, now=now
        )

    async def start(
        self,
        org_settings: OrganizationSettings,
        organization_id: UUID,
        session_id: UUID,
        user_id: UUID | None = None,
        now: datetime | None = None,
    ) -> SessionResponse:
        """Start a checked-in session."""
        return await self.update_status(
            org_settings, organization_id, session_id, SessionStatus.IN_PROGRESS, user_id=user_id, now=now
        )

    async def complete(
        self,
        org_settings: OrganizationSettings,
        organization_id: UUID,
        session_id: UUID,
        user_id: UUID | None = None,
        now: datetime | None = None,
    ) -> SessionResponse:
        """Complete an in-progress session."""
        return await self.update_status(
            org_settings, organization_id, session_id, SessionStatus.COMPLETED, user_id=user_id, now=now
        )

    async def mark_no_show(
        self,
        org_settings: OrganizationSettings,
        organization_id: UUID,
        session_id: UUID,
        user_id: UUID | None = None,
        now: datetime | None = None,
    ) -> SessionResponse:
        """Record that the patient did not attend."""
        return await self.update_status(
            org_settings, organization_id, session_id, SessionStatus.NO_SHOW, user_id=user_id, now=now
        )

    async def cancel(
        self,
        org_settings: OrganizationSettings,
        organization_id: UUID,
        session_id: UUID,
        reason: CancellationReason,
        notes: str | None = None,
        late: bool = False,
        user_id: UUID | None = None,
        now: datetime | None = None,
    ) -> SessionResponse:
        """Cancel a session; ``late`` records a late cancellation regardless of notice."""
        target = SessionStatus.LATE_CANCEL if late else SessionStatus.CANCELLED
        return await self.update_status(
            org_settings,
            organization_id,
            session_id,
            target,
            reason=reason,
            notes=notes,
            user_id=user_id,
            now=now,
        )

    async def reschedule(
        self,
        org_settings: OrganizationSettings,
        organization_id: UUID,
        session_id: UUID,
        data: RescheduleRequest,
        user_id: UUID | None = None,
        now: datetime | None = None,
    ) -> SessionResponse:
        """
        Move a session to a new slot.

        The original is cancelled with reason ``rescheduled`` and a
        replacement linked through ``rescheduled_from_id`` is booked, both
        in one transaction.

        Returns:
            The replacement session

        Raises:
            NotFoundException: If the session or a new resource is not in the organization
            InvalidTransitionException: If the session is already in a terminal status
            ConflictException: If the new slot is taken
            ValidationException: If the new slot is outside working hours
        """
        now = now or utc_now()
        tz = org_settings.timezone
        row = await self._fetch(organization_id, session_id)
        current = SessionStatus(row.status)
        if is_terminal(current):
            raise InvalidTransitionException(
                current.value, SessionStatus.CANCELLED.value, allowed_transitions(current)
            )

        new_id = uuid4()
        bookings = BookingService(self.db)
        try:
            cancelled = await self.db.execute(
                update(sessions)
                .where(and_(sessions.c.id == session_id, sessions.c.status == current.value))
                .values(
                    status=SessionStatus.CANCELLED.value,
                    status_updated_at=now,
                    status_updated_by_id=user_id,
                    updated_at=now,
                    **_audit_fields(
                        SessionStatus.CANCELLED,
                        now,
                        user_id,
                        CancellationReason.RESCHEDULED,
                        f"Rescheduled to {data.date.isoformat()} {data.start_time}",
                    ),
                )
            )
            if cancelled.rowcount != 1:
                raise ConflictException(
                    "Session status changed concurrently", details={"session_id": str(session_id)}
                )

            await bookings.insert_checked_session(
                org_settings,
                organization_id,
                session_id=new_id,
                schedule_id=None,
                staff_id=data.staff_id or row.staff_id,
                patient_id=row.patient_id,
                room_id=data.room_id or row.room_id,
                day=data.date,
                start_time=data.start_time,
                end_time=data.end_time,
                notes=data.notes if data.notes is not None else row.notes,
                booked_via=row.booked_via,
                booked_by_id=user_id,
                now=now,
                rescheduled_from_id=session_id,
                exclude_session_id=session_id,
                session_spec_id=row.session_spec_id,
            )
            await self.db.commit()
        except BookingFailed as e:
            await self.db.rollback()
            failure = e.result
            if failure.error_code == HoldErrorCode.NOT_FOUND:
                raise NotFoundException(failure.error) from e
            if failure.error_code == HoldErrorCode.VALIDATION:
                raise ValidationException(failure.error) from e
            raise ConflictException(failure.error, details=failure.conflict) from e
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            "session_rescheduled",
            organization_id=str(organization_id),
            session_id=str(session_id),
            replacement_id=str(new_id),
        )
        logger.info(
            "audit",
            action="reschedule",
            entity="session",
            entity_id=str(session_id),
            user_id=str(user_id) if user_id else None,
            before={"status": current.value, "date": local_date(row.date, tz).isoformat()},
            after={"replacement_id": str(new_id), "date": data.date.isoformat()},
        )
        replacement = await self._fetch(organization_id, new_id)
        return session_response(replacement, tz)

    async def list_sessions(
        self,
        org_settings: OrganizationSettings,
        organization_id: UUID,
        filters: SessionFilters,
    ) -> SessionListResponse:
        """
        List sessions with filtering and pagination.

        Args:
            org_settings: Organization settings
            organization_id: Organization ID
            filters: Filter and pagination parameters

        Returns:
            Paginated list of sessions ordered by date and start time
        """
        tz = org_settings.timezone
        conditions = [sessions.c.organization_id == organization_id]
        if filters.schedule_id:
            conditions.append(sessions.c.schedule_id == filters.schedule_id)
        if filters.staff_id:
            conditions.append(sessions.c.staff_id == filters.staff_id)
        if filters.patient_id:
            conditions.append(sessions.c.patient_id == filters.patient_id)
        if filters.statuses:
            conditions.append(sessions.c.status.in_([s.value for s in filters.statuses]))
        if filters.date_from:
            conditions.append(sessions.c.date >= parse_local_date_start(filters.date_from, tz))
        if filters.date_to:
            conditions.append(sessions.c.date <= parse_local_date_end(filters.date_to, tz))

        count_stmt = select(func.count()).select_from(sessions).where(and_(*conditions))
        total = (await self.db.execute(count_stmt)).scalar() or 0

        offset = (filters.page - 1) * filters.page_size
        stmt = (
            select(sessions)
            .where(and_(*conditions))
            .order_by(sessions.c.date, sessions.c.start_time, sessions.c.id)
            .offset(offset)
            .limit(filters.page_size)
        )
        result = await self.db.execute(stmt)
        items = [session_response(row, tz) for row in result.fetchall()]

        return SessionListResponse(
            total=total, page=filters.page, page_size=filters.page_size, items=items
        )

    async def get_status_counts(self, organization_id: UUID, schedule_id: UUID) -> StatusCounts:
        """
        Count a schedule's sessions per status.

        Raises:
            NotFoundException: If the schedule is not in the organization
        """
        result = await self.db.execute(
            select(schedules.c.id).where(
                and_(schedules.c.id == schedule_id, schedules.c.organization_id == organization_id)
            )
        )
        if result.scalar_one_or_none() is None:
            raise NotFoundException("Schedule not found")

        result = await self.db.execute(
            select(sessions.c.status, func.count())
            .where(sessions.c.schedule_id == schedule_id)
            .group_by(sessions.c.status)
        )
        counts = {status: 0 for status in SessionStatus}
        for status, count in result.fetchall():
            counts[SessionStatus(status)] = count
        return StatusCounts(schedule_id=schedule_id, total=sum(counts.values()), counts=counts)

    async def find_by_status(
        self,
        org_settings: OrganizationSettings,
        organization_id: UUID,
        statuses: list[SessionStatus],
        date_from: date | None = None,
        date_to: date | None = None,
    ) -> list[SessionResponse]:
        """Sessions in any of the given statuses, optionally within a local date range."""
        tz = org_settings.timezone
        conditions = [
            sessions.c.organization_id == organization_id,
            sessions.c.status.in_([s.value for s in statuses]),
        ]
        if date_from:
            conditions.append(sessions.c.date >= parse_local_date_start(date_from, tz))
        if date_to:
            conditions.append(sessions.c.date <= parse_local_date_end(date_to, tz))

        result = await self.db.execute(
            select(sessions)
            .where(and_(*conditions))
            .order_by(sessions.c.date, sessions.c.start_time)
        )
        return [session_response(row, tz) for row in result.fetchall()]

"""Hold manager: short-lived exclusive reservations on a slot."""

from datetime import date, datetime, timedelta
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import and_, delete, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from practice_scheduler.config import get_settings
from practice_scheduler.models.holds import appointment_holds
from practice_scheduler.schemas.holds import (
    HoldCreate,
    HoldErrorCode,
    HoldResponse,
    HoldResult,
)
from practice_scheduler.schemas.organizations import OrganizationSettings
from practice_scheduler.scheduling.timeslots import (
    ensure_utc,
    local_date,
    parse_local_date_end,
    parse_local_date_start,
    utc_now,
)
from practice_scheduler.services.organization_service import OrganizationService
from practice_scheduler.services.slot_guard import (
    acquire_locks,
    active_hold_clause,
    booking_lock_keys,
    business_hours_violation,
    conflict_message,
    find_conflict,
    is_hold_active,
    working_hours_violation,
)

logger = structlog.get_logger(__name__)


def hold_response(row: Any, timezone: str) -> HoldResponse:
    """Build a response with the hold's local date."""
    data = dict(row._mapping)
    data["date"] = local_date(row.date, timezone)
    return HoldResponse.model_validate(data)


class HoldService:
    """Service for managing appointment holds."""

    def __init__(self, db: AsyncSession):
        """Initialize service with database session."""
        self.db = db

    async def _fetch(self, hold_id: UUID, organization_id: UUID | None) -> Any:
        conditions = [appointment_holds.c.id == hold_id]
        if organization_id is not None:
            conditions.append(appointment_holds.c.organization_id == organization_id)
        result = await self.db.execute(select(appointment_holds).where(and_(*conditions)))
        return result.fetchone()

    async def create_hold(
        self,
        org_settings: OrganizationSettings,
        organization_id: UUID,
        data: HoldCreate,
        created_by_user_id: UUID | None = None,
        now: datetime | None = None,
    ) -> HoldResult:
        """
        Reserve a slot for a staff member and/or room.

        The conflict check runs after the resource locks are taken, so two
        concurrent requests for overlapping slots cannot both succeed.

        Args:
            org_settings: Organization settings
            organization_id: Organization ID
            data: Hold request
            created_by_user_id: Requesting user
            now: Reference time

        Returns:
            The created hold, or the reason it could not be created
        """
        now = now or utc_now()
        tz = org_settings.timezone
        max_minutes = get_settings().max_hold_duration_minutes
        duration = data.hold_duration_minutes or org_settings.hold_duration_minutes
        if duration > max_minutes:
            return HoldResult(
                success=False,
                error=f"Hold duration cannot exceed {max_minutes} minutes",
                error_code=HoldErrorCode.VALIDATION,
            )

        member = None
        if data.staff_id is not None:
            member = await OrganizationService.get_staff_member(
                self.db, organization_id, data.staff_id
            )
            if member is None or not member.is_active:
                return HoldResult(
                    success=False, error="Staff member not found", error_code=HoldErrorCode.NOT_FOUND
                )
        if data.room_id is not None:
            room = await OrganizationService.get_room(self.db, organization_id, data.room_id)
            if room is None or room.status.value != "active":
                return HoldResult(
                    success=False, error="Room not found", error_code=HoldErrorCode.NOT_FOUND
                )

        if member is not None:
            overrides = await OrganizationService.list_time_off(
                self.db, org_settings, organization_id, data.date, data.date, member.id
            )
            reason = working_hours_violation(
                org_settings, member, data.date, data.start_time, data.end_time, overrides
            )
            if reason:
                return HoldResult(success=False, error=reason, error_code=HoldErrorCode.VALIDATION)
        else:
            reason = business_hours_violation(
                org_settings, data.date, data.start_time, data.end_time
            )
            if reason:
                return HoldResult(success=False, error=reason, error_code=HoldErrorCode.VALIDATION)

        day_start = parse_local_date_start(data.date, tz)
        try:
            await acquire_locks(
                self.db,
                booking_lock_keys(organization_id, data.date, data.staff_id, data.room_id),
            )
            conflict = await find_conflict(
                self.db,
                organization_id,
                day_start,
                data.start_time,
                data.end_time,
                now,
                staff_id=data.staff_id,
                room_id=data.room_id,
            )
            if conflict is not None:
                await self.db.rollback()
                logger.info(
                    "hold_rejected",
                    organization_id=str(organization_id),
                    date=data.date.isoformat(),
                    start_time=data.start_time,
                    conflict_id=conflict["id"],
                )
                return HoldResult(
                    success=False,
                    error=conflict_message(conflict),
                    error_code=HoldErrorCode.CONFLICT,
                    conflict=conflict,
                )

            stmt = (
                insert(appointment_holds)
                .values(
                    organization_id=organization_id,
                    staff_id=data.staff_id,
                    room_id=data.room_id,
                    date=day_start,
                    start_time=data.start_time,
                    end_time=data.end_time,
                    expires_at=now + timedelta(minutes=duration),
                    created_by_user_id=created_by_user_id,
                    created_at=now,
                )
                .returning(appointment_holds)
            )
            result = await self.db.execute(stmt)
            row = result.fetchone()
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            "hold_created",
            organization_id=str(organization_id),
            hold_id=str(row.id),
            expires_at=ensure_utc(row.expires_at).isoformat(),
        )
        return HoldResult(success=True, hold=hold_response(row, tz))

    async def extend_hold(
        self,
        org_settings: OrganizationSettings,
        hold_id: UUID,
        additional_minutes: int | None = None,
        organization_id: UUID | None = None,
        now: datetime | None = None,
    ) -> HoldResult:
        """
        Push an active hold's expiry further out.

        The new expiry is the current expiry plus ``additional_minutes``,
        written only if the hold is still active and unchanged.
        """
        now = now or utc_now()
        minutes = additional_minutes or get_settings().default_hold_extension_minutes

        row = await self._fetch(hold_id, organization_id)
        if row is None:
            return HoldResult(
                success=False, error="Hold not found", error_code=HoldErrorCode.NOT_FOUND
            )
        if not is_hold_active(row._mapping, now):
            return HoldResult(
                success=False, error="Hold is no longer active", error_code=HoldErrorCode.EXPIRED
            )

        new_expiry = ensure_utc(row.expires_at) + timedelta(minutes=minutes)
        stmt = (
            update(appointment_holds)
            .where(
                and_(
                    appointment_holds.c.id == hold_id,
                    appointment_holds.c.expires_at == row.expires_at,
                    active_hold_clause(now),
                )
            )
            .values(expires_at=new_expiry)
            .returning(appointment_holds)
        )
        result = await self.db.execute(stmt)
        updated = result.fetchone()
        await self.db.commit()

        if updated is None:
            return HoldResult(
                success=False, error="Hold is no longer active", error_code=HoldErrorCode.EXPIRED
            )
        logger.info("hold_extended", hold_id=str(hold_id), expires_at=new_expiry.isoformat())
        return HoldResult(success=True, hold=hold_response(updated, org_settings.timezone))

    async def release_hold(
        self,
        hold_id: UUID,
        organization_id: UUID | None = None,
        now: datetime | None = None,
    ) -> bool:
        """
        Release an active hold.

        Returns:
            False when the hold is missing, expired, released or converted
        """
        now = now or utc_now()
        conditions = [appointment_holds.c.id == hold_id, active_hold_clause(now)]
        if organization_id is not None:
            conditions.append(appointment_holds.c.organization_id == organization_id)

        result = await self.db.execute(
            update(appointment_holds).where(and_(*conditions)).values(released_at=now)
        )
        await self.db.commit()

        released = result.rowcount == 1
        if released:
            logger.info("hold_released", hold_id=str(hold_id))
        return released

    async def get_hold(
        self,
        org_settings: OrganizationSettings,
        hold_id: UUID,
        organization_id: UUID | None = None,
    ) -> HoldResponse | None:
        """Get a hold by ID, whatever its state."""
        row = await self._fetch(hold_id, organization_id)
        return hold_response(row, org_settings.timezone) if row else None

    async def get_active_holds(
        self,
        org_settings: OrganizationSettings,
        organization_id: UUID,
        date_from: date | None = None,
        date_to: date | None = None,
        now: datetime | None = None,
    ) -> list[HoldResponse]:
        """List active holds, optionally within a local date range."""
        now = now or utc_now()
        tz = org_settings.timezone
        conditions = [appointment_holds.c.organization_id == organization_id, active_hold_clause(now)]
        if date_from is not None:
            conditions.append(appointment_holds.c.date >= parse_local_date_start(date_from, tz))
        if date_to is not None:
            conditions.append(appointment_holds.c.date <= parse_local_date_end(date_to, tz))

        result = await self.db.execute(
            select(appointment_holds)
            .where(and_(*conditions))
            .order_by(appointment_holds.c.date, appointment_holds.c.start_time)
        )
        return [hold_response(row, tz) for row in result.fetchall()]

    async def cleanup_expired_holds(self, now: datetime | None = None) -> int:
        """
        Delete expired holds that were never converted.

        Released holds past their expiry go too. Running it twice, or
        concurrently, deletes each row once.
        """
        now = now or utc_now()
        result = await self.db.execute(
            delete(appointment_holds).where(
                and_(
                    appointment_holds.c.expires_at <= now,
                    appointment_holds.c.converted_to_session_id.is_(None),
                )
            )
        )
        await self.db.commit()
        removed = result.rowcount or 0
        if removed:
            logger.info("expired_holds_removed", removed=removed)
        return removed

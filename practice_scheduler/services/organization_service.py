"""Organization settings and directory reads."""

from datetime import date
from uuid import UUID

import structlog
from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from practice_scheduler.config import get_settings
from practice_scheduler.core.exceptions import NotFoundException
from practice_scheduler.core.redis_client import CacheManager
from practice_scheduler.database import dialect_insert
from practice_scheduler.models.organizations import organization_settings, organizations
from practice_scheduler.models.patients import patient_session_specs, patients
from practice_scheduler.models.rooms import rooms
from practice_scheduler.models.rules import rules
from practice_scheduler.models.staff import staff, staff_availability
from practice_scheduler.schemas.organizations import (
    OrganizationSettings,
    PatientRecord,
    RoomRecord,
    RuleRecord,
    SessionSpecRecord,
    StaffMember,
    TimeOff,
    default_business_hours,
)
from practice_scheduler.scheduling.timeslots import (
    local_date,
    parse_local_date_end,
    parse_local_date_start,
)

logger = structlog.get_logger(__name__)


class OrganizationService:
    """Read access to an organization's settings and directories."""

    def __init__(self, cache_manager: CacheManager | None = None):
        """Initialize service with optional cache manager."""
        self.cache = cache_manager

    @staticmethod
    def _settings_cache_key(organization_id: UUID) -> str:
        """Generate cache key for organization settings."""
        return f"org:{organization_id}:settings"

    async def get_settings(self, db: AsyncSession, organization_id: UUID) -> OrganizationSettings:
        """
        Get scheduling settings, materializing defaults on first read.

        Args:
            db: Database session
            organization_id: Organization ID

        Returns:
            Organization settings

        Raises:
            NotFoundException: If the organization does not exist
        """
        if self.cache:
            cached = self.cache.get_json(self._settings_cache_key(organization_id))
            if cached:
                return OrganizationSettings.model_validate(cached)

        result = await db.execute(
            select(organization_settings).where(
                organization_settings.c.organization_id == organization_id
            )
        )
        row = result.fetchone()

        if row is None:
            exists = await db.execute(
                select(organizations.c.id).where(organizations.c.id == organization_id)
            )
            if exists.scalar_one_or_none() is None:
                raise NotFoundException("Organization not found")

            defaults = OrganizationSettings(organization_id=organization_id)
            stmt = (
                dialect_insert(db, organization_settings)
                .values(
                    organization_id=organization_id,
                    timezone=defaults.timezone,
                    business_hours={
                        day: hours.model_dump() for day, hours in default_business_hours().items()
                    },
                    default_session_duration=defaults.default_session_duration,
                    slot_interval=defaults.slot_interval,
                    late_cancel_window_hours=defaults.late_cancel_window_hours,
                    require_booking_approval=defaults.require_booking_approval,
                    hold_duration_minutes=defaults.hold_duration_minutes,
                )
                .on_conflict_do_nothing(index_elements=[organization_settings.c.organization_id])
            )
            await db.execute(stmt)
            await db.commit()
            logger.info("organization_settings_materialized", organization_id=str(organization_id))
            org_settings = defaults
        else:
            org_settings = OrganizationSettings.model_validate(dict(row._mapping))

        if self.cache:
            self.cache.set_json(
                self._settings_cache_key(organization_id),
                org_settings.model_dump(mode="json"),
                ttl=get_settings().settings_cache_ttl,
            )

        return org_settings

    def invalidate_settings(self, organization_id: UUID) -> None:
        """Drop cached settings after they change upstream."""
        if self.cache:
            self.cache.delete(self._settings_cache_key(organization_id))

    @staticmethod
    async def list_staff(
        db: AsyncSession, organization_id: UUID, active_only: bool = True
    ) -> list[StaffMember]:
        """List staff members ordered by name."""
        conditions = [staff.c.organization_id == organization_id]
        if active_only:
            conditions.append(staff.c.status == "active")
        result = await db.execute(select(staff).where(and_(*conditions)).order_by(staff.c.name))
        return [StaffMember.model_validate(dict(row._mapping)) for row in result.fetchall()]

    @staticmethod
    async def get_staff_member(
        db: AsyncSession, organization_id: UUID, staff_id: UUID
    ) -> StaffMember | None:
        """Get a staff member of the organization."""
        result = await db.execute(
            select(staff).where(
                and_(staff.c.id == staff_id, staff.c.organization_id == organization_id)
            )
        )
        row = result.fetchone()
        return StaffMember.model_validate(dict(row._mapping)) if row else None

    @staticmethod
    async def list_patients(
        db: AsyncSession, organization_id: UUID, active_only: bool = True
    ) -> list[PatientRecord]:
        """List patients ordered by name."""
        conditions = [patients.c.organization_id == organization_id]
        if active_only:
            conditions.append(patients.c.status == "active")
        result = await db.execute(
            select(patients).where(and_(*conditions)).order_by(patients.c.name)
        )
        specs = await OrganizationService.list_session_specs(db, organization_id)
        by_patient: dict[UUID, list[SessionSpecRecord]] = {}
        for spec in specs:
            by_patient.setdefault(spec.patient_id, []).append(spec)
        return [
            PatientRecord.model_validate(
                {**row._mapping, "session_specs": by_patient.get(row.id, [])}
            )
            for row in result.fetchall()
        ]

    @staticmethod
    async def list_session_specs(
        db: AsyncSession, organization_id: UUID
    ) -> list[SessionSpecRecord]:
        """
        List active session specs of the organization's patients.

        Specs are scoped through their patient, so a spec of another
        organization's patient is never returned.
        """
        result = await db.execute(
            select(patient_session_specs)
            .join(patients, patients.c.id == patient_session_specs.c.patient_id)
            .where(
                and_(
                    patients.c.organization_id == organization_id,
                    patient_session_specs.c.is_active.is_(True),
                )
            )
            .order_by(patient_session_specs.c.patient_id, patient_session_specs.c.name)
        )
        return [SessionSpecRecord.model_validate(dict(row._mapping)) for row in result.fetchall()]

    @staticmethod
    async def get_patient(
        db: AsyncSession, organization_id: UUID, patient_id: UUID
    ) -> PatientRecord | None:
        """Get a patient of the organization."""
        result = await db.execute(
            select(patients).where(
                and_(patients.c.id == patient_id, patients.c.organization_id == organization_id)
            )
        )
        row = result.fetchone()
        return PatientRecord.model_validate(dict(row._mapping)) if row else None

    @staticmethod
    async def list_rooms(
        db: AsyncSession, organization_id: UUID, active_only: bool = True
    ) -> list[RoomRecord]:
        """List rooms ordered by name."""
        conditions = [rooms.c.organization_id == organization_id]
        if active_only:
            conditions.append(rooms.c.status == "active")
        result = await db.execute(select(rooms).where(and_(*conditions)).order_by(rooms.c.name))
        return [RoomRecord.model_validate(dict(row._mapping)) for row in result.fetchall()]

    @staticmethod
    async def get_room(db: AsyncSession, organization_id: UUID, room_id: UUID) -> RoomRecord | None:
        """Get a room of the organization."""
        result = await db.execute(
            select(rooms).where(and_(rooms.c.id == room_id, rooms.c.organization_id == organization_id))
        )
        row = result.fetchone()
        return RoomRecord.model_validate(dict(row._mapping)) if row else None

    @staticmethod
    async def list_rules(db: AsyncSession, organization_id: UUID) -> list[RuleRecord]:
        """List all rules, active or not, in evaluation order."""
        result = await db.execute(
            select(rules)
            .where(rules.c.organization_id == organization_id)
            .order_by(rules.c.priority, rules.c.created_at)
        )
        return [RuleRecord.model_validate(dict(row._mapping)) for row in result.fetchall()]

    @staticmethod
    async def list_time_off(
        db: AsyncSession,
        org_settings: OrganizationSettings,
        organization_id: UUID,
        date_from: date,
        date_to: date,
        staff_id: UUID | None = None,
    ) -> list[TimeOff]:
        """
        Approved availability overrides in a local date range.

        Args:
            db: Database session
            org_settings: Organization settings, for the timezone
            organization_id: Organization ID
            date_from: First local date, inclusive
            date_to: Last local date, inclusive
            staff_id: Restrict to one staff member

        Returns:
            Overrides with their local dates
        """
        tz = org_settings.timezone
        conditions = [
            staff_availability.c.organization_id == organization_id,
            staff_availability.c.status == "approved",
            staff_availability.c.date >= parse_local_date_start(date_from, tz),
            staff_availability.c.date <= parse_local_date_end(date_to, tz),
        ]
        if staff_id is not None:
            conditions.append(staff_availability.c.staff_id == staff_id)

        result = await db.execute(select(staff_availability).where(and_(*conditions)))
        return [
            TimeOff(
                staff_id=row.staff_id,
                date=local_date(row.date, tz),
                available=row.available,
                start_time=row.start_time,
                end_time=row.end_time,
                reason=row.reason,
            )
            for row in result.fetchall()
        ]

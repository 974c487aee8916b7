"""Schedule lifecycle: generation, publishing, archiving, draft copies and draft edits."""

from datetime import date, datetime, timedelta
from typing import Any
from uuid import UUID, uuid4

import structlog
from sqlalchemy import and_, delete, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from practice_scheduler.core.exceptions import (
    ConflictException,
    NotFoundException,
    RuleReviewRequiredException,
    ValidationException,
)
from practice_scheduler.models.schedules import schedules, sessions
from practice_scheduler.schemas.organizations import OrganizationSettings
from practice_scheduler.schemas.schedules import (
    CopyValidation,
    DraftCopyResponse,
    GenerationResponse,
    GenerationStats,
    ScheduleDetailResponse,
    ScheduleListResponse,
    ScheduleResponse,
    ScheduleSessionUpdate,
    ScheduleStatus,
    SessionDraft,
    SkippedValidation,
    ValidatedCopy,
)
from practice_scheduler.schemas.sessions import SessionResponse, SessionStatus
from practice_scheduler.scheduling.copy_validator import validate_and_regenerate_copied_schedule
from practice_scheduler.scheduling.generation import validate_generated_sessions
from practice_scheduler.scheduling.rule_review import ensure_rules_reviewed
from practice_scheduler.scheduling.state_machine import CANCELLATION_STATUSES
from practice_scheduler.scheduling.timeslots import (
    local_date,
    parse_local_date_start,
    utc_now,
    validate_time_range,
)
from practice_scheduler.services.ai_provider import AIScheduleProvider
from practice_scheduler.services.organization_service import OrganizationService
from practice_scheduler.services.session_service import session_response
from practice_scheduler.services.slot_guard import (
    acquire_locks,
    booking_lock_keys,
    conflict_message,
    find_conflict,
    live_schedule_id,
    next_version,
    week_lock_key,
    working_hours_violation,
)

logger = structlog.get_logger(__name__)

SKIPPED_ON_COPY = sorted(status.value for status in CANCELLATION_STATUSES)


def schedule_response(row: Any, timezone: str) -> ScheduleResponse:
    """Build a response with the schedule's local week start."""
    data = dict(row._mapping)
    data["week_start_date"] = local_date(row.week_start_date, timezone)
    return ScheduleResponse.model_validate(data)


class ScheduleService:
    """Service for managing schedule versions."""

    def __init__(self, db: AsyncSession, provider: AIScheduleProvider | None = None):
        """Initialize service with database session and optional AI provider."""
        self.db = db
        self.provider = provider

    async def _fetch(self, organization_id: UUID, schedule_id: UUID) -> Any:
        result = await self.db.execute(
            select(schedules).where(
                and_(schedules.c.id == schedule_id, schedules.c.organization_id == organization_id)
            )
        )
        row = result.fetchone()
        if not row:
            raise NotFoundException("Schedule not found")
        return row

    async def _ensure_no_live_draft(
        self, organization_id: UUID, week_start: datetime, monday: date
    ) -> None:
        draft_id = await live_schedule_id(
            self.db, organization_id, week_start, ScheduleStatus.DRAFT.value
        )
        if draft_id is not None:
            raise ConflictException(
                f"The week of {monday} already has a draft; publish or archive it first",
                details={"schedule_id": str(draft_id)},
            )

    async def _insert_draft(
        self,
        organization_id: UUID,
        week_start: datetime,
        source_schedule_id: UUID | None,
        created_by_id: UUID | None,
        now: datetime,
    ) -> UUID:
        schedule_id = uuid4()
        await self.db.execute(
            insert(schedules).values(
                id=schedule_id,
                organization_id=organization_id,
                week_start_date=week_start,
                status=ScheduleStatus.DRAFT.value,
                version=await next_version(self.db, organization_id, week_start),
                source_schedule_id=source_schedule_id,
                created_by_id=created_by_id,
                created_at=now,
                updated_at=now,
            )
        )
        return schedule_id

    async def _insert_sessions(
        self,
        org_settings: OrganizationSettings,
        organization_id: UUID,
        schedule_id: UUID,
        drafts: list[SessionDraft],
        booked_by_id: UUID | None,
        now: datetime,
        booked_via: str = "admin",
    ) -> None:
        if not drafts:
            return
        tz = org_settings.timezone
        await self.db.execute(
            insert(sessions),
            [
                {
                    "id": uuid4(),
                    "schedule_id": schedule_id,
                    "organization_id": organization_id,
                    "staff_id": draft.staff_id,
                    "patient_id": draft.patient_id,
                    "room_id": draft.room_id,
                    "session_spec_id": draft.session_spec_id,
                    "date": parse_local_date_start(draft.date, tz),
                    "start_time": draft.start_time,
                    "end_time": draft.end_time,
                    "status": SessionStatus.SCHEDULED.value,
                    "notes": draft.notes,
                    "booked_via": booked_via,
                    "booked_by_id": booked_by_id,
                    "created_at": now,
                    "updated_at": now,
                }
                for draft in drafts
            ],
        )

    async def generate(
        self,
        org_settings: OrganizationSettings,
        organization_id: UUID,
        week_start: date,
        created_by_id: UUID | None = None,
        now: datetime | None = None,
    ) -> GenerationResponse:
        """
        Generate a draft for a week with the AI provider.

        The proposal is checked against built-in constraints and active
        rules before anything is written. Accepted sessions are written as a
        new draft version that supersedes the week's live published version.

        Args:
            org_settings: Organization settings
            organization_id: Organization ID
            week_start: Monday of the week
            created_by_id: Requesting user
            now: Reference time

        Returns:
            The draft, generation stats and warnings

        Raises:
            ValidationException: If the date is not a Monday or there are no active staff or patients
            RuleReviewRequiredException: If an active rule needs review
            UpstreamServiceException: If the AI provider is unavailable
            ConflictException: If the week already has a draft
        """
        now = now or utc_now()
        if week_start.weekday() != 0:
            raise ValidationException("week_start_date must be a Monday")

        staff = await OrganizationService.list_staff(self.db, organization_id)
        if not staff:
            raise ValidationException("No active staff members found")
        patients = await OrganizationService.list_patients(self.db, organization_id)
        if not patients:
            raise ValidationException("No active patients found")
        rooms = await OrganizationService.list_rooms(self.db, organization_id)
        rules = await OrganizationService.list_rules(self.db, organization_id)
        ensure_rules_reviewed(rules, staff, patients)
        time_off = await OrganizationService.list_time_off(
            self.db, org_settings, organization_id, week_start, week_start + timedelta(days=6)
        )

        provider = self.provider or AIScheduleProvider()
        proposal = await provider.generate_schedule(
            org_settings, week_start, staff, patients, rooms, rules
        )
        outcome = validate_generated_sessions(
            org_settings, week_start, proposal.sessions, staff, patients, rooms, rules, time_off
        )

        warnings = list(proposal.warnings)
        for rejected in outcome.rejected:
            raw = rejected.session
            label = f"{raw.get('date', '?')} {raw.get('startTime', raw.get('start_time', '?'))}"
            warnings.append(f"Rejected session on {label}: {'; '.join(rejected.errors)}")
        warnings.extend(outcome.warnings)

        tz = org_settings.timezone
        stored_week = parse_local_date_start(week_start, tz)
        try:
            await acquire_locks(self.db, [week_lock_key(organization_id, week_start)])
            await self._ensure_no_live_draft(organization_id, stored_week, week_start)
            source_id = await live_schedule_id(
                self.db, organization_id, stored_week, ScheduleStatus.PUBLISHED.value
            )
            schedule_id = await self._insert_draft(
                organization_id, stored_week, source_id, created_by_id, now
            )
            await self._insert_sessions(
                org_settings, organization_id, schedule_id, outcome.valid, created_by_id, now
            )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        row = await self._fetch(organization_id, schedule_id)
        stats = GenerationStats(
            total_sessions=len(outcome.valid),
            patients_scheduled=len({s.patient_id for s in outcome.valid}),
            therapists_used=len({s.staff_id for s in outcome.valid}),
            rejected_sessions=len(outcome.rejected),
        )
        logger.info(
            "schedule_generated",
            organization_id=str(organization_id),
            schedule_id=str(schedule_id),
            version=row.version,
            sessions=stats.total_sessions,
            rejected=stats.rejected_sessions,
        )
        logger.info(
            "audit",
            action="generate",
            entity="schedule",
            entity_id=str(schedule_id),
            user_id=str(created_by_id) if created_by_id else None,
            after={"status": row.status, "version": row.version},
        )
        return GenerationResponse(schedule=schedule_response(row, tz), stats=stats, warnings=warnings)

    async def publish(
        self,
        org_settings: OrganizationSettings,
        organization_id: UUID,
        schedule_id: UUID,
        user_id: UUID | None = None,
        now: datetime | None = None,
    ) -> ScheduleResponse:
        """
        Publish a draft and archive the week's earlier published versions.

        Raises:
            NotFoundException: If the schedule is not in the organization
            ConflictException: If the schedule is not a draft
        """
        now = now or utc_now()
        row = await self._fetch(organization_id, schedule_id)
        monday = local_date(row.week_start_date, org_settings.timezone)
        try:
            await acquire_locks(self.db, [week_lock_key(organization_id, monday)])
            result = await self.db.execute(
                update(schedules)
                .where(
                    and_(
                        schedules.c.id == schedule_id,
                        schedules.c.status == ScheduleStatus.DRAFT.value,
                    )
                )
                .values(status=ScheduleStatus.PUBLISHED.value, published_at=now, updated_at=now)
            )
            if result.rowcount != 1:
                raise ConflictException(
                    f"Only draft schedules can be published (status: {row.status})"
                )
            archived = await self.db.execute(
                update(schedules)
                .where(
                    and_(
                        schedules.c.organization_id == organization_id,
                        schedules.c.week_start_date == row.week_start_date,
                        schedules.c.status == ScheduleStatus.PUBLISHED.value,
                        schedules.c.id != schedule_id,
                    )
                )
                .values(status=ScheduleStatus.ARCHIVED.value, archived_at=now, updated_at=now)
            )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            "schedule_published",
            organization_id=str(organization_id),
            schedule_id=str(schedule_id),
            archived_versions=archived.rowcount,
        )
        logger.info(
            "audit",
            action="publish",
            entity="schedule",
            entity_id=str(schedule_id),
            user_id=str(user_id) if user_id else None,
            before={"status": row.status},
            after={"status": ScheduleStatus.PUBLISHED.value},
        )
        return schedule_response(await self._fetch(organization_id, schedule_id), org_settings.timezone)

    async def archive(
        self,
        org_settings: OrganizationSettings,
        organization_id: UUID,
        schedule_id: UUID,
        user_id: UUID | None = None,
        now: datetime | None = None,
    ) -> ScheduleResponse:
        """
        Archive a draft or published schedule.

        Raises:
            NotFoundException: If the schedule is not in the organization
            ConflictException: If the schedule is already archived
        """
        now = now or utc_now()
        row = await self._fetch(organization_id, schedule_id)
        monday = local_date(row.week_start_date, org_settings.timezone)
        try:
            await acquire_locks(self.db, [week_lock_key(organization_id, monday)])
            result = await self.db.execute(
                update(schedules)
                .where(
                    and_(
                        schedules.c.id == schedule_id,
                        schedules.c.status != ScheduleStatus.ARCHIVED.value,
                    )
                )
                .values(status=ScheduleStatus.ARCHIVED.value, archived_at=now, updated_at=now)
            )
            if result.rowcount != 1:
                raise ConflictException("Schedule is already archived")
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info("schedule_archived", organization_id=str(organization_id), schedule_id=str(schedule_id))
        logger.info(
            "audit",
            action="archive",
            entity="schedule",
            entity_id=str(schedule_id),
            user_id=str(user_id) if user_id else None,
            before={"status": row.status},
            after={"status": ScheduleStatus.ARCHIVED.value},
        )
        return schedule_response(await self._fetch(organization_id, schedule_id), org_settings.timezone)

    async def _copyable_sessions(
        self, org_settings: OrganizationSettings, schedule_id: UUID
    ) -> list[SessionDraft]:
        result = await self.db.execute(
            select(sessions)
            .where(
                and_(
                    sessions.c.schedule_id == schedule_id,
                    sessions.c.status.not_in(SKIPPED_ON_COPY),
                )
            )
            .order_by(sessions.c.date, sessions.c.start_time)
        )
        tz = org_settings.timezone
        return [
            SessionDraft(
                id=row.id,
                staff_id=row.staff_id,
                patient_id=row.patient_id,
                room_id=row.room_id,
                session_spec_id=row.session_spec_id,
                date=local_date(row.date, tz),
                start_time=row.start_time,
                end_time=row.end_time,
                notes=row.notes,
            )
            for row in result.fetchall()
        ]

    async def _start_copy(
        self, org_settings: OrganizationSettings, organization_id: UUID, schedule_id: UUID
    ) -> tuple[Any, date]:
        """Lock the source's week and check it can be copied."""
        row = await self._fetch(organization_id, schedule_id)
        monday = local_date(row.week_start_date, org_settings.timezone)
        await acquire_locks(self.db, [week_lock_key(organization_id, monday)])
        row = await self._fetch(organization_id, schedule_id)
        if row.status != ScheduleStatus.PUBLISHED.value:
            raise ConflictException(f"Only published schedules can be copied (status: {row.status})")
        await self._ensure_no_live_draft(organization_id, row.week_start_date, monday)
        return row, monday

    async def _finish_copy(
        self,
        org_settings: OrganizationSettings,
        organization_id: UUID,
        source: Any,
        drafts: list[SessionDraft],
        created_by_id: UUID | None,
        now: datetime,
    ) -> UUID:
        new_id = await self._insert_draft(
            organization_id, source.week_start_date, source.id, created_by_id, now
        )
        await self._insert_sessions(org_settings, organization_id, new_id, drafts, created_by_id, now)
        return new_id

    async def create_draft_copy(
        self,
        org_settings: OrganizationSettings,
        organization_id: UUID,
        schedule_id: UUID,
        created_by_id: UUID | None = None,
        now: datetime | None = None,
    ) -> DraftCopyResponse:
        """
        Copy a published schedule into a new draft version, unchanged.

        Cancelled sessions are left out and the rest start over as scheduled.

        Raises:
            NotFoundException: If the schedule is not in the organization
            ConflictException: If the schedule is not published or the week has a draft
        """
        now = now or utc_now()
        try:
            source, _ = await self._start_copy(org_settings, organization_id, schedule_id)
            drafts = await self._copyable_sessions(org_settings, schedule_id)
            new_id = await self._finish_copy(
                org_settings, organization_id, source, drafts, created_by_id, now
            )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            "draft_copy_created",
            organization_id=str(organization_id),
            source_schedule_id=str(schedule_id),
            schedule_id=str(new_id),
            sessions=len(drafts),
        )
        row = await self._fetch(organization_id, new_id)
        return DraftCopyResponse(schedule=schedule_response(row, org_settings.timezone))

    async def create_draft_copy_with_validation(
        self,
        org_settings: OrganizationSettings,
        organization_id: UUID,
        schedule_id: UUID,
        created_by_id: UUID | None = None,
        now: datetime | None = None,
    ) -> DraftCopyResponse:
        """
        Copy a published schedule, re-validating sessions against current rules.

        Sessions that now break a rule are reassigned where possible and
        dropped otherwise. If the rules cannot be evaluated the copy is made
        unchanged and the response says validation was skipped. Rules that
        need review stop the copy.

        Raises:
            NotFoundException: If the schedule is not in the organization
            ConflictException: If the schedule is not published or the week has a draft
            RuleReviewRequiredException: If an active rule needs review
        """
        now = now or utc_now()
        try:
            source, monday = await self._start_copy(org_settings, organization_id, schedule_id)
            drafts = await self._copyable_sessions(org_settings, schedule_id)

            validation: CopyValidation
            try:
                staff = await OrganizationService.list_staff(self.db, organization_id)
                patients = await OrganizationService.list_patients(self.db, organization_id)
                rooms = await OrganizationService.list_rooms(self.db, organization_id)
                rules = await OrganizationService.list_rules(self.db, organization_id)
                time_off = await OrganizationService.list_time_off(
                    self.db, org_settings, organization_id, monday, monday + timedelta(days=6)
                )
                checked = validate_and_regenerate_copied_schedule(
                    org_settings, drafts, staff, patients, rooms, rules, time_off
                )
                drafts = checked.valid_sessions
                validation = ValidatedCopy(
                    modifications=checked.modifications, warnings=checked.warnings
                )
            except RuleReviewRequiredException:
                raise
            except Exception as e:
                logger.warning(
                    "draft_copy_validation_skipped",
                    organization_id=str(organization_id),
                    schedule_id=str(schedule_id),
                    error=str(e),
                )
                validation = SkippedValidation(reason=f"Rule validation failed: {e}")

            new_id = await self._finish_copy(
                org_settings, organization_id, source, drafts, created_by_id, now
            )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            "draft_copy_created",
            organization_id=str(organization_id),
            source_schedule_id=str(schedule_id),
            schedule_id=str(new_id),
            sessions=len(drafts),
            validation=validation.kind,
        )
        row = await self._fetch(organization_id, new_id)
        return DraftCopyResponse(
            schedule=schedule_response(row, org_settings.timezone), validation=validation
        )

    async def get_schedule(
        self, org_settings: OrganizationSettings, organization_id: UUID, schedule_id: UUID
    ) -> ScheduleDetailResponse:
        """
        Get a schedule with its sessions.

        Raises:
            NotFoundException: If the schedule is not in the organization
        """
        tz = org_settings.timezone
        row = await self._fetch(organization_id, schedule_id)
        result = await self.db.execute(
            select(sessions)
            .where(sessions.c.schedule_id == schedule_id)
            .order_by(sessions.c.date, sessions.c.start_time, sessions.c.id)
        )
        return ScheduleDetailResponse(
            **schedule_response(row, tz).model_dump(),
            sessions=[session_response(s, tz) for s in result.fetchall()],
        )

    async def list_schedules(
        self,
        org_settings: OrganizationSettings,
        organization_id: UUID,
        week_start: date | None = None,
        status: ScheduleStatus | None = None,
    ) -> ScheduleListResponse:
        """List schedules, newest week and version first."""
        tz = org_settings.timezone
        conditions = [schedules.c.organization_id == organization_id]
        if week_start is not None:
            conditions.append(schedules.c.week_start_date == parse_local_date_start(week_start, tz))
        if status is not None:
            conditions.append(schedules.c.status == status.value)

        result = await self.db.execute(
            select(schedules)
            .where(and_(*conditions))
            .order_by(schedules.c.week_start_date.desc(), schedules.c.version.desc())
        )
        return ScheduleListResponse(items=[schedule_response(row, tz) for row in result.fetchall()])

    async def _draft_session(
        self, organization_id: UUID, schedule_id: UUID, session_id: UUID
    ) -> tuple[Any, Any]:
        """Load a session of a draft schedule."""
        schedule = await self._fetch(organization_id, schedule_id)
        if schedule.status != ScheduleStatus.DRAFT.value:
            raise ConflictException("Only sessions in a draft schedule can be edited")
        result = await self.db.execute(
            select(sessions).where(
                and_(sessions.c.id == session_id, sessions.c.schedule_id == schedule_id)
            )
        )
        row = result.fetchone()
        if not row:
            raise NotFoundException("Session not found")
        return schedule, row

    async def _lock_draft_session(
        self,
        org_settings: OrganizationSettings,
        organization_id: UUID,
        schedule: Any,
        row: Any,
        keys: list[str],
    ) -> None:
        """Take the week lock with ``keys``, then confirm nothing moved meanwhile."""
        monday = local_date(schedule.week_start_date, org_settings.timezone)
        await acquire_locks(self.db, keys + [week_lock_key(organization_id, monday)])
        _, locked_row = await self._draft_session(organization_id, schedule.id, row.id)
        if locked_row.updated_at != row.updated_at:
            raise ConflictException(
                "Session changed concurrently", details={"session_id": str(row.id)}
            )

    async def update_session(
        self,
        org_settings: OrganizationSettings,
        organization_id: UUID,
        schedule_id: UUID,
        session_id: UUID,
        data: ScheduleSessionUpdate,
        user_id: UUID | None = None,
        now: datetime | None = None,
    ) -> SessionResponse:
        """
        Edit a session of a draft schedule.

        The edited slot is locked and re-checked like a new booking, with the
        session itself excluded from the conflict check.

        Raises:
            NotFoundException: If the schedule, session or a new resource is unknown
            ConflictException: If the schedule is not a draft or the slot is taken
            ValidationException: If the slot is invalid or outside working hours
        """
        now = now or utc_now()
        tz = org_settings.timezone
        schedule, row = await self._draft_session(organization_id, schedule_id, session_id)
        changes = data.model_dump(exclude_unset=True)

        staff_id = changes.get("staff_id") or row.staff_id
        patient_id = changes.get("patient_id") or row.patient_id
        room_id = changes["room_id"] if "room_id" in changes else row.room_id
        day = changes.get("date") or local_date(row.date, tz)
        start_time = changes.get("start_time") or row.start_time
        end_time = changes.get("end_time") or row.end_time
        validate_time_range(start_time, end_time)

        week = local_date(schedule.week_start_date, tz)
        if not week <= day <= week + timedelta(days=6):
            raise ValidationException(f"Date {day} is outside the week of {week}")

        member = await OrganizationService.get_staff_member(self.db, organization_id, staff_id)
        if member is None or not member.is_active:
            raise NotFoundException("Staff member not found")
        patient = await OrganizationService.get_patient(self.db, organization_id, patient_id)
        if patient is None:
            raise NotFoundException("Patient not found")
        if room_id is not None:
            room = await OrganizationService.get_room(self.db, organization_id, room_id)
            if room is None:
                raise NotFoundException("Room not found")

        try:
            await self._lock_draft_session(
                org_settings,
                organization_id,
                schedule,
                row,
                booking_lock_keys(organization_id, day, staff_id, room_id, patient_id),
            )
            overrides = await OrganizationService.list_time_off(
                self.db, org_settings, organization_id, day, day, staff_id
            )
            reason = working_hours_violation(org_settings, member, day, start_time, end_time, overrides)
            if reason:
                raise ValidationException(reason)

            conflict = await find_conflict(
                self.db,
                organization_id,
                parse_local_date_start(day, tz),
                start_time,
                end_time,
                now,
                staff_id=staff_id,
                room_id=room_id,
                patient_id=patient_id,
                exclude_session_id=session_id,
            )
            if conflict is not None:
                raise ConflictException(conflict_message(conflict), details=conflict)

            values: dict[str, Any] = {
                "staff_id": staff_id,
                "patient_id": patient_id,
                "room_id": room_id,
                "date": parse_local_date_start(day, tz),
                "start_time": start_time,
                "end_time": end_time,
                "updated_at": now,
            }
            if "notes" in changes:
                values["notes"] = changes["notes"]
            await self.db.execute(update(sessions).where(sessions.c.id == session_id).values(**values))
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            "audit",
            action="update",
            entity="session",
            entity_id=str(session_id),
            user_id=str(user_id) if user_id else None,
            before={
                "staff_id": str(row.staff_id),
                "date": local_date(row.date, tz).isoformat(),
                "start_time": row.start_time,
                "end_time": row.end_time,
            },
            after={
                "staff_id": str(staff_id),
                "date": day.isoformat(),
                "start_time": start_time,
                "end_time": end_time,
            },
        )
        result = await self.db.execute(select(sessions).where(sessions.c.id == session_id))
        return session_response(result.fetchone(), tz)

    async def delete_session(
        self,
        org_settings: OrganizationSettings,
        organization_id: UUID,
        schedule_id: UUID,
        session_id: UUID,
        user_id: UUID | None = None,
    ) -> None:
        """
        Remove a session from a draft schedule.

        Raises:
            NotFoundException: If the schedule or session is unknown
            ConflictException: If the schedule is not a draft
        """
        schedule, row = await self._draft_session(organization_id, schedule_id, session_id)
        try:
            await self._lock_draft_session(org_settings, organization_id, schedule, row, [])
            await self.db.execute(delete(sessions).where(sessions.c.id == session_id))
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            "audit",
            action="delete",
            entity="session",
            entity_id=str(session_id),
            user_id=str(user_id) if user_id else None,
            before={"schedule_id": str(schedule_id)},
        )

"""Schedule and session tables using SQLAlchemy Core."""

from uuid import uuid4

from sqlalchemy import (
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
    UniqueConstraint,
    Uuid,
)

from practice_scheduler.models.base import UTCDateTime, metadata, utcnow

schedules = Table(
    "schedules",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column(
        "organization_id",
        Uuid,
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
    ),
    # Local midnight of the week's Monday, stored as an absolute instant
    Column("week_start_date", UTCDateTime, nullable=False),
    Column("status", String(20), nullable=False, default="draft"),
    Column("version", Integer, nullable=False, default=1),
    # Published schedule this draft supersedes, if any
    Column("source_schedule_id", Uuid, ForeignKey("schedules.id", ondelete="SET NULL"), nullable=True),
    Column("created_by_id", Uuid, nullable=True),
    Column("created_at", UTCDateTime, nullable=False, default=utcnow),
    Column("updated_at", UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow),
    Column("published_at", UTCDateTime, nullable=True),
    Column("archived_at", UTCDateTime, nullable=True),
    CheckConstraint(
        "status IN ('draft', 'published', 'archived')",
        name="schedules_status_check",
    ),
    UniqueConstraint(
        "organization_id", "week_start_date", "version", name="uq_schedules_org_week_version"
    ),
    Index("idx_schedules_org_week", "organization_id", "week_start_date"),
)

sessions = Table(
    "sessions",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column(
        "schedule_id",
        Uuid,
        ForeignKey("schedules.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
    # Denormalized tenant key so every lookup can be organization-scoped
    Column(
        "organization_id",
        Uuid,
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("staff_id", Uuid, ForeignKey("staff.id"), nullable=False),
    Column("patient_id", Uuid, ForeignKey("patients.id"), nullable=False),
    Column("room_id", Uuid, ForeignKey("rooms.id", ondelete="SET NULL"), nullable=True),
    Column(
        "session_spec_id",
        Uuid,
        ForeignKey("patient_session_specs.id", ondelete="SET NULL"),
        nullable=True,
    ),
    Column("date", UTCDateTime, nullable=False),
    Column("start_time", String(5), nullable=False),
    Column("end_time", String(5), nullable=False),
    Column("status", String(20), nullable=False, default="scheduled"),
    Column("notes", Text, nullable=True),
    Column("booked_via", String(20), nullable=False, default="admin"),
    Column("booked_by_id", Uuid, nullable=True),
    Column("rescheduled_from_id", Uuid, ForeignKey("sessions.id", ondelete="SET NULL"), nullable=True),
    # Status audit fields
    Column("status_updated_at", UTCDateTime, nullable=True),
    Column("status_updated_by_id", Uuid, nullable=True),
    Column("confirmed_at", UTCDateTime, nullable=True),
    Column("confirmed_by_id", Uuid, nullable=True),
    Column("checked_in_at", UTCDateTime, nullable=True),
    Column("actual_start_time", UTCDateTime, nullable=True),
    Column("actual_end_time", UTCDateTime, nullable=True),
    Column("cancelled_at", UTCDateTime, nullable=True),
    Column("cancelled_by_id", Uuid, nullable=True),
    Column("cancellation_reason", String(32), nullable=True),
    Column("cancellation_notes", Text, nullable=True),
    Column("created_at", UTCDateTime, nullable=False, default=utcnow),
    Column("updated_at", UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow),
    CheckConstraint(
        "status IN ('pending', 'scheduled', 'confirmed', 'checked_in', 'in_progress', "
        "'completed', 'cancelled', 'late_cancel', 'no_show')",
        name="sessions_status_check",
    ),
    CheckConstraint(
        "booked_via IN ('admin', 'staff', 'portal', 'ai_voice', 'api')",
        name="sessions_booked_via_check",
    ),
    Index("idx_sessions_staff_date", "staff_id", "date"),
    Index("idx_sessions_patient_date", "patient_id", "date"),
    Index("idx_sessions_room_date", "room_id", "date"),
)

"""Patient and patient session spec tables using SQLAlchemy Core."""

from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    ForeignKey,
    Integer,
    String,
    Table,
    Text,
    Uuid,
)

from practice_scheduler.models.base import UTCDateTime, metadata, utcnow

patients = Table(
    "patients",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column(
        "organization_id",
        Uuid,
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
    Column("name", Text, nullable=False),
    Column("identifier", String(100), nullable=True),
    Column("gender", String(20), nullable=True),
    # Preferred gender of the paired staff member, if any
    Column("preferred_gender", String(20), nullable=True),
    Column("session_frequency", Integer, nullable=False, default=1),
    Column("preferred_times", JSON, nullable=False, default=list),
    Column("required_certifications", JSON, nullable=False, default=list),
    Column("required_room_capabilities", JSON, nullable=False, default=list),
    Column("preferred_room_id", Uuid, ForeignKey("rooms.id", ondelete="SET NULL"), nullable=True),
    Column("notes", Text, nullable=True),
    Column("status", String(20), nullable=False, default="active"),
    Column("created_at", UTCDateTime, nullable=False, default=utcnow),
    Column("updated_at", UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow),
    CheckConstraint("status IN ('active', 'inactive')", name="patients_status_check"),
)

patient_session_specs = Table(
    "patient_session_specs",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column(
        "patient_id",
        Uuid,
        ForeignKey("patients.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
    Column("name", Text, nullable=False),
    Column("sessions_per_week", Integer, nullable=False, default=1),
    Column("duration_minutes", Integer, nullable=True),
    Column("preferred_times", JSON, nullable=False, default=list),
    Column("required_certifications", JSON, nullable=False, default=list),
    Column("required_room_capabilities", JSON, nullable=False, default=list),
    Column("preferred_room_id", Uuid, ForeignKey("rooms.id", ondelete="SET NULL"), nullable=True),
    Column("is_active", Boolean, nullable=False, default=True),
    Column("created_at", UTCDateTime, nullable=False, default=utcnow),
)

"""Staff and staff availability tables using SQLAlchemy Core."""

from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    String,
    Table,
    Text,
    Uuid,
)

from practice_scheduler.models.base import UTCDateTime, metadata, utcnow

staff = Table(
    "staff",
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
    Column("email", String(255), nullable=True),
    Column("gender", String(20), nullable=True),
    Column("certifications", JSON, nullable=False, default=list),
    # {"monday": {"start": "09:00", "end": "17:00"}, "saturday": null, ...}
    Column("default_hours", JSON, nullable=False, default=dict),
    Column("status", String(20), nullable=False, default="active"),
    Column("created_at", UTCDateTime, nullable=False, default=utcnow),
    Column("updated_at", UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow),
    CheckConstraint("status IN ('active', 'inactive')", name="staff_status_check"),
)

# Per-date overrides: whole-day or partial time-off, or a custom working window
staff_availability = Table(
    "staff_availability",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column(
        "organization_id",
        Uuid,
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("staff_id", Uuid, ForeignKey("staff.id", ondelete="CASCADE"), nullable=False),
    Column("date", UTCDateTime, nullable=False),
    Column("available", Boolean, nullable=False, default=False),
    Column("start_time", String(5), nullable=True),
    Column("end_time", String(5), nullable=True),
    Column("reason", Text, nullable=True),
    Column("status", String(20), nullable=False, default="approved"),
    Column("created_at", UTCDateTime, nullable=False, default=utcnow),
    CheckConstraint(
        "status IN ('pending', 'approved', 'rejected')",
        name="staff_availability_status_check",
    ),
    Index("idx_staff_availability_staff_date", "staff_id", "date"),
)

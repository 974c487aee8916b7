"""Organization and organization settings tables using SQLAlchemy Core."""

from uuid import uuid4

from sqlalchemy import JSON, Boolean, Column, ForeignKey, Integer, String, Table, Text, Uuid

from practice_scheduler.models.base import UTCDateTime, metadata, utcnow

# Tenant boundary; provisioning lives outside this service
organizations = Table(
    "organizations",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column("name", Text, nullable=False),
    Column("subdomain", String(100), nullable=True, unique=True),
    Column("created_at", UTCDateTime, nullable=False, default=utcnow),
)

organization_settings = Table(
    "organization_settings",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column(
        "organization_id",
        Uuid,
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    ),
    Column("timezone", String(64), nullable=False, default="America/New_York"),
    # {"monday": {"open": true, "start": "08:00", "end": "18:00"}, ...}
    Column("business_hours", JSON, nullable=False),
    Column("default_session_duration", Integer, nullable=False, default=60),
    Column("slot_interval", Integer, nullable=False, default=30),
    Column("late_cancel_window_hours", Integer, nullable=False, default=24),
    Column("require_booking_approval", Boolean, nullable=False, default=False),
    Column("hold_duration_minutes", Integer, nullable=False, default=10),
    Column("created_at", UTCDateTime, nullable=False, default=utcnow),
    Column("updated_at", UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow),
)

"""Rooms table model using SQLAlchemy Core."""

from uuid import uuid4

from sqlalchemy import JSON, CheckConstraint, Column, ForeignKey, String, Table, Text, Uuid

from practice_scheduler.models.base import UTCDateTime, metadata, utcnow

rooms = Table(
    "rooms",
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
    Column("capabilities", JSON, nullable=False, default=list),
    Column("status", String(20), nullable=False, default="active"),
    Column("created_at", UTCDateTime, nullable=False, default=utcnow),
    CheckConstraint("status IN ('active', 'inactive')", name="rooms_status_check"),
)

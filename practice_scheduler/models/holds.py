"""Appointment hold and resource lock tables using SQLAlchemy Core."""

from uuid import uuid4

from sqlalchemy import Column, ForeignKey, Index, Integer, String, Table, Uuid

from practice_scheduler.models.base import UTCDateTime, metadata, utcnow

appointment_holds = Table(
    "appointment_holds",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column(
        "organization_id",
        Uuid,
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("staff_id", Uuid, ForeignKey("staff.id", ondelete="CASCADE"), nullable=True),
    Column("room_id", Uuid, ForeignKey("rooms.id", ondelete="CASCADE"), nullable=True),
    Column("date", UTCDateTime, nullable=False),
    Column("start_time", String(5), nullable=False),
    Column("end_time", String(5), nullable=False),
    Column("expires_at", UTCDateTime, nullable=False),
    Column("released_at", UTCDateTime, nullable=True),
    Column("converted_to_session_id", Uuid, nullable=True),
    Column("created_by_user_id", Uuid, nullable=True),
    Column("created_at", UTCDateTime, nullable=False, default=utcnow),
    Index("idx_holds_staff_date", "staff_id", "date"),
    Index("idx_holds_room_date", "room_id", "date"),
    Index("idx_holds_expires_at", "expires_at"),
)

# One row per (organization, resource, local date). Writers upsert the rows they
# touch before re-checking conflicts, which serializes competing transactions.
resource_locks = Table(
    "resource_locks",
    metadata,
    Column("lock_key", String(200), primary_key=True),
    Column("version", Integer, nullable=False, default=0),
    Column("updated_at", UTCDateTime, nullable=False, default=utcnow),
)

"""Scheduling rules table model using SQLAlchemy Core."""

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

rules = Table(
    "rules",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column(
        "organization_id",
        Uuid,
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
    Column("category", String(32), nullable=False),
    Column("description", Text, nullable=False),
    Column("rule_logic", JSON, nullable=False, default=dict),
    # Evaluation order only; lower runs first
    Column("priority", Integer, nullable=False, default=1),
    Column("is_active", Boolean, nullable=False, default=True),
    Column("review_status", String(20), nullable=False, default="ok"),
    Column("review_issues", JSON, nullable=True),
    Column("reviewed_at", UTCDateTime, nullable=True),
    Column("created_by_id", Uuid, nullable=True),
    Column("created_at", UTCDateTime, nullable=False, default=utcnow),
    Column("updated_at", UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow),
    CheckConstraint(
        "category IN ('gender_pairing', 'session', 'availability', "
        "'specific_pairing', 'certification')",
        name="rules_category_check",
    ),
    CheckConstraint("review_status IN ('ok', 'needs_review')", name="rules_review_status_check"),
)

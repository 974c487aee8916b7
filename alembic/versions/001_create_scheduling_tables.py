"""Create scheduling tables

Revision ID: 001
Revises:
Create Date: 2026-10-18

"""

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def _id_column() -> sa.Column:
    return sa.Column(
        "id",
        postgresql.UUID(as_uuid=True),
        server_default=sa.text("gen_random_uuid()"),
        nullable=False,
    )


def _timestamp(name: str, nullable: bool = False) -> sa.Column:
    if nullable:
        return sa.Column(name, sa.DateTime(timezone=True), nullable=True)
    return sa.Column(
        name, sa.DateTime(timezone=True), server_default=sa.text("NOW()"), nullable=False
    )


def _org_column() -> sa.Column:
    return sa.Column(
        "organization_id",
        postgresql.UUID(as_uuid=True),
        sa.ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
    )


def _json_list(name: str) -> sa.Column:
    return sa.Column(
        name,
        postgresql.JSON(astext_type=sa.Text()),
        server_default=sa.text("'[]'::json"),
        nullable=False,
    )


def upgrade() -> None:
    """Create organization, directory, schedule, session and hold tables."""
    op.execute('CREATE EXTENSION IF NOT EXISTS "pgcrypto"')

    op.create_table(
        "organizations",
        _id_column(),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("subdomain", sa.String(length=100), nullable=True),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("subdomain"),
    )

    op.create_table(
        "organization_settings",
        _id_column(),
        _org_column(),
        sa.Column(
            "timezone",
            sa.String(length=64),
            server_default=sa.text("'America/New_York'"),
            nullable=False,
        ),
        sa.Column("business_hours", postgresql.JSON(astext_type=sa.Text()), nullable=False),
        sa.Column("default_session_duration", sa.Integer(), server_default=sa.text("60"), nullable=False),
        sa.Column("slot_interval", sa.Integer(), server_default=sa.text("30"), nullable=False),
        sa.Column("late_cancel_window_hours", sa.Integer(), server_default=sa.text("24"), nullable=False),
        sa.Column(
            "require_booking_approval", sa.Boolean(), server_default=sa.text("false"), nullable=False
        ),
        sa.Column("hold_duration_minutes", sa.Integer(), server_default=sa.text("10"), nullable=False),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("organization_id"),
    )

    op.create_table(
        "rooms",
        _id_column(),
        _org_column(),
        sa.Column("name", sa.Text(), nullable=False),
        _json_list("capabilities"),
        sa.Column("status", sa.String(length=20), server_default=sa.text("'active'"), nullable=False),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("status IN ('active', 'inactive')", name="rooms_status_check"),
    )
    op.create_index("ix_rooms_organization_id", "rooms", ["organization_id"])

    op.create_table(
        "staff",
        _id_column(),
        _org_column(),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("gender", sa.String(length=20), nullable=True),
        _json_list("certifications"),
        sa.Column(
            "default_hours",
            postgresql.JSON(astext_type=sa.Text()),
            server_default=sa.text("'{}'::json"),
            nullable=False,
        ),
        sa.Column("status", sa.String(length=20), server_default=sa.text("'active'"), nullable=False),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("status IN ('active', 'inactive')", name="staff_status_check"),
    )
    op.create_index("ix_staff_organization_id", "staff", ["organization_id"])

    op.create_table(
        "staff_availability",
        _id_column(),
        _org_column(),
        sa.Column(
            "staff_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("staff.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("available", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("start_time", sa.String(length=5), nullable=True),
        sa.Column("end_time", sa.String(length=5), nullable=True),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=20), server_default=sa.text("'approved'"), nullable=False),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')",
            name="staff_availability_status_check",
        ),
    )
    op.create_index("idx_staff_availability_staff_date", "staff_availability", ["staff_id", "date"])

    op.create_table(
        "patients",
        _id_column(),
        _org_column(),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("identifier", sa.String(length=100), nullable=True),
        sa.Column("gender", sa.String(length=20), nullable=True),
        sa.Column("preferred_gender", sa.String(length=20), nullable=True),
        sa.Column("session_frequency", sa.Integer(), server_default=sa.text("1"), nullable=False),
        _json_list("preferred_times"),
        _json_list("required_certifications"),
        _json_list("required_room_capabilities"),
        sa.Column(
            "preferred_room_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("rooms.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=20), server_default=sa.text("'active'"), nullable=False),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("status IN ('active', 'inactive')", name="patients_status_check"),
    )
    op.create_index("ix_patients_organization_id", "patients", ["organization_id"])

    op.create_table(
        "patient_session_specs",
        _id_column(),
        sa.Column(
            "patient_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("patients.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("sessions_per_week", sa.Integer(), server_default=sa.text("1"), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=True),
        _json_list("preferred_times"),
        _json_list("required_certifications"),
        _json_list("required_room_capabilities"),
        sa.Column(
            "preferred_room_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("rooms.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_patient_session_specs_patient_id", "patient_session_specs", ["patient_id"])

    op.create_table(
        "rules",
        _id_column(),
        _org_column(),
        sa.Column("category", sa.String(length=32), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column(
            "rule_logic",
            postgresql.JSON(astext_type=sa.Text()),
            server_default=sa.text("'{}'::json"),
            nullable=False,
        ),
        sa.Column("priority", sa.Integer(), server_default=sa.text("1"), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column("review_status", sa.String(length=20), server_default=sa.text("'ok'"), nullable=False),
        sa.Column("review_issues", postgresql.JSON(astext_type=sa.Text()), nullable=True),
        _timestamp("reviewed_at", nullable=True),
        sa.Column("created_by_id", postgresql.UUID(as_uuid=True), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "category IN ('gender_pairing', 'session', 'availability', "
            "'specific_pairing', 'certification')",
            name="rules_category_check",
        ),
        sa.CheckConstraint("review_status IN ('ok', 'needs_review')", name="rules_review_status_check"),
    )
    op.create_index("ix_rules_organization_id", "rules", ["organization_id"])

    op.create_table(
        "schedules",
        _id_column(),
        _org_column(),
        sa.Column("week_start_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", sa.String(length=20), server_default=sa.text("'draft'"), nullable=False),
        sa.Column("version", sa.Integer(), server_default=sa.text("1"), nullable=False),
        sa.Column(
            "source_schedule_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("schedules.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("created_by_id", postgresql.UUID(as_uuid=True), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        _timestamp("published_at", nullable=True),
        _timestamp("archived_at", nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "status IN ('draft', 'published', 'archived')", name="schedules_status_check"
        ),
        sa.UniqueConstraint(
            "organization_id", "week_start_date", "version", name="uq_schedules_org_week_version"
        ),
    )
    op.create_index("idx_schedules_org_week", "schedules", ["organization_id", "week_start_date"])

    op.create_table(
        "sessions",
        _id_column(),
        sa.Column(
            "schedule_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("schedules.id", ondelete="CASCADE"),
            nullable=False,
        ),
        _org_column(),
        sa.Column(
            "staff_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("staff.id"), nullable=False
        ),
        sa.Column(
            "patient_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("patients.id"), nullable=False
        ),
        sa.Column(
            "room_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("rooms.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "session_spec_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("patient_session_specs.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("start_time", sa.String(length=5), nullable=False),
        sa.Column("end_time", sa.String(length=5), nullable=False),
        sa.Column("status", sa.String(length=20), server_default=sa.text("'scheduled'"), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("booked_via", sa.String(length=20), server_default=sa.text("'admin'"), nullable=False),
        sa.Column("booked_by_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column(
            "rescheduled_from_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("sessions.id", ondelete="SET NULL"),
            nullable=True,
        ),
        _timestamp("status_updated_at", nullable=True),
        sa.Column("status_updated_by_id", postgresql.UUID(as_uuid=True), nullable=True),
        _timestamp("confirmed_at", nullable=True),
        sa.Column("confirmed_by_id", postgresql.UUID(as_uuid=True), nullable=True),
        _timestamp("checked_in_at", nullable=True),
        _timestamp("actual_start_time", nullable=True),
        _timestamp("actual_end_time", nullable=True),
        _timestamp("cancelled_at", nullable=True),
        sa.Column("cancelled_by_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("cancellation_reason", sa.String(length=32), nullable=True),
        sa.Column("cancellation_notes", sa.Text(), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "status IN ('pending', 'scheduled', 'confirmed', 'checked_in', 'in_progress', "
            "'completed', 'cancelled', 'late_cancel', 'no_show')",
            name="sessions_status_check",
        ),
        sa.CheckConstraint(
            "booked_via IN ('admin', 'staff', 'portal', 'ai_voice', 'api')",
            name="sessions_booked_via_check",
        ),
    )
    op.create_index("ix_sessions_schedule_id", "sessions", ["schedule_id"])
    op.create_index("idx_sessions_staff_date", "sessions", ["staff_id", "date"])
    op.create_index("idx_sessions_patient_date", "sessions", ["patient_id", "date"])
    op.create_index("idx_sessions_room_date", "sessions", ["room_id", "date"])

    op.create_table(
        "appointment_holds",
        _id_column(),
        _org_column(),
        sa.Column(
            "staff_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("staff.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column(
            "room_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("rooms.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("start_time", sa.String(length=5), nullable=False),
        sa.Column("end_time", sa.String(length=5), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        _timestamp("released_at", nullable=True),
        sa.Column("converted_to_session_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("created_by_user_id", postgresql.UUID(as_uuid=True), nullable=True),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_holds_staff_date", "appointment_holds", ["staff_id", "date"])
    op.create_index("idx_holds_room_date", "appointment_holds", ["room_id", "date"])
    op.create_index("idx_holds_expires_at", "appointment_holds", ["expires_at"])

    op.create_table(
        "resource_locks",
        sa.Column("lock_key", sa.String(length=200), nullable=False),
        sa.Column("version", sa.Integer(), server_default=sa.text("0"), nullable=False),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("lock_key"),
    )


def downgrade() -> None:
    """Drop all scheduling tables."""
    op.drop_table("resource_locks")
    op.drop_table("appointment_holds")
    op.drop_table("sessions")
    op.drop_table("schedules")
    op.drop_table("rules")
    op.drop_table("patient_session_specs")
    op.drop_table("patients")
    op.drop_table("staff_availability")
    op.drop_table("staff")
    op.drop_table("rooms")
    op.drop_table("organization_settings")
    op.drop_table("organizations")

"""Session schemas for request/response validation."""

from datetime import date, datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from practice_scheduler.schemas.organizations import check_time_range


class SessionStatus(str, Enum):
    """Session status enumeration."""

    PENDING = "pending"
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    CHECKED_IN = "checked_in"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    LATE_CANCEL = "late_cancel"
    NO_SHOW = "no_show"


class CancellationReason(str, Enum):
    """Cancellation reason enumeration."""

    PATIENT_REQUEST = "patient_request"
    CAREGIVER_REQUEST = "caregiver_request"
    THERAPIST_UNAVAILABLE = "therapist_unavailable"
    WEATHER = "weather"
    ILLNESS = "illness"
    SCHEDULING_CONFLICT = "scheduling_conflict"
    RESCHEDULED = "rescheduled"
    OTHER = "other"


class BookingSource(str, Enum):
    """Channel a session was booked through."""

    ADMIN = "admin"
    STAFF = "staff"
    PORTAL = "portal"
    AI_VOICE = "ai_voice"
    API = "api"


class SessionResponse(BaseModel):
    """Schema for session response."""

    id: UUID
    schedule_id: UUID
    organization_id: UUID
    staff_id: UUID
    patient_id: UUID
    room_id: UUID | None = None
    session_spec_id: UUID | None = None
    date: date
    start_time: str
    end_time: str
    status: SessionStatus
    notes: str | None = None
    booked_via: BookingSource
    rescheduled_from_id: UUID | None = None
    status_updated_at: datetime | None = None
    confirmed_at: datetime | None = None
    checked_in_at: datetime | None = None
    actual_start_time: datetime | None = None
    actual_end_time: datetime | None = None
    cancelled_at: datetime | None = None
    cancellation_reason: CancellationReason | None = None
    cancellation_notes: str | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class SessionListResponse(BaseModel):
    """Schema for paginated session list response."""

    total: int
    page: int
    page_size: int
    items: list[SessionResponse]


class SessionFilters(BaseModel):
    """Filter and pagination parameters for listing sessions."""

    schedule_id: UUID | None = None
    staff_id: UUID | None = None
    patient_id: UUID | None = None
    statuses: list[SessionStatus] | None = None
    date_from: date | None = None
    date_to: date | None = None
    page: int = Field(1, ge=1)
    page_size: int = Field(50, ge=1, le=200)


class SessionStatusUpdate(BaseModel):
    """Schema for a status change request."""

    status: SessionStatus
    cancellation_reason: CancellationReason | None = None
    notes: str | None = Field(None, max_length=1000)


class CancelRequest(BaseModel):
    """Schema for cancelling a session."""

    reason: CancellationReason
    notes: str | None = Field(None, max_length=1000)
    late: bool = Field(False, description="Record as a late cancellation even outside the window")


class RescheduleRequest(BaseModel):
    """Schema for moving a session to a new slot."""

    date: date
    start_time: str
    end_time: str
    staff_id: UUID | None = None
    room_id: UUID | None = None
    notes: str | None = Field(None, max_length=1000)

    @model_validator(mode="after")
    def validate_range(self) -> "RescheduleRequest":
        """Validate end time is after start time."""
        check_time_range(self.start_time, self.end_time)
        return self


class StatusCounts(BaseModel):
    """Session counts per status for one schedule."""

    schedule_id: UUID
    total: int
    counts: dict[SessionStatus, int]

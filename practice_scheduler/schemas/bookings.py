"""Booking schemas for request/response validation."""

from datetime import date
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from practice_scheduler.schemas.holds import HoldErrorCode
from practice_scheduler.schemas.organizations import check_time_range
from practice_scheduler.schemas.sessions import BookingSource


class BookFromHoldRequest(BaseModel):
    """Schema for converting a hold into a session."""

    hold_id: UUID
    patient_id: UUID
    schedule_id: UUID | None = None
    notes: str | None = Field(None, max_length=1000)
    booked_via: BookingSource = BookingSource.PORTAL


class BookDirectRequest(BaseModel):
    """Schema for booking a session without a hold."""

    staff_id: UUID
    patient_id: UUID
    room_id: UUID | None = None
    schedule_id: UUID | None = None
    date: date
    start_time: str
    end_time: str
    notes: str | None = Field(None, max_length=1000)
    booked_via: BookingSource = BookingSource.ADMIN

    @model_validator(mode="after")
    def validate_range(self) -> "BookDirectRequest":
        """Validate end time is after start time."""
        check_time_range(self.start_time, self.end_time)
        return self


class BookingResult(BaseModel):
    """Outcome of a booking attempt."""

    success: bool
    session_id: UUID | None = None
    schedule_id: UUID | None = None
    error: str | None = None
    error_code: HoldErrorCode | None = None
    conflict: dict[str, Any] | None = None

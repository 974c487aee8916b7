"""Appointment hold schemas for request/response validation."""

from datetime import date, datetime
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from practice_scheduler.schemas.organizations import check_time_range


class HoldErrorCode(str, Enum):
    """Why a hold or booking operation did not succeed."""

    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    CONSUMED = "consumed"
    VALIDATION = "validation"


class HoldCreate(BaseModel):
    """Schema for creating a hold."""

    staff_id: UUID | None = None
    room_id: UUID | None = None
    date: date
    start_time: str
    end_time: str
    hold_duration_minutes: int | None = Field(None, ge=1)

    @model_validator(mode="after")
    def validate_hold(self) -> "HoldCreate":
        """Validate the time range and that a resource is targeted."""
        check_time_range(self.start_time, self.end_time)
        if self.staff_id is None and self.room_id is None:
            raise ValueError("A hold must target a staff member or a room")
        return self


class HoldExtend(BaseModel):
    """Schema for extending a hold."""

    additional_minutes: int | None = Field(None, ge=1, le=60)


class HoldResponse(BaseModel):
    """Schema for hold response."""

    id: UUID
    organization_id: UUID
    staff_id: UUID | None = None
    room_id: UUID | None = None
    date: date
    start_time: str
    end_time: str
    expires_at: datetime
    released_at: datetime | None = None
    converted_to_session_id: UUID | None = None
    created_by_user_id: UUID | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class HoldResult(BaseModel):
    """Outcome of a create or extend operation."""

    success: bool
    hold: HoldResponse | None = None
    error: str | None = None
    error_code: HoldErrorCode | None = None
    conflict: dict[str, Any] | None = None


class HoldReleaseResponse(BaseModel):
    """Outcome of a release operation."""

    released: bool


class HoldCleanupResponse(BaseModel):
    """Outcome of an expired-hold sweep."""

    removed: int

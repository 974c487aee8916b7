"""Schedule schemas for request/response validation."""

import datetime as dt
from datetime import date, datetime
from enum import Enum
from typing import Annotated, Literal
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from practice_scheduler.schemas.organizations import check_time_range
from practice_scheduler.schemas.sessions import SessionResponse


class ScheduleStatus(str, Enum):
    """Schedule status enumeration."""

    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


class SessionDraft(BaseModel):
    """A candidate session: the assignment fields a schedule is made of."""

    id: UUID | None = None
    staff_id: UUID
    patient_id: UUID
    room_id: UUID | None = None
    session_spec_id: UUID | None = None
    date: date
    start_time: str
    end_time: str
    notes: str | None = None

    @model_validator(mode="after")
    def validate_range(self) -> "SessionDraft":
        """Validate end time is after start time."""
        check_time_range(self.start_time, self.end_time)
        return self

    def assignment(self) -> dict:
        """Fields that define where and with whom the session happens."""
        return self.model_dump(exclude={"id"}, mode="json")


class ScheduleResponse(BaseModel):
    """Schema for schedule response."""

    id: UUID
    organization_id: UUID
    week_start_date: date
    status: ScheduleStatus
    version: int
    source_schedule_id: UUID | None = None
    created_by_id: UUID | None = None
    created_at: datetime
    published_at: datetime | None = None
    archived_at: datetime | None = None

    model_config = {"from_attributes": True}


class ScheduleDetailResponse(ScheduleResponse):
    """Schema for schedule response including its sessions."""

    sessions: list[SessionResponse]


class ScheduleListResponse(BaseModel):
    """Schema for schedule list response."""

    items: list[ScheduleResponse]


class GenerateScheduleRequest(BaseModel):
    """Schema for requesting AI-assisted generation of a week."""

    week_start_date: date


class GenerationStats(BaseModel):
    """Summary of a generated schedule."""

    total_sessions: int
    patients_scheduled: int
    therapists_used: int
    rejected_sessions: int


class GenerationResponse(BaseModel):
    """Schema for schedule generation response."""

    schedule: ScheduleResponse
    stats: GenerationStats
    warnings: list[str]


class SessionModification(BaseModel):
    """A session that was reassigned while copying."""

    session_id: UUID | None = None
    before: SessionDraft
    after: SessionDraft
    reasons: list[str]


class RemovedSession(BaseModel):
    """A session dropped while copying because no valid reassignment existed."""

    session_id: UUID | None = None
    session: SessionDraft
    reasons: list[str]


class CopyModifications(BaseModel):
    """All changes made to sessions while copying."""

    regenerated: list[SessionModification] = Field(default_factory=list)
    removed: list[RemovedSession] = Field(default_factory=list)


class CopyValidationResult(BaseModel):
    """Outcome of re-validating a schedule's sessions against current rules."""

    valid_sessions: list[SessionDraft]
    modifications: CopyModifications
    warnings: list[str]


class ValidatedCopy(BaseModel):
    """The copy was re-validated against the current rules."""

    kind: Literal["validated"] = "validated"
    modifications: CopyModifications
    warnings: list[str]


class SkippedValidation(BaseModel):
    """Rule evaluation failed; the copy is unvalidated."""

    kind: Literal["skipped"] = "skipped"
    reason: str


CopyValidation = Annotated[ValidatedCopy | SkippedValidation, Field(discriminator="kind")]


class DraftCopyResponse(BaseModel):
    """Schema for draft copy response."""

    schedule: ScheduleResponse
    validation: CopyValidation | None = None


class ScheduleSessionUpdate(BaseModel):
    """Schema for editing a session inside a draft schedule."""

    staff_id: UUID | None = None
    patient_id: UUID | None = None
    room_id: UUID | None = None
    date: dt.date | None = None
    start_time: str | None = None
    end_time: str | None = None
    notes: str | None = Field(None, max_length=1000)

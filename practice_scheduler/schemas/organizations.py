"""Organization settings and directory schemas.

These are the collaborator reads the scheduling core depends on. Services
load them once per request and pass them explicitly into every operation.
"""

from datetime import date, datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator

from practice_scheduler.core.exceptions import ValidationException
from practice_scheduler.scheduling.timeslots import WEEKDAYS, get_zone, validate_time_range


def check_time_range(start: str, end: str) -> None:
    """Validate an HH:mm range inside a pydantic validator."""
    try:
        validate_time_range(start, end)
    except ValidationException as e:
        raise ValueError(e.message) from e


class Gender(str, Enum):
    """Gender enumeration for pairing rules."""

    MALE = "male"
    FEMALE = "female"
    OTHER = "other"


class ResourceStatus(str, Enum):
    """Staff, patient and room status enumeration."""

    ACTIVE = "active"
    INACTIVE = "inactive"


class BusinessDay(BaseModel):
    """Opening hours for one weekday."""

    open: bool = False
    start: str = "08:00"
    end: str = "18:00"

    @model_validator(mode="after")
    def validate_range(self) -> "BusinessDay":
        """Validate the opening window when the day is open."""
        if self.open:
            check_time_range(self.start, self.end)
        return self


def default_business_hours() -> dict[str, BusinessDay]:
    """Monday to Friday 08:00-18:00, closed at weekends."""
    return {
        day: BusinessDay(open=day not in ("saturday", "sunday"), start="08:00", end="18:00")
        for day in WEEKDAYS
    }


class OrganizationSettings(BaseModel):
    """Scheduling settings of one organization."""

    organization_id: UUID | None = None
    timezone: str = "America/New_York"
    business_hours: dict[str, BusinessDay] = Field(default_factory=default_business_hours)
    default_session_duration: int = Field(60, ge=5, le=480)
    slot_interval: int = Field(30, ge=5, le=240)
    late_cancel_window_hours: int = Field(24, ge=0, le=24 * 14)
    require_booking_approval: bool = False
    hold_duration_minutes: int = Field(10, ge=1, le=240)

    model_config = {"from_attributes": True}

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """Validate the timezone is a known IANA name."""
        try:
            get_zone(v)
        except ValidationException as e:
            raise ValueError(e.message) from e
        return v

    @field_validator("business_hours")
    @classmethod
    def fill_missing_days(cls, v: dict[str, BusinessDay]) -> dict[str, BusinessDay]:
        """Treat weekdays missing from the payload as closed."""
        unknown = set(v) - set(WEEKDAYS)
        if unknown:
            raise ValueError(f"Unknown weekdays in business hours: {sorted(unknown)}")
        return {day: v.get(day, BusinessDay(open=False)) for day in WEEKDAYS}

    def business_day(self, weekday: str) -> BusinessDay | None:
        """Opening hours for a weekday, or None when closed."""
        hours = self.business_hours.get(weekday)
        if hours is None or not hours.open:
            return None
        return hours


class WorkingHours(BaseModel):
    """A staff member's working window on one weekday."""

    start: str
    end: str

    @model_validator(mode="after")
    def validate_range(self) -> "WorkingHours":
        """Validate end is after start."""
        check_time_range(self.start, self.end)
        return self


class StaffMember(BaseModel):
    """Schedulable staff member as read from the directory."""

    id: UUID
    name: str
    gender: Gender | None = None
    certifications: list[str] = Field(default_factory=list)
    default_hours: dict[str, WorkingHours | None] = Field(default_factory=dict)
    status: ResourceStatus = ResourceStatus.ACTIVE

    model_config = {"from_attributes": True}

    @property
    def is_active(self) -> bool:
        return self.status == ResourceStatus.ACTIVE


class SessionSpecRecord(BaseModel):
    """A patient's named recurring session need."""

    id: UUID
    patient_id: UUID
    name: str
    sessions_per_week: int = 1
    duration_minutes: int | None = None
    preferred_times: list[str] = Field(default_factory=list)
    required_certifications: list[str] = Field(default_factory=list)
    required_room_capabilities: list[str] = Field(default_factory=list)
    preferred_room_id: UUID | None = None

    model_config = {"from_attributes": True}


class PatientRecord(BaseModel):
    """Patient as read from the directory, with their active session specs."""

    id: UUID
    name: str
    identifier: str | None = None
    gender: Gender | None = None
    preferred_gender: Gender | None = None
    session_frequency: int = 1
    preferred_times: list[str] = Field(default_factory=list)
    required_certifications: list[str] = Field(default_factory=list)
    required_room_capabilities: list[str] = Field(default_factory=list)
    preferred_room_id: UUID | None = None
    status: ResourceStatus = ResourceStatus.ACTIVE
    session_specs: list[SessionSpecRecord] = Field(default_factory=list)

    model_config = {"from_attributes": True}

    def session_spec(self, spec_id: UUID) -> SessionSpecRecord | None:
        return next((spec for spec in self.session_specs if spec.id == spec_id), None)

    @property
    def weekly_target(self) -> int:
        """Sessions per week: the sum over specs, else the session frequency."""
        if self.session_specs:
            return sum(spec.sessions_per_week for spec in self.session_specs)
        return self.session_frequency


class RoomRecord(BaseModel):
    """Room as read from the directory."""

    id: UUID
    name: str
    capabilities: list[str] = Field(default_factory=list)
    status: ResourceStatus = ResourceStatus.ACTIVE

    model_config = {"from_attributes": True}

    def has_capabilities(self, required: list[str]) -> bool:
        return all(cap in self.capabilities for cap in required)


class RuleRecord(BaseModel):
    """Organization rule as read from the directory; logic is parsed lazily."""

    id: UUID
    category: str
    description: str
    rule_logic: dict = Field(default_factory=dict)
    priority: int = 1
    is_active: bool = True
    review_status: str = "ok"
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class TimeOff(BaseModel):
    """Approved staff availability override for one local date.

    ``available=False`` without times blocks the whole day, with times it
    blocks that window. ``available=True`` with times replaces the default
    working hours for the day.
    """

    staff_id: UUID
    date: date
    available: bool = False
    start_time: str | None = None
    end_time: str | None = None
    reason: str | None = None

    @model_validator(mode="after")
    def validate_times(self) -> "TimeOff":
        """Validate that times come in pairs and form a range."""
        if (self.start_time is None) != (self.end_time is None):
            raise ValueError("start_time and end_time must be provided together")
        if self.start_time and self.end_time:
            check_time_range(self.start_time, self.end_time)
        return self

    @property
    def is_whole_day(self) -> bool:
        return not self.available and self.start_time is None

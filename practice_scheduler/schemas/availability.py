"""Availability schemas for request/response validation."""

from datetime import date, datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel


class AvailableSlot(BaseModel):
    """A bookable (staff, date, time range) candidate."""

    staff_id: UUID
    staff_name: str
    room_id: UUID | None = None
    room_name: str | None = None
    date: date
    start_time: str
    end_time: str
    start_at: datetime


class AvailableSlotsResponse(BaseModel):
    """Schema for slot search response."""

    slots: list[AvailableSlot]


class TimeWindow(BaseModel):
    """A wall-clock window on one day."""

    start_time: str
    end_time: str


class BusyInterval(TimeWindow):
    """An occupied window and what occupies it."""

    kind: Literal["session", "hold", "time_off"]
    source_id: UUID | None = None


class StaffDayAvailability(BaseModel):
    """Free/busy breakdown for one staff member on one day."""

    staff_id: UUID
    staff_name: str
    date: date
    available: bool
    reason: str | None = None
    working_hours: TimeWindow | None = None
    busy: list[BusyInterval]
    free: list[TimeWindow]


class SlotCheckResponse(BaseModel):
    """Schema for single-slot availability check."""

    available: bool
    reason: str | None = None
    conflict: dict[str, Any] | None = None

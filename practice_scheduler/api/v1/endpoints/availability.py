"""Availability endpoints."""

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Query, status

from practice_scheduler.core.exceptions import NotFoundException
from practice_scheduler.dependencies import DatabaseSession, OrgSettings, TenantContext
from practice_scheduler.schemas.availability import (
    AvailableSlotsResponse,
    SlotCheckResponse,
    StaffDayAvailability,
)
from practice_scheduler.services.availability_service import AvailabilityService

router = APIRouter()


@router.get(
    "/slots",
    response_model=AvailableSlotsResponse,
    status_code=status.HTTP_200_OK,
    summary="Find bookable slots",
)
async def get_available_slots(
    tenant: TenantContext,
    org_settings: OrgSettings,
    db: DatabaseSession,
    date_from: date = Query(...),
    date_to: date = Query(...),
    duration_minutes: int | None = Query(None, ge=5, le=480),
    staff_id: UUID | None = Query(None),
    room_id: UUID | None = Query(None),
    patient_id: UUID | None = Query(None),
) -> AvailableSlotsResponse:
    """
    Find bookable slots across a date range of at most 30 days.

    Args:
        tenant: Caller's organization and user
        org_settings: Organization settings
        db: Database session
        date_from: First local date, inclusive
        date_to: Last local date, inclusive
        duration_minutes: Slot length, defaults to the organization's session duration
        staff_id: Only this staff member
        room_id: Room that must also be free
        patient_id: Patient who must also be free

    Returns:
        Slots sorted by date, time and staff name
    """
    service = AvailabilityService(db)
    return await service.get_available_slots(
        org_settings,
        tenant.organization_id,
        date_from,
        date_to,
        duration_minutes=duration_minutes,
        staff_id=staff_id,
        room_id=room_id,
        patient_id=patient_id,
    )


@router.get(
    "/staff/{staff_id}",
    response_model=StaffDayAvailability,
    status_code=status.HTTP_200_OK,
    summary="Staff member's free/busy breakdown for a day",
)
async def get_staff_day_availability(
    staff_id: UUID,
    tenant: TenantContext,
    org_settings: OrgSettings,
    db: DatabaseSession,
    day: date = Query(..., alias="date"),
) -> StaffDayAvailability:
    """Working hours, busy intervals and free windows of one staff member."""
    service = AvailabilityService(db)
    result = await service.get_staff_day_availability(
        org_settings, tenant.organization_id, staff_id, day
    )
    if result is None:
        raise NotFoundException("Staff member not found")
    return result


@router.get(
    "/check",
    response_model=SlotCheckResponse,
    status_code=status.HTTP_200_OK,
    summary="Check a single slot",
)
async def check_slot(
    tenant: TenantContext,
    org_settings: OrgSettings,
    db: DatabaseSession,
    staff_id: UUID = Query(...),
    day: date = Query(..., alias="date"),
    start_time: str = Query(..., pattern=r"^\d{2}:\d{2}$"),
    end_time: str = Query(..., pattern=r"^\d{2}:\d{2}$"),
    room_id: UUID | None = Query(None),
    exclude_session_id: UUID | None = Query(None),
) -> SlotCheckResponse:
    """Check whether a staff member, and optionally a room, is free for a slot."""
    service = AvailabilityService(db)
    return await service.is_slot_available(
        org_settings,
        tenant.organization_id,
        staff_id,
        day,
        start_time,
        end_time,
        exclude_session_id=exclude_session_id,
        room_id=room_id,
    )

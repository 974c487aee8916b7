"""Appointment hold endpoints."""

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse

from practice_scheduler.core.exceptions import NotFoundException
from practice_scheduler.dependencies import (
    DatabaseSession,
    OrgSettings,
    TenantContext,
    enforce_hold_rate_limit,
)
from practice_scheduler.schemas.bookings import BookingResult
from practice_scheduler.schemas.holds import (
    HoldCleanupResponse,
    HoldCreate,
    HoldErrorCode,
    HoldExtend,
    HoldReleaseResponse,
    HoldResponse,
    HoldResult,
)
from practice_scheduler.services.hold_service import HoldService

router = APIRouter()

ERROR_STATUS = {
    HoldErrorCode.CONFLICT: status.HTTP_409_CONFLICT,
    HoldErrorCode.EXPIRED: status.HTTP_409_CONFLICT,
    HoldErrorCode.CONSUMED: status.HTTP_409_CONFLICT,
    HoldErrorCode.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    HoldErrorCode.VALIDATION: status.HTTP_422_UNPROCESSABLE_ENTITY,
}


def result_response(result: HoldResult | BookingResult, success_status: int) -> JSONResponse:
    """Send a hold or booking result with a status matching its outcome."""
    if result.success:
        status_code = success_status
    else:
        status_code = ERROR_STATUS.get(result.error_code, status.HTTP_409_CONFLICT)
    return JSONResponse(status_code=status_code, content=result.model_dump(mode="json"))


@router.post(
    "",
    response_model=HoldResult,
    status_code=status.HTTP_201_CREATED,
    summary="Hold a slot",
    dependencies=[Depends(enforce_hold_rate_limit)],
    responses={409: {"model": HoldResult}, 404: {"model": HoldResult}, 422: {"model": HoldResult}},
)
async def create_hold(
    data: HoldCreate,
    tenant: TenantContext,
    org_settings: OrgSettings,
    db: DatabaseSession,
) -> JSONResponse:
    """
    Reserve a slot for a staff member and/or room until the hold expires.

    Args:
        data: Hold request
        tenant: Caller's organization and user
        org_settings: Organization settings
        db: Database session

    Returns:
        The created hold, or the reason it could not be created
    """
    service = HoldService(db)
    result = await service.create_hold(org_settings, tenant.organization_id, data, tenant.user_id)
    return result_response(result, status.HTTP_201_CREATED)


@router.get(
    "",
    response_model=list[HoldResponse],
    status_code=status.HTTP_200_OK,
    summary="List active holds",
)
async def list_active_holds(
    tenant: TenantContext,
    org_settings: OrgSettings,
    db: DatabaseSession,
    date_from: date | None = Query(None),
    date_to: date | None = Query(None),
) -> list[HoldResponse]:
    """List the organization's active holds."""
    service = HoldService(db)
    return await service.get_active_holds(org_settings, tenant.organization_id, date_from, date_to)


@router.post(
    "/cleanup",
    response_model=HoldCleanupResponse,
    status_code=status.HTTP_200_OK,
    summary="Delete expired holds",
)
async def cleanup_expired_holds(tenant: TenantContext, db: DatabaseSession) -> HoldCleanupResponse:
    """Delete expired, unconverted holds. Safe to call repeatedly."""
    service = HoldService(db)
    return HoldCleanupResponse(removed=await service.cleanup_expired_holds())


@router.get(
    "/{hold_id}",
    response_model=HoldResponse,
    status_code=status.HTTP_200_OK,
    summary="Get hold",
)
async def get_hold(
    hold_id: UUID,
    tenant: TenantContext,
    org_settings: OrgSettings,
    db: DatabaseSession,
) -> HoldResponse:
    """Get a hold by ID, whatever its state."""
    service = HoldService(db)
    hold = await service.get_hold(org_settings, hold_id, tenant.organization_id)
    if hold is None:
        raise NotFoundException("Hold not found")
    return hold


@router.post(
    "/{hold_id}/extend",
    response_model=HoldResult,
    status_code=status.HTTP_200_OK,
    summary="Extend hold",
    responses={409: {"model": HoldResult}, 404: {"model": HoldResult}},
)
async def extend_hold(
    hold_id: UUID,
    tenant: TenantContext,
    org_settings: OrgSettings,
    db: DatabaseSession,
    data: HoldExtend | None = None,
) -> JSONResponse:
    """Push an active hold's expiry further out."""
    service = HoldService(db)
    result = await service.extend_hold(
        org_settings,
        hold_id,
        additional_minutes=data.additional_minutes if data else None,
        organization_id=tenant.organization_id,
    )
    return result_response(result, status.HTTP_200_OK)


@router.delete(
    "/{hold_id}",
    response_model=HoldReleaseResponse,
    status_code=status.HTTP_200_OK,
    summary="Release hold",
)
async def release_hold(
    hold_id: UUID,
    tenant: TenantContext,
    db: DatabaseSession,
) -> HoldReleaseResponse:
    """
    Release an active hold.

    ``released`` is false when the hold was missing, expired, already
    released or already booked.
    """
    service = HoldService(db)
    released = await service.release_hold(hold_id, organization_id=tenant.organization_id)
    return HoldReleaseResponse(released=released)

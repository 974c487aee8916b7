"""Booking endpoints."""

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from practice_scheduler.api.v1.endpoints.holds import result_response
from practice_scheduler.dependencies import DatabaseSession, OrgSettings, TenantContext
from practice_scheduler.schemas.bookings import BookDirectRequest, BookFromHoldRequest, BookingResult
from practice_scheduler.services.booking_service import BookingService

router = APIRouter()

FAILURE_RESPONSES = {
    409: {"model": BookingResult},
    404: {"model": BookingResult},
    422: {"model": BookingResult},
}


@router.post(
    "/from-hold",
    response_model=BookingResult,
    status_code=status.HTTP_201_CREATED,
    summary="Book a session from a hold",
    responses=FAILURE_RESPONSES,
)
async def book_from_hold(
    data: BookFromHoldRequest,
    tenant: TenantContext,
    org_settings: OrgSettings,
    db: DatabaseSession,
) -> JSONResponse:
    """
    Convert an active hold into a session.

    A hold converts at most once; a second attempt reports ``consumed``.
    """
    service = BookingService(db)
    result = await service.book_from_hold(
        org_settings, tenant.organization_id, data, tenant.user_id
    )
    return result_response(result, status.HTTP_201_CREATED)


@router.post(
    "/direct",
    response_model=BookingResult,
    status_code=status.HTTP_201_CREATED,
    summary="Book a session without a hold",
    responses=FAILURE_RESPONSES,
)
async def book_direct(
    data: BookDirectRequest,
    tenant: TenantContext,
    org_settings: OrgSettings,
    db: DatabaseSession,
) -> JSONResponse:
    """Book a session directly, with the same conflict checks as a hold conversion."""
    service = BookingService(db)
    result = await service.book_direct(org_settings, tenant.organization_id, data, tenant.user_id)
    return result_response(result, status.HTTP_201_CREATED)

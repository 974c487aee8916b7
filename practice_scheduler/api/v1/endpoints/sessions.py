"""Session endpoints."""

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Query, status

from practice_scheduler.dependencies import DatabaseSession, OrgSettings, TenantContext
from practice_scheduler.schemas.sessions import (
    CancelRequest,
    RescheduleRequest,
    SessionFilters,
    SessionListResponse,
    SessionResponse,
    SessionStatus,
    SessionStatusUpdate,
)
from practice_scheduler.services.session_service import SessionService

router = APIRouter()


@router.get(
    "",
    response_model=SessionListResponse,
    status_code=status.HTTP_200_OK,
    summary="List sessions",
)
async def list_sessions(
    tenant: TenantContext,
    org_settings: OrgSettings,
    db: DatabaseSession,
    schedule_id: UUID | None = Query(None),
    staff_id: UUID | None = Query(None),
    patient_id: UUID | None = Query(None),
    statuses: list[SessionStatus] | None = Query(None, alias="status"),
    date_from: date | None = Query(None),
    date_to: date | None = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
) -> SessionListResponse:
    """
    List sessions with filtering.

    Args:
        tenant: Caller's organization and user
        org_settings: Organization settings
        db: Database session
        schedule_id: Filter by schedule
        staff_id: Filter by staff member
        patient_id: Filter by patient
        statuses: Filter by one or more statuses
        date_from: First local date, inclusive
        date_to: Last local date, inclusive
        page: Page number
        page_size: Items per page

    Returns:
        Paginated list of sessions
    """
    filters = SessionFilters(
        schedule_id=schedule_id,
        staff_id=staff_id,
        patient_id=patient_id,
        statuses=statuses,
        date_from=date_from,
        date_to=date_to,
        page=page,
        page_size=page_size,
    )
    service = SessionService(db)
    return await service.list_sessions(org_settings, tenant.organization_id, filters)


@router.get(
    "/by-status",
    response_model=list[SessionResponse],
    status_code=status.HTTP_200_OK,
    summary="Find sessions by status",
)
async def find_sessions_by_status(
    tenant: TenantContext,
    org_settings: OrgSettings,
    db: DatabaseSession,
    statuses: list[SessionStatus] = Query(..., alias="status", min_length=1),
    date_from: date | None = Query(None),
    date_to: date | None = Query(None),
) -> list[SessionResponse]:
    """Unpaginated sessions in any of the given statuses, e.g. pending approvals."""
    service = SessionService(db)
    return await service.find_by_status(
        org_settings, tenant.organization_id, statuses, date_from, date_to
    )


@router.get(
    "/{session_id}",
    response_model=SessionResponse,
    status_code=status.HTTP_200_OK,
    summary="Get session",
)
async def get_session(
    session_id: UUID,
    tenant: TenantContext,
    org_settings: OrgSettings,
    db: DatabaseSession,
) -> SessionResponse:
    """Get a session by ID."""
    service = SessionService(db)
    return await service.get_session(org_settings, tenant.organization_id, session_id)


@router.patch(
    "/{session_id}/status",
    response_model=SessionResponse,
    status_code=status.HTTP_200_OK,
    summary="Change session status",
)
async def update_session_status(
    session_id: UUID,
    data: SessionStatusUpdate,
    tenant: TenantContext,
    org_settings: OrgSettings,
    db: DatabaseSession,
) -> SessionResponse:
    """
    Move a session to a new status.

    Cancellations inside the late-cancel window are stored as
    ``late_cancel``.
    """
    service = SessionService(db)
    return await service.update_status(
        org_settings,
        tenant.organization_id,
        session_id,
        data.status,
        reason=data.cancellation_reason,
        notes=data.notes,
        user_id=tenant.user_id,
    )


@router.post("/{session_id}/confirm", response_model=SessionResponse, summary="Confirm session")
async def confirm_session(
    session_id: UUID,
    tenant: TenantContext,
    org_settings: OrgSettings,
    db: DatabaseSession,
) -> SessionResponse:
    """Confirm a scheduled session."""
    service = SessionService(db)
    return await service.confirm(org_settings, tenant.organization_id, session_id, tenant.user_id)


@router.post("/{session_id}/check-in", response_model=SessionResponse, summary="Check in")
async def check_in_session(
    session_id: UUID,
    tenant: TenantContext,
    org_settings: OrgSettings,
    db: DatabaseSession,
) -> SessionResponse:
    """Record the patient's arrival."""
    service = SessionService(db)
    return await service.check_in(org_settings, tenant.organization_id, session_id, tenant.user_id)


@router.post("/{session_id}/start", response_model=SessionResponse, summary="Start session")
async def start_session(
    session_id: UUID,
    tenant: TenantContext,
    org_settings: OrgSettings,
    db: DatabaseSession,
) -> SessionResponse:
    service = SessionService(db)
    return await service.start(org_settings, tenant.organization_id, session_id, tenant.user_id)


@router.post("/{session_id}/complete", response_model=SessionResponse, summary="Complete session")
async def complete_session(
    session_id: UUID,
    tenant: TenantContext,
    org_settings: OrgSettings,
    db: DatabaseSession,
) -> SessionResponse:
    service = SessionService(db)
    return await service.complete(org_settings, tenant.organization_id, session_id, tenant.user_id)


@router.post("/{session_id}/no-show", response_model=SessionResponse, summary="Mark no-show")
async def mark_no_show(
    session_id: UUID,
    tenant: TenantContext,
    org_settings: OrgSettings,
    db: DatabaseSession,
) -> SessionResponse:
    """Record that the patient did not attend."""
    service = SessionService(db)
    return await service.mark_no_show(
        org_settings, tenant.organization_id, session_id, tenant.user_id
    )


@router.post("/{session_id}/cancel", response_model=SessionResponse, summary="Cancel session")
async def cancel_session(
    session_id: UUID,
    data: CancelRequest,
    tenant: TenantContext,
    org_settings: OrgSettings,
    db: DatabaseSession,
) -> SessionResponse:
    """
    Cancel a session.

    Args:
        session_id: Session ID
        data: Reason, notes and whether to record a late cancellation
        tenant: Caller's organization and user
        org_settings: Organization settings
        db: Database session

    Returns:
        Cancelled session
    """
    service = SessionService(db)
    return await service.cancel(
        org_settings,
        tenant.organization_id,
        session_id,
        data.reason,
        notes=data.notes,
        late=data.late,
        user_id=tenant.user_id,
    )


@router.post(
    "/{session_id}/reschedule",
    response_model=SessionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Reschedule session",
)
async def reschedule_session(
    session_id: UUID,
    data: RescheduleRequest,
    tenant: TenantContext,
    org_settings: OrgSettings,
    db: DatabaseSession,
) -> SessionResponse:
    """Move a session to a new slot; returns the replacement session."""
    service = SessionService(db)
    return await service.reschedule(
        org_settings, tenant.organization_id, session_id, data, tenant.user_id
    )

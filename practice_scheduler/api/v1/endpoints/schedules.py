"""Schedule endpoints."""

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Query, status

from practice_scheduler.dependencies import (
    DatabaseSession,
    OrgSettings,
    ScheduleProvider,
    TenantContext,
)
from practice_scheduler.schemas.schedules import (
    DraftCopyResponse,
    GenerateScheduleRequest,
    GenerationResponse,
    ScheduleDetailResponse,
    ScheduleListResponse,
    ScheduleResponse,
    ScheduleSessionUpdate,
    ScheduleStatus,
)
from practice_scheduler.schemas.sessions import SessionResponse, StatusCounts
from practice_scheduler.services.schedule_service import ScheduleService
from practice_scheduler.services.session_service import SessionService

router = APIRouter()


@router.get(
    "",
    response_model=ScheduleListResponse,
    status_code=status.HTTP_200_OK,
    summary="List schedules",
)
async def list_schedules(
    tenant: TenantContext,
    org_settings: OrgSettings,
    db: DatabaseSession,
    week_start_date: date | None = Query(None),
    status_filter: ScheduleStatus | None = Query(None, alias="status"),
) -> ScheduleListResponse:
    """List schedule versions, newest first."""
    service = ScheduleService(db)
    return await service.list_schedules(
        org_settings, tenant.organization_id, week_start_date, status_filter
    )


@router.post(
    "/generate",
    response_model=GenerationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Generate a draft schedule",
)
async def generate_schedule(
    data: GenerateScheduleRequest,
    tenant: TenantContext,
    org_settings: OrgSettings,
    db: DatabaseSession,
    provider: ScheduleProvider,
) -> GenerationResponse:
    """
    Generate a draft for a week with the AI provider.

    Args:
        data: Week to generate
        tenant: Caller's organization and user
        org_settings: Organization settings
        db: Database session
        provider: AI schedule provider

    Returns:
        The draft with generation stats and warnings
    """
    service = ScheduleService(db, provider)
    return await service.generate(
        org_settings, tenant.organization_id, data.week_start_date, tenant.user_id
    )


@router.get(
    "/{schedule_id}",
    response_model=ScheduleDetailResponse,
    status_code=status.HTTP_200_OK,
    summary="Get schedule with sessions",
)
async def get_schedule(
    schedule_id: UUID,
    tenant: TenantContext,
    org_settings: OrgSettings,
    db: DatabaseSession,
) -> ScheduleDetailResponse:
    service = ScheduleService(db)
    return await service.get_schedule(org_settings, tenant.organization_id, schedule_id)


@router.get(
    "/{schedule_id}/status-counts",
    response_model=StatusCounts,
    status_code=status.HTTP_200_OK,
    summary="Session counts per status",
)
async def get_status_counts(
    schedule_id: UUID,
    tenant: TenantContext,
    db: DatabaseSession,
) -> StatusCounts:
    service = SessionService(db)
    return await service.get_status_counts(tenant.organization_id, schedule_id)


@router.post(
    "/{schedule_id}/publish",
    response_model=ScheduleResponse,
    status_code=status.HTTP_200_OK,
    summary="Publish draft",
)
async def publish_schedule(
    schedule_id: UUID,
    tenant: TenantContext,
    org_settings: OrgSettings,
    db: DatabaseSession,
) -> ScheduleResponse:
    """Publish a draft; earlier published versions of the week are archived."""
    service = ScheduleService(db)
    return await service.publish(org_settings, tenant.organization_id, schedule_id, tenant.user_id)


@router.post(
    "/{schedule_id}/archive",
    response_model=ScheduleResponse,
    status_code=status.HTTP_200_OK,
    summary="Archive schedule",
)
async def archive_schedule(
    schedule_id: UUID,
    tenant: TenantContext,
    org_settings: OrgSettings,
    db: DatabaseSession,
) -> ScheduleResponse:
    service = ScheduleService(db)
    return await service.archive(org_settings, tenant.organization_id, schedule_id, tenant.user_id)


@router.post(
    "/{schedule_id}/draft-copy",
    response_model=DraftCopyResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Copy a published schedule into a new draft",
)
async def create_draft_copy(
    schedule_id: UUID,
    tenant: TenantContext,
    org_settings: OrgSettings,
    db: DatabaseSession,
    validate: bool = Query(True, description="Re-validate sessions against current rules"),
) -> DraftCopyResponse:
    """
    Copy a published schedule into a new draft version.

    With ``validate`` the sessions are checked against the current rules
    and reassigned or dropped where they no longer fit.
    """
    service = ScheduleService(db)
    if validate:
        return await service.create_draft_copy_with_validation(
            org_settings, tenant.organization_id, schedule_id, tenant.user_id
        )
    return await service.create_draft_copy(
        org_settings, tenant.organization_id, schedule_id, tenant.user_id
    )


@router.patch(
    "/{schedule_id}/sessions/{session_id}",
    response_model=SessionResponse,
    status_code=status.HTTP_200_OK,
    summary="Edit a draft session",
)
async def update_draft_session(
    schedule_id: UUID,
    session_id: UUID,
    data: ScheduleSessionUpdate,
    tenant: TenantContext,
    org_settings: OrgSettings,
    db: DatabaseSession,
) -> SessionResponse:
    """Edit a session of a draft schedule, re-checking the new slot."""
    service = ScheduleService(db)
    return await service.update_session(
        org_settings, tenant.organization_id, schedule_id, session_id, data, tenant.user_id
    )


@router.delete(
    "/{schedule_id}/sessions/{session_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove a draft session",
)
async def delete_draft_session(
    schedule_id: UUID,
    session_id: UUID,
    tenant: TenantContext,
    org_settings: OrgSettings,
    db: DatabaseSession,
) -> None:
    service = ScheduleService(db)
    await service.delete_session(
        org_settings, tenant.organization_id, schedule_id, session_id, tenant.user_id
    )

"""FastAPI dependencies."""

from typing import Annotated, NamedTuple
from uuid import UUID

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from practice_scheduler.config import settings
from practice_scheduler.core.exceptions import RateLimitException, UnauthorizedException
from practice_scheduler.core.redis_client import CacheManager, RateLimiter, get_redis_client
from practice_scheduler.database import get_db
from practice_scheduler.schemas.organizations import OrganizationSettings
from practice_scheduler.services.ai_provider import AIScheduleProvider, get_ai_provider
from practice_scheduler.services.organization_service import OrganizationService


class Tenant(NamedTuple):
    """Caller identity: the organization acted on and the acting user."""

    organization_id: UUID
    user_id: UUID | None


def _parse_uuid(value: str, header: str) -> UUID:
    try:
        return UUID(value)
    except ValueError:
        raise UnauthorizedException(f"Invalid {header} header")


async def get_tenant(
    x_organization_id: Annotated[str | None, Header()] = None,
    x_user_id: Annotated[str | None, Header()] = None,
) -> Tenant:
    """
    Read the tenant context from request headers.

    Authentication happens upstream; this layer only trusts the forwarded
    identity headers.

    Raises:
        UnauthorizedException: If the organization header is missing or malformed
    """
    if not x_organization_id:
        raise UnauthorizedException("Missing X-Organization-Id header")
    organization_id = _parse_uuid(x_organization_id, "X-Organization-Id")
    user_id = _parse_uuid(x_user_id, "X-User-Id") if x_user_id else None
    return Tenant(organization_id=organization_id, user_id=user_id)


def get_cache_manager() -> CacheManager:
    """Dependency returning the Redis-backed JSON cache."""
    return CacheManager(get_redis_client())


def get_organization_service(
    cache_manager: Annotated[CacheManager, Depends(get_cache_manager)],
) -> OrganizationService:
    """Dependency returning the organization service with caching."""
    return OrganizationService(cache_manager)


async def get_org_settings(
    tenant: Annotated[Tenant, Depends(get_tenant)],
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[OrganizationService, Depends(get_organization_service)],
) -> OrganizationSettings:
    """
    Load the organization's settings once per request.

    Raises:
        NotFoundException: If the organization does not exist
    """
    return await service.get_settings(db, tenant.organization_id)


async def enforce_hold_rate_limit(tenant: Annotated[Tenant, Depends(get_tenant)]) -> None:
    """
    Limit hold creation per user, or per organization for anonymous callers.

    Raises:
        RateLimitException: If the caller exceeded the per-minute limit
    """
    caller = tenant.user_id or tenant.organization_id
    limiter = RateLimiter(get_redis_client())
    if not limiter.check_rate_limit(f"rate:holds:{caller}", settings.rate_limit_per_minute):
        raise RateLimitException("Too many hold requests, try again in a minute")


# Type aliases for dependency injection
DatabaseSession = Annotated[AsyncSession, Depends(get_db)]
TenantContext = Annotated[Tenant, Depends(get_tenant)]
OrgSettings = Annotated[OrganizationSettings, Depends(get_org_settings)]
ScheduleProvider = Annotated[AIScheduleProvider, Depends(get_ai_provider)]

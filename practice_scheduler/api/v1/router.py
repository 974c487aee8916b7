"""API v1 router configuration."""

from fastapi import APIRouter

from practice_scheduler.api.v1.endpoints import (
    availability,
    bookings,
    health,
    holds,
    schedules,
    sessions,
)

api_router = APIRouter()

# Include routers
api_router.include_router(health.router, tags=["Health"])
api_router.include_router(availability.router, prefix="/availability", tags=["Availability"])
api_router.include_router(holds.router, prefix="/holds", tags=["Holds"])
api_router.include_router(bookings.router, prefix="/bookings", tags=["Bookings"])
api_router.include_router(sessions.router, prefix="/sessions", tags=["Sessions"])
api_router.include_router(schedules.router, prefix="/schedules", tags=["Schedules"])

import os
from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import UTC, date, datetime
from typing import Any
from unittest.mock import MagicMock
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from dotenv import load_dotenv
from httpx import ASGITransport, AsyncClient
from sqlalchemy import insert
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

# Load environment variables from .env file
load_dotenv()

from practice_scheduler.core.redis_client import CacheManager
from practice_scheduler.database import get_db, to_async_url
from practice_scheduler.dependencies import get_cache_manager
from practice_scheduler.main import app
from practice_scheduler.models import (
    metadata,
    organization_settings,
    organizations,
    patients,
    rooms,
    schedules,
    sessions,
    staff,
)
from practice_scheduler.schemas.organizations import OrganizationSettings
from practice_scheduler.scheduling.timeslots import parse_local_date_start

# Set TEST_DATABASE_URL to run against PostgreSQL; a throwaway SQLite file is used otherwise
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL")

TIMEZONE = "America/New_York"
USER_ID = UUID("00000000-0000-4000-8000-000000000001")

# A Monday far enough ahead that slots are never in the past
FUTURE_MONDAY = date(2030, 6, 3)

WEEKDAY_HOURS = {
    day: {"start": "09:00", "end": "17:00"}
    for day in ("monday", "tuesday", "wednesday", "thursday", "friday")
}
BUSINESS_HOURS = {
    day: {"open": day not in ("saturday", "sunday"), "start": "08:00", "end": "18:00"}
    for day in ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")
}


@pytest_asyncio.fixture
async def test_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Create a fresh schema for each test."""
    if TEST_DATABASE_URL:
        engine = create_async_engine(to_async_url(TEST_DATABASE_URL), poolclass=NullPool)
    else:
        # Writers wait on the SQLite write lock instead of failing immediately
        engine = create_async_engine(
            f"sqlite+aiosqlite:///{tmp_path / 'scheduling.db'}",
            poolclass=NullPool,
            connect_args={"timeout": 30},
        )

    async with engine.begin() as conn:
        await conn.run_sync(metadata.drop_all)
        await conn.run_sync(metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory; concurrency tests open one session per competing request."""
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def org(db_session: AsyncSession) -> dict[str, Any]:
    """
    Seed an organization with settings, two therapists, two patients and two rooms.

    Staff work Monday to Friday 09:00-17:00 inside 08:00-18:00 business hours.
    """
    organization_id = uuid4()
    await db_session.execute(
        insert(organizations).values(id=organization_id, name="Harbor Therapy", subdomain="harbor")
    )
    await db_session.execute(
        insert(organization_settings).values(
            organization_id=organization_id,
            timezone=TIMEZONE,
            business_hours=BUSINESS_HOURS,
            default_session_duration=60,
            slot_interval=30,
            late_cancel_window_hours=24,
            require_booking_approval=False,
            hold_duration_minutes=10,
        )
    )

    staff_ids = {"alice": uuid4(), "ben": uuid4()}
    await db_session.execute(
        insert(staff),
        [
            {
                "id": staff_ids["alice"],
                "organization_id": organization_id,
                "name": "Alice Morgan",
                "gender": "female",
                "certifications": ["BCBA"],
                "default_hours": WEEKDAY_HOURS,
                "status": "active",
            },
            {
                "id": staff_ids["ben"],
                "organization_id": organization_id,
                "name": "Ben Carter",
                "gender": "male",
                "certifications": ["RBT"],
                "default_hours": WEEKDAY_HOURS,
                "status": "active",
            },
        ],
    )

    patient_ids = {"maya": uuid4(), "noah": uuid4()}
    await db_session.execute(
        insert(patients),
        [
            {
                "id": patient_ids["maya"],
                "organization_id": organization_id,
                "name": "Maya Lopez",
                "identifier": "P-001",
                "gender": "female",
                "session_frequency": 2,
                "preferred_times": [],
                "required_certifications": [],
                "required_room_capabilities": [],
                "status": "active",
            },
            {
                "id": patient_ids["noah"],
                "organization_id": organization_id,
                "name": "Noah Kim",
                "identifier": "P-002",
                "gender": "male",
                "session_frequency": 1,
                "preferred_times": [],
                "required_certifications": [],
                "required_room_capabilities": [],
                "status": "active",
            },
        ],
    )

    room_ids = {"a": uuid4(), "b": uuid4()}
    await db_session.execute(
        insert(rooms),
        [
            {
                "id": room_ids["a"],
                "organization_id": organization_id,
                "name": "Room A",
                "capabilities": ["sensory"],
                "status": "active",
            },
            {
                "id": room_ids["b"],
                "organization_id": organization_id,
                "name": "Room B",
                "capabilities": [],
                "status": "active",
            },
        ],
    )
    await db_session.commit()

    return {
        "id": organization_id,
        "settings": OrganizationSettings(
            organization_id=organization_id, timezone=TIMEZONE, business_hours=BUSINESS_HOURS
        ),
        "staff": staff_ids,
        "patients": patient_ids,
        "rooms": room_ids,
    }


@pytest.fixture
def make_schedule(
    db_session: AsyncSession, org: dict[str, Any]
) -> Callable[..., Awaitable[UUID]]:
    """Insert a schedule for a week directly, bypassing the service layer."""

    async def _make(
        week_start: date = FUTURE_MONDAY,
        status: str = "published",
        version: int = 1,
        source_schedule_id: UUID | None = None,
    ) -> UUID:
        schedule_id = uuid4()
        await db_session.execute(
            insert(schedules).values(
                id=schedule_id,
                organization_id=org["id"],
                week_start_date=parse_local_date_start(week_start, TIMEZONE),
                status=status,
                version=version,
                source_schedule_id=source_schedule_id,
                published_at=datetime.now(UTC) if status == "published" else None,
            )
        )
        await db_session.commit()
        return schedule_id

    return _make


@pytest.fixture
def make_session(
    db_session: AsyncSession, org: dict[str, Any]
) -> Callable[..., Awaitable[UUID]]:
    """Insert a session directly, bypassing the service layer."""

    async def _make(
        schedule_id: UUID,
        day: date = FUTURE_MONDAY,
        start_time: str = "09:00",
        end_time: str = "10:00",
        staff: str = "alice",
        patient: str = "maya",
        room: str | None = None,
        status: str = "scheduled",
    ) -> UUID:
        session_id = uuid4()
        await db_session.execute(
            insert(sessions).values(
                id=session_id,
                schedule_id=schedule_id,
                organization_id=org["id"],
                staff_id=org["staff"][staff],
                patient_id=org["patients"][patient],
                room_id=org["rooms"][room] if room else None,
                date=parse_local_date_start(day, TIMEZONE),
                start_time=start_time,
                end_time=end_time,
                status=status,
                booked_via="admin",
            )
        )
        await db_session.commit()
        return session_id

    return _make


@pytest.fixture
def mock_redis() -> MagicMock:
    """Redis stand-in with an empty cache."""
    redis_client = MagicMock()
    redis_client.get.return_value = None
    return redis_client


@pytest_asyncio.fixture
async def client(
    session_factory: async_sessionmaker[AsyncSession],
    mock_redis: MagicMock,
    monkeypatch: pytest.MonkeyPatch,
) -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client with one database session per request."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_cache_manager] = lambda: CacheManager(mock_redis)
    monkeypatch.setattr("practice_scheduler.dependencies.get_redis_client", lambda: mock_redis)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def headers(org: dict[str, Any]) -> dict[str, str]:
    """Tenant headers forwarded by the gateway."""
    return {"X-Organization-Id": str(org["id"]), "X-User-Id": str(USER_ID)}

import asyncio
from datetime import UTC, date, datetime, timedelta

import pytest

from conftest import FUTURE_MONDAY, USER_ID
from practice_scheduler.schemas.holds import HoldCreate, HoldErrorCode
from practice_scheduler.scheduling.timeslots import ensure_utc
from practice_scheduler.services.hold_service import HoldService

MONDAY = date(2025, 6, 2)
# Friday before MONDAY, 12:00 New York time
NOW = datetime(2025, 5, 30, 16, 0, tzinfo=UTC)


def hold_request(org, staff="alice", start="09:00", end="09:30", day=MONDAY, **kwargs):
    return HoldCreate(
        staff_id=org["staff"][staff], date=day, start_time=start, end_time=end, **kwargs
    )


@pytest.mark.asyncio
async def test_create_hold(db_session, org):
    service = HoldService(db_session)

    result = await service.create_hold(org["settings"], org["id"], hold_request(org), USER_ID, NOW)

    assert result.success is True
    hold = result.hold
    assert hold.date == MONDAY
    assert hold.start_time == "09:00"
    assert ensure_utc(hold.expires_at) == NOW + timedelta(minutes=10)
    assert hold.created_by_user_id == USER_ID


@pytest.mark.asyncio
async def test_overlapping_hold_conflicts_until_released(db_session, org):
    """An active hold blocks overlapping requests; releasing it frees the slot."""
    service = HoldService(db_session)
    first = await service.create_hold(org["settings"], org["id"], hold_request(org), USER_ID, NOW)

    second = await service.create_hold(
        org["settings"], org["id"], hold_request(org, start="09:15", end="09:45"), USER_ID, NOW
    )
    assert second.success is False
    assert second.error_code == HoldErrorCode.CONFLICT
    assert second.conflict["type"] == "hold"
    assert second.conflict["id"] == str(first.hold.id)

    assert await service.release_hold(first.hold.id, org["id"], NOW) is True

    retry = await service.create_hold(
        org["settings"], org["id"], hold_request(org, start="09:15", end="09:45"), USER_ID, NOW
    )
    assert retry.success is True


@pytest.mark.asyncio
async def test_other_staff_member_is_not_blocked(db_session, org):
    service = HoldService(db_session)
    await service.create_hold(org["settings"], org["id"], hold_request(org), USER_ID, NOW)

    result = await service.create_hold(
        org["settings"], org["id"], hold_request(org, staff="ben"), USER_ID, NOW
    )
    assert result.success is True


@pytest.mark.asyncio
async def test_adjacent_holds_do_not_conflict(db_session, org):
    service = HoldService(db_session)
    await service.create_hold(org["settings"], org["id"], hold_request(org), USER_ID, NOW)

    result = await service.create_hold(
        org["settings"], org["id"], hold_request(org, start="09:30", end="10:00"), USER_ID, NOW
    )
    assert result.success is True


@pytest.mark.asyncio
async def test_expired_hold_does_not_block(db_session, org):
    service = HoldService(db_session)
    await service.create_hold(org["settings"], org["id"], hold_request(org), USER_ID, NOW)

    later = NOW + timedelta(minutes=10)
    result = await service.create_hold(org["settings"], org["id"], hold_request(org), USER_ID, later)
    assert result.success is True


@pytest.mark.asyncio
async def test_booked_session_blocks_hold(db_session, org, make_schedule, make_session):
    schedule_id = await make_schedule()
    await make_session(schedule_id, start_time="09:00", end_time="10:00")

    service = HoldService(db_session)
    result = await service.create_hold(
        org["settings"], org["id"], hold_request(org, day=FUTURE_MONDAY), USER_ID, NOW
    )

    assert result.error_code == HoldErrorCode.CONFLICT
    assert result.conflict["type"] == "session"


@pytest.mark.asyncio
async def test_hold_outside_working_hours_is_rejected(db_session, org):
    service = HoldService(db_session)
    result = await service.create_hold(
        org["settings"], org["id"], hold_request(org, start="17:00", end="17:30"), USER_ID, NOW
    )
    assert result.error_code == HoldErrorCode.VALIDATION


@pytest.mark.asyncio
async def test_room_only_hold_respects_business_hours(db_session, org):
    service = HoldService(db_session)

    def room_hold(day, start, end):
        return HoldCreate(room_id=org["rooms"]["a"], date=day, start_time=start, end_time=end)

    closed = await service.create_hold(
        org["settings"], org["id"], room_hold(MONDAY + timedelta(days=6), "03:00", "03:30"), USER_ID, NOW
    )
    early = await service.create_hold(
        org["settings"], org["id"], room_hold(MONDAY, "07:30", "08:30"), USER_ID, NOW
    )
    opening = await service.create_hold(
        org["settings"], org["id"], room_hold(MONDAY, "08:00", "08:30"), USER_ID, NOW
    )

    assert closed.error_code == HoldErrorCode.VALIDATION
    assert early.error_code == HoldErrorCode.VALIDATION
    assert opening.success is True
    assert opening.hold.staff_id is None


@pytest.mark.asyncio
async def test_hold_duration_is_capped(db_session, org):
    service = HoldService(db_session)
    result = await service.create_hold(
        org["settings"], org["id"], hold_request(org, hold_duration_minutes=61), USER_ID, NOW
    )
    assert result.error_code == HoldErrorCode.VALIDATION


@pytest.mark.asyncio
async def test_concurrent_holds_for_same_slot(session_factory, org):
    """Of two simultaneous requests for overlapping slots, exactly one wins."""

    async def attempt(start: str, end: str):
        async with session_factory() as session:
            return await HoldService(session).create_hold(
                org["settings"], org["id"], hold_request(org, start=start, end=end), USER_ID, NOW
            )

    results = await asyncio.gather(attempt("09:00", "09:30"), attempt("09:15", "09:45"))

    assert sorted(r.success for r in results) == [False, True]
    loser = next(r for r in results if not r.success)
    assert loser.error_code == HoldErrorCode.CONFLICT


@pytest.mark.asyncio
async def test_extend_hold(db_session, org):
    service = HoldService(db_session)
    created = await service.create_hold(org["settings"], org["id"], hold_request(org), USER_ID, NOW)

    result = await service.extend_hold(org["settings"], created.hold.id, None, org["id"], NOW)

    assert result.success is True
    assert ensure_utc(result.hold.expires_at) == NOW + timedelta(minutes=15)


@pytest.mark.asyncio
async def test_extend_expired_hold_fails(db_session, org):
    service = HoldService(db_session)
    created = await service.create_hold(org["settings"], org["id"], hold_request(org), USER_ID, NOW)

    result = await service.extend_hold(
        org["settings"], created.hold.id, 5, org["id"], NOW + timedelta(minutes=11)
    )
    assert result.error_code == HoldErrorCode.EXPIRED


@pytest.mark.asyncio
async def test_release_is_not_repeatable(db_session, org):
    service = HoldService(db_session)
    created = await service.create_hold(org["settings"], org["id"], hold_request(org), USER_ID, NOW)

    assert await service.release_hold(created.hold.id, org["id"], NOW) is True
    assert await service.release_hold(created.hold.id, org["id"], NOW) is False


@pytest.mark.asyncio
async def test_release_expired_hold_returns_false(db_session, org):
    service = HoldService(db_session)
    created = await service.create_hold(org["settings"], org["id"], hold_request(org), USER_ID, NOW)

    released = await service.release_hold(created.hold.id, org["id"], NOW + timedelta(hours=1))
    assert released is False


@pytest.mark.asyncio
async def test_cleanup_expired_holds_is_idempotent(db_session, org):
    service = HoldService(db_session)
    expired = await service.create_hold(org["settings"], org["id"], hold_request(org), USER_ID, NOW)
    later = NOW + timedelta(minutes=30)
    active = await service.create_hold(
        org["settings"], org["id"], hold_request(org, start="10:00", end="10:30"), USER_ID, later
    )

    assert await service.cleanup_expired_holds(later) == 1
    assert await service.cleanup_expired_holds(later) == 0

    assert await service.get_hold(org["settings"], expired.hold.id, org["id"]) is None
    remaining = await service.get_active_holds(org["settings"], org["id"], now=later)
    assert [h.id for h in remaining] == [active.hold.id]


@pytest.mark.asyncio
async def test_active_holds_by_date_range(db_session, org):
    service = HoldService(db_session)
    await service.create_hold(org["settings"], org["id"], hold_request(org), USER_ID, NOW)
    tuesday = MONDAY + timedelta(days=1)
    await service.create_hold(
        org["settings"], org["id"], hold_request(org, day=tuesday), USER_ID, NOW
    )

    holds = await service.get_active_holds(org["settings"], org["id"], tuesday, tuesday, now=NOW)
    assert [h.date for h in holds] == [tuesday]


@pytest.mark.asyncio
async def test_create_hold_endpoint(client, headers, org):
    payload = {
        "staff_id": str(org["staff"]["alice"]),
        "date": FUTURE_MONDAY.isoformat(),
        "start_time": "09:00",
        "end_time": "10:00",
    }

    created = await client.post("/api/v1/holds", json=payload, headers=headers)
    assert created.status_code == 201
    body = created.json()
    assert body["success"] is True
    assert body["hold"]["date"] == FUTURE_MONDAY.isoformat()

    conflict = await client.post("/api/v1/holds", json=payload, headers=headers)
    assert conflict.status_code == 409
    assert conflict.json()["error_code"] == "conflict"

    hold_id = body["hold"]["id"]
    fetched = await client.get(f"/api/v1/holds/{hold_id}", headers=headers)
    assert fetched.status_code == 200

    released = await client.delete(f"/api/v1/holds/{hold_id}", headers=headers)
    assert released.json() == {"released": True}


@pytest.mark.asyncio
async def test_create_hold_endpoint_validates_range(client, headers, org):
    payload = {
        "staff_id": str(org["staff"]["alice"]),
        "date": FUTURE_MONDAY.isoformat(),
        "start_time": "10:00",
        "end_time": "09:00",
    }
    response = await client.post("/api/v1/holds", json=payload, headers=headers)
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_unknown_hold_is_404(client, headers):
    response = await client.get(
        "/api/v1/holds/00000000-0000-4000-8000-00000000dead", headers=headers
    )
    assert response.status_code == 404
    assert response.json()["error"] == "NotFoundException"


@pytest.mark.asyncio
async def test_hold_creation_is_rate_limited(client, headers, org, mock_redis):
    mock_redis.get.side_effect = lambda key: "60" if key.startswith("rate:") else None
    payload = {
        "staff_id": str(org["staff"]["alice"]),
        "date": FUTURE_MONDAY.isoformat(),
        "start_time": "09:00",
        "end_time": "10:00",
    }

    response = await client.post("/api/v1/holds", json=payload, headers=headers)

    assert response.status_code == 429

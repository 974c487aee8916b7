from datetime import UTC, datetime, timedelta

import pytest

from conftest import FUTURE_MONDAY, USER_ID
from practice_scheduler.core.exceptions import (
    ConflictException,
    InvalidTransitionException,
    ValidationException,
)
from practice_scheduler.schemas.sessions import (
    CancellationReason,
    RescheduleRequest,
    SessionFilters,
    SessionStatus,
)
from practice_scheduler.services.availability_service import AvailabilityService
from practice_scheduler.services.session_service import SessionService

# FUTURE_MONDAY 09:00 in New York
SESSION_START = datetime(2030, 6, 3, 13, 0, tzinfo=UTC)


@pytest.mark.asyncio
async def test_session_lifecycle_through_quick_actions(client, headers, make_schedule, make_session):
    schedule_id = await make_schedule()
    session_id = await make_session(schedule_id)

    for action, expected in [
        ("confirm", "confirmed"),
        ("check-in", "checked_in"),
        ("start", "in_progress"),
        ("complete", "completed"),
    ]:
        response = await client.post(f"/api/v1/sessions/{session_id}/{action}", headers=headers)
        assert response.status_code == 200, action
        assert response.json()["status"] == expected

    body = response.json()
    assert body["confirmed_at"] is not None
    assert body["checked_in_at"] is not None
    assert body["actual_start_time"] is not None
    assert body["actual_end_time"] is not None


@pytest.mark.asyncio
async def test_illegal_transition_lists_allowed_statuses(client, headers, make_schedule, make_session):
    schedule_id = await make_schedule()
    session_id = await make_session(schedule_id)

    response = await client.post(f"/api/v1/sessions/{session_id}/complete", headers=headers)

    assert response.status_code == 409
    body = response.json()
    assert body["error"] == "InvalidTransitionException"
    assert body["details"]["allowed_statuses"] == ["confirmed", "cancelled", "late_cancel"]


@pytest.mark.asyncio
async def test_cancel_requires_reason(client, headers, make_schedule, make_session):
    schedule_id = await make_schedule()
    session_id = await make_session(schedule_id)

    response = await client.patch(
        f"/api/v1/sessions/{session_id}/status", json={"status": "cancelled"}, headers=headers
    )

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_cancel_endpoint(client, headers, make_schedule, make_session):
    schedule_id = await make_schedule()
    session_id = await make_session(schedule_id)

    response = await client.post(
        f"/api/v1/sessions/{session_id}/cancel",
        json={"reason": "illness", "notes": "Fever"},
        headers=headers,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "cancelled"
    assert body["cancellation_reason"] == "illness"
    assert body["cancellation_notes"] == "Fever"
    assert body["cancelled_at"] is not None


@pytest.mark.asyncio
async def test_late_cancellation_inside_window(db_session, org, make_schedule, make_session):
    schedule_id = await make_schedule()
    session_id = await make_session(schedule_id)
    service = SessionService(db_session)

    session = await service.cancel(
        org["settings"],
        org["id"],
        session_id,
        CancellationReason.PATIENT_REQUEST,
        user_id=USER_ID,
        now=SESSION_START - timedelta(hours=3),
    )

    assert session.status == SessionStatus.LATE_CANCEL


@pytest.mark.asyncio
async def test_explicit_late_cancel_outside_window(db_session, org, make_schedule, make_session):
    schedule_id = await make_schedule()
    session_id = await make_session(schedule_id, status="confirmed")

    session = await SessionService(db_session).cancel(
        org["settings"],
        org["id"],
        session_id,
        CancellationReason.OTHER,
        late=True,
        now=SESSION_START - timedelta(days=3),
    )

    assert session.status == SessionStatus.LATE_CANCEL


@pytest.mark.asyncio
async def test_cancellation_frees_the_slot(db_session, org, make_schedule, make_session):
    schedule_id = await make_schedule()
    session_id = await make_session(schedule_id)
    service = SessionService(db_session)
    await service.cancel(
        org["settings"],
        org["id"],
        session_id,
        CancellationReason.WEATHER,
        now=SESSION_START - timedelta(days=2),
    )

    with pytest.raises(InvalidTransitionException):
        await service.confirm(org["settings"], org["id"], session_id)

    check = await AvailabilityService(db_session).is_slot_available(
        org["settings"],
        org["id"],
        org["staff"]["alice"],
        FUTURE_MONDAY,
        "09:00",
        "10:00",
        now=SESSION_START - timedelta(days=2),
    )
    assert check.available is True


@pytest.mark.asyncio
async def test_reschedule_links_replacement(db_session, org, make_schedule, make_session):
    schedule_id = await make_schedule()
    session_id = await make_session(schedule_id)
    service = SessionService(db_session)

    replacement = await service.reschedule(
        org["settings"],
        org["id"],
        session_id,
        RescheduleRequest(
            date=FUTURE_MONDAY + timedelta(days=1), start_time="14:00", end_time="15:00"
        ),
        user_id=USER_ID,
        now=SESSION_START - timedelta(days=5),
    )

    assert replacement.rescheduled_from_id == session_id
    assert replacement.status == SessionStatus.SCHEDULED
    assert replacement.start_time == "14:00"
    assert replacement.staff_id == org["staff"]["alice"]
    assert replacement.schedule_id == schedule_id

    original = await service.get_session(org["settings"], org["id"], session_id)
    assert original.status == SessionStatus.CANCELLED
    assert original.cancellation_reason == CancellationReason.RESCHEDULED


@pytest.mark.asyncio
async def test_reschedule_into_taken_slot_keeps_original(db_session, org, make_schedule, make_session):
    schedule_id = await make_schedule()
    session_id = await make_session(schedule_id)
    await make_session(schedule_id, start_time="11:00", end_time="12:00", patient="noah")
    service = SessionService(db_session)

    with pytest.raises(ConflictException):
        await service.reschedule(
            org["settings"],
            org["id"],
            session_id,
            RescheduleRequest(date=FUTURE_MONDAY, start_time="11:30", end_time="12:30"),
            now=SESSION_START - timedelta(days=5),
        )

    original = await service.get_session(org["settings"], org["id"], session_id)
    assert original.status == SessionStatus.SCHEDULED


@pytest.mark.asyncio
async def test_reschedule_within_own_slot(db_session, org, make_schedule, make_session):
    """Moving a session by half an hour does not conflict with itself."""
    schedule_id = await make_schedule()
    session_id = await make_session(schedule_id)

    replacement = await SessionService(db_session).reschedule(
        org["settings"],
        org["id"],
        session_id,
        RescheduleRequest(date=FUTURE_MONDAY, start_time="09:30", end_time="10:30"),
        now=SESSION_START - timedelta(days=5),
    )
    assert replacement.start_time == "09:30"


@pytest.mark.asyncio
async def test_reschedule_endpoint(client, headers, make_schedule, make_session):
    schedule_id = await make_schedule()
    session_id = await make_session(schedule_id)

    response = await client.post(
        f"/api/v1/sessions/{session_id}/reschedule",
        json={"date": FUTURE_MONDAY.isoformat(), "start_time": "15:00", "end_time": "16:00"},
        headers=headers,
    )

    assert response.status_code == 201
    assert response.json()["rescheduled_from_id"] == str(session_id)


@pytest.mark.asyncio
async def test_cancellation_reason_validation_in_service(db_session, org, make_schedule, make_session):
    schedule_id = await make_schedule()
    session_id = await make_session(schedule_id)

    with pytest.raises(ValidationException):
        await SessionService(db_session).update_status(
            org["settings"], org["id"], session_id, SessionStatus.CANCELLED
        )


@pytest.mark.asyncio
async def test_list_sessions_by_status(client, headers, make_schedule, make_session):
    schedule_id = await make_schedule()
    await make_session(schedule_id, start_time="09:00", end_time="10:00")
    await make_session(schedule_id, start_time="11:00", end_time="12:00", status="confirmed")
    await make_session(schedule_id, start_time="13:00", end_time="14:00", status="cancelled")

    response = await client.get(
        "/api/v1/sessions",
        params=[("status", "scheduled"), ("status", "confirmed")],
        headers=headers,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 2
    assert [item["start_time"] for item in body["items"]] == ["09:00", "11:00"]


@pytest.mark.asyncio
async def test_list_sessions_by_date_range(db_session, org, make_schedule, make_session):
    schedule_id = await make_schedule()
    await make_session(schedule_id, day=FUTURE_MONDAY)
    await make_session(schedule_id, day=FUTURE_MONDAY + timedelta(days=1))

    result = await SessionService(db_session).list_sessions(
        org["settings"],
        org["id"],
        SessionFilters(date_from=FUTURE_MONDAY, date_to=FUTURE_MONDAY),
    )

    assert result.total == 1
    assert result.items[0].date == FUTURE_MONDAY


@pytest.mark.asyncio
async def test_unknown_organization_is_404(client, make_schedule, make_session):
    schedule_id = await make_schedule()
    session_id = await make_session(schedule_id)

    response = await client.get(
        f"/api/v1/sessions/{session_id}",
        headers={"X-Organization-Id": "00000000-0000-4000-8000-0000000000ff"},
    )

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_status_counts(client, headers, make_schedule, make_session):
    schedule_id = await make_schedule()
    await make_session(schedule_id, start_time="09:00", end_time="10:00")
    await make_session(schedule_id, start_time="10:00", end_time="11:00")
    await make_session(schedule_id, start_time="13:00", end_time="14:00", status="no_show")

    response = await client.get(f"/api/v1/schedules/{schedule_id}/status-counts", headers=headers)

    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 3
    assert body["counts"]["scheduled"] == 2
    assert body["counts"]["no_show"] == 1
    assert body["counts"]["completed"] == 0


@pytest.mark.asyncio
async def test_find_sessions_by_status(client, headers, make_schedule, make_session):
    schedule_id = await make_schedule()
    await make_session(schedule_id, start_time="09:00", end_time="10:00", status="pending")
    await make_session(schedule_id, start_time="11:00", end_time="12:00")
    await make_session(schedule_id, day=FUTURE_MONDAY + timedelta(days=1), status="pending")

    response = await client.get(
        "/api/v1/sessions/by-status",
        params={
            "status": "pending",
            "date_from": FUTURE_MONDAY.isoformat(),
            "date_to": FUTURE_MONDAY.isoformat(),
        },
        headers=headers,
    )
    assert response.status_code == 200
    assert [(s["start_time"], s["status"]) for s in response.json()] == [("09:00", "pending")]

    week = await client.get(
        "/api/v1/sessions/by-status", params={"status": "pending"}, headers=headers
    )
    assert len(week.json()) == 2

    missing_status = await client.get("/api/v1/sessions/by-status", headers=headers)
    assert missing_status.status_code == 422

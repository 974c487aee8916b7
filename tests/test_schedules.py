import json
from datetime import timedelta
from uuid import uuid4

import httpx
import pytest
from sqlalchemy import insert

from conftest import FUTURE_MONDAY
from practice_scheduler.main import app
from practice_scheduler.models import organizations, patient_session_specs, patients, rules
from practice_scheduler.services.ai_provider import AIScheduleProvider, get_ai_provider
from practice_scheduler.services.organization_service import OrganizationService


def ai_reply(sessions, warnings=()):
    """Chat-completions response carrying a schedule proposal."""
    content = json.dumps({"sessions": sessions, "warnings": list(warnings)})
    return httpx.Response(200, json={"choices": [{"message": {"content": content}}]})


def use_provider(handler):
    app.dependency_overrides[get_ai_provider] = lambda: AIScheduleProvider(
        api_key="test", base_url="http://ai.test/v1", transport=httpx.MockTransport(handler)
    )


def proposed(org, staff, patient, day, start, end, room=None):
    session = {
        "therapistId": str(org["staff"][staff]),
        "patientId": str(org["patients"][patient]),
        "date": day.isoformat(),
        "startTime": start,
        "endTime": end,
    }
    if room:
        session["roomId"] = str(org["rooms"][room])
    return session


@pytest.mark.asyncio
async def test_generate_schedule(client, headers, org):
    requests = []
    wednesday = FUTURE_MONDAY + timedelta(days=2)
    saturday = FUTURE_MONDAY + timedelta(days=5)

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return ai_reply(
            [
                proposed(org, "alice", "maya", FUTURE_MONDAY, "09:00", "10:00"),
                proposed(org, "alice", "maya", wednesday, "09:00", "10:00"),
                proposed(org, "ben", "noah", FUTURE_MONDAY, "09:00", "10:00", room="a"),
                proposed(org, "ben", "noah", saturday, "09:00", "10:00"),
            ],
            warnings=["Tight week"],
        )

    use_provider(handler)
    response = await client.post(
        "/api/v1/schedules/generate",
        json={"week_start_date": FUTURE_MONDAY.isoformat()},
        headers=headers,
    )

    assert response.status_code == 201
    body = response.json()
    assert body["schedule"]["status"] == "draft"
    assert body["schedule"]["version"] == 1
    assert body["schedule"]["week_start_date"] == FUTURE_MONDAY.isoformat()
    assert body["stats"] == {
        "total_sessions": 3,
        "patients_scheduled": 2,
        "therapists_used": 2,
        "rejected_sessions": 1,
    }
    assert body["warnings"][0] == "Tight week"
    assert any(w.startswith(f"Rejected session on {saturday.isoformat()}") for w in body["warnings"])

    assert requests[0].url.path == "/v1/chat/completions"
    assert requests[0].headers["Authorization"] == "Bearer test"
    prompt = json.loads(requests[0].content)["messages"][1]["content"]
    assert str(org["patients"]["maya"]) in prompt
    assert "Maya Lopez" not in prompt

    detail = await client.get(f"/api/v1/schedules/{body['schedule']['id']}", headers=headers)
    assert [s["status"] for s in detail.json()["sessions"]] == ["scheduled"] * 3


@pytest.mark.asyncio
async def test_generate_requires_monday(client, headers):
    use_provider(lambda request: ai_reply([]))
    response = await client.post(
        "/api/v1/schedules/generate",
        json={"week_start_date": (FUTURE_MONDAY + timedelta(days=1)).isoformat()},
        headers=headers,
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_generate_upstream_failure(client, headers):
    use_provider(lambda request: httpx.Response(500, text="boom"))
    response = await client.post(
        "/api/v1/schedules/generate",
        json={"week_start_date": FUTURE_MONDAY.isoformat()},
        headers=headers,
    )
    assert response.status_code == 503
    assert response.json()["error"] == "UpstreamServiceException"


@pytest.mark.asyncio
async def test_generate_unreadable_reply(client, headers):
    use_provider(
        lambda request: httpx.Response(
            200, json={"choices": [{"message": {"content": "not json"}}]}
        )
    )
    response = await client.post(
        "/api/v1/schedules/generate",
        json={"week_start_date": FUTURE_MONDAY.isoformat()},
        headers=headers,
    )
    assert response.status_code == 503


@pytest.mark.asyncio
async def test_generate_blocked_by_rule_review(client, headers, org, db_session):
    await db_session.execute(
        insert(rules).values(
            organization_id=org["id"],
            category="gender_pairing",
            description="Maya should see a female therapist",
            rule_logic={"preferredTherapistGender": "female"},
            review_status="needs_review",
        )
    )
    await db_session.commit()
    calls = []
    use_provider(lambda request: calls.append(request) or ai_reply([]))

    response = await client.post(
        "/api/v1/schedules/generate",
        json={"week_start_date": FUTURE_MONDAY.isoformat()},
        headers=headers,
    )

    assert response.status_code == 409
    assert response.json()["error"] == "RuleReviewRequiredException"
    assert calls == []


@pytest.mark.asyncio
async def test_generate_supersedes_published_version(client, headers, org, make_schedule, make_session):
    published = await make_schedule()
    await make_session(published, start_time="09:00", end_time="10:00")
    use_provider(
        lambda request: ai_reply([proposed(org, "alice", "noah", FUTURE_MONDAY, "09:00", "10:00")])
    )

    response = await client.post(
        "/api/v1/schedules/generate",
        json={"week_start_date": FUTURE_MONDAY.isoformat()},
        headers=headers,
    )

    assert response.status_code == 201
    schedule = response.json()["schedule"]
    assert schedule["version"] == 2
    assert schedule["source_schedule_id"] == str(published)
    assert response.json()["stats"]["total_sessions"] == 1


@pytest.mark.asyncio
async def test_second_draft_for_week_is_rejected(client, headers, org, make_schedule):
    await make_schedule(status="draft")
    use_provider(lambda request: ai_reply([]))

    response = await client.post(
        "/api/v1/schedules/generate",
        json={"week_start_date": FUTURE_MONDAY.isoformat()},
        headers=headers,
    )
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_publish_archives_previous_version(client, headers, make_schedule):
    old = await make_schedule(status="published", version=1)
    draft = await make_schedule(status="draft", version=2, source_schedule_id=old)

    response = await client.post(f"/api/v1/schedules/{draft}/publish", headers=headers)

    assert response.status_code == 200
    assert response.json()["status"] == "published"
    assert response.json()["published_at"] is not None

    listing = await client.get(
        "/api/v1/schedules", params={"week_start_date": FUTURE_MONDAY.isoformat()}, headers=headers
    )
    statuses = {item["version"]: item["status"] for item in listing.json()["items"]}
    assert statuses == {1: "archived", 2: "published"}


@pytest.mark.asyncio
async def test_only_drafts_can_be_published(client, headers, make_schedule):
    published = await make_schedule()
    response = await client.post(f"/api/v1/schedules/{published}/publish", headers=headers)
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_archive_twice(client, headers, make_schedule):
    schedule_id = await make_schedule()

    first = await client.post(f"/api/v1/schedules/{schedule_id}/archive", headers=headers)
    second = await client.post(f"/api/v1/schedules/{schedule_id}/archive", headers=headers)

    assert first.status_code == 200
    assert first.json()["status"] == "archived"
    assert second.status_code == 409


@pytest.mark.asyncio
async def test_draft_copy_without_validation(client, headers, make_schedule, make_session):
    published = await make_schedule()
    await make_session(published, start_time="09:00", end_time="10:00", status="confirmed")
    await make_session(published, start_time="11:00", end_time="12:00", status="cancelled")

    response = await client.post(
        f"/api/v1/schedules/{published}/draft-copy", params={"validate": "false"}, headers=headers
    )

    assert response.status_code == 201
    body = response.json()
    assert body["validation"] is None
    assert body["schedule"]["status"] == "draft"
    assert body["schedule"]["version"] == 2
    assert body["schedule"]["source_schedule_id"] == str(published)

    detail = await client.get(f"/api/v1/schedules/{body['schedule']['id']}", headers=headers)
    sessions = detail.json()["sessions"]
    assert [(s["start_time"], s["status"]) for s in sessions] == [("09:00", "scheduled")]

    again = await client.post(
        f"/api/v1/schedules/{published}/draft-copy", params={"validate": "false"}, headers=headers
    )
    assert again.status_code == 409


@pytest.mark.asyncio
async def test_draft_copy_with_validation_reassigns_violators(
    client, headers, org, db_session, make_schedule, make_session
):
    published = await make_schedule()
    session_id = await make_session(published, staff="ben", patient="maya")
    await db_session.execute(
        insert(rules).values(
            organization_id=org["id"],
            category="gender_pairing",
            description="Female patients see female therapists",
            rule_logic={"patientGender": "female", "preferredTherapistGender": "female"},
        )
    )
    await db_session.commit()

    response = await client.post(f"/api/v1/schedules/{published}/draft-copy", headers=headers)

    assert response.status_code == 201
    validation = response.json()["validation"]
    assert validation["kind"] == "validated"
    change = validation["modifications"]["regenerated"][0]
    assert change["session_id"] == str(session_id)
    assert change["after"]["staff_id"] == str(org["staff"]["alice"])

    detail = await client.get(f"/api/v1/schedules/{response.json()['schedule']['id']}", headers=headers)
    assert [s["staff_id"] for s in detail.json()["sessions"]] == [str(org["staff"]["alice"])]


@pytest.mark.asyncio
async def test_draft_sessions_can_be_edited_and_removed(client, headers, org, make_schedule, make_session):
    published = await make_schedule()
    await make_session(published, start_time="09:00", end_time="10:00")
    await make_session(published, start_time="13:00", end_time="14:00", patient="noah")
    copy = await client.post(
        f"/api/v1/schedules/{published}/draft-copy", params={"validate": "false"}, headers=headers
    )
    draft_id = copy.json()["schedule"]["id"]
    detail = await client.get(f"/api/v1/schedules/{draft_id}", headers=headers)
    first, second = detail.json()["sessions"]

    moved = await client.patch(
        f"/api/v1/schedules/{draft_id}/sessions/{first['id']}",
        json={"start_time": "10:00", "end_time": "11:00", "staff_id": str(org["staff"]["ben"])},
        headers=headers,
    )
    assert moved.status_code == 200
    assert moved.json()["start_time"] == "10:00"
    assert moved.json()["staff_id"] == str(org["staff"]["ben"])

    # Alice is already with Noah at 13:00
    clash = await client.patch(
        f"/api/v1/schedules/{draft_id}/sessions/{first['id']}",
        json={"start_time": "13:00", "end_time": "14:00", "staff_id": str(org["staff"]["alice"])},
        headers=headers,
    )
    assert clash.status_code == 409

    removed = await client.delete(
        f"/api/v1/schedules/{draft_id}/sessions/{second['id']}", headers=headers
    )
    assert removed.status_code == 204

    detail = await client.get(f"/api/v1/schedules/{draft_id}", headers=headers)
    assert [s["id"] for s in detail.json()["sessions"]] == [first["id"]]


@pytest.mark.asyncio
async def test_published_sessions_cannot_be_edited(client, headers, make_schedule, make_session):
    published = await make_schedule()
    session_id = await make_session(published)

    response = await client.patch(
        f"/api/v1/schedules/{published}/sessions/{session_id}",
        json={"start_time": "10:00", "end_time": "11:00"},
        headers=headers,
    )
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_draft_edit_must_stay_in_week(client, headers, make_schedule, make_session):
    draft = await make_schedule(status="draft")
    session_id = await make_session(draft)

    response = await client.patch(
        f"/api/v1/schedules/{draft}/sessions/{session_id}",
        json={"date": (FUTURE_MONDAY + timedelta(days=7)).isoformat()},
        headers=headers,
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_unknown_schedule(client, headers):
    response = await client.get(
        "/api/v1/schedules/00000000-0000-4000-8000-00000000beef", headers=headers
    )
    assert response.status_code == 404


async def add_foreign_spec(db_session):
    """A session spec of a patient in another organization."""
    other_org, other_patient, spec_id = uuid4(), uuid4(), uuid4()
    await db_session.execute(
        insert(organizations).values(id=other_org, name="Elsewhere", subdomain="elsewhere")
    )
    await db_session.execute(
        insert(patients).values(id=other_patient, organization_id=other_org, name="Zoe Hart")
    )
    await db_session.execute(
        insert(patient_session_specs).values(
            id=spec_id, patient_id=other_patient, name="Occupational therapy"
        )
    )
    return spec_id


@pytest.mark.asyncio
async def test_patients_carry_their_active_session_specs(db_session, org):
    speech = uuid4()
    await db_session.execute(
        insert(patient_session_specs).values(
            id=speech, patient_id=org["patients"]["maya"], name="Speech therapy", sessions_per_week=3
        )
    )
    await db_session.execute(
        insert(patient_session_specs).values(
            id=uuid4(), patient_id=org["patients"]["maya"], name="Retired plan", is_active=False
        )
    )
    await add_foreign_spec(db_session)
    await db_session.commit()

    specs = await OrganizationService.list_session_specs(db_session, org["id"])
    listed = {p.name: p for p in await OrganizationService.list_patients(db_session, org["id"])}

    assert [s.id for s in specs] == [speech]
    assert [s.id for s in listed["Maya Lopez"].session_specs] == [speech]
    assert listed["Maya Lopez"].weekly_target == 3
    assert listed["Noah Kim"].session_specs == []
    assert listed["Noah Kim"].weekly_target == 1


@pytest.mark.asyncio
async def test_generate_rejects_foreign_session_specs(client, headers, org, db_session):
    speech = uuid4()
    await db_session.execute(
        insert(patient_session_specs).values(
            id=speech, patient_id=org["patients"]["maya"], name="Speech therapy"
        )
    )
    foreign = await add_foreign_spec(db_session)
    await db_session.commit()
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return ai_reply(
            [
                {
                    **proposed(org, "alice", "maya", FUTURE_MONDAY, "09:00", "10:00"),
                    "sessionSpecId": str(speech),
                },
                {
                    **proposed(org, "ben", "noah", FUTURE_MONDAY, "09:00", "10:00"),
                    "sessionSpecId": str(foreign),
                },
            ]
        )

    use_provider(handler)
    response = await client.post(
        "/api/v1/schedules/generate",
        json={"week_start_date": FUTURE_MONDAY.isoformat()},
        headers=headers,
    )

    assert response.status_code == 201
    body = response.json()
    assert body["stats"]["total_sessions"] == 1
    assert body["stats"]["rejected_sessions"] == 1
    assert any(f"Session spec {foreign} not found" in w for w in body["warnings"])

    prompt = json.loads(requests[0].content)["messages"][1]["content"]
    assert str(speech) in prompt
    assert str(foreign) not in prompt

    detail = await client.get(f"/api/v1/schedules/{body['schedule']['id']}", headers=headers)
    assert [s["session_spec_id"] for s in detail.json()["sessions"]] == [str(speech)]

from datetime import date
from uuid import uuid4

import pytest

from conftest import TIMEZONE, WEEKDAY_HOURS
from practice_scheduler.core.exceptions import RuleReviewRequiredException
from practice_scheduler.schemas.organizations import (
    OrganizationSettings,
    PatientRecord,
    RoomRecord,
    RuleRecord,
    StaffMember,
    TimeOff,
)
from practice_scheduler.schemas.schedules import SessionDraft
from practice_scheduler.scheduling.copy_validator import validate_and_regenerate_copied_schedule

MONDAY = date(2025, 6, 2)


@pytest.fixture
def directory():
    return {
        "settings": OrganizationSettings(timezone=TIMEZONE),
        "alice": StaffMember(
            id=uuid4(), name="Alice Morgan", gender="female", default_hours=WEEKDAY_HOURS
        ),
        "ben": StaffMember(id=uuid4(), name="Ben Carter", gender="male", default_hours=WEEKDAY_HOURS),
        "maya": PatientRecord(id=uuid4(), name="Maya Lopez", gender="female"),
        "noah": PatientRecord(id=uuid4(), name="Noah Kim", gender="male"),
        "room": RoomRecord(id=uuid4(), name="Room A"),
    }


def session(d, staff="alice", patient="maya", start="09:00", end="10:00", day=MONDAY):
    return SessionDraft(
        id=uuid4(),
        staff_id=d[staff].id,
        patient_id=d[patient].id,
        date=day,
        start_time=start,
        end_time=end,
    )


def run(d, sessions, rules=(), time_off=(), staff=None):
    return validate_and_regenerate_copied_schedule(
        d["settings"],
        sessions,
        staff if staff is not None else [d["alice"], d["ben"]],
        [d["maya"], d["noah"]],
        [d["room"]],
        list(rules),
        list(time_off),
    )


def test_conforming_sessions_are_kept_unchanged(directory):
    sessions = [session(directory), session(directory, staff="ben", patient="noah")]

    result = run(directory, sessions)

    assert result.modifications.regenerated == []
    assert result.modifications.removed == []
    assert {s.id for s in result.valid_sessions} == {s.id for s in sessions}
    assert result.valid_sessions[0].start_time == "09:00"


def test_violator_moves_to_another_staff_member_first(directory):
    """A session that now breaks a rule keeps its time and changes therapist."""
    rules = [
        RuleRecord(
            id=uuid4(),
            category="gender_pairing",
            description="Female patients see female therapists",
            rule_logic={"patientGender": "female", "preferredTherapistGender": "female"},
        )
    ]
    original = session(directory, staff="ben", patient="maya")

    result = run(directory, [original], rules)

    assert len(result.modifications.regenerated) == 1
    change = result.modifications.regenerated[0]
    assert change.session_id == original.id
    assert change.after.staff_id == directory["alice"].id
    assert change.after.start_time == original.start_time
    assert change.after.date == original.date
    assert "female therapist" in change.reasons[0]


def test_violator_moves_to_a_later_slot_when_staff_is_busy(directory):
    """With no alternative staff free, the session moves along the day's grid."""
    time_off = [TimeOff(staff_id=directory["alice"].id, date=MONDAY, start_time="09:00", end_time="10:00")]
    original = session(directory)

    result = run(directory, [original], time_off=time_off, staff=[directory["alice"]])

    change = result.modifications.regenerated[0]
    assert change.after.staff_id == directory["alice"].id
    assert change.after.date == MONDAY
    assert change.after.start_time == "10:00"
    assert change.after.end_time == "11:00"


def test_unplaceable_session_is_removed(directory):
    """A patient who is no longer active cannot be placed anywhere."""
    ghost = session(directory).model_copy(update={"patient_id": uuid4()})

    result = run(directory, [ghost])

    assert result.valid_sessions == []
    assert len(result.modifications.removed) == 1
    assert result.modifications.removed[0].session_id == ghost.id
    assert "not found" in result.modifications.removed[0].reasons[0]


def test_violators_are_placed_after_conforming_sessions(directory):
    """Re-placed sessions never take the slot of a session that still conforms."""
    rules = [
        RuleRecord(
            id=uuid4(),
            category="specific_pairing",
            description="Noah must see Alice",
            rule_logic={
                "patientId": str(directory["noah"].id),
                "staffId": str(directory["alice"].id),
            },
        )
    ]
    kept = session(directory, staff="alice", patient="maya", start="09:00", end="10:00")
    moved = session(directory, staff="ben", patient="noah", start="09:00", end="10:00")

    result = run(directory, [moved, kept], rules)

    assert [s.id for s in result.valid_sessions if s.start_time == "09:00"] == [kept.id]
    change = result.modifications.regenerated[0]
    assert change.session_id == moved.id
    assert change.after.staff_id == directory["alice"].id
    assert change.after.start_time == "10:00"


def test_rules_needing_review_stop_the_copy(directory):
    rules = [
        RuleRecord(
            id=uuid4(),
            category="gender_pairing",
            description="Flagged rule",
            rule_logic={"preferredTherapistGender": "female"},
            review_status="needs_review",
        )
    ]
    with pytest.raises(RuleReviewRequiredException):
        run(directory, [session(directory)], rules)

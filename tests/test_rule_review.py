from uuid import uuid4

import pytest

from practice_scheduler.core.exceptions import RuleReviewRequiredException
from practice_scheduler.schemas.organizations import PatientRecord, RuleRecord, StaffMember
from practice_scheduler.scheduling.rule_review import ensure_rules_reviewed, evaluate_rule_for_review


@pytest.fixture
def staff():
    return [
        StaffMember(id=uuid4(), name="Maria Gomez"),
        StaffMember(id=uuid4(), name="Sam Patel"),
    ]


@pytest.fixture
def patients():
    return [
        PatientRecord(id=uuid4(), name="Maria Chen"),
        PatientRecord(id=uuid4(), name="Sam Patel"),
        PatientRecord(id=uuid4(), name="Leo Brooks"),
    ]


def make_rule(description, rule_logic=None, **kwargs):
    return RuleRecord(
        id=uuid4(),
        category="gender_pairing",
        description=description,
        rule_logic=rule_logic or {"preferredTherapistGender": "female"},
        **kwargs,
    )


def test_unambiguous_rule_is_ok(staff, patients):
    result = evaluate_rule_for_review(make_rule("Leo should see a female therapist"), staff, patients)
    assert result.status == "ok"
    assert result.issues == []


def test_shared_first_name_is_ambiguous(staff, patients):
    result = evaluate_rule_for_review(make_rule("Maria should see a female therapist"), staff, patients)

    assert result.status == "needs_review"
    issue = result.issues[0]
    assert issue.type == "ambiguous_entity_reference"
    assert issue.mention == "maria"
    assert {c.name for c in issue.candidates} == {"Maria Gomez", "Maria Chen"}


def test_unique_full_name_resolves_first_name(staff, patients):
    result = evaluate_rule_for_review(
        make_rule("Maria Chen should see a female therapist"), staff, patients
    )
    assert result.status == "ok"


def test_duplicate_full_name(staff, patients):
    result = evaluate_rule_for_review(make_rule("Sam Patel prefers mornings"), staff, patients)

    types = [issue.type for issue in result.issues]
    assert "duplicate_full_name" in types
    full_name_issue = next(i for i in result.issues if i.type == "duplicate_full_name")
    assert {c.entity_type for c in full_name_issue.candidates} == {"staff", "patient"}


def test_entity_binding_resolves_mention(staff, patients):
    maria_chen = patients[0]
    rule = make_rule(
        "Maria should see a female therapist",
        {
            "preferredTherapistGender": "female",
            "entityBindings": [
                {"mention": "Maria", "entityType": "patient", "entityId": str(maria_chen.id)}
            ],
        },
    )
    assert evaluate_rule_for_review(rule, staff, patients).status == "ok"


def test_binding_to_unknown_entity_does_not_resolve(staff, patients):
    rule = make_rule(
        "Maria should see a female therapist",
        {
            "preferredTherapistGender": "female",
            "entityBindings": [{"mention": "Maria", "entityType": "patient", "entityId": str(uuid4())}],
        },
    )
    assert evaluate_rule_for_review(rule, staff, patients).status == "needs_review"


def test_names_in_rule_logic_are_scanned(staff, patients):
    rule = make_rule("Pairing preference", {"preferredTherapistGender": "female", "note": "for Maria"})
    assert evaluate_rule_for_review(rule, staff, patients).status == "needs_review"


def test_stored_flag_keeps_rule_in_review(staff, patients):
    rule = make_rule("Leo should see a female therapist", review_status="needs_review")
    result = evaluate_rule_for_review(rule, staff, patients)
    assert result.status == "needs_review"
    assert result.issues[0].type == "flagged_for_review"


def test_ensure_rules_reviewed_raises_with_results(staff, patients):
    rules = [make_rule("Leo should see a female therapist"), make_rule("Maria prefers afternoons")]

    with pytest.raises(RuleReviewRequiredException) as exc_info:
        ensure_rules_reviewed(rules, staff, patients)

    results = exc_info.value.details["results"]
    assert len(results) == 1
    assert results[0]["rule_id"] == str(rules[1].id)
    assert exc_info.value.status_code == 409


def test_inactive_rules_are_not_reviewed(staff, patients):
    ensure_rules_reviewed([make_rule("Maria prefers afternoons", is_active=False)], staff, patients)

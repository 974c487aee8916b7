"""Validation of AI-proposed sessions before they are written to a draft."""

from collections import Counter
from datetime import date, timedelta
from typing import Any, NamedTuple
from uuid import UUID

from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

from practice_scheduler.schemas.organizations import (
    OrganizationSettings,
    PatientRecord,
    RoomRecord,
    RuleRecord,
    StaffMember,
    TimeOff,
)
from practice_scheduler.schemas.schedules import SessionDraft
from practice_scheduler.scheduling.rule_engine import (
    ScheduleContext,
    describe,
    evaluate_session,
    hard_violations,
)
from practice_scheduler.scheduling.rule_logic import parse_rules


class GeneratedSession(BaseModel):
    """One session as proposed by the AI provider."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    therapist_id: UUID
    patient_id: UUID
    session_spec_id: UUID | None = None
    room_id: UUID | None = None
    date: date
    start_time: str
    end_time: str
    notes: str | None = None

    def to_draft(self) -> SessionDraft:
        return SessionDraft(
            staff_id=self.therapist_id,
            patient_id=self.patient_id,
            room_id=self.room_id,
            session_spec_id=self.session_spec_id,
            date=self.date,
            start_time=self.start_time,
            end_time=self.end_time,
            notes=self.notes,
        )


class RejectedSession(NamedTuple):
    session: dict[str, Any]
    errors: list[str]


class GenerationOutcome(NamedTuple):
    valid: list[SessionDraft]
    rejected: list[RejectedSession]
    warnings: list[str]


def validate_generated_sessions(
    settings: OrganizationSettings,
    week_start: date,
    proposed: list[dict[str, Any]],
    staff: list[StaffMember],
    patients: list[PatientRecord],
    rooms: list[RoomRecord],
    rules: list[RuleRecord],
    time_off: list[TimeOff] | None = None,
) -> GenerationOutcome:
    """
    Apply built-in constraints and active rules to AI output.

    Sessions are checked in the order proposed; each accepted session
    constrains the ones after it. Sessions outside the week, malformed
    entries and sessions with hard violations are rejected. Preferred rule
    violations and patients scheduled fewer times than their session
    specs (or, without specs, their session frequency) ask for become
    warnings. A session spec id must name an active spec of the session's
    patient.

    Args:
        settings: Organization settings
        week_start: Monday of the generated week
        proposed: Raw session objects returned by the provider
        staff: Active staff
        patients: Active patients
        rooms: Active rooms
        rules: Rules of the organization
        time_off: Approved overrides for the week

    Returns:
        Accepted drafts, rejected entries with errors, and warnings
    """
    parsed_rules = parse_rules(rules)
    ctx = ScheduleContext(settings, staff, patients, rooms, time_off or [])
    week_end = week_start + timedelta(days=6)

    valid: list[SessionDraft] = []
    rejected: list[RejectedSession] = []
    warnings: list[str] = []

    for raw in proposed:
        try:
            draft = GeneratedSession.model_validate(raw).to_draft()
        except ValidationError as e:
            rejected.append(RejectedSession(raw, [f"Malformed session: {err['msg']}" for err in e.errors()]))
            continue

        if not week_start <= draft.date <= week_end:
            rejected.append(RejectedSession(raw, [f"Date {draft.date} is outside the week of {week_start}"]))
            continue

        violations = evaluate_session(draft, valid, parsed_rules, ctx)
        hard = hard_violations(violations)
        if hard:
            rejected.append(RejectedSession(raw, [v.message for v in hard]))
            continue
        valid.append(draft)
        warnings.extend(f"{describe(draft, ctx)}: {v.message}" for v in violations)

    scheduled = Counter(session.patient_id for session in valid)
    per_spec = Counter((s.patient_id, s.session_spec_id) for s in valid if s.session_spec_id)
    for patient in patients:
        display_id = patient.identifier or patient.id
        count = scheduled[patient.id]
        if count < patient.weekly_target:
            warnings.append(
                f"Patient {patient.name} (ID: {display_id}) is scheduled for {count} sessions "
                f"instead of the requested {patient.weekly_target}."
            )
        for spec in patient.session_specs:
            spec_count = per_spec[(patient.id, spec.id)]
            if spec_count < spec.sessions_per_week:
                warnings.append(
                    f"Patient {patient.name} (ID: {display_id}) has {spec_count} "
                    f"'{spec.name}' sessions instead of {spec.sessions_per_week}."
                )

    return GenerationOutcome(valid, rejected, warnings)

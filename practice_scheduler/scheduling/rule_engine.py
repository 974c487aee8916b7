"""Evaluation of organization rules and built-in constraints against sessions.

Precedence model: ``rule_logic.priority`` (``required`` or ``preferred``)
decides severity. Required violations make a session invalid, preferred ones
only produce warnings. The integer ``Rule.priority`` orders evaluation and
reporting, lowest first. Built-in constraints (existence, certifications,
room capabilities, working hours, overlaps) are always required.
"""

from collections.abc import Callable, Iterable
from typing import NamedTuple
from uuid import UUID

from practice_scheduler.schemas.organizations import (
    OrganizationSettings,
    PatientRecord,
    RoomRecord,
    StaffMember,
    TimeOff,
)
from practice_scheduler.schemas.schedules import SessionDraft
from practice_scheduler.scheduling.availability import working_day
from practice_scheduler.scheduling.rule_logic import (
    AvailabilityLogic,
    CertificationLogic,
    GenderPairingLogic,
    ParsedRule,
    RuleLogicBase,
    SessionLogic,
    Severity,
    SpecificPairingLogic,
)
from practice_scheduler.scheduling.timeslots import time_to_minutes, weekday_name


class Violation(NamedTuple):
    """A constraint a session breaks."""

    rule_id: UUID | None
    severity: Severity
    message: str

    @property
    def is_hard(self) -> bool:
        return self.severity == "required"


class ScheduleContext:
    """Read-only directory data shared by every evaluation in one pass."""

    def __init__(
        self,
        settings: OrganizationSettings,
        staff: Iterable[StaffMember],
        patients: Iterable[PatientRecord],
        rooms: Iterable[RoomRecord] = (),
        time_off: Iterable[TimeOff] = (),
    ):
        self.settings = settings
        self.staff = {member.id: member for member in staff}
        self.patients = {patient.id: patient for patient in patients}
        self.rooms = {room.id: room for room in rooms}
        self.time_off: dict[tuple[UUID, str], list[TimeOff]] = {}
        for entry in time_off:
            self.time_off.setdefault((entry.staff_id, entry.date.isoformat()), []).append(entry)

    def overrides_for(self, staff_id: UUID, session: SessionDraft) -> list[TimeOff]:
        return self.time_off.get((staff_id, session.date.isoformat()), [])

    def active_staff(self) -> list[StaffMember]:
        return sorted((m for m in self.staff.values() if m.is_active), key=lambda m: m.name)

    def active_rooms(self) -> list[RoomRecord]:
        return sorted(
            (r for r in self.rooms.values() if r.status.value == "active"), key=lambda r: r.name
        )


def _minutes(session: SessionDraft) -> tuple[int, int]:
    return time_to_minutes(session.start_time), time_to_minutes(session.end_time)


def _same_day(a: SessionDraft, b: SessionDraft) -> bool:
    return a.date == b.date


def _overlapping(a: SessionDraft, b: SessionDraft) -> bool:
    a_start, a_end = _minutes(a)
    b_start, b_end = _minutes(b)
    return _same_day(a, b) and a_start < b_end and b_start < a_end


# Rule evaluators: return a violation message, or None when satisfied


def _evaluate_gender_pairing(
    logic: GenderPairingLogic,
    session: SessionDraft,
    accepted: list[SessionDraft],
    ctx: ScheduleContext,
) -> str | None:
    patient = ctx.patients[session.patient_id]
    member = ctx.staff[session.staff_id]
    if logic.patient_ids is not None and patient.id not in logic.patient_ids:
        return None
    if logic.patient_gender not in (None, "any") and patient.gender != logic.patient_gender:
        return None
    if member.gender != logic.preferred_therapist_gender:
        return (
            f"{patient.name} should be paired with a {logic.preferred_therapist_gender.value} "
            f"therapist, but {member.name} is not"
        )
    return None


def _evaluate_certification(
    logic: CertificationLogic,
    session: SessionDraft,
    accepted: list[SessionDraft],
    ctx: ScheduleContext,
) -> str | None:
    if logic.patient_ids is not None and session.patient_id not in logic.patient_ids:
        return None
    member = ctx.staff[session.staff_id]
    missing = [cert for cert in logic.required_certifications if cert not in member.certifications]
    if missing:
        return f"{member.name} is missing certifications: {', '.join(missing)}"
    if logic.allowed_certifications and not any(
        cert in member.certifications for cert in logic.allowed_certifications
    ):
        return f"{member.name} holds none of: {', '.join(logic.allowed_certifications)}"
    return None


def _evaluate_session(
    logic: SessionLogic,
    session: SessionDraft,
    accepted: list[SessionDraft],
    ctx: ScheduleContext,
) -> str | None:
    if logic.staff_ids is not None and session.staff_id not in logic.staff_ids:
        return None
    start, end = _minutes(session)
    duration = end - start
    if logic.min_duration_minutes is not None and duration < logic.min_duration_minutes:
        return f"Session lasts {duration} minutes, minimum is {logic.min_duration_minutes}"
    if logic.max_duration_minutes is not None and duration > logic.max_duration_minutes:
        return f"Session lasts {duration} minutes, maximum is {logic.max_duration_minutes}"

    member = ctx.staff[session.staff_id]
    staff_day = [s for s in accepted if s.staff_id == session.staff_id and _same_day(s, session)]
    if logic.max_sessions_per_day is not None and len(staff_day) + 1 > logic.max_sessions_per_day:
        return f"{member.name} would exceed {logic.max_sessions_per_day} sessions on {session.date}"

    if logic.min_gap_minutes is not None:
        for other in staff_day:
            other_start, other_end = _minutes(other)
            gap = max(other_start - end, start - other_end)
            if gap < logic.min_gap_minutes:
                return (
                    f"{member.name} needs {logic.min_gap_minutes} minutes between sessions "
                    f"on {session.date}"
                )

    if logic.max_patient_sessions_per_day is not None:
        patient_day = [
            s for s in accepted if s.patient_id == session.patient_id and _same_day(s, session)
        ]
        if len(patient_day) + 1 > logic.max_patient_sessions_per_day:
            patient = ctx.patients[session.patient_id]
            return (
                f"{patient.name} would exceed {logic.max_patient_sessions_per_day} "
                f"sessions on {session.date}"
            )
    return None


def _evaluate_availability(
    logic: AvailabilityLogic,
    session: SessionDraft,
    accepted: list[SessionDraft],
    ctx: ScheduleContext,
) -> str | None:
    scoped = logic.staff_ids is not None or logic.patient_ids is not None
    if scoped and not (
        (logic.staff_ids is not None and session.staff_id in logic.staff_ids)
        or (logic.patient_ids is not None and session.patient_id in logic.patient_ids)
    ):
        return None

    weekday = weekday_name(session.date)
    if logic.allowed_days is not None and weekday not in logic.allowed_days:
        return f"Sessions are not allowed on {weekday}"
    if weekday in logic.blocked_days:
        return f"Sessions are blocked on {weekday}"
    start, end = _minutes(session)
    if logic.earliest_start is not None and start < time_to_minutes(logic.earliest_start):
        return f"Session starts before {logic.earliest_start}"
    if logic.latest_end is not None and end > time_to_minutes(logic.latest_end):
        return f"Session ends after {logic.latest_end}"
    return None


def _evaluate_specific_pairing(
    logic: SpecificPairingLogic,
    session: SessionDraft,
    accepted: list[SessionDraft],
    ctx: ScheduleContext,
) -> str | None:
    if session.patient_id != logic.patient_id:
        return None
    patient = ctx.patients[session.patient_id]
    if logic.mode == "require" and session.staff_id != logic.staff_id:
        required = ctx.staff.get(logic.staff_id)
        name = required.name if required else str(logic.staff_id)
        return f"{patient.name} must be paired with {name}"
    if logic.mode == "forbid" and session.staff_id == logic.staff_id:
        return f"{patient.name} must not be paired with {ctx.staff[session.staff_id].name}"
    return None


Evaluator = Callable[[RuleLogicBase, SessionDraft, list[SessionDraft], ScheduleContext], str | None]

_EVALUATORS: dict[type[RuleLogicBase], Evaluator] = {
    GenderPairingLogic: _evaluate_gender_pairing,
    CertificationLogic: _evaluate_certification,
    SessionLogic: _evaluate_session,
    AvailabilityLogic: _evaluate_availability,
    SpecificPairingLogic: _evaluate_specific_pairing,
}


def builtin_violations(
    session: SessionDraft,
    accepted: list[SessionDraft],
    ctx: ScheduleContext,
) -> list[Violation]:
    """Constraints every session must satisfy regardless of configured rules."""
    violations: list[Violation] = []

    def hard(message: str) -> None:
        violations.append(Violation(None, "required", message))

    member = ctx.staff.get(session.staff_id)
    patient = ctx.patients.get(session.patient_id)
    if member is None or not member.is_active:
        hard(f"Therapist {session.staff_id} not found")
    if patient is None or patient.status.value != "active":
        hard(f"Patient {session.patient_id} not found")
    if member is None or patient is None or violations:
        return violations

    spec = None
    if session.session_spec_id is not None:
        spec = patient.session_spec(session.session_spec_id)
        if spec is None:
            hard(f"Session spec {session.session_spec_id} not found for patient {patient.name}")
    required_certifications = list(patient.required_certifications)
    required_capabilities = list(patient.required_room_capabilities)
    if spec is not None:
        required_certifications += [
            c for c in spec.required_certifications if c not in required_certifications
        ]
        required_capabilities += [
            c for c in spec.required_room_capabilities if c not in required_capabilities
        ]

    missing = [c for c in required_certifications if c not in member.certifications]
    if missing:
        hard(f"Therapist {member.name} missing certifications: {', '.join(missing)}")

    day = working_day(ctx.settings, member, session.date, ctx.overrides_for(member.id, session))
    start, end = _minutes(session)
    if day.window is None:
        hard(f"{member.name} is unavailable on {session.date}: {day.reason}")
    elif start < day.window[0] or end > day.window[1]:
        hard(
            f"Session time {session.start_time}-{session.end_time} outside "
            f"{member.name}'s hours on {session.date}"
        )
    elif any(block.start < end and start < block.end for block in day.time_off):
        hard(f"{member.name} has time off during {session.start_time}-{session.end_time}")

    for other in accepted:
        if not _overlapping(session, other):
            continue
        if other.staff_id == session.staff_id:
            hard(f"Therapist {member.name} has overlapping sessions on {session.date}")
        if other.patient_id == session.patient_id:
            hard(f"Patient {patient.name} has overlapping sessions on {session.date}")
        if session.room_id is not None and other.room_id == session.room_id:
            hard(f"Room {session.room_id} has overlapping sessions on {session.date}")

    if session.room_id is not None:
        room = ctx.rooms.get(session.room_id)
        if room is None:
            hard(f"Room {session.room_id} not found")
        elif not room.has_capabilities(required_capabilities):
            missing_caps = [c for c in required_capabilities if c not in room.capabilities]
            hard(f"Room {room.name} missing required capabilities: {', '.join(missing_caps)}")
    elif required_capabilities:
        violations.append(
            Violation(
                None,
                "preferred",
                f"Patient {patient.name} requires room capabilities "
                f"({', '.join(required_capabilities)}) but no room was assigned",
            )
        )

    if patient.preferred_gender is not None and member.gender != patient.preferred_gender:
        violations.append(
            Violation(
                None,
                "preferred",
                f"{patient.name} prefers a {patient.preferred_gender.value} therapist",
            )
        )
    return violations


def rule_violations(
    session: SessionDraft,
    accepted: list[SessionDraft],
    rules: list[ParsedRule],
    ctx: ScheduleContext,
) -> list[Violation]:
    """Violations of configured rules, in rule evaluation order."""
    violations = []
    for rule in rules:
        message = _EVALUATORS[type(rule.logic)](rule.logic, session, accepted, ctx)
        if message is not None:
            violations.append(Violation(rule.id, rule.logic.priority, message))
    return violations


def evaluate_session(
    session: SessionDraft,
    accepted: list[SessionDraft],
    rules: list[ParsedRule],
    ctx: ScheduleContext,
) -> list[Violation]:
    """
    All violations of a candidate session against already-accepted sessions.

    Rules are only evaluated once the built-in existence checks pass, since
    rule evaluators rely on the staff member and patient being known.

    Args:
        session: Candidate session
        accepted: Sessions already in the schedule being built
        rules: Parsed active rules, in evaluation order
        ctx: Directory data

    Returns:
        Violations, hard ones included
    """
    violations = builtin_violations(session, accepted, ctx)
    if session.staff_id not in ctx.staff or session.patient_id not in ctx.patients:
        return violations
    return violations + rule_violations(session, accepted, rules, ctx)


def hard_violations(violations: list[Violation]) -> list[Violation]:
    return [v for v in violations if v.is_hard]


def describe(session: SessionDraft, ctx: ScheduleContext) -> str:
    """Human-readable label for warnings."""
    patient = ctx.patients.get(session.patient_id)
    member = ctx.staff.get(session.staff_id)
    return (
        f"{patient.name if patient else session.patient_id} with "
        f"{member.name if member else session.staff_id} on {session.date} "
        f"{session.start_time}-{session.end_time}"
    )

"""Re-validation of a published schedule's sessions when copying it to a draft.

Rules and directory data may have changed since a schedule was published.
Copying keeps every session that still conforms exactly as it was, moves
sessions that no longer conform to the first conforming slot, and drops the
ones that cannot be placed anywhere in the week.
"""

from collections.abc import Iterator
from datetime import timedelta

import structlog

from practice_scheduler.schemas.organizations import (
    OrganizationSettings,
    PatientRecord,
    RoomRecord,
    RuleRecord,
    StaffMember,
    TimeOff,
)
from practice_scheduler.schemas.schedules import (
    CopyModifications,
    CopyValidationResult,
    RemovedSession,
    SessionDraft,
    SessionModification,
)
from practice_scheduler.scheduling.availability import working_day
from practice_scheduler.scheduling.rule_engine import (
    ScheduleContext,
    Violation,
    describe,
    evaluate_session,
    hard_violations,
)
from practice_scheduler.scheduling.rule_logic import ParsedRule, parse_rules
from practice_scheduler.scheduling.rule_review import ensure_rules_reviewed
from practice_scheduler.scheduling.timeslots import (
    minutes_to_time,
    time_to_minutes,
    week_start_for,
)

logger = structlog.get_logger(__name__)


def _chronological(session: SessionDraft) -> tuple:
    return (session.date, session.start_time, session.end_time, str(session.staff_id))


def _room_options(
    original: SessionDraft, patient: PatientRecord, ctx: ScheduleContext
) -> list[RoomRecord | None]:
    """Rooms to try for a reassignment: the original room first, then capable ones."""
    if original.room_id is None:
        return [None]
    options = []
    current = ctx.rooms.get(original.room_id)
    if current is not None:
        options.append(current)
    options.extend(
        room
        for room in ctx.active_rooms()
        if room.id != original.room_id and room.has_capabilities(patient.required_room_capabilities)
    )
    return options


def _assignments(original: SessionDraft, ctx: ScheduleContext) -> Iterator[SessionDraft]:
    """
    Candidate reassignments in preference order.

    1. Same date and time with another active staff member.
    2. Same date at another grid time, original staff member first.
    3. Other open days of the same week, in calendar order.
    """
    start = time_to_minutes(original.start_time)
    duration = time_to_minutes(original.end_time) - start
    staff = ctx.active_staff()
    others = [m for m in staff if m.id != original.staff_id]
    by_preference = [m for m in staff if m.id == original.staff_id] + others

    for member in others:
        yield original.model_copy(update={"staff_id": member.id})

    monday = week_start_for(original.date)
    week = [monday + timedelta(days=offset) for offset in range(7)]
    days = [original.date] + [day for day in week if day != original.date]
    interval = ctx.settings.slot_interval

    for day in days:
        for member in by_preference:
            overrides = ctx.time_off.get((member.id, day.isoformat()), [])
            window = working_day(ctx.settings, member, day, overrides).window
            if window is None:
                continue
            for slot_start in range(window[0], window[1] - duration + 1, interval):
                if day == original.date and slot_start == start:
                    continue
                yield original.model_copy(
                    update={
                        "staff_id": member.id,
                        "date": day,
                        "start_time": minutes_to_time(slot_start),
                        "end_time": minutes_to_time(slot_start + duration),
                    }
                )


def _place(
    original: SessionDraft,
    accepted: list[SessionDraft],
    rules: list[ParsedRule],
    ctx: ScheduleContext,
) -> tuple[SessionDraft, list[Violation]] | None:
    """First conforming reassignment of a session, with its soft violations."""
    patient = ctx.patients.get(original.patient_id)
    if patient is None or patient.status.value != "active":
        return None
    rooms = _room_options(original, patient, ctx)

    for candidate in _assignments(original, ctx):
        for room in rooms:
            placed = candidate.model_copy(update={"room_id": room.id if room else None})
            violations = evaluate_session(placed, accepted, rules, ctx)
            if not hard_violations(violations):
                return placed, violations
    return None


def validate_and_regenerate_copied_schedule(
    settings: OrganizationSettings,
    sessions: list[SessionDraft],
    staff: list[StaffMember],
    patients: list[PatientRecord],
    rooms: list[RoomRecord],
    rules: list[RuleRecord],
    time_off: list[TimeOff] | None = None,
) -> CopyValidationResult:
    """
    Re-validate copied sessions against current rules, regenerating violators.

    The first pass walks sessions chronologically and keeps every session
    with no hard violation, unchanged. The second pass re-places each
    violator against the kept sessions and the already re-placed ones.

    Args:
        settings: Organization settings
        sessions: Non-cancelled sessions of the source schedule
        staff: Staff directory
        patients: Patient directory
        rooms: Room directory
        rules: Rules of the organization, active or not
        time_off: Approved overrides for the week

    Returns:
        Sessions for the new draft plus the list of changes and warnings

    Raises:
        RuleReviewRequiredException: If any active rule needs review
        ValidationException: If a stored rule payload is malformed
    """
    ensure_rules_reviewed(rules, staff, patients)
    parsed = parse_rules(rules)
    ctx = ScheduleContext(settings, staff, patients, rooms, time_off or [])

    accepted: list[SessionDraft] = []
    violators: list[tuple[SessionDraft, list[Violation]]] = []
    warnings: list[str] = []

    for session in sorted(sessions, key=_chronological):
        violations = evaluate_session(session, accepted, parsed, ctx)
        hard = hard_violations(violations)
        if hard:
            violators.append((session, hard))
            continue
        accepted.append(session)
        warnings.extend(f"{describe(session, ctx)}: {v.message}" for v in violations)

    modifications = CopyModifications()
    for session, hard in violators:
        reasons = [v.message for v in hard]
        placement = _place(session, accepted, parsed, ctx)
        if placement is None:
            modifications.removed.append(
                RemovedSession(session_id=session.id, session=session, reasons=reasons)
            )
            continue
        placed, soft = placement
        accepted.append(placed)
        modifications.regenerated.append(
            SessionModification(session_id=session.id, before=session, after=placed, reasons=reasons)
        )
        warnings.extend(f"{describe(placed, ctx)}: {v.message}" for v in soft)

    logger.info(
        "copied_schedule_validated",
        kept=len(sessions) - len(violators),
        regenerated=len(modifications.regenerated),
        removed=len(modifications.removed),
    )
    return CopyValidationResult(
        valid_sessions=sorted(accepted, key=_chronological),
        modifications=modifications,
        warnings=warnings,
    )

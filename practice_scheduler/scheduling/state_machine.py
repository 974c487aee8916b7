"""Session status transition graph and late-cancellation classification."""

from datetime import datetime, timedelta

from practice_scheduler.core.exceptions import InvalidTransitionException
from practice_scheduler.schemas.sessions import SessionStatus

S = SessionStatus

TRANSITIONS: dict[SessionStatus, frozenset[SessionStatus]] = {
    S.PENDING: frozenset({S.SCHEDULED, S.CANCELLED}),
    S.SCHEDULED: frozenset({S.CONFIRMED, S.CANCELLED, S.LATE_CANCEL}),
    S.CONFIRMED: frozenset({S.CHECKED_IN, S.CANCELLED, S.LATE_CANCEL, S.NO_SHOW}),
    S.CHECKED_IN: frozenset({S.IN_PROGRESS, S.CANCELLED, S.LATE_CANCEL}),
    S.IN_PROGRESS: frozenset({S.COMPLETED, S.CANCELLED}),
    S.COMPLETED: frozenset(),
    S.CANCELLED: frozenset(),
    S.LATE_CANCEL: frozenset(),
    S.NO_SHOW: frozenset(),
}

TERMINAL_STATUSES = frozenset(status for status, targets in TRANSITIONS.items() if not targets)
CANCELLATION_STATUSES = frozenset({S.CANCELLED, S.LATE_CANCEL})

# Statuses that occupy their slot
BLOCKING_STATUSES = frozenset(TRANSITIONS) - TERMINAL_STATUSES


def allowed_transitions(current: SessionStatus) -> list[str]:
    """Legal next statuses, in declaration order."""
    targets = TRANSITIONS[current]
    return [status.value for status in SessionStatus if status in targets]


def is_terminal(status: SessionStatus) -> bool:
    return status in TERMINAL_STATUSES


def is_inside_late_cancel_window(
    session_start: datetime,
    late_cancel_window_hours: int,
    now: datetime,
) -> bool:
    """
    Whether a cancellation at ``now`` counts as late.

    The window is exclusive at its outer edge: cancelling exactly
    ``late_cancel_window_hours`` before the session start is on time.
    """
    cutoff = session_start - timedelta(hours=late_cancel_window_hours)
    return now > cutoff


def resolve_transition(
    current: SessionStatus,
    requested: SessionStatus,
    *,
    session_start: datetime,
    late_cancel_window_hours: int,
    now: datetime,
) -> SessionStatus:
    """
    Validate a status change and return the status that will be stored.

    Cancellations inside the late-cancel window are stored as ``late_cancel``
    whenever that is a legal target from the current status, whatever the
    caller asked for.

    Args:
        current: Current session status
        requested: Requested status
        session_start: Absolute start instant of the session
        late_cancel_window_hours: Organization notice window
        now: Time of the request

    Returns:
        Status to store

    Raises:
        InvalidTransitionException: If the change is not in the transition table
    """
    targets = TRANSITIONS[current]
    if requested not in targets:
        raise InvalidTransitionException(current.value, requested.value, allowed_transitions(current))

    if (
        requested == S.CANCELLED
        and S.LATE_CANCEL in targets
        and is_inside_late_cancel_window(session_start, late_cancel_window_hours, now)
    ):
        return S.LATE_CANCEL
    return requested

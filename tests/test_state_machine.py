from datetime import UTC, datetime, timedelta

import pytest

from practice_scheduler.core.exceptions import InvalidTransitionException
from practice_scheduler.schemas.sessions import SessionStatus
from practice_scheduler.scheduling.state_machine import (
    BLOCKING_STATUSES,
    TERMINAL_STATUSES,
    TRANSITIONS,
    allowed_transitions,
    is_inside_late_cancel_window,
    is_terminal,
    resolve_transition,
)

S = SessionStatus
SESSION_START = datetime(2025, 6, 2, 13, 0, tzinfo=UTC)
FAR_AHEAD = SESSION_START - timedelta(days=7)


def test_every_status_has_an_entry():
    assert set(TRANSITIONS) == set(SessionStatus)


def test_terminal_statuses():
    assert TERMINAL_STATUSES == {S.COMPLETED, S.CANCELLED, S.LATE_CANCEL, S.NO_SHOW}
    for status in TERMINAL_STATUSES:
        assert is_terminal(status)
        assert allowed_transitions(status) == []


def test_blocking_statuses_are_the_non_terminal_ones():
    assert BLOCKING_STATUSES == {S.PENDING, S.SCHEDULED, S.CONFIRMED, S.CHECKED_IN, S.IN_PROGRESS}


def test_allowed_transitions_in_declaration_order():
    assert allowed_transitions(S.CONFIRMED) == ["checked_in", "cancelled", "late_cancel", "no_show"]
    assert allowed_transitions(S.PENDING) == ["scheduled", "cancelled"]


@pytest.mark.parametrize(
    "current,target",
    [
        (S.PENDING, S.SCHEDULED),
        (S.SCHEDULED, S.CONFIRMED),
        (S.CONFIRMED, S.CHECKED_IN),
        (S.CHECKED_IN, S.IN_PROGRESS),
        (S.IN_PROGRESS, S.COMPLETED),
        (S.CONFIRMED, S.NO_SHOW),
    ],
)
def test_happy_path_transitions(current, target):
    stored = resolve_transition(
        current, target, session_start=SESSION_START, late_cancel_window_hours=24, now=FAR_AHEAD
    )
    assert stored == target


@pytest.mark.parametrize(
    "current,target",
    [
        (S.SCHEDULED, S.COMPLETED),
        (S.SCHEDULED, S.NO_SHOW),
        (S.PENDING, S.CONFIRMED),
        (S.COMPLETED, S.CANCELLED),
        (S.NO_SHOW, S.SCHEDULED),
        (S.IN_PROGRESS, S.NO_SHOW),
    ],
)
def test_illegal_transitions_rejected(current, target):
    with pytest.raises(InvalidTransitionException) as exc_info:
        resolve_transition(
            current, target, session_start=SESSION_START, late_cancel_window_hours=24, now=FAR_AHEAD
        )
    assert exc_info.value.status_code == 409
    assert exc_info.value.details["allowed_statuses"] == allowed_transitions(current)


def test_cancel_inside_window_becomes_late_cancel():
    now = SESSION_START - timedelta(hours=2)
    stored = resolve_transition(
        S.SCHEDULED, S.CANCELLED, session_start=SESSION_START, late_cancel_window_hours=24, now=now
    )
    assert stored == S.LATE_CANCEL


def test_cancel_exactly_at_window_edge_is_on_time():
    now = SESSION_START - timedelta(hours=24)
    assert not is_inside_late_cancel_window(SESSION_START, 24, now)
    stored = resolve_transition(
        S.CONFIRMED, S.CANCELLED, session_start=SESSION_START, late_cancel_window_hours=24, now=now
    )
    assert stored == S.CANCELLED


def test_cancel_one_second_inside_window_is_late():
    now = SESSION_START - timedelta(hours=24) + timedelta(seconds=1)
    assert is_inside_late_cancel_window(SESSION_START, 24, now)


def test_late_cancel_only_where_legal():
    """Pending and in-progress sessions have no late_cancel edge and stay cancelled."""
    now = SESSION_START - timedelta(hours=1)
    for current in (S.PENDING, S.IN_PROGRESS):
        stored = resolve_transition(
            current, S.CANCELLED, session_start=SESSION_START, late_cancel_window_hours=24, now=now
        )
        assert stored == S.CANCELLED


def test_zero_hour_window_never_late_before_start():
    now = SESSION_START - timedelta(minutes=1)
    stored = resolve_transition(
        S.SCHEDULED, S.CANCELLED, session_start=SESSION_START, late_cancel_window_hours=0, now=now
    )
    assert stored == S.CANCELLED

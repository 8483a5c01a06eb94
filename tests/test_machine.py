"""Tests for the session transition table."""

import pytest

from learnloop.session.errors import InvalidTransitionError
from learnloop.session.machine import (
    NO_OPS,
    TIMER_EVENTS,
    TRANSITIONS,
    SessionEvent,
    allowed_events,
    reduce,
)
from learnloop.session.models import SessionState, TERMINAL_STATES

S = SessionState
E = SessionEvent


class TestReduce:

    @pytest.mark.parametrize("source, event, target", [
        (S.NOT_STARTED, E.START, S.ACTIVE),
        (S.ACTIVE, E.PAUSE, S.PAUSED),
        (S.PAUSED, E.RESUME, S.ACTIVE),
        (S.ACTIVE, E.BREAK_DUE, S.BREAK),
        (S.BREAK, E.BREAK_OVER, S.ACTIVE),
        (S.BREAK, E.RESUME, S.ACTIVE),
        (S.PAUSED, E.COMPLETE, S.COMPLETED),
        (S.BREAK, E.ABANDON, S.ABANDONED),
    ])
    def test_valid_transitions(self, source, event, target):
        transition = reduce(source, event)
        assert transition.source == source
        assert transition.target == target
        assert transition.event == event
        assert transition.changed

    @pytest.mark.parametrize("source, event", sorted(NO_OPS, key=str))
    def test_no_ops_keep_state(self, source, event):
        transition = reduce(source, event)
        assert transition.target == source
        assert not transition.changed

    @pytest.mark.parametrize("source, event", [
        (S.NOT_STARTED, E.PAUSE),
        (S.NOT_STARTED, E.RESUME),
        (S.NOT_STARTED, E.COMPLETE),
        (S.NOT_STARTED, E.ABANDON),
        (S.ACTIVE, E.START),
        (S.BREAK, E.PAUSE),
        (S.BREAK, E.START),
        (S.PAUSED, E.BREAK_DUE),
        (S.ACTIVE, E.BREAK_OVER),
    ])
    def test_invalid_transitions(self, source, event):
        with pytest.raises(InvalidTransitionError) as info:
            reduce(source, event)
        assert info.value.state == source
        assert info.value.event == event

    @pytest.mark.parametrize("source", sorted(TERMINAL_STATES, key=str))
    @pytest.mark.parametrize("event", list(SessionEvent))
    def test_terminal_states_accept_nothing(self, source, event):
        with pytest.raises(InvalidTransitionError, match="already terminal"):
            reduce(source, event)


class TestTable:

    def test_break_only_entered_by_timer(self):
        into_break = {e for (_, e), t in TRANSITIONS.items() if t == S.BREAK}
        assert into_break <= TIMER_EVENTS

    def test_no_edge_leaves_terminal(self):
        assert not any(source in TERMINAL_STATES for source, _ in TRANSITIONS)

    def test_allowed_events(self):
        assert allowed_events(S.NOT_STARTED) == {E.START}
        assert allowed_events(S.PAUSED) == {
            E.PAUSE, E.RESUME, E.COMPLETE, E.ABANDON,
        }
        assert allowed_events(S.COMPLETED) == frozenset()

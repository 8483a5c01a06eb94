"""Session lifecycle transition table.

States
------
NOT_STARTED   Created, waiting for ``start``.
ACTIVE        Countdown running, active time accumulating.
PAUSED        Everything frozen until ``resume``.
BREAK         Break countdown running (entered by the timer, never asked for).
COMPLETED     Terminal.
ABANDONED     Terminal.

Transitions
-----------
NOT_STARTED → ACTIVE                  (START)
ACTIVE → PAUSED                       (PAUSE)
PAUSED → ACTIVE                       (RESUME)
ACTIVE → BREAK                        (BREAK_DUE, timer)
BREAK → ACTIVE                        (RESUME, user ends break early)
BREAK → ACTIVE                        (BREAK_OVER, timer)
ACTIVE | PAUSED | BREAK → COMPLETED   (COMPLETE)
ACTIVE | PAUSED | BREAK → ABANDONED   (ABANDON)

``PAUSE`` while paused and ``RESUME`` while active are accepted as no-ops.
Everything else raises :class:`InvalidTransitionError`.

User commands and timer events both go through :func:`reduce`, so there is
exactly one table no matter where an event comes from.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from .errors import InvalidTransitionError
from .models import SessionState, TERMINAL_STATES


class SessionEvent(Enum):
    START = "start"
    PAUSE = "pause"
    RESUME = "resume"
    BREAK_DUE = "break_due"
    BREAK_OVER = "break_over"
    COMPLETE = "complete"
    ABANDON = "abandon"


# Events raised by the timer rather than by a caller.
TIMER_EVENTS = frozenset({SessionEvent.BREAK_DUE, SessionEvent.BREAK_OVER})


_S = SessionState
_E = SessionEvent

TRANSITIONS: dict[tuple[SessionState, SessionEvent], SessionState] = {
    (_S.NOT_STARTED, _E.START): _S.ACTIVE,
    (_S.ACTIVE, _E.PAUSE): _S.PAUSED,
    (_S.PAUSED, _E.RESUME): _S.ACTIVE,
    (_S.ACTIVE, _E.BREAK_DUE): _S.BREAK,
    (_S.BREAK, _E.RESUME): _S.ACTIVE,
    (_S.BREAK, _E.BREAK_OVER): _S.ACTIVE,
    (_S.ACTIVE, _E.COMPLETE): _S.COMPLETED,
    (_S.PAUSED, _E.COMPLETE): _S.COMPLETED,
    (_S.BREAK, _E.COMPLETE): _S.COMPLETED,
    (_S.ACTIVE, _E.ABANDON): _S.ABANDONED,
    (_S.PAUSED, _E.ABANDON): _S.ABANDONED,
    (_S.BREAK, _E.ABANDON): _S.ABANDONED,
}

NO_OPS = frozenset({
    (_S.PAUSED, _E.PAUSE),
    (_S.ACTIVE, _E.RESUME),
})


@dataclass(frozen=True)
class Transition:
    source: SessionState
    target: SessionState
    event: SessionEvent

    @property
    def changed(self) -> bool:
        return self.source != self.target


def reduce(state: SessionState, event: SessionEvent) -> Transition:
    """Apply *event* to *state* and return the resulting transition."""
    if state in TERMINAL_STATES:
        raise InvalidTransitionError(
            f"session already terminal ({state.value}); "
            f"cannot {event.value}",
            state=state,
            event=event,
        )
    if (state, event) in NO_OPS:
        return Transition(state, state, event)

    target = TRANSITIONS.get((state, event))
    if target is None:
        raise InvalidTransitionError(
            f"cannot {event.value} a session that is {state.value}",
            state=state,
            event=event,
        )
    return Transition(state, target, event)


def allowed_events(state: SessionState) -> frozenset[SessionEvent]:
    """Events :func:`reduce` accepts from *state* (no-ops included)."""
    return frozenset(
        event for (source, event) in (*TRANSITIONS, *NO_OPS) if source == state
    )

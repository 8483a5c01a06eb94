"""Session engine: lifecycle, countdown and break timer for learning sessions.

The engine owns every session a child has open (at most one each) and a
single ``QTimer`` that drives them.  Commands and timer events are both
fed through :func:`~learnloop.session.machine.reduce`, so the transition
table in ``machine.py`` is the only place that decides what is legal.

Timekeeping
-----------
Ticks do not decrement counters.  Each tick reads the injected clock and
consumes the real elapsed time since the previous tick, clamped to
``[0, max_tick_gap]``.  The delta is consumed in segments: active time
accrues up to the break threshold, the break starts inside the same tick,
the remainder counts down the break, and so on.  Commands settle pending
time the same way before they are applied, so nothing is lost between
ticks and nothing is counted twice.

Reaching zero on the countdown never completes a session.  It raises
``time_up`` once and leaves completion to the caller, because a child may
keep working past the recommended duration.

Persistence
-----------
Every state change is handed to the repository (if any).  A failing
repository does not undo the transition: the error is stored in
:attr:`SessionEngine.error`, emitted on ``error_changed`` and returned in
the :class:`CommandResult`.  :meth:`SessionEngine.retry_persist` tries
again.

Re-entrancy
-----------
A command issued while another is being applied (typically from a slot
connected to one of the signals below) is queued and run right after the
current one finishes.  Queued commands return ``None``; if one fails, its
error goes to :attr:`SessionEngine.error`.
"""

from __future__ import annotations

import logging
import math
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

from PyQt6.QtCore import QObject, QTimer, pyqtSignal

from . import stats
from .clock import Clock, MonotonicClock
from .errors import (
    ConflictError,
    InvalidTransitionError,
    PersistenceError,
    SessionError,
    SessionNotFoundError,
    ValidationError,
)
from .machine import SessionEvent, Transition, reduce
from .models import (
    CreateSessionRequest,
    LearningSession,
    ProgressMarker,
    SessionState,
)
from .policy import BreakPolicy

if TYPE_CHECKING:
    from ..database.repository import SessionStore
    from ..settings import Settings

logger = logging.getLogger(__name__)


# ── constants ─────────────────────────────────────────────────────────────

DEFAULT_TICK_INTERVAL_MS = 1000
DEFAULT_MAX_TICK_GAP = 300.0   # seconds; longer gaps are treated as a clock jump


# ── results ───────────────────────────────────────────────────────────────


@dataclass
class CommandResult:
    """Outcome of a lifecycle command.

    ``transition`` is the in-memory change, which always happened.
    ``persisted`` / ``persistence_error`` report on the repository
    separately.  Without a repository ``persisted`` is False and there is
    no error.
    """

    session: LearningSession
    transition: Transition | None = None
    persisted: bool = False
    persistence_error: PersistenceError | None = None


@dataclass(frozen=True)
class SessionSnapshot:
    session_id: str
    state: SessionState
    time_remaining: int
    break_time_remaining: int
    is_session_active: bool
    is_break_time: bool
    is_time_up: bool
    percent_complete: float


class _Runtime:
    """Timer bookkeeping for one session; never leaves the engine."""

    __slots__ = (
        "last_tick", "since_break", "break_remaining",
        "warning_fired", "time_up_fired",
    )

    def __init__(self) -> None:
        self.last_tick: float | None = None   # None → not accruing
        self.since_break: float = 0.0
        self.break_remaining: float = 0.0
        self.warning_fired: bool = False
        self.time_up_fired: bool = False


def _with_reason(text: str, reason: str | None) -> str:
    return f"{text}: {reason}" if reason else text


# ── engine ────────────────────────────────────────────────────────────────


class SessionEngine(QObject):
    """Learning-session state machine with a wall-clock driven timer.

    Signals
    -------
    ticked(time_remaining: int)
        Emitted after every tick while the current session is running.
    state_changed(session_id: str, new_state: SessionState)
        Emitted on every real state change (no-ops are silent).
    session_created(session: LearningSession)
    break_started(session: LearningSession)
    break_ended(session: LearningSession)
        Emitted when the break countdown runs out *or* the child resumes
        early.
    break_warning(session: LearningSession)
        Fires once per break interval, ``warning_before_break`` minutes
        before the break is due.
    time_up(session: LearningSession)
        Fires once when active time reaches the recommended duration.
    session_completed(summary: dict)
        See :func:`learnloop.gamification.achievements.session_summary`.
    error_changed(error: SessionError | None)
    """

    ticked = pyqtSignal(int)
    state_changed = pyqtSignal(str, object)
    session_created = pyqtSignal(object)
    break_started = pyqtSignal(object)
    break_ended = pyqtSignal(object)
    break_warning = pyqtSignal(object)
    time_up = pyqtSignal(object)
    session_completed = pyqtSignal(object)
    error_changed = pyqtSignal(object)

    def __init__(
        self,
        parent: QObject | None = None,
        *,
        clock: Clock | None = None,
        repository: SessionStore | None = None,
        break_policy: BreakPolicy | None = None,
        tick_interval_ms: int = DEFAULT_TICK_INTERVAL_MS,
        max_tick_gap: float = DEFAULT_MAX_TICK_GAP,
        timing_overrides: dict | None = None,
    ) -> None:
        super().__init__(parent)

        # ── collaborators ─────────────────────────────────────────────
        self._clock: Clock = clock or MonotonicClock()
        self._repository: SessionStore | None = repository
        self._policy: BreakPolicy = break_policy or BreakPolicy()
        self._max_tick_gap = max_tick_gap
        self._timing_overrides = dict(timing_overrides or {})

        # ── sessions ──────────────────────────────────────────────────
        self._sessions: dict[str, LearningSession] = {}
        self._runtime: dict[str, _Runtime] = {}
        self._open_by_child: dict[str, str] = {}
        self._current_id: str | None = None

        # ── UI flags ──────────────────────────────────────────────────
        self._show_break_reminder: bool = False
        self._show_session_complete: bool = False
        self._error: SessionError | None = None

        # ── dispatch ──────────────────────────────────────────────────
        self._dispatching: bool = False
        self._pending: deque = deque()

        # ── Qt timer ──────────────────────────────────────────────────
        self._qt_timer = QTimer(self)
        self._qt_timer.setInterval(tick_interval_ms)
        self._qt_timer.timeout.connect(self.tick)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        parent: QObject | None = None,
        *,
        clock: Clock | None = None,
        repository: SessionStore | None = None,
    ) -> SessionEngine:
        """Build an engine configured from a :class:`~learnloop.settings.Settings`.

        With ``persistence_enabled`` and no *repository* given, sessions go
        to SQLite: the database at ``database_url`` (or the default file),
        with its tables created if missing.
        """
        if repository is None and settings.persistence_enabled:
            from ..database.db import configure_engine, init_db
            from ..database.repository import SessionRepository

            if settings.database_url:
                configure_engine(settings.database_url)
            init_db()
            logger.info(
                "Persisting sessions to %s",
                settings.database_url or "the default database",
            )
            repository = SessionRepository()
        return cls(
            parent,
            clock=clock,
            repository=repository,
            break_policy=BreakPolicy(
                enabled=settings.break_reminders_enabled,
                warnings=settings.break_warnings_enabled,
            ),
            tick_interval_ms=settings.tick_interval_ms,
            max_tick_gap=settings.max_tick_gap,
            timing_overrides=settings.timing_overrides,
        )

    # ══════════════════════════════════════════════════════════════════
    #  READ MODEL
    # ══════════════════════════════════════════════════════════════════

    @property
    def current_session(self) -> LearningSession | None:
        """The most recently created session (kept after it ends)."""
        if self._current_id is None:
            return None
        return self._sessions.get(self._current_id)

    @property
    def is_session_active(self) -> bool:
        """True while the current session is running (active or on break)."""
        session = self.current_session
        return session is not None and session.state in (
            SessionState.ACTIVE, SessionState.BREAK,
        )

    @property
    def is_break_time(self) -> bool:
        session = self.current_session
        return session is not None and session.state == SessionState.BREAK

    @property
    def time_remaining(self) -> int:
        """Whole seconds left of the recommended duration (never negative)."""
        session = self.current_session
        if session is None:
            return 0
        return self._time_remaining(session)

    @property
    def break_time_remaining(self) -> int:
        session = self.current_session
        if session is None:
            return 0
        return math.ceil(self._runtime[session.id].break_remaining)

    @property
    def is_time_up(self) -> bool:
        session = self.current_session
        return session is not None and self._is_time_up(session)

    @property
    def percent_complete(self) -> float:
        session = self.current_session
        if session is None:
            return 0.0
        return stats.percent_complete(session.timing_config, session.total_duration)

    @property
    def show_break_reminder(self) -> bool:
        return self._show_break_reminder

    @property
    def show_session_complete(self) -> bool:
        return self._show_session_complete

    @property
    def error(self) -> SessionError | None:
        """Last persistence (or queued-command) error, until dismissed."""
        return self._error

    @property
    def is_ticking(self) -> bool:
        return self._qt_timer.isActive()

    def get_session(self, session_id: str) -> LearningSession | None:
        return self._sessions.get(session_id)

    def open_session_for(self, child_id: str) -> LearningSession | None:
        """The child's unfinished session, if there is one."""
        session_id = self._open_by_child.get(child_id)
        return self._sessions.get(session_id) if session_id else None

    def snapshot(self, session_id: str | None = None) -> SessionSnapshot | None:
        """Read-model view of any session the engine holds."""
        session = (
            self.current_session if session_id is None
            else self._sessions.get(session_id)
        )
        if session is None:
            return None
        runtime = self._runtime[session.id]
        return SessionSnapshot(
            session_id=session.id,
            state=session.state,
            time_remaining=self._time_remaining(session),
            break_time_remaining=math.ceil(runtime.break_remaining),
            is_session_active=session.state in (
                SessionState.ACTIVE, SessionState.BREAK,
            ),
            is_break_time=session.state == SessionState.BREAK,
            is_time_up=self._is_time_up(session),
            percent_complete=stats.percent_complete(
                session.timing_config, session.total_duration,
            ),
        )

    def _time_remaining(self, session: LearningSession) -> int:
        remaining = stats.time_remaining(session.timing_config, session.total_duration)
        return math.ceil(remaining)

    def _is_time_up(self, session: LearningSession) -> bool:
        return session.started_at is not None and self._time_remaining(session) == 0

    # ══════════════════════════════════════════════════════════════════
    #  COMMANDS
    # ══════════════════════════════════════════════════════════════════

    def create_session(self, request: CreateSessionRequest) -> LearningSession:
        """Create a ``not_started`` session and make it current.

        Raises :class:`ValidationError` for bad input and
        :class:`ConflictError` when the child already has an unfinished
        session.  A finished session of the same child is replaced.
        """
        return self._run(self._create, request)

    def start(self, session_id: str) -> CommandResult:
        return self._run(self._command, session_id, SessionEvent.START)

    def pause(self, session_id: str, reason: str | None = None) -> CommandResult:
        """Freeze the session.  Pausing twice is harmless."""
        return self._run(self._command, session_id, SessionEvent.PAUSE, reason=reason)

    def resume(self, session_id: str) -> CommandResult:
        """Continue after a pause, or end a break early."""
        return self._run(self._command, session_id, SessionEvent.RESUME)

    def complete(
        self,
        session_id: str,
        completion_rate: float | None = None,
        notes: str | None = None,
    ) -> CommandResult:
        """Finish the session and raise the completion-summary flag.

        *completion_rate* is only used when the session has no learning
        objectives; otherwise the objectives decide.
        """
        return self._run(
            self._command, session_id, SessionEvent.COMPLETE,
            completion_rate=completion_rate, notes=notes,
        )

    def abandon(self, session_id: str, reason: str | None = None) -> CommandResult:
        return self._run(self._command, session_id, SessionEvent.ABANDON, reason=reason)

    def record_interaction(
        self, session_id: str, response_time_ms: float | None = None,
    ) -> None:
        """Count one interaction; a response time also feeds the average."""
        return self._run(self._record_interaction, session_id, response_time_ms)

    def mark_objective(
        self, session_id: str, objective_id: str, completed: bool = True,
    ) -> None:
        return self._run(self._mark_objective, session_id, objective_id, completed)

    def retry_persist(self, session_id: str) -> CommandResult:
        """Hand the session to the repository again, e.g. after an error."""
        session = self._require(session_id)
        persisted, error = self._persist(session)
        if persisted and isinstance(self._error, PersistenceError):
            self._set_error(None)
        return CommandResult(session, None, persisted, error)

    def dismiss_break_reminder(self) -> None:
        if not self._show_break_reminder:
            return
        self._show_break_reminder = False
        session = self.current_session
        if session is not None:
            session.reminders_acknowledged += 1

    def dismiss_session_complete(self) -> None:
        self._show_session_complete = False

    def dismiss_error(self) -> None:
        self._set_error(None)

    def tick(self) -> None:
        """Advance every running session to the clock's current reading.

        Connected to the internal ``QTimer``; tests call it directly.
        Never raises.
        """
        self._run(self._tick)

    def shutdown(self) -> None:
        """Stop the timer, settling elapsed time first."""
        self.tick()
        self._qt_timer.stop()

    # ══════════════════════════════════════════════════════════════════
    #  INTERNAL — dispatch
    # ══════════════════════════════════════════════════════════════════

    def _run(self, fn, *args, **kwargs):
        if self._dispatching:
            logger.debug("Queueing re-entrant %s%r", fn.__name__, args)
            self._pending.append((fn, args, kwargs))
            return None
        self._dispatching = True
        try:
            return fn(*args, **kwargs)
        finally:
            self._dispatching = False
            self._drain()

    def _drain(self) -> None:
        while self._pending:
            fn, args, kwargs = self._pending.popleft()
            self._dispatching = True
            try:
                fn(*args, **kwargs)
            except SessionError as exc:
                logger.warning("Queued %s failed: %s", fn.__name__, exc)
                self._set_error(exc)
            finally:
                self._dispatching = False

    def _require(self, session_id: str) -> LearningSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    # ══════════════════════════════════════════════════════════════════
    #  INTERNAL — commands
    # ══════════════════════════════════════════════════════════════════

    def _create(self, request: CreateSessionRequest) -> LearningSession:
        session = request.build(self._timing_overrides)

        existing_id = self._open_by_child.get(session.child_id)
        if existing_id is not None:
            raise ConflictError(session.child_id, existing_id)

        for old_id in [
            sid for sid, old in self._sessions.items()
            if old.child_id == session.child_id
        ]:
            del self._sessions[old_id]
            del self._runtime[old_id]

        self._sessions[session.id] = session
        self._runtime[session.id] = _Runtime()
        self._open_by_child[session.child_id] = session.id
        self._current_id = session.id
        self._show_break_reminder = False
        self._show_session_complete = False

        logger.info(
            "Created %s session %s for child %s (%d objectives)",
            session.type.value, session.id, session.child_id,
            len(session.learning_objectives),
        )
        self._persist(session)
        self.session_created.emit(session)
        return session

    def _command(
        self,
        session_id: str,
        event: SessionEvent,
        *,
        reason: str | None = None,
        notes: str | None = None,
        completion_rate: float | None = None,
    ) -> CommandResult:
        session = self._require(session_id)
        runtime = self._runtime[session.id]

        # Time that passed since the last tick belongs to the old state.
        self._settle(session, runtime)

        transition = reduce(session.state, event)
        if not transition.changed:
            logger.debug("%s on %s session %s is a no-op",
                         event.value, session.state.value, session.id)
            return CommandResult(session, transition)

        self._apply(
            session, runtime, transition,
            reason=reason, notes=notes, completion_rate=completion_rate,
        )
        persisted, error = self._persist(session)
        self._sync_timer()
        return CommandResult(session, transition, persisted, error)

    def _record_interaction(
        self, session_id: str, response_time_ms: float | None,
    ) -> None:
        session = self._require(session_id)
        if session.is_terminal:
            raise InvalidTransitionError(
                f"session already terminal ({session.state.value}); "
                "cannot record interactions",
                state=session.state,
            )
        if response_time_ms is not None and response_time_ms < 0:
            raise ValidationError("response time cannot be negative")

        session.interaction_count += 1
        if response_time_ms is not None:
            session.average_response_time = stats.update_running_average(
                session.average_response_time,
                session.response_samples,
                response_time_ms,
            )
            session.response_samples += 1
        logger.debug(
            "Interaction %d on session %s (response %s ms)",
            session.interaction_count, session.id, response_time_ms,
        )

    def _mark_objective(
        self, session_id: str, objective_id: str, completed: bool,
    ) -> None:
        session = self._require(session_id)
        if session.is_terminal:
            raise InvalidTransitionError(
                f"session already terminal ({session.state.value}); "
                "cannot update objectives",
                state=session.state,
            )
        objective = session.objective(objective_id)
        if objective is None:
            raise ValidationError(f"no objective {objective_id!r} in session")
        objective.completed = completed
        objective.completed_at = datetime.now() if completed else None
        self._add_marker(
            session,
            f"Objective {'completed' if completed else 'reopened'}: "
            f"{objective.description}",
            objective_id=objective.id,
        )

    # ══════════════════════════════════════════════════════════════════
    #  INTERNAL — transitions
    # ══════════════════════════════════════════════════════════════════

    def _apply(
        self,
        session: LearningSession,
        runtime: _Runtime,
        transition: Transition,
        *,
        reason: str | None = None,
        notes: str | None = None,
        completion_rate: float | None = None,
    ) -> None:
        event = transition.event
        is_current = session.id == self._current_id
        session.state = transition.target

        if event is SessionEvent.START:
            session.started_at = datetime.now()
            runtime.last_tick = self._clock.now()
            self._add_marker(session, "Session started")

        elif event is SessionEvent.PAUSE:
            runtime.last_tick = None
            session.pause_reason = reason
            self._add_marker(session, _with_reason("Session paused", reason))

        elif event is SessionEvent.RESUME:
            runtime.last_tick = self._clock.now()
            session.pause_reason = None
            if transition.source is SessionState.BREAK:
                self._end_break(session, runtime, is_current)
                self._add_marker(session, "Session resumed from break")
            else:
                self._add_marker(session, "Session resumed")

        elif event is SessionEvent.BREAK_DUE:
            runtime.since_break = 0.0
            runtime.warning_fired = False
            runtime.break_remaining = float(session.timing_config.break_seconds)
            session.break_reminders += 1
            if is_current:
                self._show_break_reminder = True
            self._add_marker(session, "Break started")

        elif event is SessionEvent.BREAK_OVER:
            self._end_break(session, runtime, is_current)
            self._add_marker(session, "Break ended")

        elif event in (SessionEvent.COMPLETE, SessionEvent.ABANDON):
            runtime.last_tick = None
            runtime.break_remaining = 0.0
            session.ended_at = datetime.now()
            self._open_by_child.pop(session.child_id, None)
            if is_current:
                self._show_break_reminder = False
            if event is SessionEvent.COMPLETE:
                session.completion_rate = stats.completion_rate(
                    session.learning_objectives, completion_rate,
                )
                session.completion_notes = notes
                if is_current:
                    self._show_session_complete = True
                self._add_marker(session, "Session completed")
            else:
                session.pause_reason = reason
                self._add_marker(session, _with_reason("Session abandoned", reason))

        logger.info(
            "Session %s: %s → %s (%s, %.0fs active)",
            session.id, transition.source.value, transition.target.value,
            event.value, session.total_duration,
        )
        self.state_changed.emit(session.id, transition.target)

        if event is SessionEvent.BREAK_DUE:
            self.break_started.emit(session)
        elif event is SessionEvent.COMPLETE:
            from ..gamification.achievements import session_summary

            self.session_completed.emit(session_summary(session))

    def _end_break(
        self, session: LearningSession, runtime: _Runtime, is_current: bool,
    ) -> None:
        runtime.break_remaining = 0.0
        runtime.since_break = 0.0
        if is_current:
            self._show_break_reminder = False
        self.break_ended.emit(session)

    def _add_marker(
        self,
        session: LearningSession,
        description: str,
        objective_id: str | None = None,
    ) -> None:
        marker = ProgressMarker(description, objective_id=objective_id)
        session.progress_markers.append(marker)
        logger.debug("Marker on session %s: %s", session.id, description)

    def _timer_event(
        self, session: LearningSession, runtime: _Runtime, event: SessionEvent,
    ) -> None:
        self._apply(session, runtime, reduce(session.state, event))
        self._persist(session)

    # ══════════════════════════════════════════════════════════════════
    #  INTERNAL — timer mechanics
    # ══════════════════════════════════════════════════════════════════

    def _tick(self) -> None:
        now = self._clock.now()
        for session in list(self._sessions.values()):
            runtime = self._runtime[session.id]
            if runtime.last_tick is not None:
                self._settle(session, runtime, now)

        current = self.current_session
        if current is not None and self._runtime[current.id].last_tick is not None:
            self.ticked.emit(self._time_remaining(current))
        self._sync_timer()

    def _settle(
        self,
        session: LearningSession,
        runtime: _Runtime,
        now: float | None = None,
    ) -> None:
        if runtime.last_tick is None:
            return
        if now is None:
            now = self._clock.now()

        delta = now - runtime.last_tick
        runtime.last_tick = now
        if delta < 0:
            logger.debug("Clock went backwards by %.3fs; ignoring", -delta)
            return
        if delta > self._max_tick_gap:
            logger.warning(
                "Tick gap of %.0fs on session %s clamped to %.0fs",
                delta, session.id, self._max_tick_gap,
            )
            delta = self._max_tick_gap
        self._consume(session, runtime, delta)

    def _consume(
        self, session: LearningSession, runtime: _Runtime, delta: float,
    ) -> None:
        timing = session.timing_config
        while delta > 0:
            if session.state == SessionState.ACTIVE:
                threshold = self._policy.threshold_seconds(timing)
                step = delta
                if threshold is not None:
                    step = min(delta, max(0.0, threshold - runtime.since_break))

                session.total_duration += step
                runtime.since_break += step
                delta -= step
                self._check_milestones(session, runtime)

                if threshold is not None and runtime.since_break >= threshold:
                    self._timer_event(session, runtime, SessionEvent.BREAK_DUE)
                elif step == 0:
                    break

            elif session.state == SessionState.BREAK:
                step = min(delta, runtime.break_remaining)
                runtime.break_remaining -= step
                session.break_time += step
                delta -= step
                if runtime.break_remaining <= 0:
                    self._timer_event(session, runtime, SessionEvent.BREAK_OVER)

            else:
                break

    def _check_milestones(
        self, session: LearningSession, runtime: _Runtime,
    ) -> None:
        warn_at = self._policy.warning_seconds(session.timing_config)
        if (
            warn_at is not None
            and not runtime.warning_fired
            and runtime.since_break >= warn_at
        ):
            runtime.warning_fired = True
            logger.info("Break coming up for session %s", session.id)
            self.break_warning.emit(session)

        if (
            not runtime.time_up_fired
            and session.total_duration >= session.timing_config.recommended_seconds
        ):
            runtime.time_up_fired = True
            logger.info("Recommended time reached for session %s", session.id)
            self.time_up.emit(session)

    def _sync_timer(self) -> None:
        running = any(rt.last_tick is not None for rt in self._runtime.values())
        if running and not self._qt_timer.isActive():
            self._qt_timer.start()
        elif not running and self._qt_timer.isActive():
            self._qt_timer.stop()

    # ══════════════════════════════════════════════════════════════════
    #  INTERNAL — persistence & errors
    # ══════════════════════════════════════════════════════════════════

    def _persist(
        self, session: LearningSession,
    ) -> tuple[bool, PersistenceError | None]:
        if self._repository is None:
            return False, None
        try:
            self._repository.persist(session)
        except PersistenceError as exc:
            logger.warning("Could not persist session %s: %s", session.id, exc)
            self._set_error(exc)
            return False, exc
        return True, None

    def _set_error(self, error: SessionError | None) -> None:
        if error is self._error:
            return
        self._error = error
        self.error_changed.emit(error)

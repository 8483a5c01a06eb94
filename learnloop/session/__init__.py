"""Learning session package."""

from .models import (
    AGE_TIMING_CONFIGS,
    AgeGroup,
    CreateSessionRequest,
    LearningObjective,
    LearningSession,
    ProgressMarker,
    SessionState,
    SessionType,
    TimingConfig,
    resolve_timing,
)
from .errors import (
    ConflictError,
    InvalidTransitionError,
    PersistenceError,
    SessionError,
    SessionNotFoundError,
    ValidationError,
)
from .machine import SessionEvent, Transition, reduce
from .clock import Clock, ManualClock, MonotonicClock
from .policy import BreakPolicy, FixedBreakPolicy
from .engine import CommandResult, SessionEngine, SessionSnapshot

__all__ = [
    "AGE_TIMING_CONFIGS",
    "AgeGroup",
    "CreateSessionRequest",
    "LearningObjective",
    "LearningSession",
    "ProgressMarker",
    "SessionState",
    "SessionType",
    "TimingConfig",
    "resolve_timing",
    "ConflictError",
    "InvalidTransitionError",
    "PersistenceError",
    "SessionError",
    "SessionNotFoundError",
    "ValidationError",
    "SessionEvent",
    "Transition",
    "reduce",
    "Clock",
    "ManualClock",
    "MonotonicClock",
    "BreakPolicy",
    "FixedBreakPolicy",
    "CommandResult",
    "SessionEngine",
    "SessionSnapshot",
]

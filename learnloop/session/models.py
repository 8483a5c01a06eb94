"""Data model for learning sessions.

A ``LearningSession`` is plain data.  Only the engine mutates it, and only
while the session is not terminal.  Timing lives in an immutable
``TimingConfig`` resolved once at creation from the child's age group,
the app settings, and whatever the caller asked for.

Age-group timing (minutes)
--------------------------
    ages6to9    20 recommended, 30 max, break every 15 for 5
    ages10to13  30 recommended, 45 max, break every 20 for 5
    ages14to16  40 recommended, 60 max, break every 25 for 10
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, fields, replace
from datetime import datetime
from enum import Enum

from .errors import ValidationError


# ── enums ─────────────────────────────────────────────────────────────────


class SessionState(Enum):
    NOT_STARTED = "not_started"
    ACTIVE = "active"
    PAUSED = "paused"
    BREAK = "break"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


class SessionType(Enum):
    LESSON = "lesson"
    PRACTICE = "practice"
    REVIEW = "review"
    ASSESSMENT = "assessment"


class AgeGroup(Enum):
    AGES_6_TO_9 = "ages6to9"
    AGES_10_TO_13 = "ages10to13"
    AGES_14_TO_16 = "ages14to16"


TERMINAL_STATES = frozenset({SessionState.COMPLETED, SessionState.ABANDONED})
LIVE_STATES = frozenset({
    SessionState.ACTIVE,
    SessionState.PAUSED,
    SessionState.BREAK,
})


# ── timing ────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class TimingConfig:
    """Per-session timing, all values in minutes."""

    recommended_duration: int = 30
    break_duration: int = 5
    break_interval: int = 20
    max_duration: int = 45
    warning_before_break: int = 3

    @property
    def recommended_seconds(self) -> int:
        return self.recommended_duration * 60

    @property
    def break_seconds(self) -> int:
        return self.break_duration * 60


AGE_TIMING_CONFIGS: dict[AgeGroup, TimingConfig] = {
    AgeGroup.AGES_6_TO_9: TimingConfig(
        recommended_duration=20,
        break_duration=5,
        break_interval=15,
        max_duration=30,
        warning_before_break=2,
    ),
    AgeGroup.AGES_10_TO_13: TimingConfig(
        recommended_duration=30,
        break_duration=5,
        break_interval=20,
        max_duration=45,
        warning_before_break=3,
    ),
    AgeGroup.AGES_14_TO_16: TimingConfig(
        recommended_duration=40,
        break_duration=10,
        break_interval=25,
        max_duration=60,
        warning_before_break=5,
    ),
}

_TIMING_KEYS = frozenset(f.name for f in fields(TimingConfig))

# camelCase spellings used by the web client
_TIMING_ALIASES = {
    "recommendedDuration": "recommended_duration",
    "breakDuration": "break_duration",
    "breakInterval": "break_interval",
    "maxDuration": "max_duration",
    "warningBeforeBreak": "warning_before_break",
}


def _timing_changes(partial: Mapping | TimingConfig | None) -> dict[str, int]:
    if partial is None:
        return {}
    if isinstance(partial, TimingConfig):
        return {name: getattr(partial, name) for name in _TIMING_KEYS}

    changes: dict[str, int] = {}
    for key, value in partial.items():
        name = _TIMING_ALIASES.get(key, key)
        if name not in _TIMING_KEYS:
            raise ValidationError(f"unknown timing option {key!r}")
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValidationError(f"timing option {key!r} must be an integer")
        changes[name] = value
    return changes


def resolve_timing(
    age_group: AgeGroup,
    custom: Mapping | TimingConfig | None = None,
    overrides: Mapping[str, Mapping] | None = None,
) -> TimingConfig:
    """Build the timing for a new session.

    Later sources win: age-group default, then *overrides* (settings,
    keyed by age-group value), then *custom* (the create request).
    """
    timing = AGE_TIMING_CONFIGS[age_group]
    if overrides:
        timing = replace(timing, **_timing_changes(overrides.get(age_group.value)))
    timing = replace(timing, **_timing_changes(custom))

    for name in _TIMING_KEYS:
        if getattr(timing, name) < 0:
            raise ValidationError(f"{name} cannot be negative")
    return timing


# ── objectives ────────────────────────────────────────────────────────────


@dataclass
class LearningObjective:
    description: str
    category: str = "knowledge"       # knowledge | skill | behavior
    target_level: str = "beginner"    # beginner | intermediate | advanced
    completed: bool = False
    completed_at: datetime | None = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)


@dataclass
class ProgressMarker:
    """A timestamped note in the session log (pause, break, objective...)."""

    description: str
    objective_id: str | None = None
    timestamp: datetime = field(default_factory=datetime.now)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)


# ── session ───────────────────────────────────────────────────────────────


@dataclass
class LearningSession:
    """One bounded unit of a child's learning, from creation to the end."""

    child_id: str
    age_group: AgeGroup
    type: SessionType
    title: str
    timing_config: TimingConfig
    description: str | None = None
    learning_objectives: list[LearningObjective] = field(default_factory=list)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    state: SessionState = SessionState.NOT_STARTED

    # ── timing (seconds) ──────────────────────────────────────────────
    total_duration: float = 0.0     # active time only
    break_time: float = 0.0

    # ── analytics ─────────────────────────────────────────────────────
    interaction_count: int = 0
    response_samples: int = 0
    average_response_time: float = 0.0   # ms
    completion_rate: float = 0.0
    break_reminders: int = 0
    reminders_acknowledged: int = 0

    # ── metadata ──────────────────────────────────────────────────────
    created_at: datetime = field(default_factory=datetime.now)
    started_at: datetime | None = None
    ended_at: datetime | None = None
    completion_notes: str | None = None
    pause_reason: str | None = None
    progress_markers: list[ProgressMarker] = field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def is_live(self) -> bool:
        return self.state in LIVE_STATES

    @property
    def completed_objectives(self) -> int:
        return sum(1 for obj in self.learning_objectives if obj.completed)

    def objective(self, objective_id: str) -> LearningObjective | None:
        for obj in self.learning_objectives:
            if obj.id == objective_id:
                return obj
        return None


# ── create request ────────────────────────────────────────────────────────


def _coerce_enum(enum_cls, value, label: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        choices = ", ".join(member.value for member in enum_cls)
        raise ValidationError(
            f"{label} must be one of {choices}; got {value!r}"
        ) from None


def _build_objective(raw) -> LearningObjective:
    if isinstance(raw, LearningObjective):
        return replace(raw, id=uuid.uuid4().hex)
    if isinstance(raw, str):
        raw = {"description": raw}
    if not isinstance(raw, Mapping):
        raise ValidationError(f"cannot build a learning objective from {raw!r}")
    description = str(raw.get("description", "")).strip()
    if not description:
        raise ValidationError("learning objectives need a description")
    return LearningObjective(
        description=description,
        category=raw.get("category", "knowledge"),
        target_level=raw.get("target_level", raw.get("targetLevel", "beginner")),
        completed=bool(raw.get("completed", False)),
    )


@dataclass
class CreateSessionRequest:
    type: SessionType | str
    child_id: str
    age_group: AgeGroup | str
    title: str
    description: str | None = None
    learning_objectives: Iterable = ()
    timing_config: Mapping | TimingConfig | None = None

    def build(
        self, timing_overrides: Mapping[str, Mapping] | None = None,
    ) -> LearningSession:
        """Validate the request and return a fresh ``not_started`` session.

        Raises :class:`ValidationError` without side effects.
        """
        child_id = str(self.child_id or "").strip()
        if not child_id:
            raise ValidationError("child_id is required")
        title = str(self.title or "").strip()
        if not title:
            raise ValidationError("title must not be empty")

        session_type = _coerce_enum(SessionType, self.type, "type")
        age_group = _coerce_enum(AgeGroup, self.age_group, "age_group")
        timing = resolve_timing(age_group, self.timing_config, timing_overrides)
        objectives = [_build_objective(raw) for raw in self.learning_objectives]

        return LearningSession(
            child_id=child_id,
            age_group=age_group,
            type=session_type,
            title=title,
            description=self.description,
            learning_objectives=objectives,
            timing_config=timing,
        )

"""Per-session statistics helpers.  Pure functions, no engine state."""

from __future__ import annotations

from collections.abc import Sequence

from .models import LearningObjective, TimingConfig


def completion_rate(
    objectives: Sequence[LearningObjective],
    explicit: float | None = None,
) -> float:
    """Fraction of objectives completed.

    With no objectives the caller's *explicit* ratio is used (clamped to
    ``[0, 1]``), defaulting to 0.
    """
    if objectives:
        done = sum(1 for obj in objectives if obj.completed)
        return done / len(objectives)
    if explicit is None:
        return 0.0
    return max(0.0, min(1.0, float(explicit)))


def update_running_average(average: float, samples: int, value: float) -> float:
    """Fold *value* into a mean of *samples* previous values."""
    return (average * samples + value) / (samples + 1)


def time_remaining(timing: TimingConfig, elapsed_active: float) -> float:
    return max(0.0, timing.recommended_seconds - elapsed_active)


def percent_complete(timing: TimingConfig, elapsed_active: float) -> float:
    """0.0 → 1.0 progress through the recommended duration."""
    total = timing.recommended_seconds
    if total <= 0:
        return 0.0
    return max(0.0, min(1.0, elapsed_active / total))

"""When does an active session owe the child a break?

The web client only ever hinted at the rule (a break interval next to the
recommended duration), so the threshold is a policy object the engine is
handed rather than a constant baked into the tick loop.
"""

from __future__ import annotations

from .models import TimingConfig


class BreakPolicy:
    """Break after ``break_interval`` minutes of active time.

    The count restarts after every break.  Pausing does not reset it, so
    a child cannot dodge a break by pausing just before it is due.

    A zero ``break_interval`` or ``break_duration`` disables breaks, as
    does ``enabled=False`` (the "break reminders" setting).
    """

    def __init__(self, *, enabled: bool = True, warnings: bool = True) -> None:
        self.enabled = enabled
        self.warnings = warnings

    def threshold_seconds(self, timing: TimingConfig) -> float | None:
        """Active seconds since the last break at which a break starts."""
        if not self.enabled:
            return None
        if timing.break_interval <= 0 or timing.break_duration <= 0:
            return None
        return timing.break_interval * 60

    def warning_seconds(self, timing: TimingConfig) -> float | None:
        """Active seconds since the last break at which to warn, if at all."""
        threshold = self.threshold_seconds(timing)
        if threshold is None or not self.warnings:
            return None
        lead = timing.warning_before_break * 60
        if lead <= 0 or lead >= threshold:
            return None
        return threshold - lead


class FixedBreakPolicy(BreakPolicy):
    """Break every *minutes* of active time, whatever the session says."""

    def __init__(self, minutes: float, **kwargs) -> None:
        super().__init__(**kwargs)
        self.minutes = minutes

    def threshold_seconds(self, timing: TimingConfig) -> float | None:
        if not self.enabled or self.minutes <= 0 or timing.break_duration <= 0:
            return None
        return self.minutes * 60

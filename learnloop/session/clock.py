"""Time sources for the session engine.

The engine never counts ticks.  On every tick it asks its clock for the
current reading and works with the delta, so a throttled or missed
``QTimer`` callback cannot make the countdown drift from real time.

``MonotonicClock`` is what the app uses.  ``ManualClock`` only moves when
told to, which lets tests simulate twenty minutes in a single line.
"""

from __future__ import annotations

import time
from typing import Protocol


class Clock(Protocol):
    def now(self) -> float:
        """Current reading in seconds.  Only differences are meaningful."""
        ...


class MonotonicClock:
    """Production clock backed by :func:`time.monotonic`."""

    def now(self) -> float:
        return time.monotonic()


class ManualClock:
    """Deterministic clock for tests and simulations."""

    def __init__(self, start: float = 0.0) -> None:
        self._now = float(start)

    def now(self) -> float:
        return self._now

    def advance(self, seconds: float) -> float:
        """Move the clock forward (or backward, to simulate anomalies)."""
        self._now += seconds
        return self._now

    def set(self, value: float) -> None:
        self._now = float(value)

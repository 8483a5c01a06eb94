"""Shared test helpers for LearnLoop."""

from learnloop.session.clock import ManualClock
from learnloop.session.engine import SessionEngine
from learnloop.session.models import CreateSessionRequest, LearningSession


class SignalCollector:
    """Utility to capture pyqtSignal emissions into a list."""

    def __init__(self):
        self.items: list = []

    def slot(self, *args):
        self.items.append(args if len(args) > 1 else args[0] if args else None)

    def __call__(self, *args):
        self.slot(*args)

    def __len__(self):
        return len(self.items)

    def __getitem__(self, idx):
        return self.items[idx]

    @property
    def last(self):
        return self.items[-1] if self.items else None

    def clear(self):
        self.items.clear()


def fractions_request(child_id: str = "c1", **overrides) -> CreateSessionRequest:
    """The standard lesson used across the tests: 20 min, 5 min breaks."""
    fields = {
        "type": "lesson",
        "child_id": child_id,
        "age_group": "ages6to9",
        "title": "Fractions",
        "timing_config": {"recommended_duration": 20, "break_duration": 5},
    }
    fields.update(overrides)
    return CreateSessionRequest(**fields)


def advance(engine: SessionEngine, clock: ManualClock, seconds: int, step: int = 1) -> None:
    """Tick the engine once every *step* simulated seconds."""
    for _ in range(seconds // step):
        clock.advance(step)
        engine.tick()


def run_active(
    engine: SessionEngine,
    clock: ManualClock,
    session: LearningSession,
    seconds: float,
    step: int = 1,
) -> int:
    """Tick until *session* has accrued *seconds* more active time.

    Breaks along the way are ticked through.  Returns the wall-clock
    seconds that passed.
    """
    target = session.total_duration + seconds
    waited = 0
    while session.total_duration < target:
        assert waited < 100_000, "session stopped accruing active time"
        clock.advance(step)
        engine.tick()
        waited += step
    return waited

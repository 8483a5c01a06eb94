"""Completion-screen achievements and summary for LearnLoop sessions.

Achievements
------------
- High Achiever     completion rate >= 90%
- Time Manager      active time >= recommended duration
- Active Learner    10+ interactions
- Quick Responder   average response time <= 3 s (needs at least one sample)

Each badge has a plain title for the youngest age group and a standard
one for everyone else.

Engagement score (0-100)
------------------------
- completion rate                       x 40
- interactions vs. 2 per active minute  x 30 (capped)
- break reminders acknowledged          x 20 (none shown scores 0)
- session completed (not abandoned)     +10

Nothing here is stored: every value is a pure function of a finished
session, recomputed whenever the completion screen asks.
"""

from __future__ import annotations

from dataclasses import dataclass

from ..session.models import AgeGroup, LearningSession, SessionState


# ── thresholds (easy to tweak) ───────────────────────────────────────────

HIGH_ACHIEVER_RATE = 0.9
ACTIVE_LEARNER_INTERACTIONS = 10
QUICK_RESPONDER_MS = 3000
TARGET_INTERACTIONS_PER_MINUTE = 2


# ── catalog ──────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Achievement:
    key: str
    emoji: str
    title: str
    simple_title: str
    description: str
    simple_description: str

    def title_for(self, age_group: AgeGroup) -> str:
        if age_group == AgeGroup.AGES_6_TO_9:
            return self.simple_title
        return self.title

    def description_for(self, age_group: AgeGroup) -> str:
        if age_group == AgeGroup.AGES_6_TO_9:
            return self.simple_description
        return self.description


HIGH_ACHIEVER = Achievement(
    key="high_achiever",
    emoji="\U0001F3C6",
    title="High Achiever",
    simple_title="Champion!",
    description="Completed 90%+ of objectives",
    simple_description="You did almost everything!",
)

TIME_MANAGER = Achievement(
    key="time_manager",
    emoji="⏰",
    title="Time Manager",
    simple_title="Time Master!",
    description="Completed full recommended session",
    simple_description="You stayed focused!",
)

ACTIVE_LEARNER = Achievement(
    key="active_learner",
    emoji="\U0001F5E3",
    title="Active Learner",
    simple_title="Great Talker!",
    description="High interaction engagement",
    simple_description="You asked lots of questions!",
)

QUICK_RESPONDER = Achievement(
    key="quick_responder",
    emoji="⚡",
    title="Quick Responder",
    simple_title="Quick Thinker!",
    description="Fast response times",
    simple_description="You were super fast!",
)

ACHIEVEMENTS: tuple[Achievement, ...] = (
    HIGH_ACHIEVER,
    TIME_MANAGER,
    ACTIVE_LEARNER,
    QUICK_RESPONDER,
)


# ── rules ────────────────────────────────────────────────────────────────


def is_high_achiever(session: LearningSession) -> bool:
    return session.completion_rate >= HIGH_ACHIEVER_RATE


def is_time_manager(session: LearningSession) -> bool:
    return session.total_duration >= session.timing_config.recommended_seconds


def is_active_learner(session: LearningSession) -> bool:
    return session.interaction_count >= ACTIVE_LEARNER_INTERACTIONS


def is_quick_responder(session: LearningSession) -> bool:
    return (
        session.response_samples > 0
        and session.average_response_time <= QUICK_RESPONDER_MS
    )


_RULES = {
    HIGH_ACHIEVER.key: is_high_achiever,
    TIME_MANAGER.key: is_time_manager,
    ACTIVE_LEARNER.key: is_active_learner,
    QUICK_RESPONDER.key: is_quick_responder,
}


def achievements_for(session: LearningSession) -> list[Achievement]:
    """Badges earned by a finished session; empty while it is still open."""
    if not session.is_terminal:
        return []
    return [a for a in ACHIEVEMENTS if _RULES[a.key](session)]


# ── engagement ───────────────────────────────────────────────────────────


def engagement_score(session: LearningSession) -> int:
    """0-100 score blending completion, interaction and break habits."""
    score = session.completion_rate * 40

    active_minutes = session.total_duration / 60
    target = max(active_minutes * TARGET_INTERACTIONS_PER_MINUTE, 1)
    score += min(session.interaction_count / target, 1) * 30

    compliance = session.reminders_acknowledged / max(session.break_reminders, 1)
    score += min(compliance, 1) * 20

    if session.state == SessionState.COMPLETED:
        score += 10

    return round(min(score, 100))


# ── summary ──────────────────────────────────────────────────────────────


def format_duration(minutes: int) -> str:
    """``45`` → ``"45 min"``, ``125`` → ``"2h 5m"``."""
    if minutes < 60:
        return f"{max(minutes, 0)} min"
    return f"{minutes // 60}h {minutes % 60}m"


def session_summary(session: LearningSession) -> dict:
    """Everything the completion screen shows, as a plain dict.

    Keys: ``session_id``, ``child_id``, ``title``, ``session_type``,
    ``state``, ``duration_seconds``, ``duration_minutes``,
    ``duration_label``, ``break_seconds``, ``completion_rate``,
    ``completion_percentage``, ``objectives_completed``,
    ``objectives_total``, ``interaction_count``,
    ``average_response_time``, ``engagement_score``, ``achievements``
    (list of dicts with ``key``, ``emoji``, ``title``, ``description``,
    already chosen for the child's age group).
    """
    minutes = round(session.total_duration / 60)
    return {
        "session_id": session.id,
        "child_id": session.child_id,
        "title": session.title,
        "session_type": session.type.value,
        "state": session.state.value,
        "duration_seconds": session.total_duration,
        "duration_minutes": minutes,
        "duration_label": format_duration(minutes),
        "break_seconds": session.break_time,
        "completion_rate": session.completion_rate,
        "completion_percentage": round(session.completion_rate * 100),
        "objectives_completed": session.completed_objectives,
        "objectives_total": len(session.learning_objectives),
        "interaction_count": session.interaction_count,
        "average_response_time": session.average_response_time,
        "engagement_score": engagement_score(session),
        "achievements": [
            {
                "key": a.key,
                "emoji": a.emoji,
                "title": a.title_for(session.age_group),
                "description": a.description_for(session.age_group),
            }
            for a in achievements_for(session)
        ],
    }

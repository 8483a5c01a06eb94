"""Gamification package."""

from .achievements import (
    Achievement,
    ACHIEVEMENTS,
    HIGH_ACHIEVER,
    TIME_MANAGER,
    ACTIVE_LEARNER,
    QUICK_RESPONDER,
    achievements_for,
    engagement_score,
    format_duration,
    session_summary,
)

__all__ = [
    "Achievement",
    "ACHIEVEMENTS",
    "HIGH_ACHIEVER",
    "TIME_MANAGER",
    "ACTIVE_LEARNER",
    "QUICK_RESPONDER",
    "achievements_for",
    "engagement_score",
    "format_duration",
    "session_summary",
]

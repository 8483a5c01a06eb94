"""Database package."""

from .db import configure_engine, get_session, init_db
from .models import ObjectiveRecord, ProgressMarkerRecord, SessionRecord
from .repository import SessionRepository, SessionStats, SessionStore

__all__ = [
    "configure_engine",
    "get_session",
    "init_db",
    "ObjectiveRecord",
    "ProgressMarkerRecord",
    "SessionRecord",
    "SessionRepository",
    "SessionStats",
    "SessionStore",
]

"""SQLAlchemy-backed session repository.

The engine only needs ``persist``.  History and stats screens use
``fetch_recent`` and ``fetch_stats``.  Every SQLAlchemy failure leaves
this module as a :class:`~learnloop.session.errors.PersistenceError`, so
callers deal with one error type whatever the backend.

Usage::

    repo = SessionRepository()
    engine = SessionEngine(repository=repo)
    ...
    repo.fetch_recent("child-1", limit=5)
    repo.fetch_stats("child-1").completion_rate
    repo.search(child_id="child-1", state="completed", limit=20)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from ..session.errors import PersistenceError, ValidationError
from ..session.models import (
    AgeGroup,
    LearningObjective,
    LearningSession,
    LIVE_STATES,
    ProgressMarker,
    SessionState,
    SessionType,
    TERMINAL_STATES,
    TimingConfig,
)
from .db import get_session
from .models import ObjectiveRecord, ProgressMarkerRecord, SessionRecord


class SessionStore(Protocol):
    """What the engine and the history screens expect from storage."""

    def persist(self, session: LearningSession) -> None: ...

    def fetch(self, session_id: str) -> LearningSession | None: ...

    def fetch_recent(self, child_id: str, limit: int = 10) -> list[LearningSession]: ...

    def fetch_stats(self, child_id: str) -> SessionStats: ...

    def search(
        self,
        child_id: str | None = None,
        session_type: SessionType | str | None = None,
        state: SessionState | str | None = None,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
        offset: int = 0,
        limit: int = 50,
    ) -> list[LearningSession]: ...


@dataclass
class SessionStats:
    """Per-child aggregate over every stored session.

    ``average_duration`` and ``average_break_time`` are seconds over
    finished sessions; ``completion_rate`` is the mean over completed ones.
    """

    total_sessions: int = 0
    active_sessions: int = 0
    average_duration: float = 0.0
    completion_rate: float = 0.0
    average_break_time: float = 0.0
    sessions_by_type: dict[SessionType, int] = field(
        default_factory=lambda: {t: 0 for t in SessionType}
    )
    sessions_by_age_group: dict[AgeGroup, int] = field(
        default_factory=lambda: {a: 0 for a in AgeGroup}
    )


# ── mapping ──────────────────────────────────────────────────────────────


def _copy_to_record(session: LearningSession, record: SessionRecord) -> None:
    timing = session.timing_config
    record.child_id = session.child_id
    record.age_group = session.age_group.value
    record.session_type = session.type.value
    record.state = session.state.value
    record.title = session.title
    record.description = session.description
    record.recommended_duration = timing.recommended_duration
    record.break_duration = timing.break_duration
    record.break_interval = timing.break_interval
    record.max_duration = timing.max_duration
    record.warning_before_break = timing.warning_before_break
    record.total_duration = session.total_duration
    record.break_time = session.break_time
    record.interaction_count = session.interaction_count
    record.response_samples = session.response_samples
    record.average_response_time = session.average_response_time
    record.completion_rate = session.completion_rate
    record.break_reminders = session.break_reminders
    record.reminders_acknowledged = session.reminders_acknowledged
    record.created_at = session.created_at
    record.started_at = session.started_at
    record.ended_at = session.ended_at
    record.updated_at = datetime.now()
    record.completion_notes = session.completion_notes
    record.pause_reason = session.pause_reason

    existing = {row.id: row for row in record.objectives}
    rows = []
    for position, objective in enumerate(session.learning_objectives):
        row = existing.get(objective.id) or ObjectiveRecord(id=objective.id)
        row.position = position
        row.description = objective.description
        row.category = objective.category
        row.target_level = objective.target_level
        row.completed = objective.completed
        row.completed_at = objective.completed_at
        rows.append(row)
    record.objectives = rows

    known = {row.id: row for row in record.markers}
    markers = []
    for position, marker in enumerate(session.progress_markers):
        row = known.get(marker.id) or ProgressMarkerRecord(id=marker.id)
        row.position = position
        row.timestamp = marker.timestamp
        row.description = marker.description
        row.objective_id = marker.objective_id
        markers.append(row)
    record.markers = markers


def _to_session(record: SessionRecord) -> LearningSession:
    return LearningSession(
        id=record.id,
        child_id=record.child_id,
        age_group=AgeGroup(record.age_group),
        type=SessionType(record.session_type),
        state=SessionState(record.state),
        title=record.title,
        description=record.description,
        timing_config=TimingConfig(
            recommended_duration=record.recommended_duration,
            break_duration=record.break_duration,
            break_interval=record.break_interval,
            max_duration=record.max_duration,
            warning_before_break=record.warning_before_break,
        ),
        learning_objectives=[
            LearningObjective(
                id=row.id,
                description=row.description,
                category=row.category,
                target_level=row.target_level,
                completed=row.completed,
                completed_at=row.completed_at,
            )
            for row in record.objectives
        ],
        total_duration=record.total_duration,
        break_time=record.break_time,
        interaction_count=record.interaction_count,
        response_samples=record.response_samples,
        average_response_time=record.average_response_time,
        completion_rate=record.completion_rate,
        break_reminders=record.break_reminders,
        reminders_acknowledged=record.reminders_acknowledged,
        created_at=record.created_at,
        started_at=record.started_at,
        ended_at=record.ended_at,
        completion_notes=record.completion_notes,
        pause_reason=record.pause_reason,
        progress_markers=[
            ProgressMarker(
                id=row.id,
                description=row.description,
                objective_id=row.objective_id,
                timestamp=row.timestamp,
            )
            for row in record.markers
        ],
    )


# ── repository ───────────────────────────────────────────────────────────


class SessionRepository:
    """Stores sessions through :func:`learnloop.database.db.get_session`."""

    def persist(self, session: LearningSession) -> None:
        """Insert or update *session* and its objectives."""
        try:
            with get_session() as db:
                record = db.get(SessionRecord, session.id)
                if record is None:
                    record = SessionRecord(id=session.id)
                    db.add(record)
                _copy_to_record(session, record)
        except SQLAlchemyError as exc:
            raise PersistenceError(
                f"could not save session {session.id}: {exc}"
            ) from exc

    def fetch(self, session_id: str) -> LearningSession | None:
        try:
            with get_session() as db:
                record = db.get(SessionRecord, session_id)
                return _to_session(record) if record is not None else None
        except SQLAlchemyError as exc:
            raise PersistenceError(
                f"could not load session {session_id}: {exc}"
            ) from exc

    def fetch_recent(self, child_id: str, limit: int = 10) -> list[LearningSession]:
        """Newest first."""
        try:
            with get_session() as db:
                records = (
                    db.query(SessionRecord)
                    .filter(SessionRecord.child_id == child_id)
                    .order_by(SessionRecord.created_at.desc())
                    .limit(limit)
                    .all()
                )
                return [_to_session(r) for r in records]
        except SQLAlchemyError as exc:
            raise PersistenceError(
                f"could not load sessions for child {child_id}: {exc}"
            ) from exc

    def search(
        self,
        child_id: str | None = None,
        session_type: SessionType | str | None = None,
        state: SessionState | str | None = None,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
        offset: int = 0,
        limit: int = 50,
    ) -> list[LearningSession]:
        """Sessions matching every given filter, oldest first.

        The ``created_at`` range is inclusive at both ends.  Unknown type or
        state values raise :class:`ValidationError` before touching the
        database.
        """
        try:
            type_value = SessionType(session_type).value if session_type else None
            state_value = SessionState(state).value if state else None
        except ValueError as exc:
            raise ValidationError(f"invalid search filter: {exc}") from exc
        if offset < 0 or limit < 1:
            raise ValidationError("offset must be >= 0 and limit >= 1")

        try:
            with get_session() as db:
                query = db.query(SessionRecord)
                if child_id is not None:
                    query = query.filter(SessionRecord.child_id == child_id)
                if type_value is not None:
                    query = query.filter(SessionRecord.session_type == type_value)
                if state_value is not None:
                    query = query.filter(SessionRecord.state == state_value)
                if date_from is not None:
                    query = query.filter(SessionRecord.created_at >= date_from)
                if date_to is not None:
                    query = query.filter(SessionRecord.created_at <= date_to)
                records = (
                    query.order_by(SessionRecord.created_at.asc())
                    .offset(offset)
                    .limit(limit)
                    .all()
                )
                return [_to_session(r) for r in records]
        except SQLAlchemyError as exc:
            raise PersistenceError(f"could not search sessions: {exc}") from exc

    def fetch_stats(self, child_id: str) -> SessionStats:
        try:
            with get_session() as db:
                return self._stats(db, child_id)
        except SQLAlchemyError as exc:
            raise PersistenceError(
                f"could not load stats for child {child_id}: {exc}"
            ) from exc

    def _stats(self, db, child_id: str) -> SessionStats:
        stats = SessionStats()
        of_child = SessionRecord.child_id == child_id

        stats.total_sessions = (
            db.query(func.count(SessionRecord.id)).filter(of_child).scalar()
        )
        stats.active_sessions = (
            db.query(func.count(SessionRecord.id))
            .filter(of_child, SessionRecord.state.in_(
                [s.value for s in LIVE_STATES]
            ))
            .scalar()
        )

        avg_duration, avg_break = (
            db.query(
                func.avg(SessionRecord.total_duration),
                func.avg(SessionRecord.break_time),
            )
            .filter(of_child, SessionRecord.state.in_(
                [s.value for s in TERMINAL_STATES]
            ))
            .one()
        )
        stats.average_duration = float(avg_duration or 0.0)
        stats.average_break_time = float(avg_break or 0.0)

        completion = (
            db.query(func.avg(SessionRecord.completion_rate))
            .filter(of_child, SessionRecord.state == SessionState.COMPLETED.value)
            .scalar()
        )
        stats.completion_rate = float(completion or 0.0)

        for value, count in (
            db.query(SessionRecord.session_type, func.count(SessionRecord.id))
            .filter(of_child)
            .group_by(SessionRecord.session_type)
        ):
            stats.sessions_by_type[SessionType(value)] = count

        for value, count in (
            db.query(SessionRecord.age_group, func.count(SessionRecord.id))
            .filter(of_child)
            .group_by(SessionRecord.age_group)
        ):
            stats.sessions_by_age_group[AgeGroup(value)] = count

        return stats

"""Tests for the SQLAlchemy session repository."""

from datetime import datetime, timedelta

import pytest
from sqlalchemy.exc import OperationalError

from learnloop.database import db as db_module
from learnloop.database.db import get_session
from learnloop.database.models import (
    ObjectiveRecord, ProgressMarkerRecord, SessionRecord,
)
from learnloop.database.repository import SessionRepository
from learnloop.session.errors import PersistenceError, ValidationError
from learnloop.session.models import (
    AgeGroup, ProgressMarker, SessionState, SessionType,
)

from helpers import fractions_request


def _stored(repo, child_id="c1", *, state=SessionState.COMPLETED,
            minutes_ago=0, **fields):
    session = fractions_request(child_id, **fields.pop("request", {})).build()
    session.state = state
    session.created_at = datetime.now() - timedelta(minutes=minutes_ago)
    for name, value in fields.items():
        setattr(session, name, value)
    repo.persist(session)
    return session


# ═══════════════════════════════════════════════════════════════════════════
#  PERSIST / FETCH
# ═══════════════════════════════════════════════════════════════════════════


class TestPersist:

    def test_round_trip(self):
        repo = SessionRepository()
        session = fractions_request(
            learning_objectives=["Halves", {"description": "Quarters",
                                            "category": "skill"}],
        ).build()
        session.learning_objectives[0].completed = True
        session.learning_objectives[0].completed_at = datetime.now()
        repo.persist(session)

        loaded = repo.fetch(session.id)
        assert loaded is not session
        assert loaded.id == session.id
        assert loaded.type == SessionType.LESSON
        assert loaded.age_group == AgeGroup.AGES_6_TO_9
        assert loaded.timing_config == session.timing_config
        assert [o.id for o in loaded.learning_objectives] == \
            [o.id for o in session.learning_objectives]
        assert loaded.learning_objectives[0].completed
        assert loaded.learning_objectives[1].category == "skill"

    def test_update_in_place(self):
        repo = SessionRepository()
        session = fractions_request(learning_objectives=["Halves"]).build()
        repo.persist(session)

        session.state = SessionState.ACTIVE
        session.total_duration = 42.5
        session.interaction_count = 3
        session.learning_objectives[0].completed = True
        repo.persist(session)

        with get_session() as db:
            assert db.query(SessionRecord).count() == 1
            assert db.query(ObjectiveRecord).count() == 1

        loaded = repo.fetch(session.id)
        assert loaded.state == SessionState.ACTIVE
        assert loaded.total_duration == pytest.approx(42.5)
        assert loaded.interaction_count == 3
        assert loaded.learning_objectives[0].completed

    def test_markers_round_trip(self):
        repo = SessionRepository()
        session = fractions_request(learning_objectives=["Halves"]).build()
        objective_id = session.learning_objectives[0].id
        session.progress_markers.append(ProgressMarker("Session started"))
        repo.persist(session)

        session.progress_markers.append(
            ProgressMarker("Objective completed: Halves", objective_id=objective_id)
        )
        repo.persist(session)

        with get_session() as db:
            assert db.query(ProgressMarkerRecord).count() == 2

        loaded = repo.fetch(session.id)
        assert [m.description for m in loaded.progress_markers] == \
            ["Session started", "Objective completed: Halves"]
        assert loaded.progress_markers[0].objective_id is None
        assert loaded.progress_markers[1].objective_id == objective_id
        assert loaded.progress_markers[1].timestamp == \
            session.progress_markers[1].timestamp

    def test_fetch_missing(self):
        assert SessionRepository().fetch("nope") is None

    def test_database_failure_becomes_persistence_error(self, monkeypatch):
        def broken():
            raise OperationalError("SELECT 1", {}, Exception("disk I/O error"))

        monkeypatch.setattr(db_module, "_get_session_factory", lambda: broken)
        repo = SessionRepository()
        with pytest.raises(PersistenceError):
            repo.persist(fractions_request().build())
        with pytest.raises(PersistenceError):
            repo.fetch_recent("c1")
        with pytest.raises(PersistenceError):
            repo.fetch_stats("c1")
        with pytest.raises(PersistenceError):
            repo.search(child_id="c1")


# ═══════════════════════════════════════════════════════════════════════════
#  HISTORY
# ═══════════════════════════════════════════════════════════════════════════


class TestFetchRecent:

    def test_newest_first_and_limited(self):
        repo = SessionRepository()
        for i in range(5):
            _stored(repo, minutes_ago=100 - i, request={"title": f"Lesson {i}"})

        recent = repo.fetch_recent("c1", limit=3)
        assert [s.title for s in recent] == ["Lesson 4", "Lesson 3", "Lesson 2"]

    def test_only_that_child(self):
        repo = SessionRepository()
        _stored(repo, "c1")
        _stored(repo, "c2")
        assert [s.child_id for s in repo.fetch_recent("c2")] == ["c2"]
        assert repo.fetch_recent("c3") == []


# ═══════════════════════════════════════════════════════════════════════════
#  STATS
# ═══════════════════════════════════════════════════════════════════════════


class TestFetchStats:

    def test_empty(self):
        stats = SessionRepository().fetch_stats("c1")
        assert stats.total_sessions == 0
        assert stats.active_sessions == 0
        assert stats.average_duration == 0
        assert stats.completion_rate == 0
        assert stats.sessions_by_type == {t: 0 for t in SessionType}
        assert stats.sessions_by_age_group == {a: 0 for a in AgeGroup}

    def test_aggregates(self):
        repo = SessionRepository()
        _stored(repo, total_duration=600, break_time=0, completion_rate=1.0)
        _stored(repo, total_duration=1200, break_time=300, completion_rate=0.5,
                request={"type": "practice"})
        _stored(repo, state=SessionState.ABANDONED, total_duration=300,
                break_time=0, completion_rate=0.0)
        _stored(repo, state=SessionState.PAUSED, total_duration=5000,
                request={"age_group": "ages10to13"})
        _stored(repo, "c2", total_duration=9999)

        stats = repo.fetch_stats("c1")
        assert stats.total_sessions == 4
        assert stats.active_sessions == 1
        # finished sessions only
        assert stats.average_duration == pytest.approx(700)
        assert stats.average_break_time == pytest.approx(100)
        # completed sessions only
        assert stats.completion_rate == pytest.approx(0.75)
        assert stats.sessions_by_type[SessionType.LESSON] == 3
        assert stats.sessions_by_type[SessionType.PRACTICE] == 1
        assert stats.sessions_by_type[SessionType.REVIEW] == 0
        assert stats.sessions_by_age_group[AgeGroup.AGES_6_TO_9] == 3
        assert stats.sessions_by_age_group[AgeGroup.AGES_10_TO_13] == 1


# ═══════════════════════════════════════════════════════════════════════════
#  SEARCH
# ═══════════════════════════════════════════════════════════════════════════


class TestSearch:

    @pytest.fixture
    def repo(self):
        repo = SessionRepository()
        _stored(repo, minutes_ago=50, request={"title": "Old lesson"})
        _stored(repo, state=SessionState.ABANDONED, minutes_ago=40,
                request={"title": "Given up"})
        _stored(repo, minutes_ago=30,
                request={"title": "Drill", "type": "practice"})
        _stored(repo, state=SessionState.ACTIVE, minutes_ago=20,
                request={"title": "Now"})
        _stored(repo, "c2", minutes_ago=10, request={"title": "Sibling"})
        return repo

    def _titles(self, sessions):
        return [s.title for s in sessions]

    def test_no_filters_oldest_first(self, repo):
        assert self._titles(repo.search()) == \
            ["Old lesson", "Given up", "Drill", "Now", "Sibling"]

    def test_by_child(self, repo):
        assert self._titles(repo.search(child_id="c2")) == ["Sibling"]
        assert repo.search(child_id="c3") == []

    def test_by_type_and_state(self, repo):
        assert self._titles(repo.search(session_type=SessionType.PRACTICE)) == \
            ["Drill"]
        assert self._titles(repo.search(child_id="c1", state="completed")) == \
            ["Old lesson", "Drill"]
        assert self._titles(repo.search(
            session_type="lesson", state=SessionState.ABANDONED,
        )) == ["Given up"]

    def test_by_date_range(self, repo):
        now = datetime.now()
        found = repo.search(
            date_from=now - timedelta(minutes=45),
            date_to=now - timedelta(minutes=15),
        )
        assert self._titles(found) == ["Given up", "Drill", "Now"]

    def test_offset_and_limit(self, repo):
        assert self._titles(repo.search(child_id="c1", offset=1, limit=2)) == \
            ["Given up", "Drill"]
        assert repo.search(offset=10) == []

    @pytest.mark.parametrize("filters", [
        {"state": "sleeping"},
        {"session_type": "homework"},
        {"limit": 0},
        {"offset": -1},
    ])
    def test_invalid_filters(self, repo, filters):
        with pytest.raises(ValidationError):
            repo.search(**filters)

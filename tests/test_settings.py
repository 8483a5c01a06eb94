"""Tests for JSON settings, engine configuration from settings, and the CLI."""

import json

import pytest

from learnloop.__main__ import main
from learnloop.database.repository import SessionRepository
from learnloop.session.engine import SessionEngine
from learnloop.session.models import SessionState
from learnloop.settings import Settings, load_settings, save_settings

from helpers import advance, fractions_request


@pytest.fixture
def settings_path(tmp_path, monkeypatch):
    path = tmp_path / "settings.json"
    monkeypatch.setattr("learnloop.settings.SETTINGS_PATH", path)
    monkeypatch.setattr("learnloop.settings.APP_SUPPORT_DIR", tmp_path)
    return path


# ═══════════════════════════════════════════════════════════════════════════
#  PERSISTENCE
# ═══════════════════════════════════════════════════════════════════════════


class TestSettingsPersistence:

    def test_defaults_when_missing(self, settings_path):
        assert load_settings() == Settings()

    def test_save_load_round_trip(self, settings_path):
        original = Settings(
            break_warnings_enabled=False,
            max_tick_gap=60.0,
            timing_overrides={"ages6to9": {"break_interval": 10}},
        )
        save_settings(original)
        assert load_settings() == original

    def test_unknown_keys_ignored(self, settings_path):
        settings_path.write_text(json.dumps({
            "history_limit": 3,
            "sound_volume": 80,
        }))
        settings = load_settings()
        assert settings.history_limit == 3
        assert not hasattr(settings, "sound_volume")

    @pytest.mark.parametrize("content", ["{not json", "[1, 2]"])
    def test_corrupt_file_falls_back(self, settings_path, content):
        settings_path.write_text(content)
        assert load_settings() == Settings()


# ═══════════════════════════════════════════════════════════════════════════
#  ENGINE FROM SETTINGS
# ═══════════════════════════════════════════════════════════════════════════


class TestEngineFromSettings:

    def test_timing_overrides_applied(self, qapp, clock):
        settings = Settings(
            persistence_enabled=False,
            timing_overrides={"ages6to9": {"break_interval": 10}},
        )
        engine = SessionEngine.from_settings(settings, clock=clock)
        session = engine.create_session(fractions_request())
        assert session.timing_config.break_interval == 10

        engine.start(session.id)
        advance(engine, clock, 600)
        assert session.state == SessionState.BREAK

    def test_break_reminders_disabled(self, qapp, clock):
        settings = Settings(
            persistence_enabled=False, break_reminders_enabled=False,
        )
        engine = SessionEngine.from_settings(settings, clock=clock)
        session = engine.create_session(fractions_request())
        engine.start(session.id)
        advance(engine, clock, 1200, step=10)
        assert session.state == SessionState.ACTIVE

    def test_persistence_enabled_uses_database(self, qapp, clock):
        engine = SessionEngine.from_settings(Settings(), clock=clock)
        session = engine.create_session(fractions_request())
        result = engine.start(session.id)
        assert result.persisted
        assert SessionRepository().fetch(session.id).state == SessionState.ACTIVE

    def test_persistence_disabled(self, qapp, clock):
        engine = SessionEngine.from_settings(
            Settings(persistence_enabled=False), clock=clock,
        )
        session = engine.create_session(fractions_request())
        assert not engine.start(session.id).persisted

    def test_database_url_creates_tables(self, qapp, clock, tmp_path):
        path = tmp_path / "fresh.db"
        engine = SessionEngine.from_settings(
            Settings(database_url=f"sqlite:///{path}"), clock=clock,
        )
        session = engine.create_session(fractions_request())
        assert engine.start(session.id).persisted
        assert path.exists()
        assert SessionRepository().fetch(session.id).state == SessionState.ACTIVE

    def test_default_database_file(self, qapp, clock, tmp_path, monkeypatch):
        from learnloop.database import db as db_module

        # nothing configured yet, as on a first launch
        monkeypatch.setattr(db_module, "_engine", None)
        monkeypatch.setattr(db_module, "_SessionFactory", None)
        monkeypatch.setattr(db_module, "APP_SUPPORT_DIR", tmp_path / "support")
        monkeypatch.setattr(db_module, "DB_PATH", tmp_path / "support" / "learnloop.db")

        engine = SessionEngine.from_settings(Settings(), clock=clock)
        session = engine.create_session(fractions_request())
        assert engine.start(session.id).persisted
        assert (tmp_path / "support" / "learnloop.db").exists()


# ═══════════════════════════════════════════════════════════════════════════
#  CLI
# ═══════════════════════════════════════════════════════════════════════════


class TestCli:

    def test_no_sessions(self, settings_path, capsys):
        assert main(["c1"]) == 0
        assert "No sessions yet for c1." in capsys.readouterr().out

    def test_lists_history_and_stats(self, qapp, clock, settings_path, capsys):
        engine = SessionEngine(clock=clock, repository=SessionRepository())
        session = engine.create_session(fractions_request())
        engine.start(session.id)
        advance(engine, clock, 120, step=10)
        engine.complete(session.id, completion_rate=1.0)

        assert main(["c1", "--limit", "5"]) == 0
        out = capsys.readouterr().out
        assert "Fractions" in out
        assert "completed" in out
        assert "Total sessions:   1" in out
        assert "Completion rate:  100%" in out

"""Shared pytest fixtures for LearnLoop tests."""

import os
import sys
import pytest

# Run Qt headless when no display is available.
os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

from PyQt6.QtWidgets import QApplication

from learnloop.database.db import configure_engine, init_db
from learnloop.database.repository import SessionRepository
from learnloop.session.clock import ManualClock
from learnloop.session.engine import SessionEngine


@pytest.fixture(scope="session")
def qapp():
    """A single QApplication instance shared across the entire test run."""
    app = QApplication.instance() or QApplication(sys.argv)
    yield app


@pytest.fixture(autouse=True)
def test_db():
    """Point every test at a fresh in-memory SQLite database."""
    configure_engine("sqlite:///:memory:")
    init_db()
    yield


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def engine(qapp, clock):
    """Fresh SessionEngine on a manual clock, no persistence."""
    return SessionEngine(clock=clock)


@pytest.fixture
def engine_db(qapp, clock):
    """Fresh SessionEngine persisting to the in-memory database."""
    return SessionEngine(clock=clock, repository=SessionRepository())

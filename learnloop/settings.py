"""Application settings with JSON persistence.

Settings are stored at:
    ~/Library/Application Support/LearnLoop/settings.json

Usage::

    settings = load_settings()
    settings.break_reminders_enabled = False
    save_settings(settings)

``timing_overrides`` is keyed by age group and holds partial timing
configs in minutes, e.g. ``{"ages6to9": {"break_interval": 10}}``.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, asdict, field, fields
from pathlib import Path

logger = logging.getLogger(__name__)


APP_SUPPORT_DIR = Path.home() / "Library" / "Application Support" / "LearnLoop"
SETTINGS_PATH = APP_SUPPORT_DIR / "settings.json"


@dataclass
class Settings:
    """All user-configurable preferences."""

    # ── timer ─────────────────────────────────────────────────────────
    tick_interval_ms: int = 1000
    max_tick_gap: float = 300.0            # seconds
    break_reminders_enabled: bool = True
    break_warnings_enabled: bool = True
    timing_overrides: dict[str, dict[str, int]] = field(default_factory=dict)

    # ── history ───────────────────────────────────────────────────────
    history_limit: int = 10

    # ── storage ───────────────────────────────────────────────────────
    persistence_enabled: bool = True
    database_url: str | None = None        # None → file in APP_SUPPORT_DIR


def load_settings() -> Settings:
    """Load settings from disk, falling back to defaults."""
    if not SETTINGS_PATH.exists():
        return Settings()
    try:
        data = json.loads(SETTINGS_PATH.read_text(encoding="utf-8"))
        # Only use keys that exist in the dataclass
        valid_keys = {f.name for f in fields(Settings)}
        filtered = {k: v for k, v in data.items() if k in valid_keys}
        return Settings(**filtered)
    except (OSError, ValueError, TypeError, AttributeError) as exc:
        logger.warning("Ignoring unreadable settings at %s: %s", SETTINGS_PATH, exc)
    return Settings()


def save_settings(settings: Settings) -> None:
    """Write settings to disk as JSON."""
    APP_SUPPORT_DIR.mkdir(parents=True, exist_ok=True)
    SETTINGS_PATH.write_text(
        json.dumps(asdict(settings), indent=2) + "\n",
        encoding="utf-8",
    )

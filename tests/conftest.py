"""Shared pytest fixtures for the mode hook tests."""

import json
from pathlib import Path
from typing import Any, Callable, Optional

import pytest

from omc_modes.config import TEAM_FLAG_ENV, ModesConfig
from omc_modes.staleness import utc_now_iso


@pytest.fixture(autouse=True)
def claude_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate CLAUDE_HOME and mode env vars for every test."""
    home = tmp_path / "claude-home"
    home.mkdir()
    monkeypatch.setenv("CLAUDE_HOME", str(home))
    for name in (TEAM_FLAG_ENV, "OMC_STALE_STATE_HOURS", "OMC_STALE_MARKER_HOURS",
                 "OMC_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    return home


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    """Provide an empty project directory."""
    project = tmp_path / "project"
    project.mkdir()
    return project


@pytest.fixture
def config() -> ModesConfig:
    return ModesConfig()


@pytest.fixture
def write_mode_state(project_dir: Path) -> Callable[..., Path]:
    """Write a raw mode state file, session-scoped when session is given."""
    def _write(mode: str, data: Optional[dict] = None, session: Optional[str] = None,
               **fields: Any) -> Path:
        state_dir = project_dir / ".omc" / "state"
        if session:
            state_dir = state_dir / "sessions" / session
        state_dir.mkdir(parents=True, exist_ok=True)
        now = utc_now_iso()
        record = {
            "active": True,
            "started_at": now,
            "last_checked_at": now,
            "original_prompt": "",
            "reinforcement_count": 0,
        }
        if session:
            record["session_id"] = session
        record.update(data or {})
        record.update(fields)
        path = state_dir / f"{mode}-state.json"
        path.write_text(json.dumps(record, indent=2), encoding="utf-8")
        return path
    return _write


@pytest.fixture
def read_mode_state(project_dir: Path) -> Callable[..., Optional[dict]]:
    """Read a raw mode state file, or None if it does not exist."""
    def _read(mode: str, session: Optional[str] = None) -> Optional[dict]:
        state_dir = project_dir / ".omc" / "state"
        if session:
            state_dir = state_dir / "sessions" / session
        path = state_dir / f"{mode}-state.json"
        if not path.exists():
            return None
        return json.loads(path.read_text(encoding="utf-8"))
    return _read

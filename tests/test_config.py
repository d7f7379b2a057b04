"""Tests for omc_modes.config"""

import json

from omc_modes.config import (
    HOUR_MS,
    STALE_STATE_THRESHOLD_MS,
    TEAM_FLAG_ENV,
    is_team_enabled,
    load_config,
)


def test_load_config_defaults(tmp_path):
    config = load_config(tmp_path / "missing.json")
    assert config.stale_state_threshold_ms == STALE_STATE_THRESHOLD_MS
    assert config.stale_marker_threshold_ms == HOUR_MS
    assert config.max_reinforcements_for("ultrawork") == 50
    assert config.max_reinforcements_for("pipeline") == 15
    assert config.max_reinforcements_for("unknown") == 50
    assert config.log_level == "INFO"


def test_load_config_from_file(tmp_path):
    path = tmp_path / "omc-modes.json"
    path.write_text(json.dumps({
        "stale_state_hours": 4,
        "max_reinforcements": {"ultrawork": 10, "bogus": -1},
        "ralph_max_iterations": 30,
        "log_level": "debug",
    }))
    config = load_config(path)
    assert config.stale_state_threshold_ms == 4 * HOUR_MS
    assert config.max_reinforcements_for("ultrawork") == 10
    assert config.max_reinforcements_for("bogus") == 50
    assert config.ralph_max_iterations == 30
    assert config.log_level == "DEBUG"


def test_load_config_default_location(claude_home):
    (claude_home / "omc-modes.json").write_text(json.dumps({"stale_marker_hours": 0.5}))
    assert load_config().stale_marker_threshold_ms == HOUR_MS // 2


def test_load_config_env_overrides_file(tmp_path, monkeypatch):
    path = tmp_path / "omc-modes.json"
    path.write_text(json.dumps({"stale_state_hours": 4}))
    monkeypatch.setenv("OMC_STALE_STATE_HOURS", "1")
    monkeypatch.setenv("OMC_LOG_LEVEL", "warning")
    config = load_config(path)
    assert config.stale_state_threshold_ms == HOUR_MS
    assert config.log_level == "WARNING"


def test_load_config_ignores_invalid_values(tmp_path, monkeypatch):
    path = tmp_path / "omc-modes.json"
    path.write_text("{not json")
    monkeypatch.setenv("OMC_STALE_STATE_HOURS", "soon")
    assert load_config(path).stale_state_threshold_ms == STALE_STATE_THRESHOLD_MS


# ==============================================================================
# Team feature flag
# ==============================================================================

def test_team_disabled_by_default():
    assert is_team_enabled() is False


def test_team_enabled_from_settings(claude_home):
    (claude_home / "settings.json").write_text(json.dumps({"env": {TEAM_FLAG_ENV: "1"}}))
    assert is_team_enabled() is True


def test_team_env_overrides_settings(claude_home, monkeypatch):
    (claude_home / "settings.json").write_text(json.dumps({"env": {TEAM_FLAG_ENV: "true"}}))
    monkeypatch.setenv(TEAM_FLAG_ENV, "0")
    assert is_team_enabled() is False
    monkeypatch.setenv(TEAM_FLAG_ENV, "true")
    assert is_team_enabled() is True


def test_team_flag_lookup_failure_is_disabled(claude_home):
    (claude_home / "settings.json").write_text("{broken")
    assert is_team_enabled() is False
    (claude_home / "settings.json").write_text(json.dumps(["not", "a", "dict"]))
    assert is_team_enabled() is False

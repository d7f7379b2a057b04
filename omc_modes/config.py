"""
Configuration for the mode hooks.

Values are layered: built-in defaults, then `<CLAUDE_HOME>/omc-modes.json`,
then environment variables. Every lookup failure falls back to the default;
configuration problems never stop a hook from answering.
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from omc_modes.compat import get_claude_home

HOUR_MS = 60 * 60 * 1000

# Cheap "is any mode active" probe
STALE_MARKER_THRESHOLD_MS = 1 * HOUR_MS
# Authoritative stop decision
STALE_STATE_THRESHOLD_MS = 2 * HOUR_MS
SESSION_DIR_MAX_AGE_MS = 24 * HOUR_MS

DEFAULT_MAX_REINFORCEMENTS: Dict[str, int] = {
    "ralph": 100,
    "autopilot": 20,
    "team": 20,
    "ultrapilot": 20,
    "swarm": 15,
    "ultrawork": 50,
    "ecomode": 50,
    "pipeline": 15,
    "ultraqa": 50,
}
DEFAULT_RALPH_MAX_ITERATIONS = 100
DEFAULT_ULTRAQA_MAX_CYCLES = 10

TEAM_FLAG_ENV = "CLAUDE_CODE_EXPERIMENTAL_AGENT_TEAMS"
CONFIG_FILENAME = "omc-modes.json"


@dataclass
class ModesConfig:
    """Tunables shared by the prompt and stop hooks."""
    stale_state_threshold_ms: int = STALE_STATE_THRESHOLD_MS
    stale_marker_threshold_ms: int = STALE_MARKER_THRESHOLD_MS
    session_dir_max_age_ms: int = SESSION_DIR_MAX_AGE_MS
    max_reinforcements: Dict[str, int] = field(
        default_factory=lambda: dict(DEFAULT_MAX_REINFORCEMENTS)
    )
    ralph_max_iterations: int = DEFAULT_RALPH_MAX_ITERATIONS
    ultraqa_max_cycles: int = DEFAULT_ULTRAQA_MAX_CYCLES
    log_level: str = "INFO"

    def max_reinforcements_for(self, mode: str) -> int:
        return self.max_reinforcements.get(mode, 50)


def _hours_to_ms(value: Any) -> Optional[int]:
    try:
        hours = float(value)
    except (TypeError, ValueError):
        return None
    if hours <= 0:
        return None
    return int(hours * HOUR_MS)


def load_config(config_file: Optional[Path] = None) -> ModesConfig:
    """Load mode configuration from the config file and environment.

    Args:
        config_file: Override for `<CLAUDE_HOME>/omc-modes.json`

    Returns:
        ModesConfig with defaults for anything missing or invalid
    """
    config = ModesConfig()
    if config_file is None:
        config_file = get_claude_home() / CONFIG_FILENAME

    data: Dict[str, Any] = {}
    if config_file.exists():
        try:
            with open(config_file, "r", encoding="utf-8") as f:
                loaded = json.load(f)
            if isinstance(loaded, dict):
                data = loaded
        except (json.JSONDecodeError, OSError, UnicodeDecodeError):
            pass

    for key, attr in (
        ("stale_state_hours", "stale_state_threshold_ms"),
        ("stale_marker_hours", "stale_marker_threshold_ms"),
        ("session_dir_max_age_hours", "session_dir_max_age_ms"),
    ):
        ms = _hours_to_ms(data.get(key))
        if ms is not None:
            setattr(config, attr, ms)

    caps = data.get("max_reinforcements")
    if isinstance(caps, dict):
        for mode, cap in caps.items():
            if isinstance(cap, int) and not isinstance(cap, bool) and cap > 0:
                config.max_reinforcements[mode] = cap

    for key in ("ralph_max_iterations", "ultraqa_max_cycles"):
        value = data.get(key)
        if isinstance(value, int) and not isinstance(value, bool) and value > 0:
            setattr(config, key, value)

    if isinstance(data.get("log_level"), str):
        config.log_level = data["log_level"].upper()

    # Environment overrides the file
    for env_name, attr in (
        ("OMC_STALE_STATE_HOURS", "stale_state_threshold_ms"),
        ("OMC_STALE_MARKER_HOURS", "stale_marker_threshold_ms"),
    ):
        ms = _hours_to_ms(os.environ.get(env_name))
        if ms is not None:
            setattr(config, attr, ms)

    env_level = os.environ.get("OMC_LOG_LEVEL")
    if env_level:
        config.log_level = env_level.upper()

    return config


def _flag_value(value: Any) -> Optional[bool]:
    if value is None:
        return None
    text = str(value).strip().lower()
    if text in ("1", "true"):
        return True
    if text in ("0", "false", ""):
        return False
    return None


def is_team_enabled(settings_path: Optional[Path] = None) -> bool:
    """Whether the coordinated team mode may be activated.

    The process environment wins; otherwise the `env` block of the Claude
    settings file decides. Any lookup failure means disabled.
    """
    try:
        env_flag = _flag_value(os.environ.get(TEAM_FLAG_ENV))
        if env_flag is not None:
            return env_flag

        if settings_path is None:
            settings_path = get_claude_home() / "settings.json"
        if not settings_path.exists():
            return False
        with open(settings_path, "r", encoding="utf-8") as f:
            settings = json.load(f)
        env_block = settings.get("env") if isinstance(settings, dict) else None
        if not isinstance(env_block, dict):
            return False
        return _flag_value(env_block.get(TEAM_FLAG_ENV)) is True
    except (json.JSONDecodeError, OSError, UnicodeDecodeError, AttributeError):
        return False

"""
Mode Registry - cheap "is any mode active" probe.

File-based only: answers from the state files and the swarm marker, with the
short (1 h) staleness threshold so a crashed session cannot wedge new ones.
Used by the prompt hook before activating an exclusive mode and by the
`status` / `cleanup` commands.
"""

import logging
import shutil
from dataclasses import dataclass
from typing import List, Optional

from omc_modes.config import ModesConfig, load_config
from omc_modes.staleness import is_stale, now_ms, parse_timestamp_ms
from omc_modes.state import (
    SESSIONS_SUBDIR,
    Scope,
    read_state,
    read_swarm_marker,
    swarm_marker_path,
    validate_session_id,
)
from omc_modes.transaction import remove_file

logger = logging.getLogger(__name__)

REGISTERED_MODES = (
    "autopilot",
    "ultrapilot",
    "swarm",
    "pipeline",
    "team",
    "ralph",
    "ultrawork",
    "ultraqa",
    "ecomode",
)

# At most one of these may run in a project, across all sessions
EXCLUSIVE_MODES = ("autopilot", "ultrapilot", "swarm", "pipeline")

DISPLAY_NAMES = {
    "autopilot": "Autopilot",
    "ultrapilot": "Ultrapilot",
    "swarm": "Swarm",
    "pipeline": "Pipeline",
    "team": "Team",
    "ralph": "Ralph",
    "ultrawork": "Ultrawork",
    "ultraqa": "UltraQA",
    "ecomode": "Ecomode",
}


@dataclass
class CanStartResult:
    allowed: bool
    blocked_by: Optional[str] = None
    message: str = ""


def _swarm_active(scope: Scope, config: ModesConfig) -> bool:
    """Swarm is active while its marker exists and is younger than the threshold.

    A stale marker is removed so a crashed swarm stops blocking other modes.
    """
    if not swarm_marker_path(scope).exists():
        return False
    marker = read_swarm_marker(scope)
    if marker is None:
        # Present but unreadable: the marker's existence is what counts
        return True
    started = marker.get("started_at", marker.get("startedAt"))
    started_ms = parse_timestamp_ms(started)
    if started_ms and now_ms() - started_ms > config.stale_marker_threshold_ms:
        logger.warning("Removing stale swarm marker in %s", scope.project_path)
        remove_file(swarm_marker_path(scope))
        return False
    return True


def is_mode_active(
    mode: str,
    directory: str,
    session_id: Optional[str] = None,
    config: Optional[ModesConfig] = None,
) -> bool:
    """Whether a mode has an active, fresh state for the scope.

    With a session id only the session-scoped file is consulted.
    """
    config = config or load_config()
    scope = Scope.create(directory, session_id)
    if mode == "swarm":
        return _swarm_active(scope, config)
    state = read_state(mode, scope)
    if state is None or not state.active:
        return False
    return not is_stale(state, config.stale_marker_threshold_ms)


def get_active_modes(
    directory: str,
    session_id: Optional[str] = None,
    config: Optional[ModesConfig] = None,
) -> List[str]:
    config = config or load_config()
    return [m for m in REGISTERED_MODES if is_mode_active(m, directory, session_id, config)]


def is_any_mode_active(directory: str, config: Optional[ModesConfig] = None) -> bool:
    return bool(get_active_modes(directory, config=config))


def list_session_ids(directory: str) -> List[str]:
    """Session ids that have a state directory under the project."""
    sessions_dir = Scope.create(directory).state_dir / SESSIONS_SUBDIR
    try:
        entries = sorted(sessions_dir.iterdir())
    except OSError:
        return []
    return [e.name for e in entries if e.is_dir() and validate_session_id(e.name)]


def is_mode_active_in_any_session(
    mode: str,
    directory: str,
    config: Optional[ModesConfig] = None,
) -> bool:
    config = config or load_config()
    if is_mode_active(mode, directory, None, config):
        return True
    if mode == "swarm":
        return False
    return any(
        is_mode_active(mode, directory, sid, config) for sid in list_session_ids(directory)
    )


def get_active_exclusive_mode(
    directory: str,
    config: Optional[ModesConfig] = None,
) -> Optional[str]:
    for mode in EXCLUSIVE_MODES:
        if is_mode_active_in_any_session(mode, directory, config):
            return mode
    return None


def can_start_mode(
    mode: str,
    directory: str,
    config: Optional[ModesConfig] = None,
) -> CanStartResult:
    """Check whether an exclusive mode may start given the other sessions."""
    if mode not in EXCLUSIVE_MODES:
        return CanStartResult(allowed=True)
    config = config or load_config()
    for other in EXCLUSIVE_MODES:
        if other != mode and is_mode_active_in_any_session(other, directory, config):
            name = DISPLAY_NAMES.get(mode, mode)
            blocker = DISPLAY_NAMES.get(other, other)
            return CanStartResult(
                allowed=False,
                blocked_by=other,
                message=(
                    f"Cannot start {name} while {blocker} is active. "
                    f"Cancel {blocker} first with /oh-my-claudecode:cancel."
                ),
            )
    return CanStartResult(allowed=True)


def clear_stale_session_dirs(
    directory: str,
    max_age_ms: Optional[int] = None,
) -> List[str]:
    """Remove session state directories nobody has written to recently.

    A directory is reaped when it is empty or when its newest file is older
    than max_age_ms (default: the configured session dir max age).

    Returns:
        The session ids whose directories were removed
    """
    if max_age_ms is None:
        max_age_ms = load_config().session_dir_max_age_ms
    sessions_dir = Scope.create(directory).state_dir / SESSIONS_SUBDIR
    removed = []
    now = now_ms()
    for sid in list_session_ids(directory):
        session_dir = sessions_dir / sid
        try:
            files = [f for f in session_dir.iterdir() if f.is_file()]
            if not files and not any(session_dir.iterdir()):
                session_dir.rmdir()
                removed.append(sid)
                continue
            newest = max((f.stat().st_mtime * 1000 for f in files), default=0)
            if now - newest > max_age_ms:
                shutil.rmtree(session_dir)
                removed.append(sid)
        except OSError as e:
            logger.warning("Skipping session dir %s: %s", session_dir, e)
    if removed:
        logger.info("Removed %d stale session dir(s) in %s", len(removed), directory)
    return removed

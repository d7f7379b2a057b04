"""
Mode State Store

Typed read/write access to per-mode JSON state files, scoped by project
directory and (optionally) session identifier.

On-disk layout:
    <project>/.omc/state/<mode>-state.json                      legacy/shared scope
    <project>/.omc/state/sessions/<session_id>/<mode>-state.json  session scope
    <project>/.omc/state/swarm-active.marker                    swarm side-channel
    <project>/.omc/state/swarm-summary.json                     swarm progress

Guarantees:
- A session id that is not `[alnum][alnum_-]{0,255}` never reaches a path;
  it degrades to the legacy scope instead of raising.
- A read for a known session id never falls back to the legacy file.
- Writes are atomic (temp file + rename); deletes are idempotent.
- I/O and parse failures surface as None/False, never as exceptions.
"""

import logging
import re
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional

from omc_modes.compat import normalize_project_path
from omc_modes.config import ModesConfig
from omc_modes.staleness import is_stale, utc_now_iso
from omc_modes.transaction import (
    TransactionError,
    atomic_write_json,
    locked_update_json,
    read_json,
    remove_file,
)

logger = logging.getLogger(__name__)

STATE_SUBDIR = Path(".omc") / "state"
SESSIONS_SUBDIR = "sessions"
STATE_SUFFIX = "-state.json"
SWARM_MARKER_FILE = "swarm-active.marker"
SWARM_SUMMARY_FILE = "swarm-summary.json"

_SESSION_ID_RE = re.compile(r"[A-Za-z0-9][A-Za-z0-9_-]{0,255}")
_MODE_NAME_RE = re.compile(r"[a-z][a-z0-9-]{0,63}")


# =============================================================================
# Scope and Paths
# =============================================================================

def validate_session_id(session_id: Any) -> Optional[str]:
    """Return the session id if it is safe to embed in a path, else None."""
    if not isinstance(session_id, str):
        return None
    if _SESSION_ID_RE.fullmatch(session_id) is None:
        return None
    return session_id


@dataclass(frozen=True)
class Scope:
    """The (project, session) pair a piece of persisted state belongs to."""
    project_path: str
    session_id: Optional[str] = None

    @classmethod
    def create(cls, directory: Any, session_id: Any = None) -> "Scope":
        """Build a scope, dropping an unsafe session id to the legacy scope."""
        safe = validate_session_id(session_id)
        if session_id and safe is None:
            logger.warning("Rejected unsafe session id; using legacy scope")
        return cls(project_path=normalize_project_path(directory), session_id=safe)

    @property
    def state_dir(self) -> Path:
        return Path(self.project_path) / STATE_SUBDIR

    @property
    def legacy(self) -> "Scope":
        return Scope(project_path=self.project_path)


def session_state_dir(scope: Scope) -> Optional[Path]:
    if scope.session_id is None:
        return None
    return scope.state_dir / SESSIONS_SUBDIR / scope.session_id


def state_file_path(mode: str, scope: Scope) -> Path:
    """Path of a mode's state file for the given scope.

    Raises:
        ValueError: If the mode name cannot be used as a file name
    """
    if _MODE_NAME_RE.fullmatch(mode or "") is None:
        raise ValueError(f"Invalid mode name: {mode!r}")
    session_dir = session_state_dir(scope)
    if session_dir is not None:
        return session_dir / f"{mode}{STATE_SUFFIX}"
    return scope.state_dir / f"{mode}{STATE_SUFFIX}"


def swarm_marker_path(scope: Scope) -> Path:
    return scope.state_dir / SWARM_MARKER_FILE


def swarm_summary_path(scope: Scope) -> Path:
    return scope.state_dir / SWARM_SUMMARY_FILE


# =============================================================================
# ModeState
# =============================================================================

# camelCase spellings written by older hook versions
_ALIASES = {
    "startedAt": "started_at",
    "lastCheckedAt": "last_checked_at",
    "originalPrompt": "original_prompt",
    "prompt": "original_prompt",
    "sessionId": "session_id",
    "projectPath": "project_path",
    "reinforcementCount": "reinforcement_count",
    "maxReinforcements": "max_reinforcements",
    "maxIterations": "max_iterations",
    "currentStage": "current_stage",
    "maxCycles": "max_cycles",
    "allPassing": "all_passing",
}


@dataclass
class ModeState:
    """Persistent state of one mode in one (project, session) scope.

    Mode-specific progress fields are optional and only serialized when set.
    Unknown keys are kept in `extra` so a rewrite never drops data written by
    other tools.
    """
    active: bool = False
    started_at: Optional[str] = None
    last_checked_at: Optional[str] = None
    original_prompt: str = ""
    session_id: Optional[str] = None
    project_path: Optional[str] = None
    reinforcement_count: int = 0
    max_reinforcements: Optional[int] = None
    # ralph
    iteration: Optional[int] = None
    max_iterations: Optional[int] = None
    # autopilot / team
    phase: Optional[str] = None
    # pipeline
    current_stage: Optional[int] = None
    stages: Optional[list] = None
    # ultraqa
    cycle: Optional[int] = None
    max_cycles: Optional[int] = None
    all_passing: Optional[bool] = None
    # ultrapilot
    workers: Optional[list] = None
    # swarm summary
    tasks_pending: Optional[int] = None
    tasks_claimed: Optional[int] = None
    # composition
    linked_team: Optional[bool] = None
    linked_ralph: Optional[bool] = None
    synthesized_by: Optional[str] = None
    deactivated_reason: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    _ALWAYS = ("active", "started_at", "last_checked_at", "original_prompt",
               "session_id", "project_path", "reinforcement_count")

    def to_dict(self) -> dict:
        """Convert state to dictionary for JSON serialization."""
        data = dict(self.extra)
        for f in fields(self):
            if f.name == "extra":
                continue
            value = getattr(self, f.name)
            if f.name in self._ALWAYS:
                if f.name in ("session_id", "project_path") and value is None:
                    continue
                data[f.name] = value
            elif value is not None:
                data[f.name] = value
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "ModeState":
        """Create state from dictionary, accepting camelCase spellings.

        Values with the wrong type are dropped back to their defaults.
        """
        known = {f.name for f in fields(cls)} - {"extra"}
        normalized: Dict[str, Any] = {}
        extra: Dict[str, Any] = {}
        for key, value in data.items():
            name = _ALIASES.get(key, key)
            if name in known:
                # snake_case wins when both spellings are present
                if name in normalized and key != name:
                    continue
                normalized[name] = value
            else:
                extra[key] = value

        state = cls(extra=extra)
        state.active = normalized.get("active") is True
        for name in ("started_at", "last_checked_at", "phase", "synthesized_by",
                     "deactivated_reason"):
            value = normalized.get(name)
            if isinstance(value, str):
                setattr(state, name, value)
        prompt = normalized.get("original_prompt")
        state.original_prompt = prompt if isinstance(prompt, str) else ""
        for name in ("session_id", "project_path"):
            value = normalized.get(name)
            if isinstance(value, str) and value:
                setattr(state, name, value)
        for name in ("reinforcement_count", "max_reinforcements", "iteration",
                     "max_iterations", "current_stage", "cycle", "max_cycles",
                     "tasks_pending", "tasks_claimed"):
            value = normalized.get(name)
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                setattr(state, name, int(value))
        if state.reinforcement_count < 0:
            state.reinforcement_count = 0
        for name in ("all_passing", "linked_team", "linked_ralph"):
            value = normalized.get(name)
            if isinstance(value, bool):
                setattr(state, name, value)
        for name in ("stages", "workers"):
            value = normalized.get(name)
            if isinstance(value, list):
                setattr(state, name, value)
        return state

    def cap(self, config: ModesConfig, mode: str) -> int:
        if self.max_reinforcements and self.max_reinforcements > 0:
            return self.max_reinforcements
        return config.max_reinforcements_for(mode)


# =============================================================================
# Read / Write / Delete
# =============================================================================

def _load(path: Path) -> Optional[ModeState]:
    try:
        data = read_json(path)
    except TransactionError as e:
        logger.warning("Ignoring unreadable state %s: %s", path, e)
        return None
    if not isinstance(data, dict):
        return None
    return ModeState.from_dict(data)


def read_state(mode: str, scope: Scope) -> Optional[ModeState]:
    """Read a mode's state for the scope.

    With a session id only the session-scoped file is consulted, and a record
    owned by a different session is rejected. Without a session id the legacy
    shared file is read.

    Returns:
        ModeState, or None when absent, corrupt or owned by another session
    """
    try:
        path = state_file_path(mode, scope)
    except ValueError:
        return None
    state = _load(path)
    if state is None:
        return None
    if scope.session_id and state.session_id and state.session_id != scope.session_id:
        return None
    return state


def write_state(mode: str, scope: Scope, state: ModeState) -> bool:
    """Atomically replace a mode's state file. Returns False on failure."""
    try:
        atomic_write_json(state_file_path(mode, scope), state.to_dict())
        return True
    except (TransactionError, ValueError) as e:
        logger.warning("Failed to write %s state: %s", mode, e)
        return False


def delete_state(mode: str, scope: Scope) -> bool:
    """Delete a mode's state file; deleting a missing file succeeds."""
    try:
        return remove_file(state_file_path(mode, scope))
    except ValueError:
        return False


StateUpdate = Callable[[Optional[ModeState]], Optional[ModeState]]


def update_record(path: Path, update_fn: StateUpdate) -> Optional[ModeState]:
    """Read-modify-write a state record under the file's sidecar lock.

    update_fn receives the current state (None if absent or corrupt) and
    returns the new state, or None to leave the file untouched.

    Returns:
        The state written, or None if nothing was written or the update failed
    """
    def _apply(raw: Any) -> Optional[dict]:
        current = ModeState.from_dict(raw) if isinstance(raw, dict) else None
        new_state = update_fn(current)
        return new_state.to_dict() if new_state is not None else None

    try:
        result = locked_update_json(path, _apply)
    except TransactionError as e:
        logger.warning("Failed to update %s: %s", path, e)
        return None
    return ModeState.from_dict(result) if isinstance(result, dict) else None


def update_state(mode: str, scope: Scope, update_fn: StateUpdate) -> Optional[ModeState]:
    """update_record() for a mode's state file in the given scope."""
    try:
        path = state_file_path(mode, scope)
    except ValueError:
        return None
    return update_record(path, update_fn)


# =============================================================================
# Swarm side-channel
# =============================================================================

def swarm_marker_exists(scope: Scope) -> bool:
    return swarm_marker_path(scope).exists()


def read_swarm_marker(scope: Scope) -> Optional[dict]:
    try:
        data = read_json(swarm_marker_path(scope))
    except TransactionError:
        return None
    return data if isinstance(data, dict) else None


def read_swarm_summary(scope: Scope) -> Optional[ModeState]:
    return _load(swarm_summary_path(scope))


def write_swarm_summary(scope: Scope, summary: ModeState) -> bool:
    try:
        atomic_write_json(swarm_summary_path(scope), summary.to_dict())
        return True
    except TransactionError as e:
        logger.warning("Failed to write swarm summary: %s", e)
        return False


def update_swarm_summary(scope: Scope, update_fn: StateUpdate) -> Optional[ModeState]:
    return update_record(swarm_summary_path(scope), update_fn)


# =============================================================================
# Lifecycle
# =============================================================================

def new_mode_state(
    mode: str,
    scope: Scope,
    prompt: str,
    config: ModesConfig,
    **progress: Any,
) -> ModeState:
    """Fresh active state for a mode, with mode-specific defaults."""
    now = utc_now_iso()
    state = ModeState(
        active=True,
        started_at=now,
        last_checked_at=now,
        original_prompt=prompt,
        session_id=scope.session_id,
        project_path=scope.project_path or None,
        reinforcement_count=0,
        max_reinforcements=config.max_reinforcements_for(mode),
    )
    if mode == "ralph":
        state.iteration = 1
        state.max_iterations = config.ralph_max_iterations
    elif mode == "team":
        state.phase = "team-plan"
    elif mode == "ultraqa":
        state.cycle = 1
        state.max_cycles = config.ultraqa_max_cycles
    for name, value in progress.items():
        setattr(state, name, value)
    return state


def activate_mode(
    mode: str,
    scope: Scope,
    prompt: str,
    config: ModesConfig,
    **progress: Any,
) -> Optional[ModeState]:
    """Create a mode's state unless an active, fresh one already exists.

    Returns:
        The state now on disk, or None if the write failed
    """
    def _activate(current: Optional[ModeState]) -> Optional[ModeState]:
        if (current is not None and current.active
                and not is_stale(current, config.stale_state_threshold_ms)
                and current.session_id == scope.session_id):
            return None
        return new_mode_state(mode, scope, prompt, config, **progress)

    written = update_state(mode, scope, _activate)
    if written is not None:
        logger.info("Activated %s (session=%s)", mode, scope.session_id or "-")
        return written
    return read_state(mode, scope)


def link_ralph_team(scope: Scope) -> bool:
    """Cross-reference co-existing ralph and team states.

    Returns:
        True if both states exist and were updated
    """
    def _flag(name: str) -> StateUpdate:
        def _apply(current: Optional[ModeState]) -> Optional[ModeState]:
            if current is None:
                return None
            setattr(current, name, True)
            return current
        return _apply

    ralph = update_state("ralph", scope, _flag("linked_team"))
    team = update_state("team", scope, _flag("linked_ralph"))
    return ralph is not None and team is not None


def deactivate_mode(mode: str, scope: Scope, reason: str) -> bool:
    """Mark an existing state inactive, keeping it on disk."""
    def _apply(current: Optional[ModeState]) -> Optional[ModeState]:
        if current is None or not current.active:
            return None
        current.active = False
        current.deactivated_reason = reason
        current.last_checked_at = utc_now_iso()
        return current

    return update_state(mode, scope, _apply) is not None


def clear_mode_states(scope: Scope, modes: Iterable[str]) -> bool:
    """Delete the given modes' state files plus the swarm side-channel.

    Session-scoped files are removed when the scope carries a session id;
    legacy files are always removed. Missing files count as success.
    """
    success = True
    scopes: List[Scope] = [scope.legacy]
    if scope.session_id:
        scopes.insert(0, scope)
    for mode in modes:
        for target in scopes:
            if not delete_state(mode, target):
                success = False
    for path in (swarm_marker_path(scope), swarm_summary_path(scope)):
        if not remove_file(path):
            success = False
    return success

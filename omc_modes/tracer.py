"""Flow-trace notifications emitted by the hooks.

Tracing is fire-and-forget: a tracer failure is logged and dropped, never
allowed to change a hook's answer. NullTracer is the default for library
callers and tests; the CLI installs ReplayTracer.
"""

import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, Optional

from omc_modes.compat import normalize_project_path
from omc_modes.staleness import utc_now_iso
from omc_modes.state import STATE_SUBDIR

logger = logging.getLogger(__name__)

REPLAY_PREFIX = "agent-replay-"
MAX_REPLAY_SIZE_BYTES = 5 * 1024 * 1024


class FlowTracer:
    """No-op tracer; subclasses override emit()."""

    def emit(self, directory: str, session_id: str, event: Dict[str, Any]) -> None:
        pass

    def _safe_emit(self, directory: str, session_id: Optional[str], event: Dict[str, Any]) -> None:
        try:
            self.emit(directory, session_id or "", event)
        except Exception as e:
            logger.debug("Flow trace dropped (%s): %s", event.get("event"), e)

    def keyword_detected(self, directory: str, session_id: Optional[str], keyword: str) -> None:
        self._safe_emit(directory, session_id, {
            "event": "keyword_detected",
            "agent": "system",
            "keyword": keyword,
        })

    def mode_change(
        self,
        directory: str,
        session_id: Optional[str],
        mode_from: str,
        mode_to: str,
    ) -> None:
        self._safe_emit(directory, session_id, {
            "event": "mode_change",
            "agent": "system",
            "mode_from": mode_from,
            "mode_to": mode_to,
        })

    def hook_result(
        self,
        directory: str,
        session_id: Optional[str],
        hook: str,
        hook_event: str,
        duration_ms: int,
        context_injected: bool,
        context_length: Optional[int] = None,
    ) -> None:
        event: Dict[str, Any] = {
            "event": "hook_result",
            "agent": "system",
            "hook": hook,
            "hook_event": hook_event,
            "duration_ms": duration_ms,
            "context_injected": context_injected,
        }
        if context_length is not None:
            event["context_length"] = context_length
        self._safe_emit(directory, session_id, event)


class NullTracer(FlowTracer):
    """Discards every event."""


class ReplayTracer(FlowTracer):
    """Appends trace events to `.omc/state/agent-replay-<session>.jsonl`."""

    def replay_path(self, directory: str, session_id: str) -> Path:
        safe_id = re.sub(r"[^A-Za-z0-9_-]", "_", session_id or "unknown")
        return Path(normalize_project_path(directory)) / STATE_SUBDIR / f"{REPLAY_PREFIX}{safe_id}.jsonl"

    def emit(self, directory: str, session_id: str, event: Dict[str, Any]) -> None:
        path = self.replay_path(directory, session_id)
        if path.exists() and path.stat().st_size > MAX_REPLAY_SIZE_BYTES:
            return
        path.parent.mkdir(parents=True, exist_ok=True)
        record = {"ts": utc_now_iso(), **event}
        with open(path, "a", encoding="utf-8") as f:
            f.write(json.dumps(record) + "\n")

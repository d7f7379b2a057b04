"""
Hook event normalization.

Host payloads vary by event type and by historical field naming
(`sessionId` vs `session_id`, `cwd` vs `directory`, ...). HookEvent.from_payload
maps every known alias onto one frozen structure before any business logic
runs; malformed input yields an empty event.
"""

import json
import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

CONTEXT_LIMIT_PATTERNS = (
    "context_limit",
    "context_window",
    "context_exceeded",
    "context_full",
    "max_context",
    "token_limit",
    "max_tokens",
    "conversation_too_long",
    "input_too_long",
)

# Short generic words: equality only, substring matching gives false positives
ABORT_EXACT = ("aborted", "abort", "cancel", "interrupt")
ABORT_SUBSTRINGS = ("user_cancel", "user_interrupt", "ctrl_c", "manual_stop")


def _first(data: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = data.get(key)
        if value not in (None, ""):
            return value
    return None


def _as_str(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _extract_prompt(data: Dict[str, Any]) -> str:
    prompt = data.get("prompt")
    if isinstance(prompt, str) and prompt:
        return prompt
    message = data.get("message")
    if isinstance(message, dict) and isinstance(message.get("content"), str):
        return message["content"]
    parts = data.get("parts")
    if isinstance(parts, list):
        return " ".join(
            p["text"] for p in parts
            if isinstance(p, dict) and p.get("type") == "text" and isinstance(p.get("text"), str)
        )
    return ""


@dataclass(frozen=True)
class HookEvent:
    """Canonical view of one hook invocation payload."""
    session_id: str = ""
    directory: str = ""
    prompt: str = ""
    stop_reason: str = ""
    end_turn_reason: str = ""
    user_requested: bool = False
    hook_event_name: str = ""

    @classmethod
    def from_payload(cls, data: Any) -> "HookEvent":
        if not isinstance(data, dict):
            return cls()
        return cls(
            session_id=_as_str(_first(data, "session_id", "sessionId")),
            directory=_as_str(_first(data, "cwd", "directory")),
            prompt=_extract_prompt(data),
            stop_reason=_as_str(_first(data, "stop_reason", "stopReason")),
            end_turn_reason=_as_str(_first(data, "end_turn_reason", "endTurnReason")),
            user_requested=bool(data.get("user_requested") or data.get("userRequested")),
            hook_event_name=_as_str(_first(data, "hook_event_name", "hookEventName")),
        )

    @classmethod
    def from_json(cls, raw: str) -> "HookEvent":
        """Parse raw stdin; empty or invalid JSON gives an empty event."""
        if not raw or not raw.strip():
            return cls()
        try:
            return cls.from_payload(json.loads(raw))
        except (json.JSONDecodeError, ValueError):
            return cls()

    @property
    def project_dir(self) -> str:
        return self.directory or os.getcwd()


def is_context_limit_stop(event: HookEvent) -> bool:
    """Stop caused by an exhausted context window; must never be blocked."""
    for reason in (event.stop_reason, event.end_turn_reason):
        reason = reason.lower()
        if reason and any(p in reason for p in CONTEXT_LIMIT_PATTERNS):
            return True
    return False


def is_user_abort(event: HookEvent) -> bool:
    """Stop requested by the user (Ctrl+C, cancel button)."""
    if event.user_requested:
        return True
    reason = event.stop_reason.lower()
    return reason in ABORT_EXACT or any(p in reason for p in ABORT_SUBSTRINGS)


def event_bypasses_modes(event: HookEvent) -> Optional[str]:
    """Name of the condition that forces an allowed stop, if any."""
    if is_context_limit_stop(event):
        return "context_limit"
    if is_user_abort(event):
        return "user_abort"
    return None

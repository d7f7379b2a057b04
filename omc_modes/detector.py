"""
Prompt-submit handling: keyword detection and mode activation.

Flow for one prompt:
    sanitize -> match -> resolve -> (cancel: clear state)
    -> activate stateful modes -> link ralph+team -> additionalContext
"""

import logging
from typing import List, Optional

from omc_modes.config import ModesConfig, is_team_enabled, load_config
from omc_modes.events import HookEvent
from omc_modes.keywords import (
    DEFINITIONS_BY_NAME,
    ModeMatch,
    build_context,
    match,
    skill_invocation,
)
from omc_modes.registry import EXCLUSIVE_MODES, can_start_mode
from omc_modes.resolver import linked_pairs, resolve
from omc_modes.sanitize import sanitize
from omc_modes.state import Scope, activate_mode, clear_mode_states, link_ralph_team
from omc_modes.tracer import FlowTracer, NullTracer

logger = logging.getLogger(__name__)

PASSTHROUGH = {"continue": True, "suppressOutput": True}

# Everything a cancel clears, besides the swarm marker and summary
CANCELLABLE_MODES = (
    "ralph",
    "autopilot",
    "team",
    "ultrawork",
    "ecomode",
    "pipeline",
    "ultrapilot",
    "ultraqa",
)


def hook_output(additional_context: str) -> dict:
    return {
        "continue": True,
        "hookSpecificOutput": {
            "hookEventName": "UserPromptSubmit",
            "additionalContext": additional_context,
        },
    }


def detect(prompt: str, team_enabled: bool = False) -> List[ModeMatch]:
    """Resolved activation list for a raw prompt."""
    if not prompt:
        return []
    return resolve(match(sanitize(prompt).lower(), team_enabled))


def cancel_all(directory: str, session_id: Optional[str] = None) -> bool:
    """Delete every mode's state for the scope; idempotent."""
    scope = Scope.create(directory, session_id)
    cleared = clear_mode_states(scope, CANCELLABLE_MODES)
    logger.info("Cleared mode state in %s (session=%s)", scope.project_path,
                scope.session_id or "-")
    return cleared


def _persists(m: ModeMatch) -> bool:
    definition = DEFINITIONS_BY_NAME.get(m.name)
    return m.synthesized or (definition is not None and definition.persists)


def handle_prompt(
    event: HookEvent,
    config: Optional[ModesConfig] = None,
    team_enabled: Optional[bool] = None,
    tracer: Optional[FlowTracer] = None,
) -> dict:
    """Process one UserPromptSubmit event.

    Returns:
        Hook output: passthrough when nothing matched, otherwise the
        skill/delegation instructions as additionalContext
    """
    prompt = event.prompt
    if not prompt:
        return PASSTHROUGH

    if team_enabled is None:
        team_enabled = is_team_enabled()
    resolved = detect(prompt, team_enabled)
    if not resolved:
        return PASSTHROUGH

    tracer = tracer or NullTracer()
    directory = event.project_dir
    session_id = event.session_id or None
    for m in resolved:
        if not m.synthesized:
            tracer.keyword_detected(directory, session_id, m.name)
    logger.info("Keywords detected: %s", ", ".join(m.name for m in resolved))

    if resolved[0].name == "cancel":
        cancel_all(directory, session_id)
        return hook_output(skill_invocation("cancel", prompt))

    config = config or load_config()
    scope = Scope.create(directory, session_id)
    notices = []
    skipped = set()
    for m in resolved:
        if not _persists(m):
            continue
        if m.name in EXCLUSIVE_MODES:
            check = can_start_mode(m.name, scope.project_path, config)
            if not check.allowed:
                logger.info("Not activating %s: %s is active", m.name, check.blocked_by)
                notices.append(check.message)
                skipped.add(m.name)
                continue
        extra = {"synthesized_by": "ralph"} if m.synthesized else {}
        if activate_mode(m.name, scope, prompt, config, **extra) is not None:
            tracer.mode_change(directory, session_id, "none", m.name)

    for first, second in linked_pairs(resolved):
        if (first, second) == ("ralph", "team") and link_ralph_team(scope):
            logger.info("Linked ralph and team states")

    visible = [m for m in resolved if not m.synthesized and m.name not in skipped]
    parts = notices[:]
    if visible:
        parts.append(build_context(visible, prompt))
    if not parts:
        return PASSTHROUGH
    return hook_output("\n\n".join(parts))

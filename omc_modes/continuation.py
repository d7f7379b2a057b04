"""
Stop-event continuation decisions.

decide() runs on every "session wants to stop" event:

1. Context-limit stops and user aborts are always allowed, before any state
   is read.
2. Modes are walked in STOP_WALK_ORDER. The first mode that is active, fresh,
   owned by this session and project, and whose completion condition is
   unmet gets one reinforcement:
   - count + 1 <= cap: persist the count and block with a reason
   - count + 1 >  cap: mark the mode exhausted and allow the stop
   Lower-priority modes are not inspected once a mode answers.
3. Nothing applicable: allow the stop.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from omc_modes.compat import normalize_project_path
from omc_modes.config import ModesConfig, load_config
from omc_modes.counters import WorkCounts, count_incomplete_work
from omc_modes.events import HookEvent, event_bypasses_modes
from omc_modes.staleness import is_stale, utc_now_iso
from omc_modes.state import (
    ModeState,
    Scope,
    StateUpdate,
    deactivate_mode,
    read_state,
    read_swarm_summary,
    swarm_marker_exists,
    update_state,
    update_swarm_summary,
)

logger = logging.getLogger(__name__)

STOP_WALK_ORDER = (
    "ralph",
    "autopilot",
    "team",
    "ultrapilot",
    "swarm",
    "ultrawork",
    "ecomode",
    "pipeline",
    "ultraqa",
)

TERMINAL_TEAM_PHASES = ("complete", "failed", "cancelled")

CANCEL_COMMAND = "/oh-my-claudecode:cancel"
CANCEL_HINT = (
    f"run {CANCEL_COMMAND} to cleanly exit and clean up state files. "
    f"If cancel fails, retry with {CANCEL_COMMAND} --force."
)


@dataclass(frozen=True)
class Decision:
    """Outcome of one stop event."""
    block: bool
    reason: str = ""
    mode: Optional[str] = None

    def to_hook_output(self) -> dict:
        if self.block:
            return {"decision": "block", "reason": self.reason}
        return {"continue": True}


ALLOW = Decision(block=False)


@dataclass
class _WalkContext:
    event: HookEvent
    scope: Scope
    config: ModesConfig
    count_work: Callable[[Optional[str], str], WorkCounts]
    _counts: Optional[WorkCounts] = None

    @property
    def counts(self) -> WorkCounts:
        if self._counts is None:
            self._counts = self.count_work(self.scope.session_id, self.scope.project_path)
        return self._counts


# =============================================================================
# Eligibility
# =============================================================================

def matches_scope(state: ModeState, scope: Scope) -> bool:
    """A state only applies to its own session and project."""
    if state.session_id and state.session_id != scope.session_id:
        return False
    if state.project_path and normalize_project_path(state.project_path) != scope.project_path:
        return False
    return True


def is_eligible(state: Optional[ModeState], ctx: _WalkContext) -> bool:
    if state is None or not state.active:
        return False
    if is_stale(state, ctx.config.stale_state_threshold_ms):
        return False
    return matches_scope(state, ctx.scope)


# =============================================================================
# Reinforcement
# =============================================================================

def _reinforce(
    mode: str,
    ctx: _WalkContext,
    message: Callable[[ModeState], str],
    progress: Optional[Callable[[ModeState], None]] = None,
    updater: Optional[Callable[[Scope, StateUpdate], Optional[ModeState]]] = None,
) -> Decision:
    """Spend one reinforcement on a mode and turn the result into a Decision.

    The counter never moves past the cap: the increment that would exceed it
    instead deactivates the mode and allows the stop.
    """
    def _apply(current: Optional[ModeState]) -> Optional[ModeState]:
        if current is None or not current.active:
            return None
        new_count = current.reinforcement_count + 1
        current.last_checked_at = utc_now_iso()
        if new_count > current.cap(ctx.config, mode):
            current.active = False
            current.deactivated_reason = "max_reinforcements"
            return current
        current.reinforcement_count = new_count
        if progress is not None:
            progress(current)
        return current

    if updater is None:
        written = update_state(mode, ctx.scope, _apply)
    else:
        written = updater(ctx.scope, _apply)

    if written is None:
        logger.warning("Could not persist %s reinforcement; allowing stop", mode)
        return ALLOW
    if not written.active:
        logger.info("%s exhausted after %d reinforcements", mode, written.reinforcement_count)
        return Decision(block=False, mode=mode)
    logger.info("Blocking stop for %s (%d/%d)", mode,
                written.reinforcement_count, written.cap(ctx.config, mode))
    return Decision(block=True, reason=message(written), mode=mode)


def _deactivate_ralph(ctx: _WalkContext, reason: str) -> None:
    deactivate_mode("ralph", ctx.scope, reason)
    _release_synthesized_ultrawork(ctx, reason)


def _release_synthesized_ultrawork(ctx: _WalkContext, reason: str) -> None:
    ultrawork = read_state("ultrawork", ctx.scope)
    if ultrawork is not None and ultrawork.synthesized_by == "ralph":
        deactivate_mode("ultrawork", ctx.scope, reason)


# =============================================================================
# Per-mode handlers
# =============================================================================
# Each returns None when the mode does not apply (walk continues) or the
# Decision that ends the walk.

def _ralph(ctx: _WalkContext) -> Optional[Decision]:
    state = read_state("ralph", ctx.scope)
    if not is_eligible(state, ctx):
        return None

    if state.linked_team:
        team = read_state("team", ctx.scope)
        if team is not None and team.phase in TERMINAL_TEAM_PHASES:
            logger.info("Linked team finished (%s); releasing ralph", team.phase)
            _deactivate_ralph(ctx, f"team_{team.phase}")
            return None

    iteration = state.iteration or 1
    max_iterations = state.max_iterations or ctx.config.ralph_max_iterations
    if iteration >= max_iterations:
        _deactivate_ralph(ctx, "max_iterations")
        return None

    def progress(s: ModeState) -> None:
        s.iteration = (s.iteration or 1) + 1
        if not s.max_iterations:
            s.max_iterations = max_iterations

    def message(s: ModeState) -> str:
        reason = (
            f"[RALPH LOOP - ITERATION {s.iteration}/{s.max_iterations}] "
            f"Work is NOT done. Continue working.\n"
            f"When FULLY complete (after Architect verification), run {CANCEL_COMMAND} "
            f"to cleanly exit ralph mode and clean up all state files. "
            f"If cancel fails, retry with {CANCEL_COMMAND} --force."
        )
        if s.original_prompt:
            reason += f"\nTask: {s.original_prompt}"
        return reason

    decision = _reinforce("ralph", ctx, message, progress)
    if not decision.block and decision.mode == "ralph":
        # Ralph ran out of reinforcements; its ultrawork goes with it
        _release_synthesized_ultrawork(ctx, "max_reinforcements")
    return decision


def _autopilot(ctx: _WalkContext) -> Optional[Decision]:
    state = read_state("autopilot", ctx.scope)
    if not is_eligible(state, ctx):
        return None
    phase = state.phase or "unknown"
    if phase == "complete":
        return None
    return _reinforce("autopilot", ctx, lambda s: (
        f"[AUTOPILOT - Phase: {phase}] Autopilot not complete. Continue working. "
        f"When all phases are complete, {CANCEL_HINT}"
    ))


def _team(ctx: _WalkContext) -> Optional[Decision]:
    state = read_state("team", ctx.scope)
    if not is_eligible(state, ctx):
        return None
    phase = state.phase or "unknown"
    if phase in TERMINAL_TEAM_PHASES:
        return None
    return _reinforce("team", ctx, lambda s: (
        f"[TEAM - Phase: {phase}] Team pipeline not complete. Continue working. "
        f"When all phases are complete, {CANCEL_HINT}"
    ))


def _incomplete_workers(state: ModeState) -> int:
    return sum(
        1 for w in state.workers or []
        if not (isinstance(w, dict) and w.get("status") in ("complete", "failed"))
    )


def _ultrapilot(ctx: _WalkContext) -> Optional[Decision]:
    state = read_state("ultrapilot", ctx.scope)
    if not is_eligible(state, ctx):
        return None
    incomplete = _incomplete_workers(state)
    if incomplete == 0:
        return None
    return _reinforce("ultrapilot", ctx, lambda s: (
        f"[ULTRAPILOT] {incomplete} workers still running. Continue working. "
        f"When all workers complete, {CANCEL_HINT}"
    ))


def _swarm(ctx: _WalkContext) -> Optional[Decision]:
    # Swarm progress lives in the project-level summary, beside the marker
    if not swarm_marker_exists(ctx.scope.legacy):
        return None
    summary = read_swarm_summary(ctx.scope.legacy)
    if not is_eligible(summary, ctx):
        return None
    pending = (summary.tasks_pending or 0) + (summary.tasks_claimed or 0)
    if pending <= 0:
        return None
    return _reinforce("swarm", ctx, lambda s: (
        f"[SWARM ACTIVE] {pending} tasks remain. Continue working. "
        f"When all tasks are done, {CANCEL_HINT}"
    ), updater=lambda scope, fn: update_swarm_summary(scope.legacy, fn))


def _always_continue(mode: str, label: str, exit_name: str) -> Callable[[_WalkContext], Optional[Decision]]:
    """Handler for modes that keep going for as long as they are active."""
    def handler(ctx: _WalkContext) -> Optional[Decision]:
        state = read_state(mode, ctx.scope)
        if not is_eligible(state, ctx):
            return None

        def message(s: ModeState) -> str:
            cap = s.cap(ctx.config, mode)
            reason = f"[{label} #{s.reinforcement_count}/{cap}] Mode active."
            counts = ctx.counts
            if counts.total > 0:
                reason += f" {counts.total} incomplete {counts.label} remain. Continue working."
            elif s.reinforcement_count >= 3:
                reason += (
                    f" If all work is complete, run {CANCEL_COMMAND} to cleanly exit "
                    f"{exit_name} and clean up state files. If cancel fails, retry with "
                    f"{CANCEL_COMMAND} --force. Otherwise, continue working."
                )
            else:
                reason += " Continue working - create Tasks to track your progress."
            if s.original_prompt:
                reason += f"\nTask: {s.original_prompt}"
            return reason

        return _reinforce(mode, ctx, message)
    return handler


def _pipeline(ctx: _WalkContext) -> Optional[Decision]:
    state = read_state("pipeline", ctx.scope)
    if not is_eligible(state, ctx):
        return None
    current = state.current_stage or 0
    total = len(state.stages or [])
    if current >= total:
        return None
    return _reinforce("pipeline", ctx, lambda s: (
        f"[PIPELINE - Stage {current + 1}/{total}] Pipeline not complete. Continue working. "
        f"When all stages complete, {CANCEL_HINT}"
    ))


def _ultraqa(ctx: _WalkContext) -> Optional[Decision]:
    state = read_state("ultraqa", ctx.scope)
    if not is_eligible(state, ctx):
        return None
    cycle = state.cycle or 1
    max_cycles = state.max_cycles or ctx.config.ultraqa_max_cycles
    if cycle >= max_cycles or state.all_passing:
        return None

    def progress(s: ModeState) -> None:
        s.cycle = (s.cycle or 1) + 1
        if not s.max_cycles:
            s.max_cycles = max_cycles

    return _reinforce("ultraqa", ctx, lambda s: (
        f"[ULTRAQA - Cycle {s.cycle}/{s.max_cycles}] Tests not all passing. Continue fixing. "
        f"When all tests pass, {CANCEL_HINT}"
    ), progress)


HANDLERS: Dict[str, Callable[[_WalkContext], Optional[Decision]]] = {
    "ralph": _ralph,
    "autopilot": _autopilot,
    "team": _team,
    "ultrapilot": _ultrapilot,
    "swarm": _swarm,
    "ultrawork": _always_continue("ultrawork", "ULTRAWORK", "ultrawork mode"),
    "ecomode": _always_continue("ecomode", "ECOMODE", "ecomode"),
    "pipeline": _pipeline,
    "ultraqa": _ultraqa,
}


# =============================================================================
# Entry point
# =============================================================================

def decide(
    event: HookEvent,
    config: Optional[ModesConfig] = None,
    count_work: Callable[[Optional[str], str], WorkCounts] = count_incomplete_work,
) -> Decision:
    """Decide whether the session may stop.

    Args:
        event: Normalized stop event
        config: Mode configuration (loaded from disk when omitted)
        count_work: Counter of unfinished tasks/todos for (session_id, project)

    Returns:
        Decision; block=False whenever no active mode applies
    """
    bypass = event_bypasses_modes(event)
    if bypass is not None:
        logger.info("Stop allowed unconditionally (%s)", bypass)
        return ALLOW

    ctx = _WalkContext(
        event=event,
        scope=Scope.create(event.project_dir, event.session_id or None),
        config=config or load_config(),
        count_work=count_work,
    )
    for mode in STOP_WALK_ORDER:
        decision = HANDLERS[mode](ctx)
        if decision is not None:
            return decision
    return ALLOW

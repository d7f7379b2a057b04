"""Tests for omc_modes.continuation"""

import json

import pytest

from omc_modes.compat import normalize_project_path
from omc_modes.continuation import Decision, decide
from omc_modes.counters import WorkCounts
from omc_modes.events import HookEvent
from omc_modes.staleness import utc_now_iso
from omc_modes.state import Scope, swarm_marker_path, swarm_summary_path


def no_work(session_id, project_dir):
    return WorkCounts()


def stop_event(project_dir, session=None, **extra):
    payload = {"directory": str(project_dir)}
    if session:
        payload["sessionId"] = session
    payload.update(extra)
    return HookEvent.from_payload(payload)


def run(project_dir, config, session=None, **extra) -> Decision:
    return decide(stop_event(project_dir, session, **extra), config, count_work=no_work)


# ==============================================================================
# Bypass conditions
# ==============================================================================

@pytest.mark.parametrize("extra", [
    {"stop_reason": "context_window_exceeded"},
    {"stopReason": "MAX_TOKENS"},
    {"end_turn_reason": "conversation_too_long"},
    {"user_requested": True},
    {"stop_reason": "abort"},
    {"stop_reason": "user_cancel_button"},
])
def test_bypass_with_three_active_modes(project_dir, config, write_mode_state, read_mode_state, extra):
    """Verify context-limit and abort stops are allowed despite active modes."""
    write_mode_state("ralph", iteration=2, max_iterations=100)
    write_mode_state("ultrawork")
    write_mode_state("ecomode")
    before = {m: read_mode_state(m) for m in ("ralph", "ultrawork", "ecomode")}

    decision = run(project_dir, config, **extra)

    assert decision.block is False
    assert {m: read_mode_state(m) for m in before} == before


def test_context_limit_does_not_read_state(project_dir, config, monkeypatch):
    import omc_modes.continuation as continuation

    def fail(*args, **kwargs):
        raise AssertionError("state must not be read")

    monkeypatch.setattr(continuation, "read_state", fail)
    decision = run(project_dir, config, stop_reason="context_window_exceeded")
    assert decision.to_hook_output() == {"continue": True}


def test_generic_reason_containing_cancel_is_not_abort(project_dir, config, write_mode_state):
    write_mode_state("ultrawork")
    assert run(project_dir, config, stop_reason="end_turn_cancelled_tool").block is True


# ==============================================================================
# Reinforcement cap
# ==============================================================================

def test_ultrawork_cap_boundary(project_dir, config, write_mode_state, read_mode_state):
    """Verify 49 -> 50 still blocks and the next stop is allowed."""
    write_mode_state("ultrawork", reinforcement_count=49, max_reinforcements=50)

    first = run(project_dir, config)
    assert first.block is True
    assert first.mode == "ultrawork"
    assert read_mode_state("ultrawork")["reinforcement_count"] == 50

    second = run(project_dir, config)
    assert second.block is False
    data = read_mode_state("ultrawork")
    assert data["reinforcement_count"] == 50
    assert data["active"] is False
    assert data["deactivated_reason"] == "max_reinforcements"

    third = run(project_dir, config)
    assert third.block is False
    assert read_mode_state("ultrawork")["reinforcement_count"] == 50


def test_exhausted_mode_allows_stop_without_walking_on(project_dir, config, write_mode_state):
    write_mode_state("ultrawork", reinforcement_count=50, max_reinforcements=50)
    write_mode_state("ecomode")
    assert run(project_dir, config).block is False


def test_block_output_format(project_dir, config, write_mode_state):
    write_mode_state("ultrawork", original_prompt="ship it")
    output = run(project_dir, config).to_hook_output()
    assert output["decision"] == "block"
    assert output["reason"].startswith("[ULTRAWORK #1/50] Mode active.")
    assert "Task: ship it" in output["reason"]


# ==============================================================================
# Scope isolation
# ==============================================================================

def test_session_isolation(project_dir, config, write_mode_state):
    write_mode_state("ultrawork", session="A")
    assert run(project_dir, config, session="B").block is False
    assert run(project_dir, config, session="A").block is True


def test_legacy_state_owned_by_session_needs_match(project_dir, config, write_mode_state):
    write_mode_state("ultrawork", session_id="A")
    assert run(project_dir, config).block is False


def test_project_mismatch(project_dir, config, write_mode_state, tmp_path):
    other = tmp_path / "other"
    other.mkdir()
    write_mode_state("ultrawork", project_path=normalize_project_path(other))
    assert run(project_dir, config).block is False


def test_project_match(project_dir, config, write_mode_state):
    write_mode_state("ultrawork", project_path=str(project_dir) + "/")
    assert run(project_dir, config).block is True


def test_stale_state_is_ignored(project_dir, config, write_mode_state, read_mode_state):
    write_mode_state("ultrawork", started_at="2020-01-01T00:00:00Z",
                     last_checked_at="2020-01-01T00:00:00Z")
    assert run(project_dir, config).block is False
    # Skipped, not deleted
    assert read_mode_state("ultrawork")["reinforcement_count"] == 0


def test_no_state_allows_stop(project_dir, config):
    assert run(project_dir, config) == Decision(block=False)


# ==============================================================================
# Mode handlers
# ==============================================================================

def test_ralph_increments_iteration(project_dir, config, write_mode_state, read_mode_state):
    write_mode_state("ralph", iteration=4, max_iterations=10, original_prompt="finish")
    decision = run(project_dir, config)
    assert decision.block is True
    assert decision.reason.startswith("[RALPH LOOP - ITERATION 5/10]")
    assert "Task: finish" in decision.reason
    data = read_mode_state("ralph")
    assert data["iteration"] == 5
    assert data["reinforcement_count"] == 1


def test_ralph_takes_priority_over_ultrawork(project_dir, config, write_mode_state, read_mode_state):
    write_mode_state("ralph", iteration=1, max_iterations=10)
    write_mode_state("ultrawork")
    assert run(project_dir, config).mode == "ralph"
    assert read_mode_state("ultrawork")["reinforcement_count"] == 0


def test_ralph_at_max_iterations_releases(project_dir, config, write_mode_state, read_mode_state):
    write_mode_state("ralph", iteration=10, max_iterations=10)
    write_mode_state("ultrawork", synthesized_by="ralph")
    assert run(project_dir, config).block is False
    assert read_mode_state("ralph")["active"] is False
    assert read_mode_state("ultrawork")["active"] is False


def test_ralph_reinforcement_cap_releases_synthesized_ultrawork(project_dir, config, write_mode_state, read_mode_state):
    """Verify ralph exhausting its cap before max_iterations also ends its ultrawork."""
    write_mode_state("ralph", iteration=5, max_iterations=500,
                     reinforcement_count=100, max_reinforcements=100)
    write_mode_state("ultrawork", synthesized_by="ralph")

    first = run(project_dir, config)
    assert (first.block, first.mode) == (False, "ralph")
    assert read_mode_state("ralph")["deactivated_reason"] == "max_reinforcements"
    ultrawork = read_mode_state("ultrawork")
    assert ultrawork["active"] is False
    assert ultrawork["deactivated_reason"] == "max_reinforcements"

    assert run(project_dir, config).block is False


def test_ralph_reinforcement_cap_keeps_user_requested_ultrawork(project_dir, config, write_mode_state, read_mode_state):
    write_mode_state("ralph", max_iterations=500, reinforcement_count=100, max_reinforcements=100)
    write_mode_state("ultrawork")
    assert run(project_dir, config).mode == "ralph"
    assert read_mode_state("ultrawork")["active"] is True


def test_ralph_released_when_linked_team_completes(project_dir, config, write_mode_state, read_mode_state):
    write_mode_state("ralph", iteration=2, max_iterations=10, linked_team=True)
    write_mode_state("team", phase="complete", linked_ralph=True)
    write_mode_state("ultrawork", synthesized_by="ralph")
    assert run(project_dir, config).block is False
    assert read_mode_state("ralph")["deactivated_reason"] == "team_complete"


def test_ralph_release_keeps_user_requested_ultrawork(project_dir, config, write_mode_state, read_mode_state):
    write_mode_state("ralph", iteration=10, max_iterations=10)
    write_mode_state("ultrawork")
    decision = run(project_dir, config)
    assert decision.mode == "ultrawork"
    assert decision.block is True


def test_autopilot_complete_phase_skipped(project_dir, config, write_mode_state):
    write_mode_state("autopilot", phase="complete")
    assert run(project_dir, config).block is False


def test_autopilot_blocks_with_phase(project_dir, config, write_mode_state):
    write_mode_state("autopilot", phase="execution")
    decision = run(project_dir, config)
    assert decision.reason.startswith("[AUTOPILOT - Phase: execution]")


def test_team_blocks_until_terminal(project_dir, config, write_mode_state):
    write_mode_state("team", phase="team-exec")
    assert run(project_dir, config).mode == "team"
    write_mode_state("team", phase="failed")
    assert run(project_dir, config).block is False


def test_ultrapilot_counts_workers(project_dir, config, write_mode_state):
    write_mode_state("ultrapilot", workers=[
        {"status": "complete"}, {"status": "running"}, {"status": "pending"},
    ])
    decision = run(project_dir, config)
    assert decision.reason.startswith("[ULTRAPILOT] 2 workers still running.")


def write_swarm(project_dir, marker=True, **summary):
    scope = Scope.create(project_dir)
    scope.state_dir.mkdir(parents=True, exist_ok=True)
    if marker:
        swarm_marker_path(scope).write_text(json.dumps({"started_at": utc_now_iso()}),
                                            encoding="utf-8")
    record = {"active": True, "started_at": utc_now_iso()}
    record.update(summary)
    swarm_summary_path(scope).write_text(json.dumps(record), encoding="utf-8")
    return scope


def test_swarm_uses_marker_and_summary(project_dir, config):
    scope = write_swarm(project_dir, tasks_pending=2, tasks_claimed=1)

    decision = run(project_dir, config)
    assert decision.reason.startswith("[SWARM ACTIVE] 3 tasks remain.")
    saved = json.loads(swarm_summary_path(scope).read_text())
    assert saved["reinforcement_count"] == 1


def test_swarm_without_marker_ignored(project_dir, config):
    write_swarm(project_dir, marker=False, tasks_pending=2)
    assert run(project_dir, config).block is False


def test_pipeline_stage_progress(project_dir, config, write_mode_state):
    write_mode_state("pipeline", current_stage=1, stages=["plan", "build", "review"])
    assert run(project_dir, config).reason.startswith("[PIPELINE - Stage 2/3]")
    write_mode_state("pipeline", current_stage=3, stages=["plan", "build", "review"])
    assert run(project_dir, config).block is False


def test_ultraqa_cycles(project_dir, config, write_mode_state, read_mode_state):
    write_mode_state("ultraqa", cycle=2, max_cycles=5)
    assert run(project_dir, config).reason.startswith("[ULTRAQA - Cycle 3/5]")
    assert read_mode_state("ultraqa")["cycle"] == 3
    write_mode_state("ultraqa", cycle=2, max_cycles=5, all_passing=True)
    assert run(project_dir, config).block is False


def test_ultrawork_mentions_incomplete_work(project_dir, config, write_mode_state):
    write_mode_state("ultrawork")
    decision = decide(stop_event(project_dir), config,
                      count_work=lambda sid, project: WorkCounts(tasks=2, todos=1))
    assert "3 incomplete Tasks remain" in decision.reason


def test_cancel_hint_after_third_reinforcement(project_dir, config, write_mode_state):
    write_mode_state("ecomode", reinforcement_count=1)
    assert "/oh-my-claudecode:cancel" not in run(project_dir, config).reason
    write_mode_state("ecomode", reinforcement_count=2)
    assert "/oh-my-claudecode:cancel" in run(project_dir, config).reason

"""Execution-mode orchestration for Claude Code hooks.

Keyword-activated modes (ralph, ultrawork, autopilot, team, ...) persist in
per-project JSON state and are enforced by the Stop hook until their
completion condition is met.
"""

__version__ = "0.1.0"

"""Read-only counts of unfinished work for the current session and project.

Sources:
    <CLAUDE_HOME>/tasks/<session_id>/*.json   status pending | in_progress
    <CLAUDE_HOME>/todos/<session_id>.json     status not completed/cancelled
    <project>/.omc/todos.json
    <project>/.claude/todos.json

Only session- and project-scoped files are read, never a global scan.
Unreadable files count as zero.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Optional

from omc_modes.compat import get_claude_home
from omc_modes.state import validate_session_id
from omc_modes.transaction import TransactionError, read_json

logger = logging.getLogger(__name__)

OPEN_TASK_STATUSES = ("pending", "in_progress")
CLOSED_TODO_STATUSES = ("completed", "cancelled")


@dataclass
class WorkCounts:
    tasks: int = 0
    todos: int = 0

    @property
    def total(self) -> int:
        return self.tasks + self.todos

    @property
    def label(self) -> str:
        return "Tasks" if self.tasks > 0 else "todos"


def _load(path: Path) -> Any:
    try:
        return read_json(path)
    except TransactionError as e:
        logger.debug("Skipping %s: %s", path, e)
        return None


def _todo_items(data: Any) -> List[Any]:
    if isinstance(data, list):
        return data
    if isinstance(data, dict) and isinstance(data.get("todos"), list):
        return data["todos"]
    return []


def count_incomplete_tasks(session_id: Optional[str], claude_home: Optional[Path] = None) -> int:
    sid = validate_session_id(session_id)
    if sid is None:
        return 0
    task_dir = (claude_home or get_claude_home()) / "tasks" / sid
    try:
        files = sorted(task_dir.glob("*.json"))
    except OSError:
        return 0
    count = 0
    for path in files:
        task = _load(path)
        if isinstance(task, dict) and task.get("status") in OPEN_TASK_STATUSES:
            count += 1
    return count


def count_incomplete_todos(
    session_id: Optional[str],
    project_dir: str,
    claude_home: Optional[Path] = None,
) -> int:
    paths = []
    sid = validate_session_id(session_id)
    if sid is not None:
        paths.append((claude_home or get_claude_home()) / "todos" / f"{sid}.json")
    if project_dir:
        paths.append(Path(project_dir) / ".omc" / "todos.json")
        paths.append(Path(project_dir) / ".claude" / "todos.json")

    count = 0
    for path in paths:
        for todo in _todo_items(_load(path)):
            if isinstance(todo, dict) and todo.get("status") not in CLOSED_TODO_STATUSES:
                count += 1
    return count


def count_incomplete_work(session_id: Optional[str], project_dir: str) -> WorkCounts:
    return WorkCounts(
        tasks=count_incomplete_tasks(session_id),
        todos=count_incomplete_todos(session_id, project_dir),
    )

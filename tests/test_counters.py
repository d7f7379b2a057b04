"""Tests for omc_modes.counters"""

import json

from omc_modes.counters import (
    count_incomplete_tasks,
    count_incomplete_todos,
    count_incomplete_work,
)


def write_json(path, data):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data), encoding="utf-8")


def test_count_tasks_for_session(claude_home):
    task_dir = claude_home / "tasks" / "sess1"
    write_json(task_dir / "1.json", {"status": "pending"})
    write_json(task_dir / "2.json", {"status": "in_progress"})
    write_json(task_dir / "3.json", {"status": "completed"})
    (task_dir / "4.json").write_text("{corrupt")
    # Another session's tasks never count
    write_json(claude_home / "tasks" / "sess2" / "1.json", {"status": "pending"})

    assert count_incomplete_tasks("sess1") == 2


def test_count_tasks_requires_valid_session(claude_home):
    write_json(claude_home / "tasks" / "x" / "1.json", {"status": "pending"})
    assert count_incomplete_tasks(None) == 0
    assert count_incomplete_tasks("../x") == 0


def test_count_todos_session_and_project(claude_home, project_dir):
    write_json(claude_home / "todos" / "sess1.json", [
        {"status": "pending"}, {"status": "completed"},
    ])
    write_json(project_dir / ".omc" / "todos.json", {"todos": [
        {"status": "in_progress"}, {"status": "cancelled"},
    ]})
    write_json(project_dir / ".claude" / "todos.json", [{"status": "pending"}])

    assert count_incomplete_todos("sess1", str(project_dir)) == 3
    assert count_incomplete_todos(None, str(project_dir)) == 2


def test_count_incomplete_work_label(claude_home, project_dir):
    write_json(project_dir / ".omc" / "todos.json", [{"status": "pending"}])
    counts = count_incomplete_work("sess1", str(project_dir))
    assert counts.total == 1
    assert counts.label == "todos"

    write_json(claude_home / "tasks" / "sess1" / "a.json", {"status": "pending"})
    counts = count_incomplete_work("sess1", str(project_dir))
    assert counts.total == 2
    assert counts.label == "Tasks"

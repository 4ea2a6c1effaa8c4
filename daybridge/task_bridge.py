from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, tzinfo
from typing import Any, Iterable

from daybridge.document import (
    append_to_section,
    build_unassigned_block,
    collect_section_todos,
    set_todo_state,
)
from daybridge.matcher import local_datetime
from daybridge.models import DocumentConfig, TaskRecord, TodoItem, day_window


logger = logging.getLogger(__name__)


@dataclass
class TaskSyncCounts:
    created: int = 0
    updated: int = 0
    added: int = 0

    def to_dict(self) -> dict[str, int]:
        return {"created": self.created, "updated": self.updated, "added": self.added}


def _tasks_by_title(tasks: Iterable[TaskRecord]) -> dict[str, TaskRecord]:
    indexed: dict[str, TaskRecord] = {}
    for task in tasks:
        indexed.setdefault(task.title, task)
    return indexed


def _due_sort_key(task: TaskRecord) -> tuple[int, datetime | None, str]:
    return (task.due is None, task.due, task.title)


def sync_local_to_remote(
    service: Any,
    todos: Iterable[TodoItem],
    day: date,
    tz: tzinfo,
) -> TaskSyncCounts:
    """Create or update a remote task for every to-do in the plan.

    Tasks are looked up by exact title among those due on ``day``. The due
    time is the parent entry's end; its start time rides along in the notes.
    """
    counts = TaskSyncCounts()
    window_start, window_end = day_window(day, tz)
    existing = _tasks_by_title(service.fetch_tasks(window_start, window_end))

    for todo in todos:
        due = local_datetime(day, todo.parent_end, tz)
        task = existing.get(todo.title)
        if task is None:
            task_id = service.create_task(todo.title, due, todo.parent_start)
            # Creation never carries completion; close it in a second call.
            if todo.completed:
                service.update_task(task_id, todo.title, True, due, todo.parent_start)
            existing[todo.title] = TaskRecord(
                uid=task_id,
                title=todo.title,
                completed=todo.completed,
                due=due,
                start_marker=todo.parent_start,
            )
            logger.info("Created task %r due %s", todo.title, due.isoformat())
            counts.created += 1
            continue
        if task.completed == todo.completed:
            continue
        service.update_task(
            task.uid,
            todo.title,
            todo.completed,
            due,
            todo.parent_start,
            task.notes or None,
        )
        task.completed = todo.completed
        logger.info("Updated task %r completed=%s", todo.title, todo.completed)
        counts.updated += 1
    return counts


def sync_remote_to_local(
    text: str,
    service: Any,
    day: date,
    tz: tzinfo,
    config: DocumentConfig,
) -> tuple[str, TaskSyncCounts]:
    """Fold remote task state for ``day`` back into the plan section.

    Checkbox lines whose title matches a remote task take its completion
    state. Remote tasks with no checkbox anywhere in the plan section are
    appended as an unassigned block.
    """
    counts = TaskSyncCounts()
    window_start, window_end = day_window(day, tz)
    remote = sorted(service.fetch_tasks(window_start, window_end), key=_due_sort_key)
    local = collect_section_todos(text, config.plan_section)

    missing: list[TaskRecord] = []
    seen: set[str] = set()
    for task in remote:
        if task.title in seen:
            continue
        seen.add(task.title)
        if task.title not in local:
            missing.append(task)
            continue
        if local[task.title] != task.completed:
            text = set_todo_state(text, config.plan_section, task.title, task.completed)
            counts.updated += 1

    if missing:
        block = build_unassigned_block(
            config.unassigned_title,
            [(task.title, task.completed) for task in missing],
        )
        text = append_to_section(text, config.plan_section, block)
        counts.added += len(missing)
        logger.info("Added %d unassigned task(s) to %s", len(missing), config.plan_section)
    return text, counts

"""
Task list operations.

Each function takes the current task sequence and returns the complete
new sequence, ready to pass to ``engine.mutate({"tasks": ...})``.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

from ..exceptions import ValidationError
from ..snapshot import Task


def new_task_id(existing: Sequence[Task], now: datetime | None = None) -> int:
    """Creation-time millisecond ordinal, bumped until unique."""
    now = now or datetime.now()
    candidate = int(now.timestamp() * 1000)
    taken = {task.id for task in existing}
    while candidate in taken:
        candidate += 1
    return candidate


def add_task(
    tasks: Sequence[Task],
    text: str,
    priority: int | None = None,
    now: datetime | None = None,
) -> tuple[Task, ...]:
    """Add a task.

    Without a priority the task is appended. With one (1 is the most
    urgent) it goes before the first task that has a lower rank or no
    rank at all, after any tasks of equal rank.

    Raises:
        ValidationError: If text is blank or priority is not positive
    """
    text = text.strip()
    if not text:
        raise ValidationError("text", "task text must not be blank")
    if priority is not None and priority < 1:
        raise ValidationError("priority", "must be 1 or greater", str(priority))

    task = Task(id=new_task_id(tasks, now), text=text, completed=False, priority=priority)
    if priority is None:
        return (*tasks, task)

    index = len(tasks)
    for i, existing in enumerate(tasks):
        if existing.priority is None or existing.priority > priority:
            index = i
            break
    return (*tasks[:index], task, *tasks[index:])


def toggle_task(tasks: Sequence[Task], task_id: int) -> tuple[Task, ...]:
    """Flip the completion flag of one task. Unknown ids change nothing."""
    return tuple(
        Task(t.id, t.text, not t.completed, t.priority) if t.id == task_id else t for t in tasks
    )


def remove_task(tasks: Sequence[Task], task_id: int) -> tuple[Task, ...]:
    return tuple(t for t in tasks if t.id != task_id)


def move_task(tasks: Sequence[Task], task_id: int, new_index: int) -> tuple[Task, ...]:
    """Move a task to ``new_index`` (clamped to the list bounds).

    Raises:
        ValidationError: If no task has ``task_id``
    """
    remaining = [t for t in tasks if t.id != task_id]
    if len(remaining) == len(tasks):
        raise ValidationError("task_id", "unknown task", str(task_id))
    moved = next(t for t in tasks if t.id == task_id)
    new_index = max(0, min(new_index, len(remaining)))
    remaining.insert(new_index, moved)
    return tuple(remaining)


def pending_tasks(tasks: Sequence[Task]) -> list[Task]:
    return [t for t in tasks if not t.completed]

"""
Feature operations over snapshot slices.

Pure functions used by the task list, study timer, schedule and
dashboard views to compute the new value of a slice before calling
``ReconciliationEngine.mutate``.
"""

from .schedule import add_event, events_for_day, remove_event, time_until_event
from .streak import record_visit
from .study_time import (
    Stopwatch,
    format_duration,
    format_stopwatch,
    last_n_days,
    record_study_time,
    study_seconds_for_day,
)
from .tasks import add_task, move_task, new_task_id, pending_tasks, remove_task, toggle_task

__all__ = [
    # Tasks
    "add_task",
    "toggle_task",
    "remove_task",
    "move_task",
    "new_task_id",
    "pending_tasks",
    # Schedule
    "add_event",
    "remove_event",
    "events_for_day",
    "time_until_event",
    # Study time
    "record_study_time",
    "study_seconds_for_day",
    "last_n_days",
    "format_duration",
    "format_stopwatch",
    "Stopwatch",
    # Streak
    "record_visit",
]

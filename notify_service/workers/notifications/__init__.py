"""Notification sweep tasks."""

from __future__ import annotations

from .tasks import (
    JOB_TASKS,
    daily_summaries_task,
    process_queue_task,
    purge_expired_task,
    task_reminders_task,
)

__all__ = [
    "JOB_TASKS",
    "daily_summaries_task",
    "process_queue_task",
    "purge_expired_task",
    "task_reminders_task",
]

"""Plain-text message bodies for each notification kind.

Bodies are rendered once, when an entry is produced, and stored as the
entry payload. The processor never re-renders.
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING

from notify_service.features.notifications.schemas import TaskStatus

if TYPE_CHECKING:
    from datetime import datetime

    from notify_service.features.notifications.schemas import TaskSnapshot, TaskSummary

STATUS_LABELS: dict[str, str] = {
    TaskStatus.PENDING: "⏳ Pending",
    TaskStatus.IN_PROGRESS: "⚡ In Progress",
    TaskStatus.COMPLETED: "✅ Completed",
}

TEST_MESSAGE = (
    "👋 *Hello from SnapTask!*\n\n"
    "This is a test notification to confirm your WhatsApp integration is working correctly.\n\n"
    "You're all set to receive task reminders and updates! 🎉"
)

_SECONDS_PER_DAY = 86400


def format_status(status: str) -> str:
    """Human label for a task status; unknown values pass through."""
    return STATUS_LABELS.get(status, status)


def format_due(deadline: datetime, now: datetime) -> str:
    """Relative due phrase using the ceiling of the day difference.

    >>> from datetime import datetime, timedelta, UTC
    >>> now = datetime(2025, 1, 15, 12, tzinfo=UTC)
    >>> format_due(now + timedelta(days=3), now)
    'in 3 days'
    """
    days = math.ceil((deadline - now).total_seconds() / _SECONDS_PER_DAY)
    if days == 0:
        return "Today"
    if days == 1:
        return "Tomorrow"
    if days == -1:
        return "Yesterday"
    if days < 0:
        return f"{abs(days)} days ago"
    return f"in {days} days"


class MessageRenderer:
    """Renders payloads for reminders, status changes and digests."""

    def __init__(self, frontend_url: str, description_max_length: int = 100) -> None:
        self.frontend_url = frontend_url.rstrip("/")
        self.description_max_length = description_max_length

    def task_link(self, task_id: str) -> str:
        return f"{self.frontend_url}/tasks/{task_id}"

    def _truncate(self, text: str) -> str:
        if len(text) > self.description_max_length:
            return text[: self.description_max_length] + "..."
        return text

    def reminder(self, task: TaskSnapshot, now: datetime) -> str:
        message = f"⏰ Task Reminder\n\n📋 {task.title}\n"
        if task.description:
            message += f"{self._truncate(task.description)}\n\n"
        if task.category_name:
            message += f"📁 Category: {task.category_name}\n"
        if task.deadline is not None:
            message += f"📅 Due: {format_due(task.deadline, now)}\n"
        message += f"\n🔗 View task: {self.task_link(task.id)}"
        return message

    def status_change(self, task: TaskSnapshot, old_status: str, new_status: str) -> str:
        if new_status == TaskStatus.COMPLETED:
            heading = "🎉 Task Completed!"
        elif new_status == TaskStatus.IN_PROGRESS:
            heading = "🚀 Task Started"
        else:
            heading = "📢 Task Status Updated"

        message = f"{heading}\n\n📋 {task.title}\n"
        if task.category_name:
            message += f"📁 Category: {task.category_name}\n"
        message += f"Previous: {format_status(old_status)}\n"
        message += f"Current: {format_status(new_status)}\n"
        return message

    def daily_digest(self, display_name: str, summary: TaskSummary) -> str:
        message = f"☀️ Good Morning, {display_name}!\n\n"
        message += "📊 Your Task Summary\n\n"
        message += f"Total Tasks: {summary.total}\n"
        message += f"⏳ Pending: {summary.pending}\n"
        message += f"⚡ In Progress: {summary.in_progress}\n"
        message += f"✅ Completed: {summary.completed}\n\n"
        if summary.due_today > 0:
            message += f"📅 Due Today: {summary.due_today}\n"
        if summary.overdue > 0:
            message += f"⚠️ Overdue: {summary.overdue}\n"
        return message

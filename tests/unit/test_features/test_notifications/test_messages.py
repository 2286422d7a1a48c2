"""Unit tests for message rendering."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from notify_service.features.notifications.messages import (
    TEST_MESSAGE,
    MessageRenderer,
    format_due,
    format_status,
)
from notify_service.features.notifications.schemas import TaskSnapshot, TaskStatus, TaskSummary

NOW = datetime(2025, 1, 15, 12, 0, tzinfo=UTC)


@pytest.fixture
def renderer() -> MessageRenderer:
    return MessageRenderer("https://snaptask.app/", description_max_length=20)


class TestFormatDue:
    @pytest.mark.parametrize(
        ("delta", "expected"),
        [
            (timedelta(0), "Today"),
            (timedelta(hours=3), "Tomorrow"),
            (timedelta(days=1), "Tomorrow"),
            (timedelta(days=3), "in 3 days"),
            (timedelta(days=2, hours=1), "in 3 days"),
            (timedelta(days=-1), "Yesterday"),
            (timedelta(hours=-3), "Today"),
            (timedelta(days=-3), "3 days ago"),
        ],
    )
    def test_relative_phrases(self, delta: timedelta, expected: str) -> None:
        assert format_due(NOW + delta, NOW) == expected


class TestReminder:
    def test_full_reminder(self, renderer: MessageRenderer) -> None:
        task = TaskSnapshot(
            id="task-42",
            user_id="user-1",
            title="Write report",
            description="Quarterly numbers",
            category_name="Work",
            deadline=NOW + timedelta(days=1),
        )

        message = renderer.reminder(task, NOW)

        assert message == (
            "⏰ Task Reminder\n\n"
            "📋 Write report\n"
            "Quarterly numbers\n\n"
            "📁 Category: Work\n"
            "📅 Due: Tomorrow\n"
            "\n🔗 View task: https://snaptask.app/tasks/task-42"
        )

    def test_long_description_is_truncated(self, renderer: MessageRenderer) -> None:
        task = TaskSnapshot(
            id="task-1",
            user_id="user-1",
            title="Plan",
            description="x" * 50,
        )

        message = renderer.reminder(task, NOW)

        assert ("x" * 20 + "...\n") in message
        assert "x" * 21 not in message

    def test_optional_fields_are_omitted(self, renderer: MessageRenderer) -> None:
        task = TaskSnapshot(id="task-1", user_id="user-1", title="Plan")

        message = renderer.reminder(task, NOW)

        assert "Category" not in message
        assert "Due" not in message
        assert message.endswith("🔗 View task: https://snaptask.app/tasks/task-1")


class TestStatusChange:
    @pytest.fixture
    def task(self) -> TaskSnapshot:
        return TaskSnapshot(id="task-1", user_id="user-1", title="Plan", category_name="Home")

    def test_completed(self, renderer: MessageRenderer, task: TaskSnapshot) -> None:
        message = renderer.status_change(task, TaskStatus.IN_PROGRESS, TaskStatus.COMPLETED)

        assert message.startswith("🎉 Task Completed!\n\n📋 Plan\n")
        assert "📁 Category: Home\n" in message
        assert "Previous: ⚡ In Progress\n" in message
        assert "Current: ✅ Completed\n" in message

    def test_started(self, renderer: MessageRenderer, task: TaskSnapshot) -> None:
        message = renderer.status_change(task, TaskStatus.PENDING, TaskStatus.IN_PROGRESS)

        assert message.startswith("🚀 Task Started")
        assert "Previous: ⏳ Pending\n" in message

    def test_unknown_status_passes_through(self) -> None:
        assert format_status("archived") == "archived"


class TestDailyDigest:
    def test_includes_due_and_overdue_when_present(self, renderer: MessageRenderer) -> None:
        summary = TaskSummary(total=5, pending=2, in_progress=1, completed=2, due_today=1, overdue=2)

        message = renderer.daily_digest("Ada", summary)

        assert message.startswith("☀️ Good Morning, Ada!\n\n📊 Your Task Summary\n\n")
        assert "Total Tasks: 5\n" in message
        assert "⏳ Pending: 2\n" in message
        assert "⚡ In Progress: 1\n" in message
        assert "✅ Completed: 2\n" in message
        assert "📅 Due Today: 1\n" in message
        assert "⚠️ Overdue: 2\n" in message

    def test_omits_zero_due_and_overdue(self, renderer: MessageRenderer) -> None:
        message = renderer.daily_digest("Ada", TaskSummary(total=1, completed=1))

        assert "Due Today" not in message
        assert "Overdue" not in message


def test_test_message_mentions_whatsapp() -> None:
    assert "WhatsApp" in TEST_MESSAGE

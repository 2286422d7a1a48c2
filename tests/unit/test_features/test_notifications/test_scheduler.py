"""Tests for the reminder, digest and status-change producers."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import select

from notify_service.features.notifications.models import NotificationKind, QueueEntry, QueueState
from notify_service.features.notifications.scheduler import ProduceOutcome, summarize_tasks
from notify_service.features.notifications.schemas import TaskSnapshot, TaskStatus

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession


async def _entries(session: AsyncSession) -> list[QueueEntry]:
    result = await session.execute(select(QueueEntry).order_by(QueueEntry.created_at))
    return list(result.scalars().all())


async def _fill_daily_quota(session: AsyncSession, repository, now: datetime, count: int = 10) -> None:
    for i in range(count):
        entry = await repository.enqueue(
            session,
            user_id="user-1",
            kind=NotificationKind.REMINDER,
            related_task_id=f"done-{i}",
            payload="earlier",
            scheduled_for=now - timedelta(hours=1),
        )
        entry.state = QueueState.SENT
        entry.sent_at = now - timedelta(minutes=30)
    await session.commit()


class TestTaskReminders:
    async def test_schedules_one_reminder_per_task(self, components, users, tasks, clock, db_session) -> None:
        users.add()
        tasks.add(deadline=clock.now + timedelta(hours=3), description="Numbers")

        result = await components.scheduler.schedule_task_reminders()

        assert result.tasks_found == 1
        assert result.scheduled == 1
        entries = await _entries(db_session)
        assert len(entries) == 1
        entry = entries[0]
        assert entry.kind == NotificationKind.REMINDER
        assert entry.related_task_id == "task-1"
        assert entry.state == QueueState.PENDING
        assert entry.scheduled_for == clock.now
        assert entry.payload.startswith("⏰ Task Reminder\n\n📋 Write report\n")
        assert "https://snaptask.app/tasks/task-1" in entry.payload

    async def test_repeated_sweeps_do_not_duplicate(self, components, users, tasks, clock, db_session) -> None:
        users.add()
        tasks.add(deadline=clock.now + timedelta(hours=3))

        await components.scheduler.schedule_task_reminders()
        clock.advance(hours=1)
        second = await components.scheduler.schedule_task_reminders()

        assert second.scheduled == 0
        assert second.skipped == 1
        assert len(await _entries(db_session)) == 1

    async def test_concurrent_sweep_insert_is_skipped(
        self, components, users, tasks, clock, db_session, monkeypatch
    ) -> None:
        users.add()
        tasks.add(deadline=clock.now + timedelta(hours=3))
        await components.scheduler.schedule_task_reminders()

        # A sweep that checked before the other one committed still reaches the insert
        async def not_yet_queued(*args, **kwargs) -> bool:
            return False

        monkeypatch.setattr(components.scheduler.repository, "has_pending_reminder", not_yet_queued)
        clock.advance(minutes=5)
        second = await components.scheduler.schedule_task_reminders()

        assert second.scheduled == 0
        assert second.skipped == 1
        assert second.errors == 0
        assert len(await _entries(db_session)) == 1

    async def test_new_reminder_after_previous_was_sent(
        self, components, users, tasks, clock, db_session
    ) -> None:
        users.add()
        tasks.add(deadline=clock.now + timedelta(hours=20))
        await components.scheduler.schedule_task_reminders()
        (entry,) = await _entries(db_session)
        entry.state = QueueState.SENT
        entry.sent_at = clock.now
        await db_session.commit()

        clock.advance(hours=1)
        result = await components.scheduler.schedule_task_reminders()

        assert result.scheduled == 1

    async def test_ineligible_users_are_skipped(self, components, users, tasks, clock, db_session) -> None:
        users.add("disabled", enabled=False)
        users.add("opted-out", reminders_enabled=False)
        tasks.add("t1", "disabled", deadline=clock.now + timedelta(hours=2))
        tasks.add("t2", "opted-out", deadline=clock.now + timedelta(hours=2))
        tasks.add("t3", "missing", deadline=clock.now + timedelta(hours=2))

        result = await components.scheduler.schedule_task_reminders()

        assert result.tasks_found == 3
        assert result.skipped == 3
        assert await _entries(db_session) == []

    async def test_quiet_hours_push_reminder_to_window_end(
        self, components, users, tasks, clock, db_session
    ) -> None:
        clock.now = datetime(2025, 1, 15, 23, 30, tzinfo=UTC)
        users.add(quiet_start="22:00", quiet_end="08:00", timezone="UTC")
        tasks.add(deadline=clock.now + timedelta(hours=12))

        result = await components.scheduler.schedule_task_reminders()

        assert result.scheduled == 1
        (entry,) = await _entries(db_session)
        assert entry.scheduled_for == datetime(2025, 1, 16, 8, 0, tzinfo=UTC)

    async def test_daily_limit_defers_to_next_morning(
        self, components, users, tasks, clock, db_session, queue_repository
    ) -> None:
        users.add()
        tasks.add(deadline=clock.now + timedelta(hours=5))
        await _fill_daily_quota(db_session, queue_repository, clock.now)

        result = await components.scheduler.schedule_task_reminders()

        assert result.deferred == 1
        assert result.scheduled == 0
        pending = [e for e in await _entries(db_session) if e.state == QueueState.PENDING]
        assert len(pending) == 1
        assert pending[0].scheduled_for == datetime(2025, 1, 16, 8, 0, tzinfo=UTC)

    async def test_failure_for_one_task_does_not_stop_sweep(
        self, components, users, tasks, clock, db_session, monkeypatch
    ) -> None:
        users.add("user-1")
        users.add("user-2")
        tasks.add("t1", "user-1", deadline=clock.now + timedelta(hours=2))
        tasks.add("t2", "user-2", deadline=clock.now + timedelta(hours=2))

        real_get_user = users.get_user

        async def flaky_get_user(user_id: str):
            if user_id == "user-1":
                raise RuntimeError("directory unavailable")
            return await real_get_user(user_id)

        monkeypatch.setattr(users, "get_user", flaky_get_user)

        result = await components.scheduler.schedule_task_reminders()

        assert result.errors == 1
        assert result.scheduled == 1
        assert [e.related_task_id for e in await _entries(db_session)] == ["t2"]


class TestDailyDigests:
    async def test_digest_counts_and_renders(self, components, users, tasks, clock, db_session) -> None:
        users.add(display_name="Ada")
        tasks.add("due", deadline=datetime(2025, 1, 15, 18, 0, tzinfo=UTC))
        tasks.add("late", status=TaskStatus.IN_PROGRESS, deadline=datetime(2025, 1, 13, 9, 0, tzinfo=UTC))
        tasks.add("done", status=TaskStatus.COMPLETED, deadline=datetime(2025, 1, 10, tzinfo=UTC))

        result = await components.scheduler.schedule_daily_digests()

        assert result.users_found == 1
        assert result.scheduled == 1
        (entry,) = await _entries(db_session)
        assert entry.kind == NotificationKind.DAILY_DIGEST
        assert entry.related_task_id is None
        assert entry.scheduled_for == clock.now
        assert "☀️ Good Morning, Ada!" in entry.payload
        assert "Total Tasks: 3\n" in entry.payload
        assert "⏳ Pending: 1\n" in entry.payload
        assert "⚡ In Progress: 1\n" in entry.payload
        assert "✅ Completed: 1\n" in entry.payload
        assert "📅 Due Today: 1\n" in entry.payload
        assert "⚠️ Overdue: 1\n" in entry.payload

    async def test_one_digest_per_local_day(self, components, users, clock, db_session) -> None:
        users.add()

        first = await components.scheduler.schedule_daily_digests()
        clock.advance(hours=2)
        second = await components.scheduler.schedule_daily_digests()
        clock.advance(days=1)
        third = await components.scheduler.schedule_daily_digests()

        assert (first.scheduled, second.scheduled, third.scheduled) == (1, 0, 1)
        assert second.skipped == 1
        assert len(await _entries(db_session)) == 2

    async def test_failed_digest_still_counts_for_the_day(self, components, users, clock, db_session) -> None:
        users.add()
        await components.scheduler.schedule_daily_digests()
        (entry,) = await _entries(db_session)
        entry.state = QueueState.FAILED
        await db_session.commit()

        again = await components.scheduler.schedule_daily_digests()

        assert again.scheduled == 0

    async def test_digest_skipped_when_daily_limit_reached(
        self, components, users, clock, db_session, queue_repository
    ) -> None:
        users.add()
        await _fill_daily_quota(db_session, queue_repository, clock.now)

        result = await components.scheduler.schedule_daily_digests()

        assert result.scheduled == 0
        assert result.skipped == 1

    async def test_disabled_users_are_skipped(self, components, users, db_session) -> None:
        users.add("off", enabled=False)
        users.add("no-digest", digest_enabled=False)

        result = await components.scheduler.schedule_daily_digests()

        assert result.users_found == 1
        assert result.skipped == 1
        assert await _entries(db_session) == []

    async def test_quiet_user_digest_waits_for_window_end(self, components, users, clock, db_session) -> None:
        users.add(quiet_start="13:00", quiet_end="15:00")

        await components.scheduler.schedule_daily_digests()

        (entry,) = await _entries(db_session)
        assert entry.scheduled_for == datetime(2025, 1, 15, 15, 0, tzinfo=UTC)


class TestSummarizeTasks:
    def test_completed_tasks_are_never_due_or_overdue(self) -> None:
        start = datetime(2025, 1, 15, tzinfo=UTC)
        end = start + timedelta(days=1)
        tasks = [
            TaskSnapshot(id="a", user_id="u", title="a", status=TaskStatus.COMPLETED, deadline=start),
            TaskSnapshot(id="b", user_id="u", title="b", deadline=start - timedelta(days=2)),
            TaskSnapshot(id="c", user_id="u", title="c"),
        ]

        summary = summarize_tasks(tasks, start, end)

        assert summary.total == 3
        assert summary.completed == 1
        assert summary.pending == 2
        assert summary.due_today == 0
        assert summary.overdue == 1


class TestStatusChange:
    async def test_reachable_user_is_notified_immediately(
        self, components, users, tasks, twilio, db_session
    ) -> None:
        users.add()
        tasks.add(status=TaskStatus.COMPLETED)

        outcome = await components.scheduler.handle_status_change(
            "user-1", "task-1", TaskStatus.IN_PROGRESS, TaskStatus.COMPLETED
        )

        assert outcome == ProduceOutcome.SENT_IMMEDIATELY
        assert len(twilio.requests) == 1
        body = twilio.form()["Body"]
        assert body.startswith("🎉 Task Completed!")
        assert "Previous: ⚡ In Progress" in body
        assert await _entries(db_session) == []

    @pytest.mark.parametrize("new_status", [TaskStatus.PENDING, "archived"])
    async def test_other_transitions_are_ignored(self, components, users, tasks, twilio, new_status) -> None:
        users.add()
        tasks.add()

        outcome = await components.scheduler.handle_status_change(
            "user-1", "task-1", TaskStatus.IN_PROGRESS, new_status
        )

        assert outcome == ProduceOutcome.SKIPPED
        assert twilio.requests == []

    async def test_quiet_user_gets_queued_entry(self, components, users, tasks, twilio, clock, db_session) -> None:
        users.add(quiet_start="13:00", quiet_end="15:00")
        tasks.add()

        outcome = await components.scheduler.handle_status_change(
            "user-1", "task-1", TaskStatus.PENDING, TaskStatus.IN_PROGRESS
        )

        assert outcome == ProduceOutcome.SCHEDULED
        assert twilio.requests == []
        (entry,) = await _entries(db_session)
        assert entry.kind == NotificationKind.STATUS_CHANGE
        assert entry.related_task_id == "task-1"
        assert entry.scheduled_for == datetime(2025, 1, 15, 15, 0, tzinfo=UTC)
        assert entry.payload.startswith("🚀 Task Started")

    async def test_immediate_failure_is_dropped(self, components, users, tasks, twilio, db_session) -> None:
        users.add()
        tasks.add()
        twilio.queue(400, json={"code": 21211, "message": "Invalid 'To' Phone Number"})

        outcome = await components.scheduler.handle_status_change(
            "user-1", "task-1", TaskStatus.PENDING, TaskStatus.COMPLETED
        )

        assert outcome == ProduceOutcome.IMMEDIATE_FAILED
        assert await _entries(db_session) == []

    async def test_unreachable_users_are_skipped(self, components, users, tasks, twilio) -> None:
        users.add("no-phone", channel_address=None)
        users.add("muted", status_updates_enabled=False)
        tasks.add()

        for user_id in ("no-phone", "muted", "unknown"):
            outcome = await components.scheduler.handle_status_change(
                user_id, "task-1", TaskStatus.PENDING, TaskStatus.COMPLETED
            )
            assert outcome == ProduceOutcome.SKIPPED

        assert twilio.requests == []

    async def test_missing_task_is_skipped(self, components, users, twilio) -> None:
        users.add()

        outcome = await components.scheduler.handle_status_change(
            "user-1", "gone", TaskStatus.PENDING, TaskStatus.COMPLETED
        )

        assert outcome == ProduceOutcome.SKIPPED
        assert twilio.requests == []

    async def test_daily_limit_skips_status_change(
        self, components, users, tasks, twilio, clock, db_session, queue_repository
    ) -> None:
        users.add()
        tasks.add()
        await _fill_daily_quota(db_session, queue_repository, clock.now)

        outcome = await components.scheduler.handle_status_change(
            "user-1", "task-1", TaskStatus.PENDING, TaskStatus.COMPLETED
        )

        assert outcome == ProduceOutcome.SKIPPED
        assert twilio.requests == []

    async def test_notify_status_change_runs_detached(self, components, users, tasks, twilio) -> None:
        users.add()
        tasks.add()

        task = components.scheduler.notify_status_change(
            "user-1", "task-1", TaskStatus.PENDING, TaskStatus.COMPLETED
        )
        await task

        assert len(twilio.requests) == 1

    async def test_detached_errors_are_contained(self, components, users, monkeypatch, caplog) -> None:
        monkeypatch.setattr(users, "get_user", AsyncMock(side_effect=RuntimeError("directory down")))

        task = components.scheduler.notify_status_change(
            "user-1", "task-1", TaskStatus.PENDING, TaskStatus.COMPLETED
        )
        await task

        assert task.exception() is None
        assert "Status change notification failed" in caplog.text

    async def test_drain_waits_for_background_sends(self, components, users, tasks, twilio) -> None:
        users.add()
        tasks.add()

        components.scheduler.notify_status_change("user-1", "task-1", TaskStatus.PENDING, TaskStatus.COMPLETED)
        await components.scheduler.drain()

        assert len(twilio.requests) == 1

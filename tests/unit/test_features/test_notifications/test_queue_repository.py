"""Integration-style tests for the notification queue repository queries."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import pytest
from sqlalchemy.exc import IntegrityError

from notify_service.features.notifications.models import NotificationKind, QueueEntry, QueueState
from notify_service.features.notifications.repository import (
    NotificationQueueRepository,
    clip_payload,
    get_queue_repository,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

NOW = datetime(2025, 1, 15, 14, 0, tzinfo=UTC)


async def _entry(
    session: AsyncSession,
    repository: NotificationQueueRepository,
    *,
    user_id: str = "user-1",
    kind: NotificationKind = NotificationKind.REMINDER,
    task_id: str | None = "task-1",
    scheduled_for: datetime = NOW,
    created_at: datetime = NOW,
    state: QueueState = QueueState.PENDING,
    attempts: int = 0,
) -> QueueEntry:
    entry = await repository.enqueue(
        session,
        user_id=user_id,
        kind=kind,
        payload=f"{kind} for {task_id}",
        scheduled_for=scheduled_for,
        related_task_id=task_id,
        created_at=created_at,
    )
    entry.state = state
    entry.attempts = attempts
    await session.commit()
    return entry


def test_clip_payload() -> None:
    assert clip_payload("short") == "short"
    assert clip_payload("a" * 1000) == "a" * 1000

    clipped = clip_payload("a" * 1500)
    assert len(clipped) == 1000
    assert clipped.endswith("...")


def test_get_queue_repository_is_shared() -> None:
    assert get_queue_repository() is get_queue_repository()


async def test_enqueue_creates_pending_entry(db_session: AsyncSession, queue_repository) -> None:
    entry = await queue_repository.enqueue(
        db_session,
        user_id="user-1",
        kind=NotificationKind.DAILY_DIGEST,
        payload="x" * 2000,
        scheduled_for=NOW,
        created_at=NOW,
    )
    await db_session.commit()

    stored = await db_session.get(QueueEntry, entry.id)
    assert stored.state == QueueState.PENDING
    assert stored.attempts == 0
    assert stored.sent_at is None
    assert stored.related_task_id is None
    assert len(stored.payload) == 1000
    assert stored.created_at == NOW
    assert stored.scheduled_for == NOW
    assert not stored.is_terminal


async def test_find_due_filters_and_orders(db_session: AsyncSession, queue_repository) -> None:
    later = await _entry(db_session, queue_repository, task_id="later", scheduled_for=NOW - timedelta(minutes=1))
    earlier = await _entry(db_session, queue_repository, task_id="earlier", scheduled_for=NOW - timedelta(hours=1))
    await _entry(db_session, queue_repository, task_id="future", scheduled_for=NOW + timedelta(minutes=1))
    await _entry(db_session, queue_repository, task_id="sent", state=QueueState.SENT)
    await _entry(db_session, queue_repository, task_id="failed", state=QueueState.FAILED)
    await _entry(db_session, queue_repository, task_id="exhausted", attempts=3)

    due = await queue_repository.find_due(db_session, now=NOW, max_attempts=3, limit=50)

    assert [e.id for e in due] == [earlier.id, later.id]


async def test_find_due_respects_limit(db_session: AsyncSession, queue_repository) -> None:
    for i in range(5):
        await _entry(db_session, queue_repository, task_id=f"t{i}", scheduled_for=NOW - timedelta(minutes=i))

    due = await queue_repository.find_due(db_session, now=NOW, max_attempts=3, limit=2)

    assert [e.related_task_id for e in due] == ["t4", "t3"]


async def test_has_pending_reminder(db_session: AsyncSession, queue_repository) -> None:
    await _entry(db_session, queue_repository, task_id="pending")
    await _entry(db_session, queue_repository, task_id="sent", state=QueueState.SENT)
    await _entry(db_session, queue_repository, task_id="status", kind=NotificationKind.STATUS_CHANGE)

    assert await queue_repository.has_pending_reminder(db_session, "user-1", "pending")
    assert not await queue_repository.has_pending_reminder(db_session, "user-1", "sent")
    assert not await queue_repository.has_pending_reminder(db_session, "user-1", "status")
    assert not await queue_repository.has_pending_reminder(db_session, "user-2", "pending")


async def test_has_digest_created_between(db_session: AsyncSession, queue_repository) -> None:
    await _entry(
        db_session,
        queue_repository,
        kind=NotificationKind.DAILY_DIGEST,
        task_id=None,
        state=QueueState.FAILED,
        created_at=NOW,
    )
    day_start = datetime(2025, 1, 15, tzinfo=UTC)

    assert await queue_repository.has_digest_created_between(
        db_session, "user-1", day_start, day_start + timedelta(days=1)
    )
    assert not await queue_repository.has_digest_created_between(
        db_session, "user-1", day_start + timedelta(days=1), day_start + timedelta(days=2)
    )


async def test_count_sent_between(db_session: AsyncSession, queue_repository) -> None:
    for hours in (1, 2, 30):
        entry = await _entry(db_session, queue_repository, state=QueueState.SENT)
        entry.sent_at = NOW - timedelta(hours=hours)
    await db_session.commit()

    count = await queue_repository.count_sent_between(
        db_session, "user-1", NOW - timedelta(hours=12), NOW
    )

    assert count == 2


async def test_list_for_user_newest_first(db_session: AsyncSession, queue_repository) -> None:
    for i in range(3):
        await _entry(db_session, queue_repository, task_id=f"t{i}", created_at=NOW + timedelta(minutes=i))
    await _entry(db_session, queue_repository, user_id="user-2")

    page = await queue_repository.list_for_user(db_session, "user-1", limit=2, offset=0)

    assert page.total == 3
    assert page.pages == 2
    assert [e.related_task_id for e in page.items] == ["t2", "t1"]

    second = await queue_repository.list_for_user(db_session, "user-1", limit=2, offset=2)
    assert [e.related_task_id for e in second.items] == ["t0"]


async def test_purge_created_before(db_session: AsyncSession, queue_repository) -> None:
    await _entry(db_session, queue_repository, task_id="old-sent", state=QueueState.SENT, created_at=NOW - timedelta(days=40))
    await _entry(db_session, queue_repository, task_id="old-pending", created_at=NOW - timedelta(days=31))
    await _entry(db_session, queue_repository, task_id="recent", created_at=NOW - timedelta(days=5))

    deleted = await queue_repository.purge_created_before(db_session, NOW - timedelta(days=30))
    await db_session.commit()

    assert deleted == 2
    remaining = await queue_repository.list_for_user(db_session, "user-1")
    assert [e.related_task_id for e in remaining.items] == ["recent"]


async def test_claim_is_exclusive_until_the_lease_expires(db_session: AsyncSession, queue_repository) -> None:
    entry = await _entry(db_session, queue_repository, scheduled_for=NOW - timedelta(minutes=1))
    lease_until = NOW + timedelta(minutes=5)

    assert await queue_repository.claim(db_session, entry.id, now=NOW, lease_until=lease_until, max_attempts=3)
    await db_session.commit()
    assert not await queue_repository.claim(db_session, entry.id, now=NOW, lease_until=lease_until, max_attempts=3)
    assert await queue_repository.find_due(db_session, now=NOW, max_attempts=3) == []

    # An abandoned lease can be taken over once it runs out
    later = lease_until + timedelta(seconds=1)
    assert await queue_repository.claim(
        db_session, entry.id, now=later, lease_until=later + timedelta(minutes=5), max_attempts=3
    )


async def test_claim_rejects_entries_that_are_not_due(db_session: AsyncSession, queue_repository) -> None:
    future = await _entry(db_session, queue_repository, task_id="future", scheduled_for=NOW + timedelta(minutes=1))
    sent = await _entry(db_session, queue_repository, task_id="sent", state=QueueState.SENT)
    exhausted = await _entry(db_session, queue_repository, task_id="exhausted", attempts=3)
    lease_until = NOW + timedelta(minutes=5)

    for entry in (future, sent, exhausted):
        assert not await queue_repository.claim(
            db_session, entry.id, now=NOW, lease_until=lease_until, max_attempts=3
        )


async def test_count_claimed_for_user(db_session: AsyncSession, queue_repository) -> None:
    mine = await _entry(db_session, queue_repository, task_id="a")
    other = await _entry(db_session, queue_repository, task_id="b")
    await _entry(db_session, queue_repository, task_id="c")
    await _entry(db_session, queue_repository, user_id="user-2", task_id="a")
    for entry in (mine, other):
        entry.claimed_until = NOW + timedelta(minutes=5)
    await db_session.commit()

    assert await queue_repository.count_claimed_for_user(db_session, "user-1", now=NOW) == 2
    assert await queue_repository.count_claimed_for_user(db_session, "user-1", now=NOW, exclude_id=mine.id) == 1
    assert await queue_repository.count_claimed_for_user(db_session, "user-2", now=NOW) == 0
    # Expired leases no longer count
    assert await queue_repository.count_claimed_for_user(db_session, "user-1", now=NOW + timedelta(minutes=6)) == 0


async def test_only_one_pending_reminder_per_task(db_session: AsyncSession, queue_repository) -> None:
    await _entry(db_session, queue_repository, task_id="task-1")

    with pytest.raises(IntegrityError):
        await _entry(db_session, queue_repository, task_id="task-1")
    await db_session.rollback()

    # Other kinds, and other users' reminders, for the same task are unaffected
    await _entry(db_session, queue_repository, task_id="task-1", kind=NotificationKind.STATUS_CHANGE)
    await _entry(db_session, queue_repository, user_id="user-2", task_id="task-1")
    assert await queue_repository.has_pending_reminder(db_session, "user-1", "task-1")

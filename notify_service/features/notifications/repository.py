"""Repository for the notification queue."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import delete, func, or_, select, update

from notify_service.core.database.repository import BaseRepository, SearchResult
from notify_service.features.notifications.models import (
    PAYLOAD_MAX_LENGTH,
    NotificationKind,
    QueueEntry,
    QueueState,
)

if TYPE_CHECKING:
    from collections.abc import Sequence
    from datetime import datetime
    from uuid import UUID

    from sqlalchemy.ext.asyncio import AsyncSession


def _unclaimed(now: datetime):
    return or_(QueueEntry.claimed_until.is_(None), QueueEntry.claimed_until <= now)


def clip_payload(payload: str) -> str:
    """Fit a rendered body into the payload column limit."""
    if len(payload) <= PAYLOAD_MAX_LENGTH:
        return payload
    return payload[: PAYLOAD_MAX_LENGTH - 3] + "..."


class NotificationQueueRepository(BaseRepository[QueueEntry]):
    """Repository for QueueEntry.

    Every read the engine needs is a query here: the due scan, reminder
    de-duplication, the digest "already today" check, the daily sent
    count and the retention purge. Callers own the transaction.
    """

    def __init__(self) -> None:
        """Initialize with QueueEntry model."""
        super().__init__(QueueEntry)

    async def enqueue(
        self,
        session: AsyncSession,
        *,
        user_id: str,
        kind: NotificationKind,
        payload: str,
        scheduled_for: datetime,
        related_task_id: str | None = None,
        created_at: datetime | None = None,
    ) -> QueueEntry:
        """Create a pending entry.

        ``created_at`` defaults to the wall clock; producers pass their
        own notion of now so the digest day check uses the same clock.
        """
        entry = QueueEntry(
            user_id=user_id,
            kind=kind,
            related_task_id=related_task_id,
            payload=clip_payload(payload),
            scheduled_for=scheduled_for,
            state=QueueState.PENDING,
            attempts=0,
        )
        if created_at is not None:
            entry.created_at = created_at
            entry.updated_at = created_at
        return await self.create(session, entry)

    async def find_due(
        self,
        session: AsyncSession,
        *,
        now: datetime,
        max_attempts: int,
        limit: int = 50,
    ) -> Sequence[QueueEntry]:
        """Pending, unclaimed entries eligible at ``now``, oldest schedule first."""
        stmt = (
            select(QueueEntry)
            .where(
                QueueEntry.state == QueueState.PENDING,
                QueueEntry.scheduled_for <= now,
                QueueEntry.attempts < max_attempts,
                _unclaimed(now),
            )
            .order_by(QueueEntry.scheduled_for.asc(), QueueEntry.id.asc())
            .limit(limit)
        )
        result = await session.execute(stmt)
        entries = result.scalars().all()
        self._lazy.debug(lambda: f"db.find_due(now={now.isoformat()}, limit={limit}) -> {len(entries)}")
        return entries

    async def claim(
        self,
        session: AsyncSession,
        entry_id: UUID,
        *,
        now: datetime,
        lease_until: datetime,
        max_attempts: int,
    ) -> bool:
        """Take the delivery lease on a due entry.

        The conditional UPDATE re-checks every due condition, so when
        several passes loaded the same entry exactly one of them matches
        the row. Returns whether this caller holds the lease.
        """
        stmt = (
            update(QueueEntry)
            .where(
                QueueEntry.id == entry_id,
                QueueEntry.state == QueueState.PENDING,
                QueueEntry.scheduled_for <= now,
                QueueEntry.attempts < max_attempts,
                _unclaimed(now),
            )
            .values(claimed_until=lease_until)
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        claimed = result.rowcount == 1
        self._lazy.debug(lambda: f"db.claim({entry_id}) -> {claimed}")
        return claimed

    async def count_claimed_for_user(
        self,
        session: AsyncSession,
        user_id: str,
        *,
        now: datetime,
        exclude_id: UUID | None = None,
    ) -> int:
        """Entries of ``user_id`` currently leased by a processor pass."""
        stmt = select(func.count(QueueEntry.id)).where(
            QueueEntry.user_id == user_id,
            QueueEntry.state == QueueState.PENDING,
            QueueEntry.claimed_until > now,
        )
        if exclude_id is not None:
            stmt = stmt.where(QueueEntry.id != exclude_id)
        result = await session.execute(stmt)
        return result.scalar_one()

    async def has_pending_reminder(
        self,
        session: AsyncSession,
        user_id: str,
        task_id: str,
    ) -> bool:
        """Whether a pending reminder already exists for this task."""
        stmt = (
            select(QueueEntry.id)
            .where(
                QueueEntry.user_id == user_id,
                QueueEntry.related_task_id == task_id,
                QueueEntry.kind == NotificationKind.REMINDER,
                QueueEntry.state == QueueState.PENDING,
            )
            .limit(1)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def has_digest_created_between(
        self,
        session: AsyncSession,
        user_id: str,
        start: datetime,
        end: datetime,
    ) -> bool:
        """Whether a digest entry in any state was created in ``[start, end)``."""
        stmt = (
            select(QueueEntry.id)
            .where(
                QueueEntry.user_id == user_id,
                QueueEntry.kind == NotificationKind.DAILY_DIGEST,
                QueueEntry.created_at >= start,
                QueueEntry.created_at < end,
            )
            .limit(1)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def count_sent_between(
        self,
        session: AsyncSession,
        user_id: str,
        start: datetime,
        end: datetime,
    ) -> int:
        """Number of entries delivered to the user with ``sent_at`` in ``[start, end)``."""
        stmt = select(func.count(QueueEntry.id)).where(
            QueueEntry.user_id == user_id,
            QueueEntry.state == QueueState.SENT,
            QueueEntry.sent_at >= start,
            QueueEntry.sent_at < end,
        )
        result = await session.execute(stmt)
        return result.scalar_one()

    async def list_for_user(
        self,
        session: AsyncSession,
        user_id: str,
        *,
        limit: int = 20,
        offset: int = 0,
    ) -> SearchResult[QueueEntry]:
        """A user's entries in every state, newest first."""
        stmt = (
            select(QueueEntry)
            .where(QueueEntry.user_id == user_id)
            .order_by(QueueEntry.created_at.desc(), QueueEntry.id.desc())
        )
        return await self.search(session, stmt, limit=limit, offset=offset)

    async def purge_created_before(self, session: AsyncSession, cutoff: datetime) -> int:
        """Delete entries created before ``cutoff`` regardless of state."""
        stmt = delete(QueueEntry).where(QueueEntry.created_at < cutoff)
        result = await session.execute(stmt)
        deleted = result.rowcount or 0
        self._logger.info(
            "Purged expired queue entries",
            extra={"deleted": deleted, "cutoff": cutoff.isoformat(), "operation": "db.purge"},
        )
        return deleted


_queue_repository: NotificationQueueRepository | None = None


def get_queue_repository() -> NotificationQueueRepository:
    """Get NotificationQueueRepository singleton instance."""
    global _queue_repository
    if _queue_repository is None:
        _queue_repository = NotificationQueueRepository()
    return _queue_repository

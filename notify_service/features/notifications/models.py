"""SQLAlchemy models for the notification queue."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from sqlalchemy import Index, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from notify_service.core.database import UTCDateTime, UUIDv7TimestampedBase

PAYLOAD_MAX_LENGTH = 1000

_PENDING_REMINDER = text("kind = 'reminder' AND state = 'pending'")


class NotificationKind(StrEnum):
    """Kinds of notification the engine produces."""

    REMINDER = "reminder"
    STATUS_CHANGE = "status_change"
    DAILY_DIGEST = "daily_digest"


class QueueState(StrEnum):
    """Delivery state of a queue entry. SENT and FAILED are terminal."""

    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


class QueueEntry(UUIDv7TimestampedBase):
    """One scheduled delivery attempt target.

    Created ``pending`` by a producer and mutated only by the queue
    processor. ``payload`` is rendered at creation time and never
    re-rendered; ``scheduled_for`` moves forward on quiet-window,
    daily-cap and retry deferrals.

    Indexes:
        - (scheduled_for, state) for the due-entry scan
        - (user_id, state, sent_at) for the daily pacing count
        - (user_id, related_task_id, kind, state) for reminder de-duplication
        - (created_at) for the retention purge and digest lookups
        - unique (user_id, related_task_id) over pending reminders, so
          overlapping reminder sweeps cannot queue the same task twice
    """

    __tablename__ = "notification_queue"

    user_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Owning user identifier",
    )
    kind: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        comment="reminder, status_change or daily_digest",
    )
    related_task_id: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        comment="Task the notification refers to (reminder and status_change)",
    )
    payload: Mapped[str] = mapped_column(
        Text(),
        nullable=False,
        comment="Rendered message body",
    )
    scheduled_for: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        comment="Earliest instant a delivery attempt is eligible",
    )
    state: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default=QueueState.PENDING,
        comment="pending, sent or failed",
    )
    attempts: Mapped[int] = mapped_column(
        Integer(),
        nullable=False,
        default=0,
        comment="Delivery attempts made so far",
    )
    sent_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(),
        nullable=True,
        comment="When the entry was delivered",
    )
    last_error: Mapped[str | None] = mapped_column(
        Text(),
        nullable=True,
        comment="Diagnostic from the most recent failed attempt",
    )
    claimed_until: Mapped[datetime | None] = mapped_column(
        UTCDateTime(),
        nullable=True,
        comment="Lease held by the processor pass currently delivering the entry",
    )

    __table_args__ = (
        Index("idx_notification_queue_scheduled_state", "scheduled_for", "state"),
        Index("idx_notification_queue_user_state_sent", "user_id", "state", "sent_at"),
        Index(
            "idx_notification_queue_user_task_kind_state",
            "user_id",
            "related_task_id",
            "kind",
            "state",
        ),
        Index("idx_notification_queue_created", "created_at"),
        Index(
            "uq_notification_queue_pending_reminder",
            "user_id",
            "related_task_id",
            unique=True,
            postgresql_where=_PENDING_REMINDER,
            sqlite_where=_PENDING_REMINDER,
        ),
    )

    @property
    def is_terminal(self) -> bool:
        """Whether the entry reached sent or failed."""
        return self.state in (QueueState.SENT, QueueState.FAILED)

    def __repr__(self) -> str:
        return (
            f"<QueueEntry(id={self.id}, kind={self.kind}, state={self.state}, "
            f"attempts={self.attempts})>"
        )

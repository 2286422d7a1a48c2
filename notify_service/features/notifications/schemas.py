"""Pydantic schemas for the notifications feature."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class TaskStatus(StrEnum):
    """Lifecycle status of a task in the task directory."""

    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"


# ============================================================================
# Directory Projections
# ============================================================================


class UserNotificationProfile(BaseModel):
    """Read-only view of a user's notification preferences.

    ``channel_address`` is the decrypted destination and is excluded from
    ``repr`` so it never ends up in log lines.
    """

    model_config = ConfigDict(frozen=True)

    user_id: str
    display_name: str = ""
    channel_address: str | None = Field(default=None, repr=False)
    phone_verified: bool = False
    enabled: bool = Field(
        default=False,
        description="Master switch: phone verified and channel enabled upstream",
    )
    reminders_enabled: bool = True
    status_updates_enabled: bool = True
    digest_enabled: bool = True
    quiet_start: str | None = Field(default=None, description="Quiet window start, HH:MM")
    quiet_end: str | None = Field(default=None, description="Quiet window end, HH:MM")
    timezone: str | None = Field(default=None, description="IANA time zone name")

    @model_validator(mode="after")
    def _check_quiet_pair(self) -> UserNotificationProfile:
        if (self.quiet_start is None) != (self.quiet_end is None):
            msg = "quiet_start and quiet_end must be set together"
            raise ValueError(msg)
        return self

    @property
    def can_receive(self) -> bool:
        """Whether queued deliveries may be attempted for this user."""
        return self.enabled and bool(self.channel_address)


class TaskSnapshot(BaseModel):
    """Read-only view of a task from the task directory."""

    model_config = ConfigDict(frozen=True)

    id: str
    user_id: str
    title: str
    description: str | None = None
    status: TaskStatus = TaskStatus.PENDING
    deadline: datetime | None = None
    category_name: str | None = None

    @field_validator("deadline")
    @classmethod
    def _assume_utc(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value


class TaskSummary(BaseModel):
    """Per-user task counts rendered into the daily digest."""

    total: int = 0
    pending: int = 0
    in_progress: int = 0
    completed: int = 0
    due_today: int = 0
    overdue: int = 0


# ============================================================================
# Status Change Hook
# ============================================================================


class StatusChangeEvent(BaseModel):
    """A task status transition reported by the task-update flow."""

    user_id: str = Field(..., min_length=1)
    task_id: str = Field(..., min_length=1)
    old_status: TaskStatus
    new_status: TaskStatus


class StatusChangeAccepted(BaseModel):
    """Acknowledgement for a status change hook call."""

    accepted: bool = True
    task_id: str


# ============================================================================
# History
# ============================================================================


class QueueEntryResponse(BaseModel):
    """Representation of a queue entry returned from the API."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: str
    kind: str
    related_task_id: str | None
    payload: str
    scheduled_for: datetime
    state: str
    attempts: int
    sent_at: datetime | None
    last_error: str | None
    created_at: datetime
    updated_at: datetime


class PaginationInfo(BaseModel):
    """Page-number pagination block."""

    current_page: int
    total_pages: int
    total_count: int
    limit: int


class NotificationHistoryResponse(BaseModel):
    """One page of a user's notification history, newest first."""

    message: str = "Notification history fetched successfully"
    notifications: list[QueueEntryResponse]
    pagination: PaginationInfo


class TestNotificationResponse(BaseModel):
    """Outcome of a test message send."""

    message: str = "Test notification sent successfully! Check your WhatsApp."
    message_sid: str | None = None


# ============================================================================
# Sweep Results
# ============================================================================


class ReminderSweepResult(BaseModel):
    """Counters from one reminder producer pass."""

    tasks_found: int = 0
    scheduled: int = 0
    deferred: int = 0
    skipped: int = 0
    errors: int = 0


class DigestSweepResult(BaseModel):
    """Counters from one digest producer pass."""

    users_found: int = 0
    scheduled: int = 0
    skipped: int = 0
    errors: int = 0


class ProcessQueueResult(BaseModel):
    """Counters from one queue processor pass."""

    processed: int = 0
    sent: int = 0
    failed: int = 0
    retried: int = 0
    deferred: int = 0
    skipped_unconfigured: bool = False


class PurgeResult(BaseModel):
    """Outcome of the retention purge."""

    deleted: int = 0
    cutoff: datetime


class CronJobResponse(BaseModel):
    """Envelope returned by every cron trigger route."""

    success: bool = True
    job: str
    timestamp: datetime
    result: dict[str, Any]


class CronHealthResponse(BaseModel):
    """Cron subsystem readiness."""

    status: str = "ok"
    cron_jobs_configured: bool
    gateway_configured: bool
    timestamp: datetime

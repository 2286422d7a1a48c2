"""Notification engine settings: pacing, retry policy and sweep sizing."""

from __future__ import annotations

import pytz
from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class NotificationSettings(BaseSettings):
    """Scheduling and delivery policy for the notification queue.

    Environment variables use NOTIFY_ prefix.
    Example: NOTIFY_DAILY_LIMIT=10, NOTIFY_CRON_SECRET=change-me
    """

    # ─────────────────────────────────────────────────────
    # Pacing
    # ─────────────────────────────────────────────────────
    daily_limit: int = Field(
        default=10,
        ge=1,
        le=1000,
        description="Maximum notifications marked sent per user per local day.",
    )
    deferral_hour: int = Field(
        default=8,
        ge=0,
        le=23,
        description="Local hour used when an entry is pushed to the next day.",
    )
    default_timezone: str = Field(
        default="UTC",
        description="Time zone applied to users whose profile carries none.",
    )

    # ─────────────────────────────────────────────────────
    # Retry policy
    # ─────────────────────────────────────────────────────
    max_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Delivery attempts before an entry becomes failed.",
    )
    retry_base_delay_minutes: int = Field(
        default=5,
        ge=1,
        le=1440,
        description="Backoff base: an entry waits 2^attempts * base minutes.",
    )

    # ─────────────────────────────────────────────────────
    # Sweeps
    # ─────────────────────────────────────────────────────
    batch_size: int = Field(default=50, ge=1, le=1000)
    claim_lease_seconds: int = Field(
        default=300,
        ge=30,
        le=3600,
        description="How long a processor pass owns an entry it has claimed.",
    )
    reminder_lookahead_hours: int = Field(default=24, ge=1, le=168)
    immediate_window_seconds: int = Field(
        default=60,
        ge=0,
        le=3600,
        description="Status changes eligible within this window skip the queue.",
    )
    retention_days: int = Field(default=30, ge=1, le=3650)

    # ─────────────────────────────────────────────────────
    # Rendering and trigger surface
    # ─────────────────────────────────────────────────────
    description_max_length: int = Field(default=100, ge=10, le=1000)
    frontend_url: str = Field(
        default="https://snaptask.app",
        description="Base URL used for task links inside messages.",
    )
    cron_secret: SecretStr | None = Field(
        default=None,
        description="Shared secret expected in the x-cron-secret header.",
    )

    model_config = SettingsConfigDict(
        env_prefix="NOTIFY_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        extra="ignore",
        env_ignore_empty=True,
    )

    @field_validator("default_timezone")
    @classmethod
    def _validate_timezone(cls, value: str) -> str:
        if value not in pytz.all_timezones_set:
            raise ValueError(f"Unknown time zone: {value}")
        return value

    @field_validator("frontend_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @property
    def cron_configured(self) -> bool:
        """True when a non-empty cron secret is set."""
        return self.cron_secret is not None and bool(self.cron_secret.get_secret_value())

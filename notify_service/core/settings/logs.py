"""Logging configuration settings."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

from pydantic import Field, computed_field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class LoggingSettings(BaseSettings):
    """Structured logging configuration.

    Environment variables use LOG_ prefix.
    Example: LOG_LEVEL=INFO, LOG_JSON=true, LOG_FILE_ENABLED=false
    """

    service_name: str = Field(
        default="notify-service",
        description="Service name to include in log records (static field in JSON)",
    )
    level: LogLevel = Field(
        default="INFO",
        description="Root logger level (DEBUG|INFO|WARNING|ERROR|CRITICAL)",
    )
    json_logs: bool = Field(
        default=True,
        alias="json",
        description="Enable JSON Lines (JSONL) formatted structured logs",
    )

    # ──────────────────────────────────────────────────────────────
    # Per-handler log levels
    # ──────────────────────────────────────────────────────────────

    console_level: LogLevel | None = Field(
        default=None,
        description="Console handler log level. If None, uses root level.",
    )
    file_level: LogLevel | None = Field(
        default=None,
        description="File handler log level. If None, uses root level.",
    )

    # ──────────────────────────────────────────────────────────────
    # File logging / rotation
    # ──────────────────────────────────────────────────────────────

    file_enabled: bool = Field(
        default=False,
        description="Enable file logging. When False, file_path is ignored.",
    )
    file_path: Path | None = Field(
        default=Path("logs/notify-service.log.jsonl"),
        description="Path to log file.",
    )
    file_max_bytes: int = Field(
        default=10_485_760,  # 10 MiB
        ge=1024,
        le=1_073_741_824,
        description="Maximum log file size in bytes before rotation.",
    )
    file_backup_count: int = Field(
        default=5,
        ge=0,
        le=100,
        description="Number of rotated log files to keep.",
    )

    console_enabled: bool = Field(default=True, description="Enable console (stderr) logging.")
    include_context: bool = Field(
        default=True,
        description="Inject contextvars log context (user_id, entry_id, job) into records.",
    )
    include_request_id: bool = Field(
        default=True,
        description="Tag each HTTP request with an X-Request-ID and add it to the log context.",
    )
    capture_warnings: bool = Field(default=True, description="Route warnings through logging.")
    include_function_name: bool = Field(default=False)
    include_process_info: bool = Field(default=False)
    include_thread_info: bool = Field(default=False)

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        populate_by_name=True,
        extra="ignore",
        env_ignore_empty=True,
    )

    @field_validator("level", "console_level", "file_level", mode="before")
    @classmethod
    def normalize_level(cls, v: str | None) -> str | None:
        """Accept lowercase level names."""
        if isinstance(v, str):
            return v.upper()
        return v

    @computed_field  # type: ignore[misc]
    @property
    def effective_file_path(self) -> Path | None:
        """File path when file logging is enabled, otherwise None."""
        if not self.file_enabled:
            return None
        return self.file_path

    @computed_field  # type: ignore[misc]
    @property
    def effective_console_level(self) -> LogLevel:
        return self.console_level or self.level

    @computed_field  # type: ignore[misc]
    @property
    def effective_file_level(self) -> LogLevel:
        return self.file_level or self.level

    def to_logging_kwargs(self) -> dict[str, Any]:
        """Return kwargs suitable for configure_logging(...).

        Returns:
            Dictionary with all logging configuration parameters.
        """
        return {
            "service_name": self.service_name,
            "log_level": self.level,
            "json_logs": self.json_logs,
            "console_level": self.effective_console_level,
            "file_level": self.effective_file_level,
            "file_path": str(self.effective_file_path) if self.effective_file_path else None,
            "file_max_bytes": self.file_max_bytes,
            "file_backup_count": self.file_backup_count,
            "console_enabled": self.console_enabled,
            "include_context": self.include_context,
            "capture_warnings": self.capture_warnings,
            "include_function_name": self.include_function_name,
            "include_process_info": self.include_process_info,
            "include_thread_info": self.include_thread_info,
        }

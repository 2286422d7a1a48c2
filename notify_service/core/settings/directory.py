"""Settings for the upstream user and task directories."""

from __future__ import annotations

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class DirectorySettings(BaseSettings):
    """Core API that owns users, tasks and decrypted contact details.

    Environment variables use DIRECTORY_ prefix.
    Example: DIRECTORY_BASE_URL=http://core-api:8000/internal
    """

    base_url: str = Field(
        default="http://localhost:8000/internal",
        description="Base URL of the internal directory API.",
    )
    service_token: SecretStr | None = Field(
        default=None,
        description="Bearer token presented to the directory API.",
    )
    timeout: float = Field(default=10.0, ge=0.5, le=120.0)
    max_retries: int = Field(default=3, ge=1, le=10)

    model_config = SettingsConfigDict(
        env_prefix="DIRECTORY_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        extra="ignore",
        env_ignore_empty=True,
    )

    @property
    def auth_headers(self) -> dict[str, str]:
        if self.service_token is None:
            return {}
        return {"Authorization": f"Bearer {self.service_token.get_secret_value()}"}

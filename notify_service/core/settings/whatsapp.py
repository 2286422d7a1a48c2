"""Twilio WhatsApp channel settings."""

from __future__ import annotations

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class WhatsAppSettings(BaseSettings):
    """Credentials and retry behaviour for the Twilio Messages API.

    Environment variables use TWILIO_ prefix.
    Example: TWILIO_ACCOUNT_SID=AC..., TWILIO_WHATSAPP_NUMBER=whatsapp:+14155238886
    """

    account_sid: str | None = Field(default=None, description="Twilio account SID.")
    auth_token: SecretStr | None = Field(default=None, description="Twilio auth token.")
    whatsapp_number: str | None = Field(
        default=None,
        description="Sender address, e.g. 'whatsapp:+14155238886'.",
    )
    api_base_url: str = Field(
        default="https://api.twilio.com/2010-04-01",
        description="Twilio REST API base URL.",
    )
    timeout: float = Field(default=15.0, ge=1.0, le=120.0)

    # Internal send retry: 1s, 3s, 9s schedule
    max_attempts: int = Field(default=3, ge=1, le=10)
    retry_initial_delay: float = Field(default=1.0, ge=0.0, le=60.0)
    retry_multiplier: float = Field(default=3.0, ge=1.0, le=10.0)

    model_config = SettingsConfigDict(
        env_prefix="TWILIO_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        extra="ignore",
        env_ignore_empty=True,
    )

    @property
    def is_configured(self) -> bool:
        """Check if every credential needed to send is present."""
        return bool(
            self.account_sid
            and self.auth_token is not None
            and self.auth_token.get_secret_value()
            and self.whatsapp_number
        )

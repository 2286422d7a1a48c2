"""LRU-cached settings loaders for optimal performance.

Settings are loaded and validated once, then cached for the lifetime of the process.

Usage:
    from notify_service.core.settings.loader import get_notification_settings

    settings = get_notification_settings()  # First call: loads and validates
    settings = get_notification_settings()  # Subsequent calls: cached instance

Testing:
    In tests, clear the cache to force reload:
    get_notification_settings.cache_clear()

    Or construct with explicit values:
    settings = NotificationSettings(daily_limit=2)
"""

from __future__ import annotations

from functools import lru_cache

from .app import AppSettings
from .directory import DirectorySettings
from .logs import LoggingSettings
from .notifications import NotificationSettings
from .postgres import PostgresSettings
from .rabbit import RabbitSettings
from .whatsapp import WhatsAppSettings


@lru_cache(maxsize=1)
def get_app_settings() -> AppSettings:
    """Get cached application settings.

    Returns:
        Validated and frozen AppSettings instance.
    """
    return AppSettings()


@lru_cache(maxsize=1)
def get_db_settings() -> PostgresSettings:
    """Get cached database settings.

    Returns:
        Validated and frozen PostgresSettings instance.
    """
    return PostgresSettings()


@lru_cache(maxsize=1)
def get_logging_settings() -> LoggingSettings:
    """Get cached logging settings.

    Returns:
        Validated and frozen LoggingSettings instance.
    """
    return LoggingSettings()


@lru_cache(maxsize=1)
def get_notification_settings() -> NotificationSettings:
    """Get cached notification engine settings.

    Returns:
        Validated and frozen NotificationSettings instance.
    """
    return NotificationSettings()


@lru_cache(maxsize=1)
def get_whatsapp_settings() -> WhatsAppSettings:
    """Get cached Twilio WhatsApp settings.

    Returns:
        Validated and frozen WhatsAppSettings instance.
    """
    return WhatsAppSettings()


@lru_cache(maxsize=1)
def get_directory_settings() -> DirectorySettings:
    """Get cached directory API settings."""
    return DirectorySettings()


@lru_cache(maxsize=1)
def get_rabbit_settings() -> RabbitSettings:
    """Get cached RabbitMQ settings."""
    return RabbitSettings()


def clear_all_caches() -> None:
    """Clear every cached settings instance (used by tests)."""
    get_app_settings.cache_clear()
    get_db_settings.cache_clear()
    get_logging_settings.cache_clear()
    get_notification_settings.cache_clear()
    get_whatsapp_settings.cache_clear()
    get_directory_settings.cache_clear()
    get_rabbit_settings.cache_clear()

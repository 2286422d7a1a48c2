"""Modular Pydantic Settings v2 configuration.

Settings are split by domain (app/db/logging/notifications/whatsapp/
directory/rabbit), frozen, and read from environment variables or a
local .env file. Import them via the cached loaders:

    from notify_service.core.settings import get_notification_settings

Configuration precedence (highest to lowest):
    1. init kwargs (testing/overrides)
    2. Environment variables (production)
    3. .env file (development only)
"""

from __future__ import annotations

from .app import AppSettings
from .directory import DirectorySettings
from .loader import (
    clear_all_caches,
    get_app_settings,
    get_db_settings,
    get_directory_settings,
    get_logging_settings,
    get_notification_settings,
    get_rabbit_settings,
    get_whatsapp_settings,
)
from .logs import LoggingSettings
from .notifications import NotificationSettings
from .postgres import PostgresSettings
from .rabbit import RabbitSettings
from .whatsapp import WhatsAppSettings

__all__ = [
    "AppSettings",
    "DirectorySettings",
    "LoggingSettings",
    "NotificationSettings",
    "PostgresSettings",
    "RabbitSettings",
    "WhatsAppSettings",
    "clear_all_caches",
    "get_app_settings",
    "get_db_settings",
    "get_directory_settings",
    "get_logging_settings",
    "get_notification_settings",
    "get_rabbit_settings",
    "get_whatsapp_settings",
]

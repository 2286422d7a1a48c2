"""Declarative base, column types and the generic repository."""

from notify_service.core.database.base import Base, UUIDv7TimestampedBase, generate_uuid7
from notify_service.core.database.repository import BaseRepository, SearchResult
from notify_service.core.database.types import UTCDateTime

__all__ = [
    "Base",
    "BaseRepository",
    "SearchResult",
    "UTCDateTime",
    "UUIDv7TimestampedBase",
    "generate_uuid7",
]

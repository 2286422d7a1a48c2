"""Base database model classes with composable mixins.

Provides:
- Base: declarative base with a constraint naming convention
- UUIDv7PKMixin: time-sortable UUID primary key
- TimestampMixin: created_at / updated_at tracking in UTC

Example:
    class QueueEntry(UUIDv7TimestampedBase):
        __tablename__ = "notification_queue"
        payload: Mapped[str] = mapped_column(Text)
"""

from __future__ import annotations

import os
import time
import uuid
from datetime import UTC, datetime

from sqlalchemy import MetaData
from sqlalchemy.orm import DeclarativeBase, Mapped, declared_attr, mapped_column
from sqlalchemy.sql import func

from notify_service.core.database.types import UTCDateTime

# Consistent naming convention for database constraints
# Ensures predictable names for migrations and schema management
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    """Declarative base with automatic table naming.

    The automatic table naming can be overridden by setting __tablename__
    explicitly on the model class.
    """

    metadata = MetaData(naming_convention=NAMING_CONVENTION)

    @declared_attr.directive
    def __tablename__(cls) -> str:
        """Auto-derive table name from class name (lowercase)."""
        return cls.__name__.lower()


def generate_uuid7() -> uuid.UUID:
    """Generate a UUID v7 (48-bit millisecond timestamp, then random bits)."""
    timestamp_ms = int(time.time() * 1000)
    random_bytes = os.urandom(10)

    uuid_bytes = bytearray(16)
    uuid_bytes[0:6] = timestamp_ms.to_bytes(6, byteorder="big")
    uuid_bytes[6] = (random_bytes[0] & 0x0F) | 0x70  # Version 7
    uuid_bytes[7] = random_bytes[1]
    uuid_bytes[8] = (random_bytes[2] & 0x3F) | 0x80  # Variant
    uuid_bytes[9:16] = random_bytes[3:10]

    return uuid.UUID(bytes=bytes(uuid_bytes))


class UUIDv7PKMixin:
    """UUID v7 primary key (time-sortable).

    Later IDs sort after earlier ones, which keeps B-tree inserts local
    and gives a stable tie-breaker for rows created in the same instant.
    """

    __allow_unmapped__ = True

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=generate_uuid7,
        comment="UUID v7 primary key (time-sortable)",
    )


class TimestampMixin:
    """Timestamp tracking for create and update operations.

    Uses both Python-side defaults (for test environments) and database
    server defaults (for direct SQL inserts).
    """

    __allow_unmapped__ = True

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        default=lambda: datetime.now(UTC),
        server_default=func.now(),
        nullable=False,
        comment="Timestamp of record creation",
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        default=lambda: datetime.now(UTC),
        server_default=func.now(),
        onupdate=lambda: datetime.now(UTC),
        nullable=False,
        comment="Timestamp of last update",
    )


class UUIDv7TimestampedBase(Base, UUIDv7PKMixin, TimestampMixin):
    """Convenience base with UUID v7 PK and timestamps."""

    __abstract__ = True


__all__ = [
    "NAMING_CONVENTION",
    "Base",
    "TimestampMixin",
    "UUIDv7PKMixin",
    "UUIDv7TimestampedBase",
    "generate_uuid7",
]

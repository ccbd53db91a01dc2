"""
Base model with common fields and utilities.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import DateTime, TypeDecorator, Uuid
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware UTC timestamp on every backend.

    SQLite drops the offset on storage, so values are normalized to UTC on
    the way in and re-tagged as UTC on the way out.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None and value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value

    def process_result_value(self, value, dialect):
        return ensure_utc(value)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    # Use generic Uuid type for cross-database compatibility
    type_annotation_map = {
        uuid.UUID: Uuid(),
        datetime: UTCDateTime(),
    }


class RecordScope(str, Enum):
    """Which records a query may see. Every account query names one."""

    ACTIVE = "active"
    ALL = "all"


class TimestampMixin:
    """
    created_at / updated_at columns.

    Nothing fills these implicitly; callers stamp them with
    ``stamp_audit_fields`` before the row is flushed.
    """

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
    )


def stamp_audit_fields(
    entity: TimestampMixin,
    *,
    creating: bool = False,
    now: datetime | None = None,
) -> datetime:
    """Pre-persist step: set updated_at, and created_at for new rows."""
    now = now or utcnow()
    if creating:
        entity.created_at = now
    entity.updated_at = now
    return now


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; treat them as the UTC they were stored as."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def generate_uuid() -> uuid.UUID:
    """Generate a new UUID."""
    return uuid.uuid4()

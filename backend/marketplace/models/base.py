"""
Shared model helpers.

- generate_uuid: default for String primary keys
- utcnow: timezone-aware timestamp default
- TimestampMixin: created_at / updated_at columns
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime


def generate_uuid() -> str:
    """Generate a new UUID string for primary keys."""
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """
    Normalize a stored timestamp to an aware UTC datetime.

    SQLite drops tzinfo on DateTime(timezone=True) columns, so values read
    back from it are naive and assumed to be UTC.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class TimestampMixin:
    """Adds created_at and updated_at columns."""

    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        comment="Row creation time (UTC)",
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=True,
        onupdate=utcnow,
        comment="Last modification time (UTC)",
    )

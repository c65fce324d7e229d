"""Timestamps for persistence.

All stored timestamps are naive UTC; SQLite has no timezone-aware column type
and PostgreSQL ``timestamp without time zone`` behaves the same way.
"""

from datetime import UTC, datetime


def utcnow() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)

"""
Module: roster_kernel.db.types
Responsibility: Column types shared by every model.  Fixes the identifier and
    UTC timestamp conventions in one place.
Architecture position: Kernel > DB.  May be imported by models/, domain/ and
    services/.  MUST NOT import from any of those layers.

Invariants enforced:
    - Identifiers are UUIDs stored as text, so tenants, workers and shifts
      compare the same way on PostgreSQL and SQLite.
    - Timestamps are persisted in UTC and always come back timezone-aware,
      on PostgreSQL (timestamptz) and SQLite (naive text) alike.
    - Naive datetimes are rejected at bind time; wall-clock values must be
      compiled to instants before they reach the database.
    - Money is integer minor units (cents) in BigInteger columns.  No floats.

Failure modes:
    - ValueError when a naive datetime is bound to a UTCDateTime column.
"""

from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import DateTime, String
from sqlalchemy.types import TypeDecorator


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware timestamp normalized to UTC.

    Contract:
        Accepts aware ``datetime`` values only and returns aware UTC values.

    Guarantees:
        - process_bind_param: converts to UTC; strips tzinfo for SQLite,
          which stores text and ignores offsets.
        - process_result_value: attaches or converts to UTC.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError(f"Naive datetime cannot be stored: {value!r}")
        value = value.astimezone(timezone.utc)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class UUIDString(TypeDecorator):
    """UUID kept as its 36-character text form, on every dialect."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else UUID(value)


def to_epoch_millis(value: datetime) -> int:
    """Convert an aware datetime to integer epoch milliseconds."""
    if value.tzinfo is None:
        raise ValueError(f"Naive datetime has no epoch: {value!r}")
    return int(value.timestamp() * 1000)

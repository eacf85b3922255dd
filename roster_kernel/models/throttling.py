"""
Module: roster_kernel.models.throttling
Responsibility: Durable rows behind the idempotency guard and the publish
    rate limiter.  Both replace process-local maps, so every request handler
    process sees the same state.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - (tenant_id, key) is unique on IdempotencyRecord; the unique constraint
      is what makes concurrent first uses of one key race-safe.
    - RateLimitState.key is unique; the row is only mutated by a single
      INSERT ... ON CONFLICT DO UPDATE statement.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import JSON, BigInteger, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from roster_kernel.db.base import Base
from roster_kernel.db.types import UUIDString


class IdempotencyRecord(Base):
    """
    Completed-request fingerprint.

    Contract:
        A record with a matching request_hash replays ``result``; a record
        with a different hash is a key conflict.  Records past expires_at
        are treated as absent.
    """

    __tablename__ = "idempotency_records"

    __table_args__ = (
        UniqueConstraint("tenant_id", "key", name="uq_idempotency_tenant_key"),
        Index("idx_idempotency_expires", "expires_at"),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    key: Mapped[str] = mapped_column(String(255), nullable=False)

    # Operation the key was used for, e.g. "publish_schedule"
    scope: Mapped[str] = mapped_column(String(50), nullable=False)

    request_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    result: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(nullable=False)

    expires_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<IdempotencyRecord {self.scope}:{self.key}>"


class RateLimitState(Base):
    """Fixed-window request counter for one throttled key."""

    __tablename__ = "rate_limit_state"

    __table_args__ = (UniqueConstraint("key", name="uq_rate_limit_key"),)

    key: Mapped[str] = mapped_column(String(255), nullable=False)

    request_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Window start as epoch milliseconds so the upsert can compare it in SQL
    window_start_ms: Mapped[int] = mapped_column(BigInteger, nullable=False)

    def __repr__(self) -> str:
        return f"<RateLimitState {self.key} count={self.request_count}>"

"""
IdempotencyGuard -- at-most-once materialization of keyed requests.

Responsibility:
    Maps a tenant-scoped client key plus a content hash to the stored
    outcome of the request that first used it.

Architecture position:
    Kernel > Services -- called by ScheduleCompiler.  Flush-only.

Invariants enforced:
    - (tenant_id, key) is unique in storage.  The record is inserted in the
      SAME transaction as the rows it protects, so it exists iff they do.
    - A matching hash replays; a different hash is a conflict.
    - Records older than the TTL are treated as absent.

Failure modes:
    - IdempotencyKeyConflictError when a key is reused for a different
      payload.

Concurrency:
    Two first uses of one key race on the unique constraint.  The loser's
    INSERT fails inside a SAVEPOINT; it re-reads the winner's committed
    record and either replays it or reports a conflict.
"""

from dataclasses import dataclass
from datetime import timedelta
from typing import Any
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from roster_kernel.domain.clock import Clock
from roster_kernel.domain.policy import IdempotencyPolicy
from roster_kernel.exceptions import IdempotencyKeyConflictError
from roster_kernel.logging_config import get_logger
from roster_kernel.models.throttling import IdempotencyRecord
from roster_kernel.services.base import BaseService
from roster_kernel.utils.hashing import payload_fingerprint

logger = get_logger("services.idempotency")


@dataclass(frozen=True)
class ClaimOutcome:
    """Either a fresh claim (``record`` is ours) or a replay of a stored result."""

    record: IdempotencyRecord
    replayed: bool

    @property
    def stored_result(self) -> dict[str, Any] | None:
        return self.record.result if self.replayed else None


class IdempotencyGuard(BaseService):
    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        policy: IdempotencyPolicy | None = None,
    ):
        super().__init__(session, clock)
        self._policy = policy or IdempotencyPolicy()

    @staticmethod
    def fingerprint(payload: dict[str, Any]) -> str:
        return payload_fingerprint(payload)

    def _find(self, tenant_id: UUID, key: str) -> IdempotencyRecord | None:
        return self.session.execute(
            select(IdempotencyRecord)
            .where(IdempotencyRecord.tenant_id == tenant_id, IdempotencyRecord.key == key)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _live(self, record: IdempotencyRecord | None) -> IdempotencyRecord | None:
        if record is None:
            return None
        if record.expires_at <= self._clock.now():
            logger.info(
                "idempotency_record_expired",
                extra={"request_key": record.key, "expired_at": record.expires_at},
            )
            self.session.delete(record)
            self.session.flush()
            return None
        return record

    def _verify(self, record: IdempotencyRecord, request_hash: str) -> None:
        if record.request_hash != request_hash:
            logger.warning(
                "idempotency_conflict",
                extra={
                    "request_key": record.key,
                    "stored_hash": record.request_hash,
                    "received_hash": request_hash,
                },
            )
            raise IdempotencyKeyConflictError(record.key, record.request_hash, request_hash)

    def lookup(self, tenant_id: UUID, key: str, request_hash: str) -> IdempotencyRecord | None:
        """
        Return the completed record for a replay, or None for a new request.

        Raises:
            IdempotencyKeyConflictError: The key was used with another payload.
        """
        record = self._live(self._find(tenant_id, key))
        if record is None:
            return None
        self._verify(record, request_hash)
        logger.info("idempotency_replay", extra={"request_key": key})
        return record

    def claim(self, tenant_id: UUID, key: str, request_hash: str, scope: str) -> ClaimOutcome:
        """
        Insert the record for this request inside a savepoint.

        Postconditions:
            - ``replayed`` is False and the record is pending in the caller's
              transaction, or ``replayed`` is True and the record is a
              concurrent winner's committed record with a matching hash.
        """
        now = self._clock.now()
        record = IdempotencyRecord(
            tenant_id=tenant_id,
            key=key,
            scope=scope,
            request_hash=request_hash,
            result=None,
            created_at=now,
            expires_at=now + timedelta(days=self._policy.ttl_days),
        )
        try:
            with self.session.begin_nested():
                self.session.add(record)
                self.session.flush()
        except IntegrityError:
            logger.info("idempotency_claim_race", extra={"request_key": key})
            existing = self._find(tenant_id, key)
            if existing is None:
                raise
            self._verify(existing, request_hash)
            return ClaimOutcome(record=existing, replayed=True)

        logger.debug("idempotency_claimed", extra={"request_key": key, "scope": scope})
        return ClaimOutcome(record=record, replayed=False)

    def complete(self, record: IdempotencyRecord, result: dict[str, Any]) -> None:
        record.result = result
        self.session.flush()

    def purge_expired(self) -> int:
        """Delete every expired record.  Returns the number removed."""
        result = self.session.execute(
            delete(IdempotencyRecord).where(IdempotencyRecord.expires_at <= self._clock.now())
        )
        self.session.flush()
        logger.info("idempotency_records_purged", extra={"count": result.rowcount})
        return result.rowcount

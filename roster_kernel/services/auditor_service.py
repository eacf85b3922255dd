"""
AuditorService -- the append-only history of every roster change.

Responsibility:
    Writes one hash-linked AuditEvent per state change (publish, assignment,
    punch, adjustment, no-show, approval, availability) and answers "what
    happened to this shift?" through per-entity traces.  ``validate_chain``
    detects rows edited or removed behind the ORM's back.

Architecture position:
    Kernel > Services -- imperative shell, called by the entry-point
    services inside their transaction.

Invariants enforced:
    - ``seq`` comes from the audit counter upsert, so appends from
      concurrent transactions queue behind each other and the head hash read
      after allocation is the true predecessor.
    - ``hash`` links ``prev_hash``, the entity, the action and the payload
      fingerprint; payloads are stored in their canonical JSON-safe form.
    - Audit rows are never updated or deleted (ORM listeners enforce it).

Failure modes:
    - AuditChainBrokenError from ``validate_chain``, naming the first bad
      event.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from roster_kernel.domain.clock import Clock, SystemClock
from roster_kernel.exceptions import AuditChainBrokenError
from roster_kernel.logging_config import get_logger
from roster_kernel.models.audit_event import AuditAction, AuditEvent
from roster_kernel.services.sequence_service import SequenceService
from roster_kernel.utils.hashing import audit_chain_hash, payload_fingerprint, to_json_safe

logger = get_logger("services.auditor")


@dataclass(frozen=True)
class AuditTraceEntry:
    """A single entry in an audit trace."""

    seq: int
    action: AuditAction
    occurred_at: datetime
    actor_id: UUID
    payload: dict[str, Any]
    hash: str


@dataclass(frozen=True)
class AuditTrace:
    """All audit events for one entity, in chain order."""

    entity_type: str
    entity_id: UUID
    entries: tuple[AuditTraceEntry, ...]

    @property
    def is_empty(self) -> bool:
        return len(self.entries) == 0

    @property
    def actions(self) -> tuple[AuditAction, ...]:
        return tuple(entry.action for entry in self.entries)


class AuditorService:
    """
    Typed ``record_*`` helpers over a single chain-append primitive.

    Guarantees:
        - Every audit event's ``hash`` is a deterministic function of
          ``(entity_type, entity_id, action, payload_hash, prev_hash)``.
        - Flushes only; the entry point that owns the transaction commits.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()
        self._sequences = SequenceService(session)

    def _chain_head(self) -> str | None:
        return self._session.execute(
            select(AuditEvent.hash).order_by(AuditEvent.seq.desc()).limit(1)
        ).scalar_one_or_none()

    def _create_audit_event(
        self,
        entity_type: str,
        entity_id: UUID,
        action: AuditAction,
        actor_id: UUID,
        tenant_id: UUID | None = None,
        payload: dict[str, Any] | None = None,
    ) -> AuditEvent:
        """
        Create a new audit event linked to the chain.

        Postconditions:
            - A new ``AuditEvent`` row is flushed with a monotonically
              increasing ``seq`` and a valid hash chain link.
        """
        # The counter lock is held until commit, so the last hash read
        # below cannot change under us.
        seq = self._sequences.next_value(SequenceService.AUDIT_EVENT)
        prev_hash = self._chain_head()

        # Stored in a JSON column: normalize UUIDs, datetimes and enums to text.
        payload_data = to_json_safe(payload or {})
        computed_payload_hash = payload_fingerprint(payload_data)

        event_hash = audit_chain_hash(
            entity_type=entity_type,
            entity_id=str(entity_id),
            action=action.value,
            payload_hash=computed_payload_hash,
            prev_hash=prev_hash,
        )

        audit_event = AuditEvent(
            seq=seq,
            entity_type=entity_type,
            entity_id=entity_id,
            tenant_id=tenant_id,
            action=action,
            actor_id=actor_id,
            occurred_at=self._clock.now(),
            payload=payload_data,
            payload_hash=computed_payload_hash,
            prev_hash=prev_hash,
            hash=event_hash,
        )

        self._session.add(audit_event)
        self._session.flush()

        logger.info(
            "audit_event_created",
            extra={
                "entity_type": entity_type,
                "entity_id": str(entity_id),
                "action": action.value,
                "seq": seq,
            },
        )
        return audit_event

    # -------------------------------------------------------------------------
    # Recording
    # -------------------------------------------------------------------------

    def record_shift_published(
        self,
        shift_id: UUID,
        tenant_id: UUID,
        actor_id: UUID,
        schedule_group_id: UUID,
        status: str,
        assignment_count: int,
    ) -> AuditEvent:
        return self._create_audit_event(
            entity_type="Shift",
            entity_id=shift_id,
            action=AuditAction.SHIFT_PUBLISHED,
            actor_id=actor_id,
            tenant_id=tenant_id,
            payload={
                "schedule_group_id": str(schedule_group_id),
                "status": status,
                "assignment_count": assignment_count,
            },
        )

    def record_shift_status_changed(
        self,
        shift_id: UUID,
        tenant_id: UUID,
        actor_id: UUID,
        previous_status: str,
        new_status: str,
        reason: str | None = None,
    ) -> AuditEvent:
        return self._create_audit_event(
            entity_type="Shift",
            entity_id=shift_id,
            action=AuditAction.SHIFT_STATUS_CHANGED,
            actor_id=actor_id,
            tenant_id=tenant_id,
            payload={
                "previous_status": previous_status,
                "new_status": new_status,
                "reason": reason,
            },
        )

    def record_shift_approved(
        self,
        shift_id: UUID,
        tenant_id: UUID,
        actor_id: UUID,
        assignment_count: int,
        no_show_count: int,
        total_pay_cents: int,
    ) -> AuditEvent:
        """Summary record written once per successful approval."""
        return self._create_audit_event(
            entity_type="Shift",
            entity_id=shift_id,
            action=AuditAction.SHIFT_APPROVED,
            actor_id=actor_id,
            tenant_id=tenant_id,
            payload={
                "assignment_count": assignment_count,
                "no_show_count": no_show_count,
                "total_pay_cents": total_pay_cents,
            },
        )

    def record_assignment_created(
        self,
        assignment_id: UUID,
        tenant_id: UUID,
        actor_id: UUID,
        shift_id: UUID,
        worker_id: UUID,
        forced: bool = False,
    ) -> AuditEvent:
        return self._create_audit_event(
            entity_type="Assignment",
            entity_id=assignment_id,
            action=AuditAction.ASSIGNMENT_CREATED,
            actor_id=actor_id,
            tenant_id=tenant_id,
            payload={
                "shift_id": str(shift_id),
                "worker_id": str(worker_id),
                "forced": forced,
            },
        )

    def record_assignment_status_changed(
        self,
        assignment_id: UUID,
        tenant_id: UUID,
        actor_id: UUID,
        previous_status: str,
        new_status: str,
        verification: dict[str, Any] | None = None,
    ) -> AuditEvent:
        """
        Record a punch-driven status change.

        ``verification`` carries the geofence outcome (verified flag,
        distance, review reason) for the punch that caused the change.
        """
        return self._create_audit_event(
            entity_type="Assignment",
            entity_id=assignment_id,
            action=AuditAction.ASSIGNMENT_STATUS_CHANGED,
            actor_id=actor_id,
            tenant_id=tenant_id,
            payload={
                "previous_status": previous_status,
                "new_status": new_status,
                "verification": verification or {},
            },
        )

    def record_assignment_adjusted(
        self,
        assignment_id: UUID,
        tenant_id: UUID,
        actor_id: UUID,
        changes: dict[str, Any],
        notes: str | None = None,
    ) -> AuditEvent:
        return self._create_audit_event(
            entity_type="Assignment",
            entity_id=assignment_id,
            action=AuditAction.ASSIGNMENT_ADJUSTED,
            actor_id=actor_id,
            tenant_id=tenant_id,
            payload={"changes": changes, "notes": notes},
        )

    def record_assignment_no_show(
        self,
        assignment_id: UUID,
        tenant_id: UUID,
        actor_id: UUID,
        shift_id: UUID,
        worker_id: UUID,
    ) -> AuditEvent:
        return self._create_audit_event(
            entity_type="Assignment",
            entity_id=assignment_id,
            action=AuditAction.ASSIGNMENT_NO_SHOW,
            actor_id=actor_id,
            tenant_id=tenant_id,
            payload={"shift_id": str(shift_id), "worker_id": str(worker_id)},
        )

    def record_availability_created(
        self,
        availability_id: UUID,
        worker_id: UUID,
        availability_type: str,
        start: datetime,
        end: datetime,
    ) -> AuditEvent:
        return self._create_audit_event(
            entity_type="WorkerAvailability",
            entity_id=availability_id,
            action=AuditAction.AVAILABILITY_CREATED,
            actor_id=worker_id,
            payload={
                "availability_type": availability_type,
                "start": start.isoformat(),
                "end": end.isoformat(),
            },
        )

    def record_availability_deleted(self, availability_id: UUID, worker_id: UUID) -> AuditEvent:
        return self._create_audit_event(
            entity_type="WorkerAvailability",
            entity_id=availability_id,
            action=AuditAction.AVAILABILITY_DELETED,
            actor_id=worker_id,
        )

    # -------------------------------------------------------------------------
    # Verification and queries
    # -------------------------------------------------------------------------

    def validate_chain(self) -> bool:
        """
        Walk every event in ``seq`` order and recompute its links.

        Three things must hold for each event: its stored payload still
        hashes to ``payload_hash``, its ``prev_hash`` is the previous
        event's ``hash`` (``None`` for the first), and its ``hash`` matches
        the recomputed link.

        Raises:
            AuditChainBrokenError: At the first event that fails a check.
        """
        previous_hash: str | None = None
        checked = 0
        events = self._session.execute(
            select(AuditEvent).order_by(AuditEvent.seq).execution_options(yield_per=500)
        ).scalars()

        for event in events:
            payload_hash = payload_fingerprint(event.payload or {})
            if payload_hash != event.payload_hash:
                raise self._chain_broken(event, event.payload_hash, payload_hash)
            if event.prev_hash != previous_hash:
                raise self._chain_broken(event, previous_hash or "None", event.prev_hash or "None")

            expected = audit_chain_hash(
                entity_type=event.entity_type,
                entity_id=str(event.entity_id),
                action=AuditAction(event.action).value,
                payload_hash=event.payload_hash,
                prev_hash=event.prev_hash,
            )
            if event.hash != expected:
                raise self._chain_broken(event, expected, event.hash)

            previous_hash = event.hash
            checked += 1

        logger.info("audit_chain_valid", extra={"event_count": checked})
        return True

    @staticmethod
    def _chain_broken(event: AuditEvent, expected: str, found: str) -> AuditChainBrokenError:
        logger.critical(
            "audit_chain_broken",
            extra={"audit_event_id": str(event.id), "seq": event.seq, "audit_action": event.action},
        )
        return AuditChainBrokenError(str(event.id), expected, found)

    def get_trace(self, entity_type: str, entity_id: UUID) -> AuditTrace:
        """History of one shift, assignment or availability window, oldest first."""
        rows = self._session.execute(
            select(AuditEvent)
            .where(AuditEvent.entity_type == entity_type, AuditEvent.entity_id == entity_id)
            .order_by(AuditEvent.seq)
        ).scalars()

        return AuditTrace(
            entity_type=entity_type,
            entity_id=entity_id,
            entries=tuple(
                AuditTraceEntry(
                    seq=row.seq,
                    action=AuditAction(row.action),
                    occurred_at=row.occurred_at,
                    actor_id=row.actor_id,
                    payload=row.payload or {},
                    hash=row.hash,
                )
                for row in rows
            ),
        )

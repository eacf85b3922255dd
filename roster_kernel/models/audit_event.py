"""
AuditEvent: one link in the tamper-evident history of roster changes.

Rows are written only by AuditorService and never change afterwards (see
db/immutability.py).  Each row stores the SHA-256 of its canonical payload
and a chain hash over ``prev_hash``, the entity, the action and that payload
hash, so editing or removing any row breaks every hash after it.
``seq`` comes from the shared ``audit_event`` counter and orders the chain.

Publishing, assignment, each punch, status changes, manager adjustments,
availability edits and approval all append one event.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, BigInteger, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from roster_kernel.db.base import Base
from roster_kernel.db.types import UUIDString


class AuditAction(str, Enum):
    """What happened to the entity.  Each value has a ``record_*`` method on AuditorService."""

    SHIFT_PUBLISHED = "shift.published"
    SHIFT_STATUS_CHANGED = "shift.status_changed"
    SHIFT_APPROVED = "shift.approved"

    ASSIGNMENT_CREATED = "assignment.created"
    ASSIGNMENT_STATUS_CHANGED = "assignment.status_changed"
    ASSIGNMENT_ADJUSTED = "assignment.adjusted"
    ASSIGNMENT_NO_SHOW = "assignment.no_show"

    AVAILABILITY_CREATED = "availability.created"
    AVAILABILITY_DELETED = "availability.deleted"


class AuditEvent(Base):
    """A single chained audit record.  ``prev_hash`` is None only on the first row."""

    __tablename__ = "audit_events"

    __table_args__ = (
        Index("ix_audit_events_entity", "entity_type", "entity_id"),
        Index("ix_audit_events_action", "action"),
        Index("ix_audit_events_tenant", "tenant_id"),
        Index("ix_audit_events_occurred_at", "occurred_at"),
    )

    seq: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True)

    # e.g. "Shift", "Assignment", "WorkerAvailability"
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)

    entity_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    # Availability windows are worker-owned and carry no tenant
    tenant_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    action: Mapped[AuditAction] = mapped_column(String(50), nullable=False)

    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    occurred_at: Mapped[datetime] = mapped_column(nullable=False)

    payload: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    payload_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    prev_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)

    hash: Mapped[str] = mapped_column(String(64), nullable=False)

    def __repr__(self) -> str:
        return f"<AuditEvent {AuditAction(self.action).value} on {self.entity_type}:{self.entity_id}>"

    @property
    def is_genesis(self) -> bool:
        return self.prev_hash is None

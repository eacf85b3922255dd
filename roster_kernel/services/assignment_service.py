"""
AssignmentService -- direct assignment of workers to an existing shift.

Responsibility:
    ``assign_workers`` binds additional workers to one shift outside a
    publish batch, applying the same conflict rules with one relaxation:
    overlaps with the tenant's own shifts are a warning the manager may
    override with ``force``.

Architecture position:
    Kernel > Services -- entry point (``auto_commit``).

Rules:
    - At least one worker id.
    - The shift must exist in the tenant and accept workers (not
      cancelled, completed or approved).
    - Workers already holding a non-cancelled assignment are skipped.
    - Unavailable windows and commitments in other tenants are hard
      failures; neither is overridable.
    - Intra-tenant overlaps return a warning result, unless forced.
    - A published shift that gains workers becomes ``assigned``.
"""

import time
from dataclasses import dataclass
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from roster_kernel.domain.clock import Clock
from roster_kernel.domain.conflicts import ExternalBusy, InternalConflict, Unavailable
from roster_kernel.domain.lifecycle import (
    ASSIGNABLE_SHIFT_STATUSES,
    AssignmentStatus,
    ShiftStatus,
    validate_shift_transition,
)
from roster_kernel.domain.policy import RosterPolicy
from roster_kernel.domain.requests import Actor
from roster_kernel.exceptions import InvalidShiftStateError, ShiftNotFoundError, ValidationError
from roster_kernel.logging_config import LogContext, get_logger
from roster_kernel.models.shift import Assignment, Shift
from roster_kernel.services.auditor_service import AuditorService
from roster_kernel.services.base import BaseService, authorize
from roster_kernel.services.conflict_detector import ConflictDetector
from roster_kernel.services.notification_scheduler import (
    NotificationHandoff,
    NotificationScheduler,
    OutboxNotificationScheduler,
)

logger = get_logger("services.assignment")


@dataclass(frozen=True)
class AssignmentWarning:
    """An intra-tenant overlap the manager may override."""

    worker_id: UUID
    conflicting_shift_id: UUID
    conflicting_title: str
    conflicting_start: str

    @property
    def message(self) -> str:
        return (
            f"Worker {self.worker_id} is already booked for "
            f"'{self.conflicting_title}' at {self.conflicting_start}"
        )


@dataclass(frozen=True)
class AssignWorkersResult:
    assignment_ids: tuple[UUID, ...] = ()
    skipped_worker_ids: tuple[UUID, ...] = ()
    warning: bool = False
    conflicts: tuple[AssignmentWarning, ...] = ()

    @property
    def assigned_count(self) -> int:
        return len(self.assignment_ids)

    @property
    def message(self) -> str:
        if self.warning:
            return "Workers have overlapping shifts. Resend with force=True to override."
        if not self.assignment_ids:
            return "All workers already assigned"
        return f"Assigned {len(self.assignment_ids)} workers"


class AssignmentService(BaseService):
    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        policy: RosterPolicy | None = None,
        notification_scheduler: NotificationScheduler | None = None,
        auto_commit: bool = True,
    ):
        super().__init__(session, clock)
        self._policy = policy or RosterPolicy()
        self._auto_commit = auto_commit
        self._auditor = AuditorService(session, self._clock)
        self._conflicts = ConflictDetector(session, self._policy.scheduling)
        self._notifications = notification_scheduler or OutboxNotificationScheduler(
            session, self._clock, self._policy.notifications
        )

    def assign_workers(
        self,
        tenant_id: UUID,
        shift_id: UUID,
        worker_ids: list[UUID],
        actor: Actor,
        force: bool = False,
    ) -> AssignWorkersResult:
        with LogContext.bind(
            correlation_id=str(uuid4()),
            tenant_id=str(tenant_id),
            actor_id=str(actor.actor_id),
            shift_id=str(shift_id),
        ):
            logger.info(
                "assign_workers_started",
                extra={"worker_count": len(worker_ids), "force": force},
            )
            t0 = time.monotonic()
            try:
                result = self._do_assign(tenant_id, shift_id, worker_ids, actor, force)

                if self._auto_commit:
                    if result.assignment_ids:
                        self.session.commit()
                    else:
                        self.session.rollback()

                logger.info(
                    "assign_workers_completed",
                    extra={
                        "assigned_count": result.assigned_count,
                        "skipped_count": len(result.skipped_worker_ids),
                        "warning": result.warning,
                        "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                    },
                )
                return result

            except Exception:
                if self._auto_commit:
                    self.session.rollback()
                logger.error(
                    "assign_workers_failed",
                    extra={"duration_ms": round((time.monotonic() - t0) * 1000, 2)},
                    exc_info=True,
                )
                raise

    def _do_assign(
        self,
        tenant_id: UUID,
        shift_id: UUID,
        worker_ids: list[UUID],
        actor: Actor,
        force: bool,
    ) -> AssignWorkersResult:
        if not worker_ids:
            raise ValidationError("worker_ids", "at least one worker is required")
        authorize(actor, tenant_id)

        shift = self.session.execute(
            select(Shift)
            .where(Shift.id == shift_id, Shift.tenant_id == tenant_id)
            .with_for_update()
        ).scalar_one_or_none()
        if shift is None:
            raise ShiftNotFoundError(str(shift_id))
        if ShiftStatus(shift.status) not in ASSIGNABLE_SHIFT_STATUSES:
            raise InvalidShiftStateError(str(shift_id), shift.status, "assign_workers")

        requested = list(dict.fromkeys(worker_ids))
        already = set(
            self.session.execute(
                select(Assignment.worker_id).where(
                    Assignment.shift_id == shift_id,
                    Assignment.worker_id.in_(requested),
                    Assignment.status != AssignmentStatus.CANCELLED.value,
                )
            ).scalars()
        )
        to_assign = [w for w in requested if w not in already]
        skipped = tuple(w for w in requested if w in already)
        if not to_assign:
            return AssignWorkersResult(skipped_worker_ids=skipped)

        warnings: list[AssignmentWarning] = []
        results = self._conflicts.find_all(to_assign, shift.start_time, shift.end_time, tenant_id)
        for worker_id, result in results.items():
            if isinstance(result, (Unavailable, ExternalBusy)):
                logger.warning(
                    "assign_workers_hard_conflict",
                    extra={"worker_id": str(worker_id), "conflict_type": type(result).__name__},
                )
                raise result.to_error()
            if isinstance(result, InternalConflict) and not force:
                warnings.append(
                    AssignmentWarning(
                        worker_id=worker_id,
                        conflicting_shift_id=result.shift_id,
                        conflicting_title=result.title,
                        conflicting_start=result.start.isoformat(),
                    )
                )

        if warnings:
            return AssignWorkersResult(
                skipped_worker_ids=skipped,
                warning=True,
                conflicts=tuple(warnings),
            )

        assignments = [
            Assignment(
                shift_id=shift.id,
                worker_id=worker_id,
                status=AssignmentStatus.ACTIVE.value,
                rate_snapshot_cents=shift.price_cents,
                created_by_id=actor.actor_id,
            )
            for worker_id in to_assign
        ]
        self.session.add_all(assignments)
        self.session.flush()

        for assignment in assignments:
            self._auditor.record_assignment_created(
                assignment_id=assignment.id,
                tenant_id=tenant_id,
                actor_id=actor.actor_id,
                shift_id=shift.id,
                worker_id=assignment.worker_id,
                forced=force and isinstance(results[assignment.worker_id], InternalConflict),
            )

        if ShiftStatus(shift.status) is ShiftStatus.PUBLISHED:
            previous = shift.status
            shift.status = validate_shift_transition(
                str(shift.id), ShiftStatus.PUBLISHED, ShiftStatus.ASSIGNED
            ).value
            shift.updated_by_id = actor.actor_id
            self.session.flush()
            self._auditor.record_shift_status_changed(
                shift_id=shift.id,
                tenant_id=tenant_id,
                actor_id=actor.actor_id,
                previous_status=previous,
                new_status=shift.status,
                reason="workers_assigned",
            )

        if ShiftStatus(shift.status) is not ShiftStatus.DRAFT:
            location_timezone = shift.location.timezone
            self._notifications.schedule(
                [
                    NotificationHandoff(
                        tenant_id=tenant_id,
                        worker_id=a.worker_id,
                        shift_id=shift.id,
                        schedule_group_id=shift.schedule_group_id,
                        shift_start=shift.start_time,
                        timezone=location_timezone,
                    )
                    for a in assignments
                ]
            )

        return AssignWorkersResult(
            assignment_ids=tuple(a.id for a in assignments),
            skipped_worker_ids=skipped,
        )

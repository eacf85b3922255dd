"""
ShiftService -- out-of-band shift status changes and the shared
compare-and-swap helper used by every status write.

Responsibility:
    ``transition`` moves a shift along SHIFT_TRANSITIONS on a manager's
    request (publish a draft, cancel, reopen).  ``swap_shift_status`` is the
    single conditional UPDATE through which the ledger, the approval engine
    and this service change a shift's status.

Architecture position:
    Kernel > Services -- entry point (``auto_commit``).

Invariants enforced:
    - Status writes are ``UPDATE shifts SET status = :new WHERE id = :id AND
      status IN (:expected)``; zero affected rows means a concurrent writer
      got there first.
    - Approval only happens through ApprovalEngine; ``transition`` refuses
      to target ``approved``.
    - Cancelling a shift cancels its active and in-progress assignments and
      its pending notifications.

Failure modes:
    - InvalidShiftTransitionError, RaceConditionError, ShiftNotFoundError,
      ForbiddenError.
"""

import time
from collections.abc import Collection
from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from roster_kernel.domain.clock import Clock
from roster_kernel.domain.lifecycle import AssignmentStatus, ShiftStatus, validate_shift_transition
from roster_kernel.domain.policy import RosterPolicy
from roster_kernel.domain.requests import Actor
from roster_kernel.exceptions import (
    InvalidShiftTransitionError,
    RaceConditionError,
    ShiftNotFoundError,
)
from roster_kernel.logging_config import LogContext, get_logger
from roster_kernel.models.shift import Assignment, Shift
from roster_kernel.services.auditor_service import AuditorService
from roster_kernel.services.base import BaseService, authorize
from roster_kernel.services.notification_scheduler import (
    NotificationHandoff,
    NotificationScheduler,
    OutboxNotificationScheduler,
)

logger = get_logger("services.shift")

_CANCELLABLE_ASSIGNMENT_STATUSES = (
    AssignmentStatus.ACTIVE.value,
    AssignmentStatus.IN_PROGRESS.value,
)


def swap_shift_status(
    session: Session,
    shift_id: UUID,
    expected: Collection[ShiftStatus],
    new_status: ShiftStatus,
    **values: Any,
) -> bool:
    """
    Conditionally move a shift to ``new_status``.

    Returns:
        True if this call made the change, False if the shift was no longer
        in one of the ``expected`` statuses.
    """
    result = session.execute(
        update(Shift)
        .where(
            Shift.id == shift_id,
            Shift.status.in_([s.value for s in expected]),
        )
        .values(status=new_status.value, **values)
    )
    return result.rowcount == 1


class ShiftService(BaseService):
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
        self._notifications = notification_scheduler or OutboxNotificationScheduler(
            session, self._clock, self._policy.notifications
        )

    def get_shift(self, tenant_id: UUID, shift_id: UUID) -> Shift:
        shift = self.session.execute(
            select(Shift)
            .where(Shift.id == shift_id, Shift.tenant_id == tenant_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if shift is None:
            raise ShiftNotFoundError(str(shift_id))
        return shift

    def transition(
        self,
        tenant_id: UUID,
        shift_id: UUID,
        to_status: ShiftStatus | str,
        actor: Actor,
        reason: str | None = None,
    ) -> Shift:
        target = ShiftStatus(to_status)
        with LogContext.bind(
            correlation_id=str(uuid4()),
            tenant_id=str(tenant_id),
            actor_id=str(actor.actor_id),
            shift_id=str(shift_id),
        ):
            logger.info("shift_transition_started", extra={"to_status": target.value})
            t0 = time.monotonic()
            try:
                shift = self._do_transition(tenant_id, shift_id, target, actor, reason)
                if self._auto_commit:
                    self.session.commit()
                logger.info(
                    "shift_transition_completed",
                    extra={
                        "to_status": target.value,
                        "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                    },
                )
                return shift
            except Exception:
                if self._auto_commit:
                    self.session.rollback()
                logger.error(
                    "shift_transition_failed",
                    extra={"duration_ms": round((time.monotonic() - t0) * 1000, 2)},
                    exc_info=True,
                )
                raise

    def _do_transition(
        self,
        tenant_id: UUID,
        shift_id: UUID,
        target: ShiftStatus,
        actor: Actor,
        reason: str | None,
    ) -> Shift:
        authorize(actor, tenant_id)
        shift = self.get_shift(tenant_id, shift_id)
        current = ShiftStatus(shift.status)

        if target is ShiftStatus.APPROVED:
            raise InvalidShiftTransitionError(str(shift_id), current.value, target.value)
        validate_shift_transition(str(shift_id), current, target)

        now = self._clock.now()
        values: dict[str, Any] = {"updated_by_id": actor.actor_id}
        if target is ShiftStatus.PUBLISHED and shift.published_at is None:
            values["published_at"] = now

        if not swap_shift_status(self.session, shift.id, (current,), target, **values):
            logger.warning(
                "shift_transition_race_lost",
                extra={"from_status": current.value, "to_status": target.value},
            )
            raise RaceConditionError("Shift", str(shift_id))

        if target is ShiftStatus.CANCELLED:
            self._cancel_assignments(shift.id, actor.actor_id, now)
            self._notifications.cancel_for_shift(shift.id)
        elif target is ShiftStatus.PUBLISHED and current is ShiftStatus.DRAFT:
            self._announce(shift)

        self._auditor.record_shift_status_changed(
            shift_id=shift.id,
            tenant_id=tenant_id,
            actor_id=actor.actor_id,
            previous_status=current.value,
            new_status=target.value,
            reason=reason,
        )
        return self.get_shift(tenant_id, shift_id)

    def _cancel_assignments(self, shift_id: UUID, actor_id: UUID, now: datetime) -> int:
        result = self.session.execute(
            update(Assignment)
            .where(
                Assignment.shift_id == shift_id,
                Assignment.status.in_(_CANCELLABLE_ASSIGNMENT_STATUSES),
            )
            .values(status=AssignmentStatus.CANCELLED.value, updated_by_id=actor_id)
        )
        logger.info(
            "shift_assignments_cancelled",
            extra={"shift_id": str(shift_id), "count": result.rowcount},
        )
        return result.rowcount

    def _announce(self, shift: Shift) -> None:
        assignments = self.session.execute(
            select(Assignment).where(
                Assignment.shift_id == shift.id,
                Assignment.status != AssignmentStatus.CANCELLED.value,
            )
        ).scalars().all()
        self._notifications.schedule(
            [
                NotificationHandoff(
                    tenant_id=shift.tenant_id,
                    worker_id=a.worker_id,
                    shift_id=shift.id,
                    schedule_group_id=shift.schedule_group_id,
                    shift_start=shift.start_time,
                    timezone=shift.location.timezone,
                )
                for a in assignments
            ]
        )

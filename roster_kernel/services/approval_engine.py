"""
ApprovalEngine -- all-or-nothing timesheet finalization for one shift.

Responsibility:
    Classifies every non-cancelled assignment on a completed shift, computes
    billable minutes and gross pay, writes the results and moves the shift
    to ``approved`` exactly once.

Architecture position:
    Kernel > Services -- entry point (``auto_commit``).
    Classification and pay arithmetic: ``roster_engines.timesheet``.

Invariants enforced:
    - Dirty data on any assignment blocks the whole approval before a
      single row is written.
    - The shift status change is a compare-and-swap
      (``WHERE status = 'completed'``); a zero row count means another
      request won, and the whole transaction is rolled back.
    - Pay is integer cents, rounded up.

Failure modes:
    - ForbiddenError: actor outside the tenant or without an approver role.
    - ShiftNotFoundError.
    - InvalidShiftTransitionError: shift not in a pre-approval status.
    - DirtyTimesheetError: lists every offending worker with its reason.
    - RaceConditionError: lost the compare-and-swap; safe to retry.

Audit relevance:
    ``shift.approved`` summarizes counts and total pay; one
    ``assignment.no_show`` event per no-show.
"""

import time
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from roster_engines.timesheet import TimesheetClass, TimesheetComputation, compute_timesheet
from roster_kernel.domain.clock import Clock
from roster_kernel.domain.lifecycle import (
    PRE_APPROVAL_STATUSES,
    AssignmentStatus,
    ShiftStatus,
)
from roster_kernel.domain.policy import RosterPolicy
from roster_kernel.domain.requests import Actor
from roster_kernel.exceptions import (
    DirtyTimesheetError,
    InvalidShiftTransitionError,
    RaceConditionError,
    ShiftNotFoundError,
)
from roster_kernel.logging_config import LogContext, get_logger
from roster_kernel.models.shift import Assignment, Shift
from roster_kernel.services.auditor_service import AuditorService
from roster_kernel.services.base import BaseService, authorize
from roster_kernel.services.shift_service import swap_shift_status

logger = get_logger("services.approval")


@dataclass(frozen=True)
class AssignmentOutcome:
    assignment_id: UUID
    worker_id: UUID
    status: AssignmentStatus
    payable_minutes: int
    break_minutes: int
    gross_pay_cents: int
    notes: tuple[str, ...] = ()


@dataclass(frozen=True)
class ApprovalResult:
    shift_id: UUID
    approved_at: datetime
    outcomes: tuple[AssignmentOutcome, ...]

    @property
    def approved_count(self) -> int:
        return sum(1 for o in self.outcomes if o.status is AssignmentStatus.COMPLETED)

    @property
    def no_show_count(self) -> int:
        return sum(1 for o in self.outcomes if o.status is AssignmentStatus.NO_SHOW)

    @property
    def total_pay_cents(self) -> int:
        return sum(o.gross_pay_cents for o in self.outcomes)

    @property
    def total_payable_minutes(self) -> int:
        return sum(o.payable_minutes for o in self.outcomes)


class ApprovalEngine(BaseService):
    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        policy: RosterPolicy | None = None,
        auto_commit: bool = True,
    ):
        super().__init__(session, clock)
        self._policy = policy or RosterPolicy()
        self._auto_commit = auto_commit
        self._auditor = AuditorService(session, self._clock)

    def approve_shift(self, tenant_id: UUID, shift_id: UUID, actor: Actor) -> ApprovalResult:
        with LogContext.bind(
            correlation_id=str(uuid4()),
            tenant_id=str(tenant_id),
            actor_id=str(actor.actor_id),
            shift_id=str(shift_id),
        ):
            logger.info("approve_shift_started")
            t0 = time.monotonic()
            try:
                result = self._do_approve(tenant_id, shift_id, actor)
                if self._auto_commit:
                    self.session.commit()
                logger.info(
                    "approve_shift_completed",
                    extra={
                        "approved_count": result.approved_count,
                        "no_show_count": result.no_show_count,
                        "total_pay_cents": result.total_pay_cents,
                        "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                    },
                )
                return result
            except Exception:
                if self._auto_commit:
                    self.session.rollback()
                logger.error(
                    "approve_shift_failed",
                    extra={"duration_ms": round((time.monotonic() - t0) * 1000, 2)},
                    exc_info=True,
                )
                raise

    def _do_approve(self, tenant_id: UUID, shift_id: UUID, actor: Actor) -> ApprovalResult:
        authorize(actor, tenant_id, self._policy.approval.approver_roles)

        shift = self.session.execute(
            select(Shift)
            .where(Shift.id == shift_id, Shift.tenant_id == tenant_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if shift is None:
            raise ShiftNotFoundError(str(shift_id))

        status = ShiftStatus(shift.status)
        if status not in PRE_APPROVAL_STATUSES:
            raise InvalidShiftTransitionError(str(shift_id), status.value, ShiftStatus.APPROVED.value)

        assignments = self.session.execute(
            select(Assignment)
            .where(
                Assignment.shift_id == shift.id,
                Assignment.status != AssignmentStatus.CANCELLED.value,
            )
            .order_by(Assignment.created_at, Assignment.id)
            .execution_options(populate_existing=True)
        ).scalars().all()

        computations = [(a, self._classify(shift, a)) for a in assignments]

        dirty = {str(a.worker_id): c.dirty_reason for a, c in computations if c.is_dirty}
        if dirty:
            logger.warning(
                "approval_blocked_dirty_data",
                extra={"dirty_count": len(dirty), "worker_ids": sorted(dirty)},
            )
            raise DirtyTimesheetError(str(shift_id), sorted(dirty), dirty)

        now = self._clock.now()
        outcomes = tuple(self._apply(a, c, now, actor.actor_id) for a, c in computations)
        self.session.flush()

        swapped = swap_shift_status(
            self.session,
            shift.id,
            PRE_APPROVAL_STATUSES,
            ShiftStatus.APPROVED,
            approved_at=now,
            approved_by_id=actor.actor_id,
            updated_by_id=actor.actor_id,
        )
        if not swapped:
            logger.warning("approval_race_lost")
            raise RaceConditionError("Shift", str(shift_id))

        result = ApprovalResult(shift_id=shift.id, approved_at=now, outcomes=outcomes)

        self._auditor.record_shift_approved(
            shift_id=shift.id,
            tenant_id=tenant_id,
            actor_id=actor.actor_id,
            assignment_count=len(outcomes),
            no_show_count=result.no_show_count,
            total_pay_cents=result.total_pay_cents,
        )
        for outcome in outcomes:
            if outcome.status is AssignmentStatus.NO_SHOW:
                self._auditor.record_assignment_no_show(
                    assignment_id=outcome.assignment_id,
                    tenant_id=tenant_id,
                    actor_id=actor.actor_id,
                    shift_id=shift.id,
                    worker_id=outcome.worker_id,
                )
        return result

    def _classify(self, shift: Shift, assignment: Assignment) -> TimesheetComputation:
        approval = self._policy.approval
        return compute_timesheet(
            scheduled_start=shift.start_time,
            scheduled_end=shift.end_time,
            rate_cents=assignment.rate_snapshot_cents,
            actual_clock_in=assignment.actual_clock_in,
            actual_clock_out=assignment.actual_clock_out,
            break_minutes=assignment.break_minutes or 0,
            grace_minutes=approval.grace_minutes,
            end_grace_minutes=approval.end_grace_minutes,
            late_note_minutes=approval.late_clock_out_note_minutes,
        )

    def _apply(
        self,
        assignment: Assignment,
        computation: TimesheetComputation,
        now: datetime,
        actor_id: UUID,
    ) -> AssignmentOutcome:
        if computation.classification is TimesheetClass.NO_SHOW:
            status = AssignmentStatus.NO_SHOW
            assignment.break_minutes = 0
        else:
            status = AssignmentStatus.COMPLETED
            assignment.effective_clock_in = computation.effective_clock_in
            assignment.effective_clock_out = computation.effective_clock_out
            assignment.break_minutes = computation.break_minutes

        assignment.status = status.value
        assignment.payable_minutes = computation.billable_minutes
        assignment.gross_pay_cents = computation.gross_pay_cents
        assignment.approval_notes = "; ".join(computation.notes) or None
        assignment.approved_at = now
        assignment.updated_by_id = actor_id

        return AssignmentOutcome(
            assignment_id=assignment.id,
            worker_id=assignment.worker_id,
            status=status,
            payable_minutes=computation.billable_minutes,
            break_minutes=assignment.break_minutes,
            gross_pay_cents=computation.gross_pay_cents,
            notes=computation.notes,
        )

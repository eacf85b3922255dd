"""
AssignmentLedger -- clock-in / clock-out recording and manager corrections.

Responsibility:
    Records raw and effective punches on an assignment, verifies them
    against the location geofence, and keeps assignment and shift statuses
    in step with the punches.  Managers may correct punches through
    ``adjust_timesheet`` until the shift is approved.

Architecture position:
    Kernel > Services -- entry point (``auto_commit``).
    Pure computation (geofence, snapping) lives in ``roster_engines``.

Invariants enforced:
    - A punch is rejected before any write when the device clock is skewed
      or the reported accuracy is too poor.
    - Clock-in and clock-out are each recorded at most once: both are
      conditional UPDATEs guarded on the column still being NULL.
    - Geofence failure never blocks a punch; it sets ``needs_review``.
    - Effective clock-in snaps to the scheduled start inside the grace
      window.  Effective clock-out is the actual clock-out, snapped up to the
      scheduled end when it falls inside the early-leave grace window.

Failure modes:
    - ReplayDetectedError, LowAccuracyError: anti-spoofing checks.
    - ShiftNotFoundError, ForbiddenError (worker not assigned).
    - InvalidShiftStateError: shift does not accept punches.
    - AlreadyClockedInError, NotClockedInError, AlreadyClockedOutError,
      ClockInTooEarlyError.

Audit relevance:
    Every status change writes ``assignment.status_changed`` with the
    verification outcome; shift status changes write
    ``shift.status_changed``; corrections write ``assignment.adjusted``.
"""

import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from roster_engines.geofence import (
    GeofenceVerdict,
    check_geofence,
    clock_skew_seconds,
    is_accuracy_acceptable,
)
from roster_engines.timesheet import effective_clock_in, effective_clock_out
from roster_kernel.domain.clock import Clock
from roster_kernel.domain.lifecycle import (
    PUNCHABLE_SHIFT_STATUSES,
    AssignmentStatus,
    ShiftStatus,
)
from roster_kernel.domain.policy import RosterPolicy
from roster_kernel.domain.requests import Actor, PunchRequest, TimesheetAdjustment
from roster_kernel.exceptions import (
    AlreadyClockedInError,
    AlreadyClockedOutError,
    AssignmentNotFoundError,
    ClockInTooEarlyError,
    ForbiddenError,
    InvalidShiftStateError,
    LowAccuracyError,
    NotClockedInError,
    ReplayDetectedError,
    ShiftNotFoundError,
    ValidationError,
)
from roster_kernel.logging_config import LogContext, get_logger
from roster_kernel.models.shift import Assignment, Shift
from roster_kernel.services.auditor_service import AuditorService
from roster_kernel.services.base import BaseService, authorize
from roster_kernel.services.shift_service import swap_shift_status

logger = get_logger("services.ledger")

GPS_METHOD = "gps"
MANUAL_OVERRIDE_METHOD = "manual_override"

_OPEN_ASSIGNMENT_STATUSES = (
    AssignmentStatus.ACTIVE.value,
    AssignmentStatus.IN_PROGRESS.value,
)


@dataclass(frozen=True)
class PunchResult:
    """Acknowledgment of one punch, including the verification outcome."""

    assignment_id: UUID
    shift_id: UUID
    status: AssignmentStatus
    actual_time: datetime
    effective_time: datetime
    verified: bool
    distance_meters: int | None
    needs_review: bool
    review_reason: str | None = None


class AssignmentLedger(BaseService):
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

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def clock_in(self, request: PunchRequest) -> PunchResult:
        return self._run("clock_in", request.shift_id, request.worker_id, self._do_clock_in, request)

    def clock_out(self, request: PunchRequest) -> PunchResult:
        return self._run("clock_out", request.shift_id, request.worker_id, self._do_clock_out, request)

    def adjust_timesheet(
        self,
        tenant_id: UUID,
        adjustment: TimesheetAdjustment,
        actor: Actor,
    ) -> Assignment:
        with LogContext.bind(
            correlation_id=str(uuid4()),
            tenant_id=str(tenant_id),
            actor_id=str(actor.actor_id),
        ):
            logger.info(
                "adjust_timesheet_started",
                extra={"assignment_id": str(adjustment.assignment_id)},
            )
            t0 = time.monotonic()
            try:
                assignment = self._do_adjust(tenant_id, adjustment, actor)
                if self._auto_commit:
                    self.session.commit()
                logger.info(
                    "adjust_timesheet_completed",
                    extra={
                        "assignment_id": str(assignment.id),
                        "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                    },
                )
                return assignment
            except Exception:
                if self._auto_commit:
                    self.session.rollback()
                logger.error(
                    "adjust_timesheet_failed",
                    extra={"duration_ms": round((time.monotonic() - t0) * 1000, 2)},
                    exc_info=True,
                )
                raise

    def _run(self, operation, shift_id, worker_id, handler, request) -> PunchResult:
        with LogContext.bind(
            correlation_id=str(uuid4()),
            actor_id=str(worker_id),
            shift_id=str(shift_id),
        ):
            logger.info(f"{operation}_started")
            t0 = time.monotonic()
            try:
                result = handler(request)
                if self._auto_commit:
                    self.session.commit()
                logger.info(
                    f"{operation}_completed",
                    extra={
                        "assignment_id": str(result.assignment_id),
                        "verified": result.verified,
                        "needs_review": result.needs_review,
                        "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                    },
                )
                return result
            except Exception:
                if self._auto_commit:
                    self.session.rollback()
                logger.error(
                    f"{operation}_failed",
                    extra={"duration_ms": round((time.monotonic() - t0) * 1000, 2)},
                    exc_info=True,
                )
                raise

    # ------------------------------------------------------------------
    # Punches
    # ------------------------------------------------------------------

    def _do_clock_in(self, request: PunchRequest) -> PunchResult:
        now = self._clock.now()
        self._check_device(request, now)
        shift = self._load_punchable_shift(request.shift_id, "clock_in")
        assignment = self._load_assignment(shift, request.worker_id)

        if assignment.actual_clock_in is not None:
            raise AlreadyClockedInError(str(assignment.id), assignment.actual_clock_in)

        earliest = shift.start_time - timedelta(
            minutes=self._policy.punch.early_clock_in_buffer_minutes
        )
        if now < earliest:
            raise ClockInTooEarlyError(str(shift.id), earliest)

        verdict = self._verify(shift, request)
        effective = effective_clock_in(now, shift.start_time, self._policy.punch.grace_minutes)
        previous = assignment.status

        result = self.session.execute(
            update(Assignment)
            .where(Assignment.id == assignment.id, Assignment.actual_clock_in.is_(None))
            .values(
                actual_clock_in=now,
                effective_clock_in=effective,
                clock_in_latitude=request.coordinates.latitude,
                clock_in_longitude=request.coordinates.longitude,
                clock_in_distance_meters=verdict.distance_meters,
                clock_in_verified=verdict.verified,
                clock_in_method=GPS_METHOD,
                needs_review=verdict.needs_review,
                review_reason=verdict.review_reason,
                status=AssignmentStatus.IN_PROGRESS.value,
                updated_by_id=request.worker_id,
            )
            .execution_options(synchronize_session="fetch")
        )
        if result.rowcount != 1:
            self.session.refresh(assignment)
            raise AlreadyClockedInError(str(assignment.id), assignment.actual_clock_in)

        if verdict.needs_review:
            logger.warning(
                "punch_flagged_for_review",
                extra={"assignment_id": str(assignment.id), "reason": verdict.review_reason},
            )

        self._auditor.record_assignment_status_changed(
            assignment_id=assignment.id,
            tenant_id=shift.tenant_id,
            actor_id=request.worker_id,
            previous_status=previous,
            new_status=AssignmentStatus.IN_PROGRESS.value,
            verification=_verification_payload("clock_in", verdict),
        )
        self._start_shift(shift, request.worker_id)

        return PunchResult(
            assignment_id=assignment.id,
            shift_id=shift.id,
            status=AssignmentStatus.IN_PROGRESS,
            actual_time=now,
            effective_time=effective,
            verified=verdict.verified,
            distance_meters=verdict.distance_meters,
            needs_review=verdict.needs_review,
            review_reason=verdict.review_reason,
        )

    def _do_clock_out(self, request: PunchRequest) -> PunchResult:
        now = self._clock.now()
        self._check_device(request, now)
        shift = self._load_punchable_shift(request.shift_id, "clock_out", lock=True)
        assignment = self._load_assignment(shift, request.worker_id)

        if assignment.actual_clock_in is None:
            raise NotClockedInError(str(assignment.id))

        verdict = self._verify(shift, request)
        effective = effective_clock_out(
            now, shift.end_time, self._policy.approval.end_grace_minutes
        )
        previous = assignment.status
        needs_review = assignment.needs_review or verdict.needs_review
        review_reason = assignment.review_reason or verdict.review_reason

        result = self.session.execute(
            update(Assignment)
            .where(
                Assignment.id == assignment.id,
                Assignment.actual_clock_in.is_not(None),
                Assignment.actual_clock_out.is_(None),
            )
            .values(
                actual_clock_out=now,
                effective_clock_out=effective,
                clock_out_latitude=request.coordinates.latitude,
                clock_out_longitude=request.coordinates.longitude,
                clock_out_distance_meters=verdict.distance_meters,
                clock_out_verified=verdict.verified,
                clock_out_method=GPS_METHOD,
                needs_review=needs_review,
                review_reason=review_reason,
                status=AssignmentStatus.COMPLETED.value,
                updated_by_id=request.worker_id,
            )
            .execution_options(synchronize_session="fetch")
        )
        if result.rowcount != 1:
            raise AlreadyClockedOutError(str(assignment.id))

        self._auditor.record_assignment_status_changed(
            assignment_id=assignment.id,
            tenant_id=shift.tenant_id,
            actor_id=request.worker_id,
            previous_status=previous,
            new_status=AssignmentStatus.COMPLETED.value,
            verification=_verification_payload("clock_out", verdict),
        )
        self._complete_shift_if_done(shift, request.worker_id)

        return PunchResult(
            assignment_id=assignment.id,
            shift_id=shift.id,
            status=AssignmentStatus.COMPLETED,
            actual_time=now,
            effective_time=effective,
            verified=verdict.verified,
            distance_meters=verdict.distance_meters,
            needs_review=needs_review,
            review_reason=review_reason,
        )

    def _check_device(self, request: PunchRequest, now: datetime) -> None:
        punch = self._policy.punch
        skew = clock_skew_seconds(request.device_timestamp, now)
        if skew > punch.max_clock_skew_minutes * 60:
            logger.warning("punch_replay_detected", extra={"skew_seconds": skew})
            raise ReplayDetectedError(skew, punch.max_clock_skew_minutes * 60)
        accuracy = request.coordinates.accuracy_meters
        if not is_accuracy_acceptable(accuracy, punch.max_accuracy_meters):
            raise LowAccuracyError(accuracy, punch.max_accuracy_meters)

    def _load_punchable_shift(
        self, shift_id: UUID, operation: str, lock: bool = False
    ) -> Shift:
        """Load the shift.  ``lock`` takes its row lock, which serializes
        clock-outs on one shift so the last one sees every other finished."""
        stmt = select(Shift).where(Shift.id == shift_id)
        if lock:
            stmt = stmt.with_for_update()
        shift = self.session.execute(
            stmt.execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if shift is None:
            raise ShiftNotFoundError(str(shift_id))
        if ShiftStatus(shift.status) not in PUNCHABLE_SHIFT_STATUSES:
            raise InvalidShiftStateError(str(shift_id), shift.status, operation)
        return shift

    def _load_assignment(self, shift: Shift, worker_id: UUID) -> Assignment:
        assignment = self.session.execute(
            select(Assignment)
            .where(
                Assignment.shift_id == shift.id,
                Assignment.worker_id == worker_id,
                Assignment.status != AssignmentStatus.CANCELLED.value,
            )
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if assignment is None:
            raise ForbiddenError("worker is not assigned to this shift")
        return assignment

    def _verify(self, shift: Shift, request: PunchRequest) -> GeofenceVerdict:
        location = shift.location
        return check_geofence(
            request.coordinates.latitude,
            request.coordinates.longitude,
            location.latitude,
            location.longitude,
            location.geofence_radius_meters or self._policy.punch.default_geofence_radius_meters,
        )

    # ------------------------------------------------------------------
    # Shift status follow-through
    # ------------------------------------------------------------------

    def _start_shift(self, shift: Shift, actor_id: UUID) -> None:
        previous = ShiftStatus(shift.status)
        if previous is ShiftStatus.IN_PROGRESS:
            return
        swapped = swap_shift_status(
            self.session,
            shift.id,
            (ShiftStatus.PUBLISHED, ShiftStatus.ASSIGNED),
            ShiftStatus.IN_PROGRESS,
            updated_by_id=actor_id,
        )
        if swapped:
            self._auditor.record_shift_status_changed(
                shift_id=shift.id,
                tenant_id=shift.tenant_id,
                actor_id=actor_id,
                previous_status=previous.value,
                new_status=ShiftStatus.IN_PROGRESS.value,
                reason="first_clock_in",
            )

    def _complete_shift_if_done(self, shift: Shift, actor_id: UUID) -> None:
        open_count = self.session.execute(
            select(func.count())
            .select_from(Assignment)
            .where(
                Assignment.shift_id == shift.id,
                Assignment.status.in_(_OPEN_ASSIGNMENT_STATUSES),
            )
        ).scalar_one()
        if open_count:
            return
        swapped = swap_shift_status(
            self.session,
            shift.id,
            (ShiftStatus.IN_PROGRESS,),
            ShiftStatus.COMPLETED,
            updated_by_id=actor_id,
        )
        if swapped:
            self._auditor.record_shift_status_changed(
                shift_id=shift.id,
                tenant_id=shift.tenant_id,
                actor_id=actor_id,
                previous_status=ShiftStatus.IN_PROGRESS.value,
                new_status=ShiftStatus.COMPLETED.value,
                reason="all_assignments_finished",
            )

    # ------------------------------------------------------------------
    # Manager corrections
    # ------------------------------------------------------------------

    def _do_adjust(
        self,
        tenant_id: UUID,
        adjustment: TimesheetAdjustment,
        actor: Actor,
    ) -> Assignment:
        authorize(actor, tenant_id)

        row = self.session.execute(
            select(Assignment, Shift)
            .join(Shift, Assignment.shift_id == Shift.id)
            .where(Assignment.id == adjustment.assignment_id, Shift.tenant_id == tenant_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).one_or_none()
        if row is None:
            raise AssignmentNotFoundError(str(adjustment.assignment_id))
        assignment, shift = row

        status = ShiftStatus(shift.status)
        if status in (ShiftStatus.APPROVED, ShiftStatus.CANCELLED) or assignment.is_approved:
            raise InvalidShiftStateError(str(shift.id), shift.status, "adjust_timesheet")
        if assignment.status == AssignmentStatus.CANCELLED.value:
            raise InvalidShiftStateError(str(shift.id), assignment.status, "adjust_timesheet")

        clock_in = adjustment.clock_in or assignment.actual_clock_in
        clock_out = adjustment.clock_out or assignment.actual_clock_out
        if clock_out is not None and clock_in is None:
            raise ValidationError("clock_in", "clock-in is required when clock-out is set")
        if clock_in is not None and clock_out is not None and clock_out <= clock_in:
            raise ValidationError("clock_out", "clock-out must be after clock-in")

        changes: dict[str, Any] = {}

        def _change(field: str, value: Any) -> None:
            before = getattr(assignment, field)
            if before != value:
                changes[field] = {"from": before, "to": value}
                setattr(assignment, field, value)

        grace = self._policy.punch.grace_minutes
        end_grace = self._policy.approval.end_grace_minutes
        if adjustment.clock_in is not None:
            _change("actual_clock_in", adjustment.clock_in)
            _change("effective_clock_in", effective_clock_in(adjustment.clock_in, shift.start_time, grace))
            assignment.clock_in_method = MANUAL_OVERRIDE_METHOD
            assignment.clock_in_verified = False
        if adjustment.clock_out is not None:
            _change("actual_clock_out", adjustment.clock_out)
            _change(
                "effective_clock_out",
                effective_clock_out(adjustment.clock_out, shift.end_time, end_grace),
            )
            assignment.clock_out_method = MANUAL_OVERRIDE_METHOD
            assignment.clock_out_verified = False
        if adjustment.break_minutes is not None:
            _change("break_minutes", adjustment.break_minutes)

        previous_status = assignment.status
        if clock_in is not None and clock_out is not None:
            _change("status", AssignmentStatus.COMPLETED.value)
        elif clock_in is not None:
            _change("status", AssignmentStatus.IN_PROGRESS.value)

        assignment.needs_review = False
        assignment.review_reason = None
        assignment.adjusted_by_id = actor.actor_id
        assignment.adjusted_at = self._clock.now()
        assignment.updated_by_id = actor.actor_id
        self.session.flush()

        self._auditor.record_assignment_adjusted(
            assignment_id=assignment.id,
            tenant_id=tenant_id,
            actor_id=actor.actor_id,
            changes=changes,
            notes=adjustment.notes,
        )

        if assignment.status != previous_status:
            if assignment.status == AssignmentStatus.IN_PROGRESS.value:
                self._start_shift(shift, actor.actor_id)
            elif assignment.status == AssignmentStatus.COMPLETED.value:
                self._start_shift(shift, actor.actor_id)
                self._complete_shift_if_done(shift, actor.actor_id)

        return assignment


def _verification_payload(punch: str, verdict: GeofenceVerdict) -> dict[str, Any]:
    return {
        "punch": punch,
        "verified": verdict.verified,
        "distance_meters": verdict.distance_meters,
        "radius_meters": verdict.radius_meters,
        "review_reason": verdict.review_reason,
    }

"""
ConflictDetector -- double-booking and unavailability checks.

Responsibility:
    Decides whether a worker already has a competing commitment during a
    candidate window: an assignment in the same tenant, a commitment in
    another tenant, or a declared unavailable window.

Architecture position:
    Kernel > Services -- read-only queries plus the pure overlap engine.
    Used by ScheduleCompiler (batch mode) and AssignmentService (single).

Invariants enforced:
    - Only non-cancelled assignments on non-cancelled shifts count.
    - Overlap is half-open: ``existing.start < end and existing.end > start``.
    - Commitments in another tenant are reported as ``ExternalBusy`` with no
      title, start or id.  Confidentiality between tenants sharing a worker
      pool depends on this.
    - Batch mode issues exactly two prefetch queries regardless of the
      number of workers or dates, then checks in memory, including against
      candidates already staged by the same batch.

Precedence when several conflicts apply:
    Unavailable > ExternalBusy > InternalConflict (existing) > in-batch.
"""

from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from roster_engines.overlap import BatchOverlapTracker, find_first_overlap
from roster_kernel.domain.conflicts import (
    ConflictResult,
    ExternalBusy,
    InternalConflict,
    NoConflict,
    Unavailable,
)
from roster_kernel.domain.lifecycle import AssignmentStatus, AvailabilityType, ShiftStatus
from roster_kernel.domain.policy import SchedulingPolicy
from roster_kernel.logging_config import get_logger
from roster_kernel.models.availability import WorkerAvailability
from roster_kernel.models.shift import Assignment, Shift
from roster_kernel.services.base import BaseService

logger = get_logger("services.conflict_detector")


@dataclass(frozen=True)
class Commitment:
    """An existing assignment's shift window, as seen by the detector."""

    worker_id: UUID
    shift_id: UUID
    tenant_id: UUID
    title: str
    start: datetime
    end: datetime


@dataclass(frozen=True)
class BlockedWindow:
    worker_id: UUID
    start: datetime
    end: datetime
    reason: str | None


@dataclass(frozen=True)
class StagedShift:
    shift_id: UUID
    title: str


class ConflictSnapshot:
    """
    Prefetched commitments for a worker set over a time span.

    Contract:
        ``check`` then ``stage`` for every candidate, in order.  Checks are
        only meaningful for windows inside the prefetched span.
    """

    def __init__(
        self,
        tenant_id: UUID,
        commitments: Iterable[Commitment],
        blocked: Iterable[BlockedWindow],
    ):
        self.tenant_id = tenant_id
        self._commitments: dict[UUID, list[Commitment]] = defaultdict(list)
        self._blocked: dict[UUID, list[BlockedWindow]] = defaultdict(list)
        for commitment in commitments:
            self._commitments[commitment.worker_id].append(commitment)
        for window in blocked:
            self._blocked[window.worker_id].append(window)
        self._tracker = BatchOverlapTracker()

    def check(self, worker_id: UUID, start: datetime, end: datetime) -> ConflictResult:
        window = find_first_overlap(
            start, end, self._blocked.get(worker_id, ()), lambda w: (w.start, w.end)
        )
        if window is not None:
            return Unavailable(worker_id=worker_id, reason=window.reason)

        overlapping = [
            c for c in self._commitments.get(worker_id, ())
            if c.start < end and c.end > start
        ]
        for commitment in overlapping:
            if commitment.tenant_id != self.tenant_id:
                return ExternalBusy(worker_id=worker_id)
        if overlapping:
            first = min(overlapping, key=lambda c: c.start)
            return InternalConflict(
                worker_id=worker_id,
                shift_id=first.shift_id,
                title=first.title,
                start=first.start,
            )

        staged = self._tracker.find_overlap(worker_id, start, end)
        if staged is not None:
            return InternalConflict(
                worker_id=worker_id,
                shift_id=staged.ref.shift_id,
                title=staged.ref.title,
                start=staged.start,
                in_batch=True,
            )
        return NoConflict(worker_id=worker_id)

    def stage(self, worker_id: UUID, start: datetime, end: datetime, shift_id: UUID, title: str) -> None:
        self._tracker.stage(worker_id, start, end, StagedShift(shift_id=shift_id, title=title))

    @property
    def commitment_count(self) -> int:
        return sum(len(v) for v in self._commitments.values())

    @property
    def blocked_count(self) -> int:
        return sum(len(v) for v in self._blocked.values())


class ConflictDetector(BaseService):
    """
    Query side of conflict detection.

    Non-goals:
        - Does NOT lock anything.  Publish and assignment serialize through
          their own transactions; the detector reads committed state.
    """

    def __init__(self, session: Session, policy: SchedulingPolicy | None = None):
        super().__init__(session)
        self._policy = policy or SchedulingPolicy()

    def _load_commitments(
        self, worker_ids: list[UUID], span_start: datetime, span_end: datetime
    ) -> list[Commitment]:
        rows = self.session.execute(
            select(
                Assignment.worker_id,
                Shift.id,
                Shift.tenant_id,
                Shift.title,
                Shift.start_time,
                Shift.end_time,
            )
            .join(Shift, Assignment.shift_id == Shift.id)
            .where(
                Assignment.worker_id.in_(worker_ids),
                Assignment.status != AssignmentStatus.CANCELLED.value,
                Shift.status != ShiftStatus.CANCELLED.value,
                Shift.start_time < span_end,
                Shift.end_time > span_start,
            )
        ).all()
        return [
            Commitment(
                worker_id=row[0],
                shift_id=row[1],
                tenant_id=row[2],
                title=row[3],
                start=row[4],
                end=row[5],
            )
            for row in rows
        ]

    def _load_blocked(
        self, worker_ids: list[UUID], span_start: datetime, span_end: datetime
    ) -> list[BlockedWindow]:
        windows = self.session.execute(
            select(WorkerAvailability).where(
                WorkerAvailability.worker_id.in_(worker_ids),
                WorkerAvailability.availability_type == AvailabilityType.UNAVAILABLE.value,
                WorkerAvailability.start_time < span_end,
                WorkerAvailability.end_time > span_start,
            )
        ).scalars().all()
        return [
            BlockedWindow(
                worker_id=w.worker_id,
                start=w.start_time,
                end=w.end_time,
                reason=w.reason,
            )
            for w in windows
        ]

    def prefetch(
        self,
        tenant_id: UUID,
        worker_ids: Iterable[UUID],
        span_start: datetime,
        span_end: datetime,
    ) -> ConflictSnapshot:
        """
        Load every commitment and unavailable window for ``worker_ids``
        overlapping the span, widened by ``conflict_buffer_days``.
        """
        workers = sorted(set(worker_ids), key=str)
        if not workers:
            return ConflictSnapshot(tenant_id, (), ())

        buffer = timedelta(days=self._policy.conflict_buffer_days)
        lo, hi = span_start - buffer, span_end + buffer
        snapshot = ConflictSnapshot(
            tenant_id,
            self._load_commitments(workers, lo, hi),
            self._load_blocked(workers, lo, hi),
        )
        logger.debug(
            "conflict_prefetch_loaded",
            extra={
                "worker_count": len(workers),
                "commitment_count": snapshot.commitment_count,
                "blocked_count": snapshot.blocked_count,
            },
        )
        return snapshot

    def check(
        self,
        worker_id: UUID,
        start: datetime,
        end: datetime,
        tenant_id: UUID,
    ) -> ConflictResult:
        """Single-candidate check; equivalent to a one-worker prefetch."""
        return self.prefetch(tenant_id, [worker_id], start, end).check(worker_id, start, end)

    def find_all(
        self,
        worker_ids: Iterable[UUID],
        start: datetime,
        end: datetime,
        tenant_id: UUID,
    ) -> dict[UUID, ConflictResult]:
        """Per-worker results for one window (direct assignment)."""
        workers = list(dict.fromkeys(worker_ids))
        snapshot = self.prefetch(tenant_id, workers, start, end)
        return {worker_id: snapshot.check(worker_id, start, end) for worker_id in workers}

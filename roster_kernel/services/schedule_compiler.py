"""
ScheduleCompiler -- the publish engine.

Responsibility:
    Turns one publish request into a batch of shifts and assignments,
    written atomically:

        validate -> rate limit -> idempotency check -> past-date check
                 -> expand & compile -> batch conflict check -> commit

Architecture position:
    Kernel > Services -- entry point.  Owns its transaction when
    ``auto_commit=True`` (the default), following the same
    commit-on-success / rollback-on-failure contract as every entry point.

Invariants enforced:
    - Abort on first conflict: conflict detection completes before any
      shift or assignment row is written, so a rejected batch leaves
      nothing behind.
    - One Shift per (block, date, position) with capacity = slot count
      (open slots included); one Assignment per non-null worker slot; all
      shifts of one block occurrence share a schedule_group_id.
    - "Today" is computed in the request's timezone; any expanded date
      before it rejects the whole batch.
    - The idempotency record, shifts, assignments, audit events and
      notification outbox rows commit together.  The record is claimed
      right after the lookup, so a concurrent duplicate waits for this
      transaction and then replays its result.
    - The rate-limit attempt is committed on its own, before the batch,
      so a request that fails later still counts against the window.

Failure modes:
    ValidationError, PastDateError, ForbiddenError, LocationNotFoundError,
    RateLimitExceededError, IdempotencyKeyConflictError,
    OverlapConflictError, AvailabilityConflictError.
"""

import time
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from roster_engines.recurrence import expand_recurring_dates
from roster_engines.timezones import compile_shift_window
from roster_kernel.domain.clock import Clock
from roster_kernel.domain.lifecycle import AssignmentStatus, ShiftStatus
from roster_kernel.domain.policy import RosterPolicy
from roster_kernel.domain.requests import Actor, PublishRequest, RecurrenceEnd, ScheduleBlock
from roster_kernel.exceptions import LocationNotFoundError, PastDateError, ValidationError
from roster_kernel.logging_config import LogContext, get_logger
from roster_kernel.models.location import Location
from roster_kernel.models.shift import Assignment, Shift
from roster_kernel.services.auditor_service import AuditorService
from roster_kernel.services.base import BaseService, authorize
from roster_kernel.services.conflict_detector import ConflictDetector
from roster_kernel.services.idempotency_guard import IdempotencyGuard
from roster_kernel.services.notification_scheduler import (
    NotificationHandoff,
    NotificationScheduler,
    OutboxNotificationScheduler,
)
from roster_kernel.services.rate_limiter import RateLimiter

logger = get_logger("services.schedule_compiler")


@dataclass(frozen=True)
class PublishResult:
    created_shift_count: int
    created_assignment_count: int
    schedule_group_ids: tuple[UUID, ...] = ()
    shift_ids: tuple[UUID, ...] = ()
    replayed: bool = False

    def as_payload(self) -> dict[str, Any]:
        """Stored on the idempotency record and returned verbatim on replay."""
        return {
            "created_shift_count": self.created_shift_count,
            "created_assignment_count": self.created_assignment_count,
            "schedule_group_ids": [str(g) for g in self.schedule_group_ids],
            "shift_ids": [str(s) for s in self.shift_ids],
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any], replayed: bool = True) -> "PublishResult":
        return cls(
            created_shift_count=payload.get("created_shift_count", 0),
            created_assignment_count=payload.get("created_assignment_count", 0),
            schedule_group_ids=tuple(UUID(g) for g in payload.get("schedule_group_ids", ())),
            shift_ids=tuple(UUID(s) for s in payload.get("shift_ids", ())),
            replayed=replayed,
        )


@dataclass(frozen=True)
class CompiledShift:
    """A shift about to be written, with its absolute window."""

    shift_id: UUID
    schedule_group_id: UUID
    block_name: str
    title: str
    local_date: date
    start: datetime
    end: datetime
    capacity: int
    price_cents: int
    worker_ids: tuple[UUID, ...] = field(default_factory=tuple)


class ScheduleCompiler(BaseService):
    """
    Publish engine.

    Contract:
        ``publish(request, actor)`` either returns a PublishResult after
        committing the whole batch, or raises a typed error having written
        nothing but the rate-limit attempt.
    """

    SCOPE = "publish_schedule"

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
        self._rate_limiter = RateLimiter(session, self._clock, self._policy.rate_limit)
        self._idempotency = IdempotencyGuard(session, self._clock, self._policy.idempotency)
        self._conflicts = ConflictDetector(session, self._policy.scheduling)
        self._notifications = notification_scheduler or OutboxNotificationScheduler(
            session, self._clock, self._policy.notifications
        )

    def publish(self, request: PublishRequest, actor: Actor) -> PublishResult:
        with LogContext.bind(
            correlation_id=str(uuid4()),
            tenant_id=str(request.tenant_id),
            actor_id=str(actor.actor_id),
            request_key=request.idempotency_key,
        ):
            logger.info(
                "publish_started",
                extra={
                    "block_count": len(request.blocks),
                    "status": request.status.value,
                    "recurring": request.recurrence is not None and request.recurrence.enabled,
                },
            )
            t0 = time.monotonic()
            try:
                result = self._do_publish(request, actor)

                if self._auto_commit:
                    self.session.commit()

                duration_ms = round((time.monotonic() - t0) * 1000, 2)
                logger.info(
                    "publish_completed",
                    extra={
                        "created_shift_count": result.created_shift_count,
                        "created_assignment_count": result.created_assignment_count,
                        "replayed": result.replayed,
                        "duration_ms": duration_ms,
                    },
                )
                return result

            except Exception:
                duration_ms = round((time.monotonic() - t0) * 1000, 2)
                if self._auto_commit:
                    self.session.rollback()
                logger.error("publish_failed", extra={"duration_ms": duration_ms}, exc_info=True)
                raise

    def _do_publish(self, request: PublishRequest, actor: Actor) -> PublishResult:
        # 1. Validate
        authorize(actor, request.tenant_id)
        self._validate_bounds(request)
        location = self._load_location(request)

        # 2. Rate limit
        self._rate_limiter.hit(request.tenant_id)
        if self._auto_commit:
            self.session.commit()

        # 3. Idempotency check.  A concurrent request with the same key
        #    blocks on the claim until the first one commits or rolls back.
        claim = None
        if request.idempotency_key is not None:
            request_hash = IdempotencyGuard.fingerprint(request.content_payload())
            record = self._idempotency.lookup(request.tenant_id, request.idempotency_key, request_hash)
            if record is not None:
                return PublishResult.from_payload(record.result or {})
            claim = self._idempotency.claim(
                request.tenant_id, request.idempotency_key, request_hash, self.SCOPE
            )
            if claim.replayed:
                return PublishResult.from_payload(claim.stored_result or {})

        # 4. Past-date check on the expanded dates
        expanded = self._expand(request)
        self._reject_past_dates(request, expanded)

        # 5. Compile
        compiled = self._compile(request, expanded)

        # 6. Batch conflict check (no shift or assignment writes yet)
        self._detect_conflicts(request.tenant_id, compiled)

        # 7. Write
        result = self._persist(request, actor, location, compiled)

        if claim is not None:
            self._idempotency.complete(claim.record, result.as_payload())

        if request.status is ShiftStatus.PUBLISHED:
            self._notifications.schedule(
                [
                    NotificationHandoff(
                        tenant_id=request.tenant_id,
                        worker_id=worker_id,
                        shift_id=shift.shift_id,
                        schedule_group_id=shift.schedule_group_id,
                        shift_start=shift.start,
                        timezone=request.timezone,
                    )
                    for shift in compiled
                    for worker_id in shift.worker_ids
                ]
            )
        return result

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _validate_bounds(self, request: PublishRequest) -> None:
        policy = self._policy.scheduling
        for block in request.blocks:
            if len(block.dates) > policy.max_dates_per_block:
                raise ValidationError(
                    "schedules.dates",
                    f"at most {policy.max_dates_per_block} dates per schedule",
                )
            for position in block.positions:
                if position.capacity > policy.max_workers_per_position:
                    raise ValidationError(
                        "positions.worker_ids",
                        f"at most {policy.max_workers_per_position} slots per position",
                    )

        rule = request.recurrence
        if rule is None or not rule.enabled:
            return
        if rule.end_type is RecurrenceEnd.AFTER_WEEKS:
            if (rule.end_after_weeks or 1) > policy.max_recurrence_weeks:
                raise ValidationError(
                    "recurrence.end_after_weeks",
                    f"at most {policy.max_recurrence_weeks} weeks",
                )
        else:
            earliest = min(d for block in request.blocks for d in block.dates)
            if rule.end_date - earliest > timedelta(weeks=policy.max_recurrence_weeks):
                raise ValidationError(
                    "recurrence.end_date",
                    f"must be within {policy.max_recurrence_weeks} weeks of the first date",
                )

    def _load_location(self, request: PublishRequest) -> Location:
        location = self.session.execute(
            select(Location).where(
                Location.id == request.location_id,
                Location.tenant_id == request.tenant_id,
            )
        ).scalar_one_or_none()
        if location is None:
            raise LocationNotFoundError(str(request.location_id))
        return location

    def _expand(self, request: PublishRequest) -> list[tuple[ScheduleBlock, list[date]]]:
        limit = self._policy.scheduling.max_expanded_dates
        return [
            (
                block,
                sorted(set(expand_recurring_dates(block.dates, request.recurrence, limit))),
            )
            for block in request.blocks
        ]

    def _reject_past_dates(
        self,
        request: PublishRequest,
        expanded: list[tuple[ScheduleBlock, list[date]]],
    ) -> None:
        today = self._clock.today_in(request.timezone)
        past = [d for _, dates in expanded for d in dates if d < today]
        if past:
            logger.warning(
                "publish_past_dates_rejected",
                extra={"today": today, "past_date_count": len(set(past))},
            )
            raise PastDateError(past, request.timezone)

    def _compile(
        self,
        request: PublishRequest,
        expanded: list[tuple[ScheduleBlock, list[date]]],
    ) -> list[CompiledShift]:
        compiled: list[CompiledShift] = []
        for block, dates in expanded:
            for local_date in dates:
                start, end = compile_shift_window(
                    local_date, block.start_time, block.end_time, request.timezone
                )
                schedule_group_id = uuid4()
                for position in block.positions:
                    compiled.append(
                        CompiledShift(
                            shift_id=uuid4(),
                            schedule_group_id=schedule_group_id,
                            block_name=block.name,
                            title=position.role_name,
                            local_date=local_date,
                            start=start,
                            end=end,
                            capacity=position.capacity,
                            price_cents=position.price_cents,
                            worker_ids=position.assigned_worker_ids,
                        )
                    )
        return compiled

    def _detect_conflicts(self, tenant_id: UUID, compiled: list[CompiledShift]) -> None:
        worker_ids = {w for shift in compiled for w in shift.worker_ids}
        if not worker_ids:
            return

        snapshot = self._conflicts.prefetch(
            tenant_id,
            worker_ids,
            min(shift.start for shift in compiled),
            max(shift.end for shift in compiled),
        )
        for shift in compiled:
            for worker_id in shift.worker_ids:
                result = snapshot.check(worker_id, shift.start, shift.end)
                if result.is_conflict:
                    logger.warning(
                        "publish_conflict_detected",
                        extra={
                            "worker_id": str(worker_id),
                            "conflict_type": type(result).__name__,
                            "local_date": shift.local_date,
                        },
                    )
                    raise result.to_error()
                snapshot.stage(worker_id, shift.start, shift.end, shift.shift_id, shift.title)

    def _persist(
        self,
        request: PublishRequest,
        actor: Actor,
        location: Location,
        compiled: list[CompiledShift],
    ) -> PublishResult:
        now = self._clock.now()
        published_at = now if request.status is ShiftStatus.PUBLISHED else None

        shifts = [
            Shift(
                id=c.shift_id,
                tenant_id=request.tenant_id,
                location_id=location.id,
                title=c.title,
                description=c.block_name,
                start_time=c.start,
                end_time=c.end,
                capacity=c.capacity,
                price_cents=c.price_cents,
                status=request.status.value,
                schedule_group_id=c.schedule_group_id,
                published_at=published_at,
                created_by_id=actor.actor_id,
            )
            for c in compiled
        ]
        assignments = [
            Assignment(
                shift_id=c.shift_id,
                worker_id=worker_id,
                status=AssignmentStatus.ACTIVE.value,
                rate_snapshot_cents=c.price_cents,
                created_by_id=actor.actor_id,
            )
            for c in compiled
            for worker_id in c.worker_ids
        ]
        self.session.add_all(shifts)
        self.session.flush()
        self.session.add_all(assignments)
        self.session.flush()

        per_shift: dict[UUID, int] = {}
        for assignment in assignments:
            per_shift[assignment.shift_id] = per_shift.get(assignment.shift_id, 0) + 1

        for shift in shifts:
            self._auditor.record_shift_published(
                shift_id=shift.id,
                tenant_id=request.tenant_id,
                actor_id=actor.actor_id,
                schedule_group_id=shift.schedule_group_id,
                status=request.status.value,
                assignment_count=per_shift.get(shift.id, 0),
            )
        for assignment in assignments:
            self._auditor.record_assignment_created(
                assignment_id=assignment.id,
                tenant_id=request.tenant_id,
                actor_id=actor.actor_id,
                shift_id=assignment.shift_id,
                worker_id=assignment.worker_id,
            )

        return PublishResult(
            created_shift_count=len(shifts),
            created_assignment_count=len(assignments),
            schedule_group_ids=tuple(dict.fromkeys(c.schedule_group_id for c in compiled)),
            shift_ids=tuple(c.shift_id for c in compiled),
        )

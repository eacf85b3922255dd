"""
NotificationScheduler -- hand-off point between scheduling and delivery.

Responsibility:
    Receives ``(worker, shift, schedule group)`` hand-offs after a
    successful publish or direct assignment and plans the notifications a
    worker should receive.  The outbox implementation persists one
    ``ScheduledNotification`` row per planned message; a delivery worker
    outside this package sends them.

Architecture position:
    Kernel > Services.  Runs inside the caller's transaction so the outbox
    rows commit or roll back with the assignments they describe.

Plan per hand-off:
    - ``assignment_created``: now.
    - ``night_before``: ``night_before_hour`` local time on the day before
      the shift's local start date.
    - ``reminder``: one per configured offset before start.
    Planned times already in the past are skipped (except the immediate
    ``assignment_created``).
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, time, timedelta
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.orm import Session

from roster_engines.timezones import compile_local_instant, local_date_of
from roster_kernel.domain.clock import Clock, SystemClock
from roster_kernel.domain.policy import NotificationPolicy
from roster_kernel.logging_config import get_logger
from roster_kernel.models.notification import (
    NotificationKind,
    NotificationStatus,
    ScheduledNotification,
)

logger = get_logger("services.notifications")


@dataclass(frozen=True)
class NotificationHandoff:
    tenant_id: UUID
    worker_id: UUID
    shift_id: UUID
    schedule_group_id: UUID | None
    shift_start: datetime
    timezone: str


@dataclass(frozen=True)
class PlannedNotification:
    kind: NotificationKind
    send_at: datetime
    offset_minutes: int | None = None


def plan_notifications(
    handoff: NotificationHandoff,
    now: datetime,
    policy: NotificationPolicy,
) -> list[PlannedNotification]:
    planned = [PlannedNotification(NotificationKind.ASSIGNMENT_CREATED, now)]

    local_start_date = local_date_of(handoff.shift_start, handoff.timezone)
    night_before = compile_local_instant(
        local_start_date - timedelta(days=1),
        time(policy.night_before_hour, 0),
        handoff.timezone,
    )
    if night_before > now:
        planned.append(PlannedNotification(NotificationKind.NIGHT_BEFORE, night_before))

    for offset in sorted(policy.reminder_offsets_minutes, reverse=True):
        send_at = handoff.shift_start - timedelta(minutes=offset)
        if send_at > now:
            planned.append(PlannedNotification(NotificationKind.REMINDER, send_at, offset))
    return planned


class NotificationScheduler(ABC):
    """Collaborator interface consumed by publish and direct assignment."""

    @abstractmethod
    def schedule(self, handoffs: Sequence[NotificationHandoff]) -> int:
        """Plan notifications for ``handoffs``; returns how many were scheduled."""

    def cancel_for_shift(self, shift_id: UUID) -> int:
        return 0


class OutboxNotificationScheduler(NotificationScheduler):
    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        policy: NotificationPolicy | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._policy = policy or NotificationPolicy()

    def schedule(self, handoffs: Sequence[NotificationHandoff]) -> int:
        if not handoffs:
            return 0
        now = self._clock.now()
        rows = [
            ScheduledNotification(
                tenant_id=handoff.tenant_id,
                worker_id=handoff.worker_id,
                shift_id=handoff.shift_id,
                schedule_group_id=handoff.schedule_group_id,
                kind=planned.kind,
                offset_minutes=planned.offset_minutes,
                send_at=planned.send_at,
                status=NotificationStatus.PENDING,
                created_at=now,
            )
            for handoff in handoffs
            for planned in plan_notifications(handoff, now, self._policy)
        ]
        self._session.add_all(rows)
        self._session.flush()
        logger.info(
            "notifications_scheduled",
            extra={"handoff_count": len(handoffs), "notification_count": len(rows)},
        )
        return len(rows)

    def cancel_for_shift(self, shift_id: UUID) -> int:
        result = self._session.execute(
            update(ScheduledNotification)
            .where(
                ScheduledNotification.shift_id == shift_id,
                ScheduledNotification.status == NotificationStatus.PENDING.value,
            )
            .values(status=NotificationStatus.CANCELLED.value)
        )
        logger.info(
            "notifications_cancelled",
            extra={"shift_id": str(shift_id), "count": result.rowcount},
        )
        return result.rowcount

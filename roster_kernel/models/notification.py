"""
Module: roster_kernel.models.notification
Responsibility: Outbox rows for notifications scheduled after publish or
    direct assignment.  A separate delivery worker (out of scope) reads
    pending rows whose send_at has passed.
Architecture position: Kernel > Models.  May import from db/ only.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from roster_kernel.db.base import Base
from roster_kernel.db.types import UUIDString


class NotificationKind(str, Enum):
    ASSIGNMENT_CREATED = "assignment_created"
    NIGHT_BEFORE = "night_before"
    REMINDER = "reminder"


class NotificationStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    CANCELLED = "cancelled"


class ScheduledNotification(Base):
    __tablename__ = "scheduled_notifications"

    __table_args__ = (
        Index("idx_notification_due", "status", "send_at"),
        Index("idx_notification_shift", "shift_id"),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    worker_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    shift_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("shifts.id"),
        nullable=False,
    )

    schedule_group_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    kind: Mapped[NotificationKind] = mapped_column(String(30), nullable=False)

    # Minutes before start, for reminders
    offset_minutes: Mapped[int | None] = mapped_column(nullable=True)

    send_at: Mapped[datetime] = mapped_column(nullable=False)

    status: Mapped[NotificationStatus] = mapped_column(
        String(20),
        default=NotificationStatus.PENDING,
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<ScheduledNotification {self.kind} worker={self.worker_id} at={self.send_at}>"

"""
Module: roster_kernel.models.availability
Responsibility: ORM persistence for worker-declared availability windows.
Architecture position: Kernel > Models.  May import from db/ and domain/.

Invariants enforced:
    - end_time > start_time (CHECK constraint).
    - Windows belong to the worker, not to a tenant: an ``unavailable``
      window blocks scheduling in every organization.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import CheckConstraint, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from roster_kernel.db.base import TrackedBase
from roster_kernel.db.types import UUIDString
from roster_kernel.domain.lifecycle import AvailabilityType


class WorkerAvailability(TrackedBase):
    __tablename__ = "worker_availability"

    __table_args__ = (
        CheckConstraint("end_time > start_time", name="ck_availability_end_after_start"),
        Index("idx_availability_worker_start", "worker_id", "start_time"),
    )

    worker_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    start_time: Mapped[datetime] = mapped_column(nullable=False)

    end_time: Mapped[datetime] = mapped_column(nullable=False)

    availability_type: Mapped[AvailabilityType] = mapped_column(
        String(20),
        default=AvailabilityType.UNAVAILABLE,
        nullable=False,
    )

    reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<WorkerAvailability {self.worker_id} {self.availability_type} "
            f"{self.start_time.isoformat()}..{self.end_time.isoformat()}>"
        )

    @property
    def is_blocking(self) -> bool:
        return AvailabilityType(self.availability_type) is AvailabilityType.UNAVAILABLE

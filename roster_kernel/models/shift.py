"""
Module: roster_kernel.models.shift
Responsibility: ORM persistence for shifts and the worker assignments bound
    to them, including raw and effective punches and computed pay.
Architecture position: Kernel > Models.  May import from db/ and domain/.

Invariants enforced:
    - end_time > start_time (CHECK constraint).
    - At most one non-cancelled Assignment per (shift, worker): partial unique
      index ``uq_assignment_shift_worker_active``.
    - Shift status moves only along SHIFT_TRANSITIONS (service layer); the
      approval transition is a conditional UPDATE in ApprovalEngine.
    - An Assignment is frozen once approved_at is set, and an approved Shift
      is frozen (ORM listeners in db/immutability.py).

Failure modes:
    - IntegrityError on a second active assignment for the same worker/shift.
    - ImmutabilityViolationError when touching approved rows.

Audit relevance:
    Assignment rows are the timesheet: punches, effective times, break,
    payable minutes and gross pay.  Every status change is mirrored in the
    audit chain by AssignmentLedger and ApprovalEngine.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from roster_kernel.db.base import TrackedBase
from roster_kernel.db.types import UUIDString
from roster_kernel.domain.lifecycle import AssignmentStatus, ShiftStatus


class Shift(TrackedBase):
    """
    One role-slot commitment at a location and time.

    Contract:
        ``capacity`` counts every slot including open ones; ``price_cents``
        is the hourly rate basis snapshotted onto each assignment.

    Guarantees:
        - start_time and end_time are absolute UTC instants.
        - schedule_group_id links every shift of one block occurrence.
    """

    __tablename__ = "shifts"

    __table_args__ = (
        CheckConstraint("end_time > start_time", name="ck_shift_end_after_start"),
        CheckConstraint("capacity >= 0", name="ck_shift_capacity_non_negative"),
        CheckConstraint("price_cents >= 0", name="ck_shift_price_non_negative"),
        Index("idx_shift_tenant_start", "tenant_id", "start_time"),
        Index("idx_shift_schedule_group", "schedule_group_id"),
        Index("idx_shift_status", "status"),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    location_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("locations.id"),
        nullable=False,
    )

    # Role name, e.g. "Bartender"
    title: Mapped[str] = mapped_column(String(200), nullable=False)

    description: Mapped[str | None] = mapped_column(String(2000), nullable=True)

    start_time: Mapped[datetime] = mapped_column(nullable=False)

    end_time: Mapped[datetime] = mapped_column(nullable=False)

    capacity: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    price_cents: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)

    status: Mapped[ShiftStatus] = mapped_column(
        String(20),
        default=ShiftStatus.DRAFT,
        nullable=False,
    )

    schedule_group_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    published_at: Mapped[datetime | None] = mapped_column(nullable=True)

    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)

    approved_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    location = relationship("Location")

    assignments: Mapped[list["Assignment"]] = relationship(
        back_populates="shift",
        order_by="Assignment.created_at",
    )

    def __repr__(self) -> str:
        return f"<Shift {self.title} {self.start_time.isoformat()} [{self.status}]>"

    @property
    def status_enum(self) -> ShiftStatus:
        return ShiftStatus(self.status)

    @property
    def duration_minutes(self) -> int:
        return int((self.end_time - self.start_time).total_seconds() // 60)


class Assignment(TrackedBase):
    """
    One worker's binding to one shift slot.

    Contract:
        Effective times are only set once the matching raw punch exists.
        Pay fields are written exactly once, by ApprovalEngine.

    Guarantees:
        - rate_snapshot_cents is copied from the shift at creation.
        - needs_review is True whenever a punch failed geofence verification.
    """

    __tablename__ = "assignments"

    __table_args__ = (
        Index(
            "uq_assignment_shift_worker_active",
            "shift_id",
            "worker_id",
            unique=True,
            postgresql_where=text("status <> 'cancelled'"),
            sqlite_where=text("status <> 'cancelled'"),
        ),
        Index("idx_assignment_worker", "worker_id"),
        Index("idx_assignment_shift", "shift_id"),
        CheckConstraint("break_minutes >= 0", name="ck_assignment_break_non_negative"),
    )

    shift_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("shifts.id"),
        nullable=False,
    )

    worker_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    status: Mapped[AssignmentStatus] = mapped_column(
        String(20),
        default=AssignmentStatus.ACTIVE,
        nullable=False,
    )

    rate_snapshot_cents: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)

    # Raw punches as recorded
    actual_clock_in: Mapped[datetime | None] = mapped_column(nullable=True)
    actual_clock_out: Mapped[datetime | None] = mapped_column(nullable=True)

    # Punches after grace-period snapping / end capping
    effective_clock_in: Mapped[datetime | None] = mapped_column(nullable=True)
    effective_clock_out: Mapped[datetime | None] = mapped_column(nullable=True)

    break_minutes: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    payable_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)

    gross_pay_cents: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    approval_notes: Mapped[str | None] = mapped_column(String(2000), nullable=True)

    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # Punch verification
    clock_in_latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    clock_in_longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    clock_in_distance_meters: Mapped[int | None] = mapped_column(Integer, nullable=True)
    clock_in_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    clock_in_method: Mapped[str | None] = mapped_column(String(50), nullable=True)

    clock_out_latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    clock_out_longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    clock_out_distance_meters: Mapped[int | None] = mapped_column(Integer, nullable=True)
    clock_out_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    clock_out_method: Mapped[str | None] = mapped_column(String(50), nullable=True)

    needs_review: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    review_reason: Mapped[str | None] = mapped_column(String(50), nullable=True)

    adjusted_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    adjusted_at: Mapped[datetime | None] = mapped_column(nullable=True)

    shift: Mapped[Shift] = relationship(back_populates="assignments")

    def __repr__(self) -> str:
        return f"<Assignment worker={self.worker_id} shift={self.shift_id} [{self.status}]>"

    @property
    def status_enum(self) -> AssignmentStatus:
        return AssignmentStatus(self.status)

    @property
    def is_approved(self) -> bool:
        return self.approved_at is not None

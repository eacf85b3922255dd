"""
Conflict results -- the small result variant returned by conflict detection.

Responsibility:
    Names the four possible outcomes of checking a worker against a
    candidate window, and converts a conflict into the typed error a
    caller should raise.  The variant is the confidentiality boundary:
    ``ExternalBusy`` carries no detail about the other tenant's shift.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
"""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from roster_kernel.exceptions import (
    AvailabilityConflictError,
    OverlapConflictError,
    SchedulingConflictError,
)


@dataclass(frozen=True)
class NoConflict:
    worker_id: UUID

    @property
    def is_conflict(self) -> bool:
        return False


@dataclass(frozen=True)
class InternalConflict:
    """Overlap with another shift of the same tenant."""

    worker_id: UUID
    shift_id: UUID
    title: str
    start: datetime
    in_batch: bool = False

    @property
    def is_conflict(self) -> bool:
        return True

    def to_error(self) -> SchedulingConflictError:
        if self.in_batch:
            return OverlapConflictError(str(self.worker_id), in_batch=True)
        return OverlapConflictError(
            str(self.worker_id),
            conflicting_title=self.title,
            conflicting_start=self.start,
        )


@dataclass(frozen=True)
class ExternalBusy:
    """Overlap with a commitment in another tenant; deliberately opaque."""

    worker_id: UUID

    @property
    def is_conflict(self) -> bool:
        return True

    def to_error(self) -> SchedulingConflictError:
        return OverlapConflictError(str(self.worker_id))


@dataclass(frozen=True)
class Unavailable:
    """Overlap with a worker-declared unavailable window."""

    worker_id: UUID
    reason: str | None = None

    @property
    def is_conflict(self) -> bool:
        return True

    def to_error(self) -> SchedulingConflictError:
        return AvailabilityConflictError(str(self.worker_id), self.reason)


ConflictResult = NoConflict | InternalConflict | ExternalBusy | Unavailable

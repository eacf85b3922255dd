"""
AvailabilityService -- worker-declared unavailable and preferred windows.

Windows belong to the worker, not to a tenant: an ``unavailable`` window
blocks scheduling in every organization the worker belongs to.  Only the
owning worker may create or delete a window.
"""

import time
from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from roster_kernel.domain.clock import Clock
from roster_kernel.domain.requests import AvailabilityRequest
from roster_kernel.exceptions import AvailabilityNotFoundError, ForbiddenError, ValidationError
from roster_kernel.logging_config import LogContext, get_logger
from roster_kernel.models.availability import WorkerAvailability
from roster_kernel.services.auditor_service import AuditorService
from roster_kernel.services.base import BaseService

logger = get_logger("services.availability")


class AvailabilityService(BaseService):
    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        auto_commit: bool = True,
    ):
        super().__init__(session, clock)
        self._auto_commit = auto_commit
        self._auditor = AuditorService(session, self._clock)

    def set_availability(self, request: AvailabilityRequest) -> WorkerAvailability:
        with LogContext.bind(correlation_id=str(uuid4()), actor_id=str(request.worker_id)):
            logger.info(
                "set_availability_started",
                extra={"availability_type": request.availability_type.value},
            )
            t0 = time.monotonic()
            try:
                window = WorkerAvailability(
                    worker_id=request.worker_id,
                    start_time=request.start,
                    end_time=request.end,
                    availability_type=request.availability_type.value,
                    reason=request.reason,
                    created_by_id=request.worker_id,
                )
                self.session.add(window)
                self.session.flush()
                self._auditor.record_availability_created(
                    availability_id=window.id,
                    worker_id=request.worker_id,
                    availability_type=request.availability_type.value,
                    start=request.start,
                    end=request.end,
                )
                if self._auto_commit:
                    self.session.commit()
                logger.info(
                    "set_availability_completed",
                    extra={
                        "availability_id": str(window.id),
                        "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                    },
                )
                return window
            except Exception:
                if self._auto_commit:
                    self.session.rollback()
                logger.error(
                    "set_availability_failed",
                    extra={"duration_ms": round((time.monotonic() - t0) * 1000, 2)},
                    exc_info=True,
                )
                raise

    def list_availability(
        self,
        worker_id: UUID,
        start: datetime,
        end: datetime,
    ) -> list[WorkerAvailability]:
        """Windows of ``worker_id`` intersecting ``[start, end)``, earliest first."""
        if end <= start:
            raise ValidationError("time_range", "end must be after start")
        return list(
            self.session.execute(
                select(WorkerAvailability)
                .where(
                    WorkerAvailability.worker_id == worker_id,
                    WorkerAvailability.start_time < end,
                    WorkerAvailability.end_time > start,
                )
                .order_by(WorkerAvailability.start_time)
            ).scalars()
        )

    def delete_availability(self, availability_id: UUID, worker_id: UUID) -> None:
        with LogContext.bind(correlation_id=str(uuid4()), actor_id=str(worker_id)):
            t0 = time.monotonic()
            try:
                window = self.session.get(WorkerAvailability, availability_id)
                if window is None:
                    raise AvailabilityNotFoundError(str(availability_id))
                if window.worker_id != worker_id:
                    raise ForbiddenError("availability belongs to another worker")
                self.session.delete(window)
                self.session.flush()
                self._auditor.record_availability_deleted(availability_id, worker_id)
                if self._auto_commit:
                    self.session.commit()
                logger.info(
                    "availability_deleted",
                    extra={
                        "availability_id": str(availability_id),
                        "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                    },
                )
            except Exception:
                if self._auto_commit:
                    self.session.rollback()
                logger.error(
                    "delete_availability_failed",
                    extra={"duration_ms": round((time.monotonic() - t0) * 1000, 2)},
                    exc_info=True,
                )
                raise

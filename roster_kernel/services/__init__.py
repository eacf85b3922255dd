"""Services for the roster kernel (write side)."""

from roster_kernel.services.approval_engine import ApprovalEngine, ApprovalResult, AssignmentOutcome
from roster_kernel.services.assignment_ledger import AssignmentLedger, PunchResult
from roster_kernel.services.assignment_service import (
    AssignmentService,
    AssignmentWarning,
    AssignWorkersResult,
)
from roster_kernel.services.auditor_service import AuditorService
from roster_kernel.services.availability_service import AvailabilityService
from roster_kernel.services.conflict_detector import ConflictDetector, ConflictSnapshot
from roster_kernel.services.idempotency_guard import ClaimOutcome, IdempotencyGuard
from roster_kernel.services.notification_scheduler import (
    NotificationHandoff,
    NotificationScheduler,
    OutboxNotificationScheduler,
)
from roster_kernel.services.rate_limiter import RateLimitDecision, RateLimiter
from roster_kernel.services.schedule_compiler import PublishResult, ScheduleCompiler
from roster_kernel.services.sequence_service import SequenceService
from roster_kernel.services.shift_service import ShiftService, swap_shift_status

__all__ = [
    "ApprovalEngine",
    "ApprovalResult",
    "AssignmentLedger",
    "AssignmentOutcome",
    "AssignmentService",
    "AssignmentWarning",
    "AssignWorkersResult",
    "AuditorService",
    "AvailabilityService",
    "ClaimOutcome",
    "ConflictDetector",
    "ConflictSnapshot",
    "IdempotencyGuard",
    "NotificationHandoff",
    "NotificationScheduler",
    "OutboxNotificationScheduler",
    "PublishResult",
    "PunchResult",
    "RateLimitDecision",
    "RateLimiter",
    "ScheduleCompiler",
    "SequenceService",
    "ShiftService",
    "swap_shift_status",
]

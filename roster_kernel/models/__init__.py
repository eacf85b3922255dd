"""ORM models for the roster kernel."""

from roster_kernel.models.audit_event import AuditAction, AuditEvent
from roster_kernel.models.availability import WorkerAvailability
from roster_kernel.models.location import Location
from roster_kernel.models.notification import (
    NotificationKind,
    NotificationStatus,
    ScheduledNotification,
)
from roster_kernel.models.shift import Assignment, Shift
from roster_kernel.models.throttling import IdempotencyRecord, RateLimitState

__all__ = [
    "Assignment",
    "AuditAction",
    "AuditEvent",
    "IdempotencyRecord",
    "Location",
    "NotificationKind",
    "NotificationStatus",
    "RateLimitState",
    "ScheduledNotification",
    "Shift",
    "WorkerAvailability",
]

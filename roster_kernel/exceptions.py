"""
Typed Exception Hierarchy for the Roster Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

A management UI surfaces these failures directly and decides on its own retry
policy.  That only works if callers can catch by type and read structured
fields instead of parsing message text:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example:
    try:
        compiler.publish(request, actor)
    except RateLimitExceededError as e:
        api_response(code=e.code, retry_after=e.retry_after)
    except OverlapConflictError as e:
        api_response(code=e.code, worker_id=e.worker_id)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    RosterKernelError (base)
    |
    +-- ValidationError
    |   +-- PastDateError
    |
    +-- RateLimitExceededError
    +-- IdempotencyKeyConflictError
    |
    +-- SchedulingConflictError
    |   +-- OverlapConflictError
    |   +-- AvailabilityConflictError
    |
    +-- DirtyTimesheetError
    +-- RaceConditionError
    |
    +-- NotFoundError
    |   +-- ShiftNotFoundError
    |   +-- AssignmentNotFoundError
    |   +-- LocationNotFoundError
    |   +-- AvailabilityNotFoundError
    |
    +-- ForbiddenError
    |
    +-- ShiftStateError
    |   +-- InvalidShiftTransitionError
    |   +-- InvalidShiftStateError
    |
    +-- PunchError
    |   +-- AlreadyClockedInError
    |   +-- NotClockedInError
    |   +-- AlreadyClockedOutError
    |   +-- ClockInTooEarlyError
    |   +-- ReplayDetectedError
    |   +-- LowAccuracyError
    |
    +-- ImmutabilityViolationError
    +-- AuditChainBrokenError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Code                  | Retry?                     | When Raised
----------------------|----------------------------|-----------------------------------
VALIDATION_ERROR      | no, fix input              | Malformed request
INVALID_PAST_DATES    | no, change dates           | Expanded date before today
RATE_LIMIT_EXCEEDED   | yes, after retry_after     | Tenant publish window exhausted
IDEMPOTENCY_CONFLICT  | no, caller bug             | Key reused with different payload
OVERLAP_CONFLICT      | with different input       | Worker double-booked
AVAILABILITY_CONFLICT | with different input       | Worker declared unavailable
DIRTY_DATA            | after fixing punches       | Approval blocked by punch data
RACE_CONDITION        | yes                        | Concurrent mutation lost the CAS
NOT_FOUND             | no                         | Entity missing in tenant
FORBIDDEN             | no                         | Tenant mismatch or role
INVALID_TRANSITION    | no                         | Shift lifecycle violation
INVALID_STATE         | no                         | Operation not allowed in state
ALREADY_CLOCKED_IN    | no                         | Duplicate clock-in
NOT_CLOCKED_IN        | no                         | Clock-out before clock-in
ALREADY_CLOCKED_OUT   | no                         | Duplicate clock-out
TOO_EARLY             | later                      | Clock-in before allowed buffer
REPLAY_DETECTED       | no                         | Device clock skew too large
LOW_ACCURACY          | with better fix            | GPS accuracy too coarse
IMMUTABILITY_VIOLATION| never                      | Approved record modified
AUDIT_CHAIN_BROKEN    | never                      | Hash chain validation failed
"""

from datetime import date, datetime


class RosterKernelError(Exception):
    """
    Base exception for all roster kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "ROSTER_KERNEL_ERROR"


# Validation


class ValidationError(RosterKernelError):
    """Malformed input. The caller must fix and resend."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


class PastDateError(ValidationError):
    """One or more expanded schedule dates fall before today."""

    code: str = "INVALID_PAST_DATES"

    def __init__(self, dates: list[date], timezone_name: str):
        self.dates = sorted(set(dates))
        self.timezone_name = timezone_name
        listed = ", ".join(d.isoformat() for d in self.dates)
        super().__init__(
            "dates",
            f"cannot schedule shifts in the past ({timezone_name}): {listed}",
        )


# Throttling and idempotency


class RateLimitExceededError(RosterKernelError):
    """Tenant exceeded its publish window."""

    code: str = "RATE_LIMIT_EXCEEDED"

    def __init__(self, rate_key: str, retry_after: int):
        self.rate_key = rate_key
        self.retry_after = retry_after
        super().__init__(
            f"Too many publish requests for {rate_key}; retry after {retry_after}s"
        )


class IdempotencyKeyConflictError(RosterKernelError):
    """Idempotency key was reused with a different request payload."""

    code: str = "IDEMPOTENCY_CONFLICT"

    def __init__(self, key: str, stored_hash: str, received_hash: str):
        self.key = key
        self.stored_hash = stored_hash
        self.received_hash = received_hash
        super().__init__(
            f"Idempotency key {key} was already used with a different payload"
        )


# Scheduling conflicts


class SchedulingConflictError(RosterKernelError):
    """Base exception for worker scheduling conflicts."""

    code: str = "SCHEDULING_CONFLICT"


class OverlapConflictError(SchedulingConflictError):
    """
    Worker already has an overlapping commitment.

    ``conflicting_title`` and ``conflicting_start`` are only populated for
    commitments inside the caller's tenant.
    """

    code: str = "OVERLAP_CONFLICT"

    def __init__(
        self,
        worker_id: str,
        conflicting_title: str | None = None,
        conflicting_start: datetime | None = None,
        in_batch: bool = False,
    ):
        self.worker_id = worker_id
        self.conflicting_title = conflicting_title
        self.conflicting_start = conflicting_start
        self.in_batch = in_batch
        if in_batch:
            message = f"Worker {worker_id} is double-booked in this request"
        elif conflicting_title is not None:
            message = (
                f"Worker {worker_id} is already booked for "
                f"'{conflicting_title}' at {conflicting_start.isoformat()}"
            )
        else:
            message = f"Worker {worker_id} is unavailable"
        super().__init__(message)


class AvailabilityConflictError(SchedulingConflictError):
    """Worker declared the window unavailable, or is busy elsewhere."""

    code: str = "AVAILABILITY_CONFLICT"

    def __init__(self, worker_id: str, reason: str | None = None):
        self.worker_id = worker_id
        self.reason = reason
        suffix = f": {reason}" if reason else ""
        super().__init__(f"Worker {worker_id} is unavailable{suffix}")


# Approval


class DirtyTimesheetError(RosterKernelError):
    """Punch data on one or more assignments blocks approval."""

    code: str = "DIRTY_DATA"

    def __init__(self, shift_id: str, worker_ids: list[str], reasons: dict[str, str]):
        self.shift_id = shift_id
        self.worker_ids = worker_ids
        self.reasons = reasons
        super().__init__(
            f"Shift {shift_id} has incomplete timesheets for workers: "
            + ", ".join(worker_ids)
        )


class RaceConditionError(RosterKernelError):
    """A concurrent request changed the entity first. Safe to retry."""

    code: str = "RACE_CONDITION"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"{entity_type} {entity_id} was modified by another request; retry"
        )


# Lookup and access


class NotFoundError(RosterKernelError):
    """Base exception for missing entities."""

    code: str = "NOT_FOUND"

    entity_type: str = "Entity"

    def __init__(self, entity_id: str):
        self.entity_id = entity_id
        super().__init__(f"{self.entity_type} not found: {entity_id}")


class ShiftNotFoundError(NotFoundError):
    entity_type = "Shift"


class AssignmentNotFoundError(NotFoundError):
    entity_type = "Assignment"


class LocationNotFoundError(NotFoundError):
    entity_type = "Location"


class AvailabilityNotFoundError(NotFoundError):
    entity_type = "WorkerAvailability"


class ForbiddenError(RosterKernelError):
    """Caller may not act on this resource."""

    code: str = "FORBIDDEN"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Forbidden: {reason}")


# Shift lifecycle


class ShiftStateError(RosterKernelError):
    """Base exception for shift lifecycle errors."""

    code: str = "SHIFT_STATE_ERROR"


class InvalidShiftTransitionError(ShiftStateError):
    """Requested status change is not in the transition table."""

    code: str = "INVALID_TRANSITION"

    def __init__(self, shift_id: str, from_status: str, to_status: str):
        self.shift_id = shift_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Shift {shift_id} cannot move from {from_status} to {to_status}"
        )


class InvalidShiftStateError(ShiftStateError):
    """Operation is not allowed while the shift is in its current status."""

    code: str = "INVALID_STATE"

    def __init__(self, shift_id: str, status: str, operation: str):
        self.shift_id = shift_id
        self.status = status
        self.operation = operation
        super().__init__(f"Cannot {operation} shift {shift_id} in status {status}")


# Punches


class PunchError(RosterKernelError):
    """Base exception for clock-in/clock-out failures."""

    code: str = "PUNCH_ERROR"


class AlreadyClockedInError(PunchError):
    code: str = "ALREADY_CLOCKED_IN"

    def __init__(self, assignment_id: str, clock_in: datetime):
        self.assignment_id = assignment_id
        self.clock_in = clock_in
        super().__init__(f"Assignment {assignment_id} already clocked in at {clock_in.isoformat()}")


class NotClockedInError(PunchError):
    code: str = "NOT_CLOCKED_IN"

    def __init__(self, assignment_id: str):
        self.assignment_id = assignment_id
        super().__init__(f"Assignment {assignment_id} must clock in first")


class AlreadyClockedOutError(PunchError):
    code: str = "ALREADY_CLOCKED_OUT"

    def __init__(self, assignment_id: str):
        self.assignment_id = assignment_id
        super().__init__(f"Assignment {assignment_id} already clocked out")


class ClockInTooEarlyError(PunchError):
    code: str = "TOO_EARLY"

    def __init__(self, shift_id: str, earliest_clock_in: datetime):
        self.shift_id = shift_id
        self.earliest_clock_in = earliest_clock_in
        super().__init__(
            f"Cannot clock in to shift {shift_id} before {earliest_clock_in.isoformat()}"
        )


class ReplayDetectedError(PunchError):
    """Device timestamp is too far from the server clock."""

    code: str = "REPLAY_DETECTED"

    def __init__(self, skew_seconds: int, max_skew_seconds: int):
        self.skew_seconds = skew_seconds
        self.max_skew_seconds = max_skew_seconds
        super().__init__(
            f"Device timestamp differs from server time by {skew_seconds}s "
            f"(max {max_skew_seconds}s)"
        )


class LowAccuracyError(PunchError):
    code: str = "LOW_ACCURACY"

    def __init__(self, accuracy_meters: float, max_accuracy_meters: float):
        self.accuracy_meters = accuracy_meters
        self.max_accuracy_meters = max_accuracy_meters
        super().__init__(
            f"GPS accuracy {accuracy_meters}m exceeds {max_accuracy_meters}m"
        )


# Integrity


class ImmutabilityViolationError(RosterKernelError):
    """Attempted to modify or delete an immutable record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


class AuditChainBrokenError(RosterKernelError):
    """Audit hash chain validation failed."""

    code: str = "AUDIT_CHAIN_BROKEN"

    def __init__(self, audit_event_id: str, expected_hash: str, actual_hash: str):
        self.audit_event_id = audit_event_id
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Audit chain broken at {audit_event_id}: "
            f"expected {expected_hash}, found {actual_hash}"
        )

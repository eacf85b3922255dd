"""
Lifecycle -- shift and assignment status vocabularies and transition rules.

Responsibility:
    Single source of truth for which status a shift may move to next, which
    assignment statuses count as commitments for conflict detection, and
    which member roles may approve or adjust timesheets.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - ``approved`` is terminal: once a shift is approved it never changes.
    - Every status change made by a service is checked against
      ``SHIFT_TRANSITIONS`` before it is written.
"""

from enum import Enum

from roster_kernel.exceptions import InvalidShiftTransitionError


class ShiftStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    APPROVED = "approved"
    CANCELLED = "cancelled"


class AssignmentStatus(str, Enum):
    ACTIVE = "active"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    NO_SHOW = "no_show"
    CANCELLED = "cancelled"


class MemberRole(str, Enum):
    OWNER = "owner"
    ADMIN = "admin"
    MANAGER = "manager"
    MEMBER = "member"


class AvailabilityType(str, Enum):
    UNAVAILABLE = "unavailable"
    PREFERRED = "preferred"


SHIFT_TRANSITIONS: dict[ShiftStatus, frozenset[ShiftStatus]] = {
    ShiftStatus.DRAFT: frozenset({ShiftStatus.PUBLISHED, ShiftStatus.CANCELLED}),
    ShiftStatus.PUBLISHED: frozenset(
        {ShiftStatus.ASSIGNED, ShiftStatus.IN_PROGRESS, ShiftStatus.CANCELLED}
    ),
    ShiftStatus.ASSIGNED: frozenset(
        {ShiftStatus.PUBLISHED, ShiftStatus.IN_PROGRESS, ShiftStatus.CANCELLED}
    ),
    ShiftStatus.IN_PROGRESS: frozenset({ShiftStatus.COMPLETED, ShiftStatus.CANCELLED}),
    ShiftStatus.COMPLETED: frozenset({ShiftStatus.APPROVED, ShiftStatus.IN_PROGRESS}),
    ShiftStatus.APPROVED: frozenset(),
    ShiftStatus.CANCELLED: frozenset({ShiftStatus.DRAFT, ShiftStatus.PUBLISHED}),
}

# Statuses from which ApproveShift may run.
PRE_APPROVAL_STATUSES: frozenset[ShiftStatus] = frozenset({ShiftStatus.COMPLETED})

# Shifts in these statuses accept new workers.
ASSIGNABLE_SHIFT_STATUSES: frozenset[ShiftStatus] = frozenset(
    {ShiftStatus.DRAFT, ShiftStatus.PUBLISHED, ShiftStatus.ASSIGNED, ShiftStatus.IN_PROGRESS}
)

# Shifts in these statuses accept punches.
PUNCHABLE_SHIFT_STATUSES: frozenset[ShiftStatus] = frozenset(
    {ShiftStatus.PUBLISHED, ShiftStatus.ASSIGNED, ShiftStatus.IN_PROGRESS}
)

# Assignments in these statuses do not occupy the worker's time.
NON_COMMITTING_ASSIGNMENT_STATUSES: frozenset[AssignmentStatus] = frozenset(
    {AssignmentStatus.CANCELLED}
)

MANAGER_ROLES: frozenset[MemberRole] = frozenset(
    {MemberRole.OWNER, MemberRole.ADMIN, MemberRole.MANAGER}
)


def can_transition(from_status: ShiftStatus | str, to_status: ShiftStatus | str) -> bool:
    return ShiftStatus(to_status) in SHIFT_TRANSITIONS[ShiftStatus(from_status)]


def validate_shift_transition(
    shift_id: str,
    from_status: ShiftStatus | str,
    to_status: ShiftStatus | str,
) -> ShiftStatus:
    """
    Check a shift status change against the transition table.

    Returns:
        The target status as a ``ShiftStatus``.

    Raises:
        InvalidShiftTransitionError: If the move is not allowed.
    """
    source = ShiftStatus(from_status)
    target = ShiftStatus(to_status)
    if target not in SHIFT_TRANSITIONS[source]:
        raise InvalidShiftTransitionError(shift_id, source.value, target.value)
    return target

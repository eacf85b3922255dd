"""
BaseService -- abstract base for roster kernel services.

Responsibility:
    Common constructor and session-handling contract.  Services persist
    with ``session.flush()``; entry-point services constructed with
    ``auto_commit=True`` commit on success and roll back on failure.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Failure modes:
    - A flush-only service that commits breaks the all-or-nothing
      guarantee of publish and approval.
"""

from abc import ABC
from collections.abc import Collection
from uuid import UUID

from sqlalchemy.orm import Session

from roster_kernel.domain.clock import Clock, SystemClock
from roster_kernel.domain.lifecycle import MANAGER_ROLES, MemberRole
from roster_kernel.domain.requests import Actor
from roster_kernel.exceptions import ForbiddenError


class BaseService(ABC):
    """
    Abstract base class for kernel services.

    Contract:
        Accepts a SQLAlchemy ``Session`` from the caller and uses
        ``session.flush()`` to persist changes within the active
        transaction.

    Non-goals:
        - Does NOT manage transaction lifecycle; entry points that set
          ``auto_commit`` do so explicitly.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self._clock = clock or SystemClock()


def authorize(
    actor: Actor,
    tenant_id: UUID,
    roles: Collection[MemberRole] = MANAGER_ROLES,
) -> None:
    """
    Raises:
        ForbiddenError: The actor belongs to another tenant or lacks a role.
    """
    if actor.tenant_id != tenant_id:
        raise ForbiddenError("actor does not belong to this organization")
    if MemberRole(actor.role) not in roles:
        raise ForbiddenError(f"role '{MemberRole(actor.role).value}' may not perform this action")

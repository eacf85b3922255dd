"""
Freeze rules for rows that must not change after the fact.

    AuditEvent   never updated, never deleted
    Shift        read-only once its status has been ``approved``
    Assignment   read-only once approval has stamped ``approved_at``

Each rule is a pair of mapper listeners (``before_update`` and
``before_delete``).  A listener looks at the row's *previous* state, so the
approval write itself (``approved_at`` going from None to a timestamp) goes
through and every write after it is refused with
ImmutabilityViolationError, aborting the flush.  ``updated_at`` and
``updated_by_id`` may still be touched.

Only the ORM unit of work is covered.  Core ``update()`` statements skip
mapper events; the one the kernel issues against shifts is the status
compare-and-swap, whose WHERE clause never matches an approved row.

``init_engine_from_url`` registers the listeners; registration is
idempotent.
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from roster_kernel.exceptions import ImmutabilityViolationError
from roster_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_BOOKKEEPING = frozenset({"updated_at", "updated_by_id"})


def _refuse(target, operation: str, reason: str, field: str | None = None):
    entity_type = type(target).__name__
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
            "field": field,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


def _pending_field(target) -> str | None:
    for attr in inspect(target).attrs:
        if attr.key not in _BOOKKEEPING and attr.history.has_changes():
            return attr.key
    return None


def _previous(target, attribute: str):
    """Value of ``attribute`` as loaded, before any unflushed change."""
    history = get_history(target, attribute)
    if history.deleted:
        return history.deleted[0]
    if history.unchanged:
        return history.unchanged[0]
    if history.added:
        return None
    return getattr(target, attribute)


def _audit_event_update(mapper, connection, target):
    _refuse(target, "UPDATE", "Audit events are append-only")


def _audit_event_delete(mapper, connection, target):
    _refuse(target, "DELETE", "Audit events are append-only")


def _frozen_update(was_frozen, label):
    def listener(mapper, connection, target):
        if not was_frozen(target):
            return
        field = _pending_field(target)
        if field is not None:
            _refuse(target, "UPDATE", f"'{field}' is read-only on an approved {label}", field)

    return listener


def _frozen_delete(is_frozen, label):
    def listener(mapper, connection, target):
        if is_frozen(target):
            _refuse(target, "DELETE", f"An approved {label} cannot be deleted")

    return listener


_shift_update = _frozen_update(lambda s: _previous(s, "status") == "approved", "shift")
_shift_delete = _frozen_delete(lambda s: s.status == "approved", "shift")
_assignment_update = _frozen_update(
    lambda a: _previous(a, "approved_at") is not None, "assignment"
)
_assignment_delete = _frozen_delete(lambda a: a.approved_at is not None, "assignment")


def _rules():
    from roster_kernel.models.audit_event import AuditEvent
    from roster_kernel.models.shift import Assignment, Shift

    return (
        (AuditEvent, "before_update", _audit_event_update),
        (AuditEvent, "before_delete", _audit_event_delete),
        (Shift, "before_update", _shift_update),
        (Shift, "before_delete", _shift_delete),
        (Assignment, "before_update", _assignment_update),
        (Assignment, "before_delete", _assignment_delete),
    )


def register_immutability_listeners() -> None:
    for model, name, listener in _rules():
        if not event.contains(model, name, listener):
            event.listen(model, name, listener)


def unregister_immutability_listeners() -> None:
    """Tests only: lets a test write rows the kernel would refuse."""
    for model, name, listener in _rules():
        if event.contains(model, name, listener):
            event.remove(model, name, listener)

"""
SequenceService -- gap-tolerant, strictly increasing counters.

Responsibility:
    Hands out the ``seq`` numbers that order the audit chain.

Architecture position:
    Kernel > Services -- infrastructure called by AuditorService.

Invariants enforced:
    - Allocation is one upsert on the counter row (created at 1 on first
      use, incremented otherwise) with ``RETURNING``.  Concurrent writers
      queue on the row lock until the holder's transaction ends, so audit
      events are appended one transaction at a time.
    - A rolled-back transaction gives its number back; ``seq`` values
      observed after commit are strictly increasing.
"""

from sqlalchemy import String, select
from sqlalchemy.orm import Mapped, Session, mapped_column

from roster_kernel.db.base import Base
from roster_kernel.db.upsert import upsert_insert
from roster_kernel.logging_config import get_logger

logger = get_logger("services.sequence")


class SequenceCounter(Base):
    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(String(50), unique=True)
    current_value: Mapped[int] = mapped_column(default=0)


class SequenceService:
    """Does not commit; the lock is released by the caller's commit or rollback."""

    AUDIT_EVENT = "audit_event"

    def __init__(self, session: Session):
        self._session = session

    def next_value(self, sequence_name: str) -> int:
        stmt = upsert_insert(self._session, SequenceCounter).values(
            name=sequence_name, current_value=1
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[SequenceCounter.name],
            set_={"current_value": SequenceCounter.current_value + 1},
        ).returning(SequenceCounter.current_value)

        value = self._session.execute(stmt).scalar_one()
        logger.debug("sequence_allocated", extra={"sequence_name": sequence_name, "value": value})
        return value

    def current_value(self, sequence_name: str) -> int | None:
        return self._session.execute(
            select(SequenceCounter.current_value).where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()

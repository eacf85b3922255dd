"""
Module: roster_kernel.db.base
Responsibility: Declarative roots for the roster models.  Every row gets a
    uuid4 identifier; rows that people create and edit (locations, shifts,
    assignments, availability windows) also record who touched them and when.
Architecture position: Kernel > DB.  Imported by models/ only; MUST NOT import
    from models/, services/ or domain/.

Invariants enforced:
    - ``datetime`` annotations map to UTCDateTime, so a model cannot declare a
      naive timestamp column by accident.
    - ``int`` annotations map to BigInteger: pay cents and sequence numbers
      never overflow a 32-bit column.
    - ``created_by_id`` is mandatory on tracked rows.  For availability the
      creator is the worker; for everything else it is the acting member.
"""

from datetime import datetime
from typing import ClassVar
from uuid import UUID, uuid4

from sqlalchemy import BigInteger, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from roster_kernel.db.types import UTCDateTime, UUIDString


class Base(DeclarativeBase):
    type_annotation_map: ClassVar[dict] = {
        datetime: UTCDateTime(),
        UUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[UUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class TrackedBase(Base):
    """
    Adds creator and last-editor columns.

    ``created_at`` and ``updated_at`` are stamped by the database, so Core
    ``UPDATE`` statements issued by the guarded punch and approval paths keep
    them current too.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(server_default=func.now(), onupdate=func.now())
    created_by_id: Mapped[UUID] = mapped_column(UUIDString())
    updated_by_id: Mapped[UUID | None] = mapped_column(UUIDString())

"""
Module: roster_kernel.models.location
Responsibility: ORM persistence for venues where shifts take place.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - Coordinates are either both present or both absent (service layer).
    - geofence_radius_meters is positive.

Audit relevance:
    A location's coordinates and radius are the reference point for every
    punch's geofence verdict.  Geocoding the address is an external concern;
    this row only stores the result.
"""

from uuid import UUID

from sqlalchemy import CheckConstraint, Float, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from roster_kernel.db.base import TrackedBase
from roster_kernel.db.types import UUIDString


class Location(TrackedBase):
    """
    Venue owned by a tenant.

    Guarantees:
        - timezone is an IANA identifier used to compile wall-clock times.
        - latitude/longitude may be None until the address is geocoded.
    """

    __tablename__ = "locations"

    __table_args__ = (
        Index("idx_location_tenant", "tenant_id"),
        CheckConstraint("geofence_radius_meters > 0", name="ck_location_radius_positive"),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    name: Mapped[str] = mapped_column(String(200), nullable=False)

    address: Mapped[str | None] = mapped_column(String(500), nullable=True)

    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)

    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)

    geofence_radius_meters: Mapped[int] = mapped_column(Integer, default=100, nullable=False)

    timezone: Mapped[str] = mapped_column(String(64), default="UTC", nullable=False)

    def __repr__(self) -> str:
        return f"<Location {self.name} ({self.tenant_id})>"

    @property
    def is_geocoded(self) -> bool:
        return self.latitude is not None and self.longitude is not None

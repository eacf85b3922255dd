"""
Geofence and Punch Integrity Checks (``roster_engines.geofence``).

Responsibility
--------------
Great-circle distance between a punch and the venue, the geofence verdict,
and the device-clock / GPS-accuracy screens applied before a punch is
accepted.

Architecture position
---------------------
**Engines layer** -- pure functional core.  ZERO I/O, no clock reads:
the server time is passed in.

Invariants enforced
-------------------
* Distances use the haversine formula on a sphere of radius 6,371,000 m
  and are rounded to whole metres.
* A punch exactly on the radius is inside the fence.
* A venue without coordinates cannot verify a punch; the verdict says so
  rather than guessing.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime

EARTH_RADIUS_METERS = 6_371_000
DEFAULT_GEOFENCE_RADIUS_METERS = 100

OUTSIDE_GEOFENCE = "outside_geofence"
LOCATION_NOT_GEOCODED = "location_not_geocoded"


def haversine_distance_meters(lat1: float, lng1: float, lat2: float, lng2: float) -> int:
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return round(EARTH_RADIUS_METERS * c)


@dataclass(frozen=True)
class GeofenceVerdict:
    verified: bool
    distance_meters: int | None
    radius_meters: int
    review_reason: str | None = None

    @property
    def needs_review(self) -> bool:
        return not self.verified


def check_geofence(
    latitude: float,
    longitude: float,
    venue_latitude: float | None,
    venue_longitude: float | None,
    radius_meters: int | None = None,
) -> GeofenceVerdict:
    """Soft check: a punch outside the fence is accepted but flagged."""
    radius = radius_meters or DEFAULT_GEOFENCE_RADIUS_METERS
    if venue_latitude is None or venue_longitude is None:
        return GeofenceVerdict(
            verified=False,
            distance_meters=None,
            radius_meters=radius,
            review_reason=LOCATION_NOT_GEOCODED,
        )
    distance = haversine_distance_meters(latitude, longitude, venue_latitude, venue_longitude)
    if distance <= radius:
        return GeofenceVerdict(verified=True, distance_meters=distance, radius_meters=radius)
    return GeofenceVerdict(
        verified=False,
        distance_meters=distance,
        radius_meters=radius,
        review_reason=OUTSIDE_GEOFENCE,
    )


def clock_skew_seconds(device_timestamp: datetime, server_now: datetime) -> int:
    """Absolute difference between device and server clocks, whole seconds."""
    return int(abs((server_now - device_timestamp).total_seconds()))


def is_clock_skew_acceptable(
    device_timestamp: datetime, server_now: datetime, max_skew_minutes: int
) -> bool:
    return clock_skew_seconds(device_timestamp, server_now) <= max_skew_minutes * 60


def is_accuracy_acceptable(accuracy_meters: float | None, max_accuracy_meters: float) -> bool:
    """Missing accuracy is accepted; the geofence check still applies."""
    if accuracy_meters is None:
        return True
    return accuracy_meters <= max_accuracy_meters

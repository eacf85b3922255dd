"""
Request DTOs -- validated, immutable inputs for the roster operations.

Responsibility:
    Explicit, named shapes for everything a caller hands to the kernel:
    publish requests (blocks, positions, recurrence), punches, availability
    windows and the acting member.  Construction validates structure; a
    request object that exists is well-formed.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Local times are "HH:MM" 24-hour strings; start and end differ.
    - Timezones are valid IANA identifiers.
    - Publish status is draft or published.
    - Policy-dependent bounds (max dates, max workers, max recurrence weeks)
      are checked by ScheduleCompiler against the active SchedulingPolicy.

Failure modes:
    - ValidationError (code VALIDATION_ERROR) naming the offending field.
"""

import re
from dataclasses import dataclass
from datetime import date, datetime, time
from enum import Enum
from typing import Any
from uuid import UUID
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from roster_kernel.domain.lifecycle import AvailabilityType, MemberRole, ShiftStatus
from roster_kernel.exceptions import ValidationError

_HHMM = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")

MAX_IDEMPOTENCY_KEY_LENGTH = 255


def parse_local_time(value: str, field_name: str = "time") -> time:
    """Parse an "HH:MM" wall-clock string."""
    if not isinstance(value, str):
        raise ValidationError(field_name, "expected HH:MM string")
    match = _HHMM.match(value)
    if match is None:
        raise ValidationError(field_name, f"'{value}' is not a valid HH:MM time")
    return time(int(match.group(1)), int(match.group(2)))


def validate_timezone(timezone_name: str) -> str:
    if not timezone_name:
        raise ValidationError("timezone", "timezone is required")
    try:
        ZoneInfo(timezone_name)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValidationError("timezone", f"unknown timezone '{timezone_name}'")
    return timezone_name


def _require_aware(value: datetime, field_name: str) -> None:
    if not isinstance(value, datetime) or value.tzinfo is None:
        raise ValidationError(field_name, "must be a timezone-aware datetime")


@dataclass(frozen=True)
class Actor:
    """The member performing an operation, as established by authentication."""

    actor_id: UUID
    tenant_id: UUID
    role: MemberRole = MemberRole.MEMBER


# ---------------------------------------------------------------------------
# Recurrence
# ---------------------------------------------------------------------------


class RecurrencePattern(str, Enum):
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"


class RecurrenceEnd(str, Enum):
    AFTER_WEEKS = "after_weeks"
    ON_DATE = "on_date"


@dataclass(frozen=True)
class RecurrenceRule:
    """
    Weekly or biweekly repetition of a block's dates.

    ``days_of_week`` uses 0 = Sunday through 6 = Saturday.  With
    ``AFTER_WEEKS`` a missing ``end_after_weeks`` means one week.
    """

    pattern: RecurrencePattern
    days_of_week: frozenset[int]
    end_type: RecurrenceEnd = RecurrenceEnd.AFTER_WEEKS
    end_after_weeks: int | None = None
    end_date: date | None = None
    enabled: bool = True

    def __post_init__(self):
        object.__setattr__(self, "pattern", RecurrencePattern(self.pattern))
        object.__setattr__(self, "end_type", RecurrenceEnd(self.end_type))
        object.__setattr__(self, "days_of_week", frozenset(self.days_of_week))
        if not self.enabled:
            return
        if not self.days_of_week:
            raise ValidationError("recurrence.days_of_week", "at least one day is required")
        if any(not isinstance(d, int) or d < 0 or d > 6 for d in self.days_of_week):
            raise ValidationError("recurrence.days_of_week", "days must be 0 (Sunday) to 6")
        if self.end_type is RecurrenceEnd.ON_DATE and self.end_date is None:
            raise ValidationError("recurrence.end_date", "required when ending on a date")
        if self.end_after_weeks is not None and self.end_after_weeks < 1:
            raise ValidationError("recurrence.end_after_weeks", "must be at least 1")

    @property
    def interval_weeks(self) -> int:
        return 2 if self.pattern is RecurrencePattern.BIWEEKLY else 1

    def as_payload(self) -> dict[str, Any]:
        return {
            "enabled": self.enabled,
            "pattern": self.pattern.value,
            "days_of_week": sorted(self.days_of_week),
            "end_type": self.end_type.value,
            "end_after_weeks": self.end_after_weeks,
            "end_date": self.end_date.isoformat() if self.end_date else None,
        }


# ---------------------------------------------------------------------------
# Publish
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PositionSlot:
    """
    One role within a block.  Each entry of ``worker_ids`` is a slot;
    ``None`` is an open slot.
    """

    role_name: str
    price_cents: int
    worker_ids: tuple[UUID | None, ...]

    def __post_init__(self):
        object.__setattr__(self, "worker_ids", tuple(self.worker_ids))
        if not self.role_name or not self.role_name.strip():
            raise ValidationError("positions.role_name", "role name is required")
        if not isinstance(self.price_cents, int) or self.price_cents < 0:
            raise ValidationError("positions.price_cents", "must be a non-negative integer")
        if not self.worker_ids:
            raise ValidationError("positions.worker_ids", "at least one slot is required")

    @property
    def capacity(self) -> int:
        return len(self.worker_ids)

    @property
    def assigned_worker_ids(self) -> tuple[UUID, ...]:
        return tuple(w for w in self.worker_ids if w is not None)

    def as_payload(self) -> dict[str, Any]:
        return {
            "role_name": self.role_name,
            "price_cents": self.price_cents,
            "worker_ids": [str(w) if w is not None else None for w in self.worker_ids],
        }


@dataclass(frozen=True)
class ScheduleBlock:
    """Dates plus a local start/end time shared by a set of positions."""

    name: str
    dates: tuple[date, ...]
    start_time: str
    end_time: str
    positions: tuple[PositionSlot, ...]

    def __post_init__(self):
        object.__setattr__(self, "dates", tuple(self.dates))
        object.__setattr__(self, "positions", tuple(self.positions))
        if not self.name or not self.name.strip():
            raise ValidationError("schedules.name", "schedule name is required")
        if not self.dates:
            raise ValidationError("schedules.dates", "at least one date is required")
        start = parse_local_time(self.start_time, "schedules.start_time")
        end = parse_local_time(self.end_time, "schedules.end_time")
        if start == end:
            raise ValidationError("schedules.end_time", "end time must differ from start time")
        if not self.positions:
            raise ValidationError("schedules.positions", "at least one position is required")

    @property
    def local_start(self) -> time:
        return parse_local_time(self.start_time)

    @property
    def local_end(self) -> time:
        return parse_local_time(self.end_time)

    def as_payload(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "dates": [d.isoformat() for d in self.dates],
            "start_time": self.start_time,
            "end_time": self.end_time,
            "positions": [p.as_payload() for p in self.positions],
        }


@dataclass(frozen=True)
class PublishRequest:
    """Manager intent for one publish call."""

    tenant_id: UUID
    location_id: UUID
    timezone: str
    blocks: tuple[ScheduleBlock, ...]
    status: ShiftStatus = ShiftStatus.PUBLISHED
    recurrence: RecurrenceRule | None = None
    idempotency_key: str | None = None

    def __post_init__(self):
        object.__setattr__(self, "blocks", tuple(self.blocks))
        validate_timezone(self.timezone)
        try:
            status = ShiftStatus(self.status)
        except ValueError:
            raise ValidationError("status", f"unknown status '{self.status}'")
        if status not in (ShiftStatus.DRAFT, ShiftStatus.PUBLISHED):
            raise ValidationError("status", "must be draft or published")
        object.__setattr__(self, "status", status)
        if not self.blocks:
            raise ValidationError("schedules", "at least one schedule block is required")
        if self.idempotency_key is not None:
            if not self.idempotency_key.strip():
                raise ValidationError("idempotency_key", "must be non-empty when given")
            if len(self.idempotency_key) > MAX_IDEMPOTENCY_KEY_LENGTH:
                raise ValidationError("idempotency_key", "too long")

    def content_payload(self) -> dict[str, Any]:
        """The semantically meaningful part of the request, for content hashing."""
        return {
            "schedules": [b.as_payload() for b in self.blocks],
            "recurrence": self.recurrence.as_payload() if self.recurrence else None,
            "location_id": str(self.location_id),
            "tenant_id": str(self.tenant_id),
        }


# ---------------------------------------------------------------------------
# Punches
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Coordinates:
    latitude: float
    longitude: float
    accuracy_meters: float | None = None

    def __post_init__(self):
        if not -90.0 <= self.latitude <= 90.0:
            raise ValidationError("latitude", "must be between -90 and 90")
        if not -180.0 <= self.longitude <= 180.0:
            raise ValidationError("longitude", "must be between -180 and 180")
        if self.accuracy_meters is not None and self.accuracy_meters < 0:
            raise ValidationError("accuracy_meters", "must be non-negative")


@dataclass(frozen=True)
class PunchRequest:
    shift_id: UUID
    worker_id: UUID
    coordinates: Coordinates
    device_timestamp: datetime

    def __post_init__(self):
        _require_aware(self.device_timestamp, "device_timestamp")


@dataclass(frozen=True)
class TimesheetAdjustment:
    """Manager correction of an assignment's punches before approval."""

    assignment_id: UUID
    clock_in: datetime | None = None
    clock_out: datetime | None = None
    break_minutes: int | None = None
    notes: str | None = None

    def __post_init__(self):
        if self.clock_in is not None:
            _require_aware(self.clock_in, "clock_in")
        if self.clock_out is not None:
            _require_aware(self.clock_out, "clock_out")
        if self.break_minutes is not None and self.break_minutes < 0:
            raise ValidationError("break_minutes", "must be non-negative")


# ---------------------------------------------------------------------------
# Availability
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AvailabilityRequest:
    worker_id: UUID
    start: datetime
    end: datetime
    availability_type: AvailabilityType = AvailabilityType.UNAVAILABLE
    reason: str | None = None

    def __post_init__(self):
        _require_aware(self.start, "start")
        _require_aware(self.end, "end")
        if self.end <= self.start:
            raise ValidationError("time_range", "end must be after start")
        object.__setattr__(self, "availability_type", AvailabilityType(self.availability_type))

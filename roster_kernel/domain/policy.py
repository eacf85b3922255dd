"""
Roster Policy Schema.

Defines the structure and defaults for scheduling, throttling, punch and
approval settings.  Values are loaded from YAML by ``roster_config`` at
runtime; services accept the section they need by constructor injection and
fall back to these defaults.
"""

from dataclasses import dataclass, field

from roster_kernel.domain.lifecycle import MANAGER_ROLES, MemberRole
from roster_kernel.logging_config import get_logger

logger = get_logger("domain.policy")


@dataclass(frozen=True)
class SchedulingPolicy:
    """Bounds applied to a publish request."""

    max_dates_per_block: int = 31
    max_workers_per_position: int = 50
    max_recurrence_weeks: int = 12
    max_expanded_dates: int = 365
    conflict_buffer_days: int = 2

    def __post_init__(self):
        for name in (
            "max_dates_per_block",
            "max_workers_per_position",
            "max_recurrence_weeks",
            "max_expanded_dates",
        ):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be at least 1")
        if self.conflict_buffer_days < 0:
            raise ValueError("conflict_buffer_days must be non-negative")


@dataclass(frozen=True)
class RateLimitPolicy:
    """Fixed publish window per tenant."""

    window_seconds: int = 60
    max_requests: int = 10
    key_prefix: str = "publish_schedule"

    def __post_init__(self):
        if self.window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        if self.max_requests <= 0:
            raise ValueError("max_requests must be positive")
        if not self.key_prefix:
            raise ValueError("key_prefix must be non-empty")


@dataclass(frozen=True)
class IdempotencyPolicy:
    ttl_days: int = 7

    def __post_init__(self):
        if self.ttl_days <= 0:
            raise ValueError("ttl_days must be positive")


@dataclass(frozen=True)
class PunchPolicy:
    """Clock-in/clock-out acceptance rules."""

    grace_minutes: int = 5
    early_clock_in_buffer_minutes: int = 60
    max_clock_skew_minutes: int = 5
    max_accuracy_meters: float = 200.0
    default_geofence_radius_meters: int = 100

    def __post_init__(self):
        if self.grace_minutes < 0:
            raise ValueError("grace_minutes must be non-negative")
        if self.early_clock_in_buffer_minutes < 0:
            raise ValueError("early_clock_in_buffer_minutes must be non-negative")
        if self.max_clock_skew_minutes <= 0:
            raise ValueError("max_clock_skew_minutes must be positive")
        if self.max_accuracy_meters <= 0:
            raise ValueError("max_accuracy_meters must be positive")
        if self.default_geofence_radius_meters <= 0:
            raise ValueError("default_geofence_radius_meters must be positive")


@dataclass(frozen=True)
class ApprovalPolicy:
    """Timesheet finalization rules."""

    grace_minutes: int = 5
    end_grace_minutes: int = 5
    late_clock_out_note_minutes: int = 15
    approver_roles: frozenset[MemberRole] = field(default=MANAGER_ROLES)

    def __post_init__(self):
        if self.grace_minutes < 0:
            raise ValueError("grace_minutes must be non-negative")
        if self.end_grace_minutes < 0:
            raise ValueError("end_grace_minutes must be non-negative")
        if self.late_clock_out_note_minutes < 0:
            raise ValueError("late_clock_out_note_minutes must be non-negative")
        if not self.approver_roles:
            raise ValueError("approver_roles must not be empty")


@dataclass(frozen=True)
class NotificationPolicy:
    night_before_hour: int = 20
    reminder_offsets_minutes: tuple[int, ...] = (60, 15)

    def __post_init__(self):
        if not 0 <= self.night_before_hour <= 23:
            raise ValueError("night_before_hour must be between 0 and 23")
        if any(offset <= 0 for offset in self.reminder_offsets_minutes):
            raise ValueError("reminder_offsets_minutes must be positive")


@dataclass(frozen=True)
class RosterPolicy:
    """All policy sections, as produced by ``roster_config.get_active_config()``."""

    scheduling: SchedulingPolicy = field(default_factory=SchedulingPolicy)
    rate_limit: RateLimitPolicy = field(default_factory=RateLimitPolicy)
    idempotency: IdempotencyPolicy = field(default_factory=IdempotencyPolicy)
    punch: PunchPolicy = field(default_factory=PunchPolicy)
    approval: ApprovalPolicy = field(default_factory=ApprovalPolicy)
    notifications: NotificationPolicy = field(default_factory=NotificationPolicy)

    def __post_init__(self):
        logger.debug(
            "roster_policy_initialized",
            extra={
                "rate_limit_window_seconds": self.rate_limit.window_seconds,
                "rate_limit_max_requests": self.rate_limit.max_requests,
                "approval_grace_minutes": self.approval.grace_minutes,
            },
        )

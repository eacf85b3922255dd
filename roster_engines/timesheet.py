"""
Timesheet Engine (``roster_engines.timesheet``).

Responsibility
--------------
Classifies one assignment's punches at approval time and, for clean
timesheets, computes the billable minutes and gross pay.

Architecture position
---------------------
**Engines layer** -- pure functional core.  ZERO I/O.  The approval engine
in ``roster_kernel.services`` feeds it snapshots and persists the result.

Rules
-----
* No clock-in and no clock-out: no-show, zero pay.
* Exactly one punch present: dirty.
* Effective start is the scheduled start when clock-in falls within the
  grace window after it (early arrivals included); otherwise the actual
  clock-in.
* Effective end is the actual clock-out, so time past the scheduled end is
  paid.  A clock-out at most ``end_grace_minutes`` before the scheduled
  end snaps up to it.  A clock-out more than ``late_note_minutes`` past the
  scheduled end leaves a note on the timesheet.
* Break minutes must satisfy ``0 <= break < total``; anything else is dirty.
* Gross pay is ``ceil(billable_minutes * rate_cents / 60)`` in integer
  arithmetic.  Non-positive billable minutes pay zero.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

from roster_engines.tracer import traced_engine


class TimesheetClass(str, Enum):
    CLEAN = "clean"
    DIRTY = "dirty"
    NO_SHOW = "no_show"


@dataclass(frozen=True)
class TimesheetComputation:
    """Outcome for one assignment."""

    classification: TimesheetClass
    effective_clock_in: datetime | None = None
    effective_clock_out: datetime | None = None
    total_minutes: int = 0
    break_minutes: int = 0
    billable_minutes: int = 0
    gross_pay_cents: int = 0
    notes: tuple[str, ...] = ()
    dirty_reason: str | None = None

    @property
    def is_dirty(self) -> bool:
        return self.classification is TimesheetClass.DIRTY


def calculate_pay_cents(billable_minutes: int, rate_cents: int) -> int:
    """Hourly rate applied per minute, rounded up to the cent."""
    if billable_minutes <= 0 or rate_cents <= 0:
        return 0
    return -(-(billable_minutes * rate_cents) // 60)


def effective_clock_in(
    actual_clock_in: datetime, scheduled_start: datetime, grace_minutes: int
) -> datetime:
    if actual_clock_in <= scheduled_start + timedelta(minutes=grace_minutes):
        return scheduled_start
    return actual_clock_in


def effective_clock_out(
    actual_clock_out: datetime, scheduled_end: datetime, end_grace_minutes: int
) -> datetime:
    if scheduled_end - timedelta(minutes=end_grace_minutes) <= actual_clock_out < scheduled_end:
        return scheduled_end
    return actual_clock_out


def whole_minutes(start: datetime, end: datetime) -> int:
    return int((end - start).total_seconds() // 60)


@traced_engine(
    "timesheet",
    "1.0",
    fingerprint_fields=(
        "scheduled_start",
        "scheduled_end",
        "rate_cents",
        "actual_clock_in",
        "actual_clock_out",
        "break_minutes",
    ),
)
def compute_timesheet(
    scheduled_start: datetime,
    scheduled_end: datetime,
    rate_cents: int,
    actual_clock_in: datetime | None,
    actual_clock_out: datetime | None,
    break_minutes: int = 0,
    grace_minutes: int = 5,
    end_grace_minutes: int = 5,
    late_note_minutes: int = 15,
) -> TimesheetComputation:
    """Classify an assignment and compute its pay.

    Args:
        scheduled_start: Shift start (UTC).
        scheduled_end: Shift end (UTC).
        rate_cents: Hourly rate snapshot, in cents.
        actual_clock_in: Recorded clock-in, or None.
        actual_clock_out: Recorded clock-out, or None.
        break_minutes: Unpaid break recorded on the assignment.
        grace_minutes: Late-arrival tolerance snapping to scheduled start.
        end_grace_minutes: Early-leave tolerance snapping to scheduled end.
        late_note_minutes: Clock-out overrun that earns a note.

    Returns:
        TimesheetComputation.  Dirty results carry ``dirty_reason`` and
        zero pay.
    """
    if actual_clock_in is None and actual_clock_out is None:
        return TimesheetComputation(classification=TimesheetClass.NO_SHOW)
    if actual_clock_in is None:
        return TimesheetComputation(
            classification=TimesheetClass.DIRTY,
            dirty_reason="clock_out_without_clock_in",
        )
    if actual_clock_out is None:
        return TimesheetComputation(
            classification=TimesheetClass.DIRTY,
            dirty_reason="missing_clock_out",
        )

    start = effective_clock_in(actual_clock_in, scheduled_start, grace_minutes)
    end = effective_clock_out(actual_clock_out, scheduled_end, end_grace_minutes)
    total = whole_minutes(start, end)
    breaks = break_minutes or 0

    notes: list[str] = []
    overrun = whole_minutes(scheduled_end, actual_clock_out)
    if overrun > late_note_minutes:
        notes.append(f"Clocked out {overrun} minutes after scheduled end")

    if breaks < 0 or breaks >= total:
        return TimesheetComputation(
            classification=TimesheetClass.DIRTY,
            effective_clock_in=start,
            effective_clock_out=end,
            total_minutes=total,
            break_minutes=breaks,
            notes=tuple(notes),
            dirty_reason="invalid_break" if total > 0 else "no_time_worked",
        )

    billable = total - breaks
    return TimesheetComputation(
        classification=TimesheetClass.CLEAN,
        effective_clock_in=start,
        effective_clock_out=end,
        total_minutes=total,
        break_minutes=breaks,
        billable_minutes=billable,
        gross_pay_cents=calculate_pay_cents(billable, rate_cents),
        notes=tuple(notes),
    )

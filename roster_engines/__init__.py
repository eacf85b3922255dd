"""
Roster engines -- pure calculation functions with no I/O.

Every function here is deterministic given its arguments.  Services in
``roster_kernel.services`` load state, call an engine, and persist the
outcome.
"""

from roster_engines.geofence import (
    check_geofence,
    clock_skew_seconds,
    haversine_distance_meters,
)
from roster_engines.overlap import BatchOverlapTracker, find_first_overlap, intervals_overlap
from roster_engines.recurrence import expand_recurring_dates
from roster_engines.timesheet import (
    TimesheetClass,
    TimesheetComputation,
    calculate_pay_cents,
    compute_timesheet,
)
from roster_engines.timezones import compile_local_instant, compile_shift_window

__all__ = [
    "BatchOverlapTracker",
    "TimesheetClass",
    "TimesheetComputation",
    "calculate_pay_cents",
    "check_geofence",
    "clock_skew_seconds",
    "compile_local_instant",
    "compile_shift_window",
    "compute_timesheet",
    "expand_recurring_dates",
    "find_first_overlap",
    "haversine_distance_meters",
    "intervals_overlap",
]

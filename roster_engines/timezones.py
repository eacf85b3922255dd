"""
Time Zone Compiler (``roster_engines.timezones``).

Responsibility
--------------
Converts a (local date, "HH:MM" wall-clock time, IANA zone) triple into an
absolute UTC instant, and compiles a shift's start/end pair with overnight
handling.

Architecture position
---------------------
**Engines layer** -- pure functional core.  ZERO I/O.

Invariants enforced
-------------------
* Results are timezone-aware UTC datetimes.
* An end that does not fall after the start is moved to the next calendar
  day and re-resolved in the zone, so a shift crossing a DST change keeps
  its wall-clock end rather than a fixed 24-hour offset.
* Ambiguous wall-clock times (fall back) resolve to the first occurrence;
  non-existent ones (spring forward) resolve with the pre-transition
  offset, i.e. they land after the gap.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from roster_engines.tracer import traced_engine
from roster_kernel.domain.requests import parse_local_time


def compile_local_instant(local_date: date, local_time: time | str, timezone_name: str) -> datetime:
    """Absolute UTC instant of a wall-clock moment in ``timezone_name``."""
    if isinstance(local_time, str):
        local_time = parse_local_time(local_time)
    local = datetime.combine(local_date, local_time, tzinfo=ZoneInfo(timezone_name))
    return local.astimezone(timezone.utc)


@traced_engine(
    "timezones", "1.0", fingerprint_fields=("local_date", "start_time", "end_time", "timezone_name")
)
def compile_shift_window(
    local_date: date,
    start_time: time | str,
    end_time: time | str,
    timezone_name: str,
) -> tuple[datetime, datetime]:
    """Compile a shift's start and end instants.

    Returns:
        ``(start_utc, end_utc)`` with ``end_utc > start_utc``.
    """
    start = compile_local_instant(local_date, start_time, timezone_name)
    end = compile_local_instant(local_date, end_time, timezone_name)
    if end <= start:
        end = compile_local_instant(local_date + timedelta(days=1), end_time, timezone_name)
    return start, end


def local_date_of(instant: datetime, timezone_name: str) -> date:
    return instant.astimezone(ZoneInfo(timezone_name)).date()

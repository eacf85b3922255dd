"""
Recurrence Expansion Engine (``roster_engines.recurrence``).

Responsibility
--------------
Turns a block's anchor dates plus an optional weekly/biweekly rule into the
bounded, sorted, de-duplicated list of calendar dates the schedule compiler
materializes.

Architecture position
---------------------
**Engines layer** -- pure functional core.  ZERO I/O, ZERO database,
ZERO clock reads.  Imports only from ``roster_kernel.domain``.

Invariants enforced
-------------------
* Deterministic: identical inputs always produce the identical ordered list.
* The anchor week starts on the Sunday on or before the earliest anchor date;
  days of the anchor week that precede the anchor date are still emitted
  (the past-date check downstream rejects them if they are before today).
* Output is capped at ``max_dates`` entries.

Failure modes
-------------
* Returns ``[]`` when no anchor dates are given and a rule is active.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date, timedelta

from roster_engines.tracer import traced_engine
from roster_kernel.domain.requests import RecurrenceEnd, RecurrenceRule

DEFAULT_MAX_DATES = 365


def start_of_week(day: date) -> date:
    """The Sunday on or before ``day``."""
    # date.weekday(): Monday=0 .. Sunday=6
    return day - timedelta(days=(day.weekday() + 1) % 7)


@traced_engine("recurrence", "1.0", fingerprint_fields=("dates", "rule", "max_dates"))
def expand_recurring_dates(
    dates: Sequence[date],
    rule: RecurrenceRule | None,
    max_dates: int = DEFAULT_MAX_DATES,
) -> list[date]:
    """Expand anchor dates by a recurrence rule.

    Without a rule, or with a disabled one, the anchor dates are returned
    as given.

    Args:
        dates: Anchor calendar dates (the first week of the pattern).
        rule: Recurrence rule, or None.
        max_dates: Hard safety cap on the number of dates returned.

    Returns:
        Sorted, de-duplicated dates, at most ``max_dates`` long.
    """
    if rule is None or not rule.enabled:
        return list(dates)
    if not dates:
        return []

    anchor = start_of_week(min(dates))
    step_days = 7 * rule.interval_weeks
    days = sorted(rule.days_of_week)

    if rule.end_type is RecurrenceEnd.ON_DATE:
        end_date = rule.end_date
        max_iterations = None
    else:
        end_date = None
        max_iterations = rule.end_after_weeks or 1

    expanded: set[date] = set()
    iteration = 0
    while True:
        if max_iterations is not None and iteration >= max_iterations:
            break
        week_start = anchor + timedelta(days=iteration * step_days)
        for day_index in days:
            candidate = week_start + timedelta(days=day_index)
            if end_date is not None and candidate > end_date:
                continue
            expanded.add(candidate)

        iteration += 1
        if end_date is not None:
            next_week_start = anchor + timedelta(days=iteration * step_days)
            if next_week_start > end_date:
                break
        # Later weeks only add later dates, so the cap is already decided.
        if len(expanded) >= max_dates:
            break

    return sorted(expanded)[:max_dates]

"""
Interval Overlap Engine (``roster_engines.overlap``).

Responsibility
--------------
Half-open interval arithmetic used by conflict detection: the pairwise
overlap test, a first-match search over prefetched commitments, and the
per-batch tracker that stops one publish request from double-booking a
worker with itself.

Architecture position
---------------------
**Engines layer** -- pure functional core.  ZERO I/O.

Invariants enforced
-------------------
* Intervals are half-open ``[start, end)``: a shift ending at 17:00 does not
  overlap one starting at 17:00.
* ``intervals_overlap`` is symmetric.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Callable, Hashable, Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Generic, TypeVar

T = TypeVar("T")


def intervals_overlap(
    a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime
) -> bool:
    return a_start < b_end and a_end > b_start


def find_first_overlap(
    start: datetime,
    end: datetime,
    candidates: Iterable[T],
    bounds: Callable[[T], tuple[datetime, datetime]],
) -> T | None:
    """First candidate whose ``bounds`` overlap ``[start, end)``, or None."""
    for candidate in candidates:
        c_start, c_end = bounds(candidate)
        if intervals_overlap(c_start, c_end, start, end):
            return candidate
    return None


@dataclass(frozen=True)
class StagedSlot(Generic[T]):
    worker_id: Hashable
    start: datetime
    end: datetime
    ref: Any


class BatchOverlapTracker:
    """
    In-memory register of slots staged by the current request.

    Contract:
        ``find_overlap`` must be called before ``stage`` for each candidate;
        the tracker never rejects on its own.
    """

    def __init__(self) -> None:
        self._by_worker: dict[Hashable, list[StagedSlot]] = defaultdict(list)

    def find_overlap(self, worker_id: Hashable, start: datetime, end: datetime) -> StagedSlot | None:
        return find_first_overlap(
            start, end, self._by_worker.get(worker_id, ()), lambda s: (s.start, s.end)
        )

    def stage(self, worker_id: Hashable, start: datetime, end: datetime, ref: Any = None) -> StagedSlot:
        slot = StagedSlot(worker_id=worker_id, start=start, end=end, ref=ref)
        self._by_worker[worker_id].append(slot)
        return slot

    @property
    def staged_count(self) -> int:
        return sum(len(slots) for slots in self._by_worker.values())

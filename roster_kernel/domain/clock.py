"""
Clock -- the only source of "now" for scheduling code.

Services take a ``Clock`` instead of reading the wall clock, so past-date
checks, punch skew, rate-limit windows and idempotency expiry can all be
pinned in tests.  Calendar "today" always depends on a location's IANA
zone, never on the server's.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo


class Clock(ABC):
    @abstractmethod
    def now(self) -> datetime:
        """Current instant, timezone-aware UTC."""

    def today_in(self, timezone_name: str) -> date:
        return self.now().astimezone(ZoneInfo(timezone_name)).date()


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Pinned clock for tests.

    Time only moves through ``set_time`` and ``advance``; a naive start
    time is read as UTC.
    """

    def __init__(self, start: datetime | None = None):
        self._current = _as_utc(start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc))

    def now(self) -> datetime:
        return self._current

    def set_time(self, instant: datetime) -> None:
        self._current = _as_utc(instant)

    def advance(self, seconds: int = 1) -> None:
        self._current += timedelta(seconds=seconds)

    def advance_minutes(self, minutes: int) -> None:
        self.advance(minutes * 60)


def _as_utc(instant: datetime) -> datetime:
    if instant.tzinfo is None:
        return instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(timezone.utc)

"""Injectable clock so "now" never comes from inline wall-clock calls."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Protocol


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    """Wall-clock time in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock:
    """
    Clock frozen at a given instant.

    Used by tests and by batch jobs that must evaluate a whole run
    against one reference time.
    """

    def __init__(self, at: datetime):
        if at.tzinfo is None:
            at = at.replace(tzinfo=timezone.utc)
        self._at = at

    def now(self) -> datetime:
        return self._at

    def advance(self, **kwargs: float) -> None:
        self._at = self._at + timedelta(**kwargs)


def resolve_clock(clock: Clock | None) -> Clock:
    return clock if clock is not None else SystemClock()

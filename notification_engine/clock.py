"""Time source for scheduling and delivery.

All persisted timestamps are naive UTC datetimes. Components take a
``Clock`` so tests can pin "now" instead of patching ``datetime``.
"""

from datetime import datetime, timedelta, timezone
from typing import Protocol


class Clock(Protocol):
    """Anything that can tell the current UTC time."""

    def now(self) -> datetime: ...


class SystemClock:
    """Wall clock, naive UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc).replace(tzinfo=None)


class FixedClock:
    """Clock frozen at a given instant; ``advance`` moves it forward."""

    def __init__(self, current: datetime) -> None:
        self.current = current

    def now(self) -> datetime:
        return self.current

    def advance(self, **delta: float) -> None:
        self.current = self.current + timedelta(**delta)


def utcnow() -> datetime:
    """Naive UTC now, used for bookkeeping defaults."""
    return datetime.now(timezone.utc).replace(tzinfo=None)

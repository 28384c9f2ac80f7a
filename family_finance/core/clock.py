"""
Injectable clock.

Request handlers never read the wall clock directly; they receive a Clock
through the ``get_clock`` dependency so tests can pin "now".  All instants
are naive UTC datetimes, matching what the database stores.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone


class Clock(ABC):
    @abstractmethod
    def now(self) -> datetime:
        ...


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc).replace(tzinfo=None)


class FixedClock(Clock):
    """Always returns the same instant."""

    def __init__(self, instant: datetime):
        self._instant = to_naive_utc(instant)

    def now(self) -> datetime:
        return self._instant


def to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def iso_z(value: datetime) -> str:
    """2024-06-15T09:00:00.000Z"""
    value = to_naive_utc(value)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"

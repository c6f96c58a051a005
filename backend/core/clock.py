"""
Clock & ID Generation
Time and identity are injected, never read from globals inside the engine.

Usage:
    clock = SystemClock()
    now = clock.now()

    # Tests
    clock = FixedClock(datetime(2026, 1, 1, tzinfo=timezone.utc))
    clock.advance(minutes=5)
"""

import itertools
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Protocol


IdGenerator = Callable[[], str]


class Clock(Protocol):
    def now(self) -> datetime:
        ...


class SystemClock:
    """Wall clock, always timezone-aware UTC"""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock:
    """Manually advanced clock for deterministic evaluation"""

    def __init__(self, start: Optional[datetime] = None):
        self._now = ensure_utc(start) if start else datetime(2026, 1, 1, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._now

    def set(self, value: datetime) -> None:
        self._now = ensure_utc(value)

    def advance(self, **delta) -> datetime:
        self._now = self._now + timedelta(**delta)
        return self._now


def ensure_utc(value: datetime) -> datetime:
    """Naive datetimes are assumed to be UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def uuid_ids() -> str:
    return str(uuid.uuid4())


def sequential_ids(prefix: str = "evt") -> IdGenerator:
    counter = itertools.count(1)
    return lambda: f"{prefix}_{next(counter):06d}"

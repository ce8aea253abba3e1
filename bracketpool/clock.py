"""
bracketpool/clock.py - Time source for expiration and start-time checks.
"""

import time
from typing import Protocol


class Clock(Protocol):
    def now(self) -> int: ...


class SystemClock:
    """Wall-clock seconds since the epoch."""

    def now(self) -> int:
        return int(time.time())


class ManualClock:
    """A clock that only moves when told to. Never goes backwards."""

    def __init__(self, start: int = 0):
        self._now = start

    def now(self) -> int:
        return self._now

    def set(self, timestamp: int) -> None:
        if timestamp < self._now:
            raise ValueError(f"Clock can't go backwards ({timestamp} < {self._now})")
        self._now = timestamp

    def advance(self, seconds: int) -> None:
        self.set(self._now + seconds)

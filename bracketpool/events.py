"""
bracketpool/events.py - Notifications fired by the core.

The core never reads these back. Sinks are injected: LoggingSink for
operators, MemorySink for tests, BufferedSink so the router can hold events
until the state change that produced them has been saved.
"""

import logging
from dataclasses import asdict, dataclass, field
from typing import Protocol

logger = logging.getLogger(__name__)


# ============================================================================
# Event types
# ============================================================================


@dataclass
class FeePaid:
    competition_id: int
    user: str
    amount: int
    name: str = field(default="fee_paid", init=False)


@dataclass
class Refunded:
    competition_id: int
    user: str
    amount: int
    name: str = field(default="refunded", init=False)


@dataclass
class Claimed:
    competition_id: int
    user: str
    amount: int
    name: str = field(default="claimed", init=False)


@dataclass
class MatchCompleted:
    competition_id: int
    match_id: int
    winner_id: int
    name: str = field(default="match_completed", init=False)


@dataclass
class PredictionSaved:
    competition_id: int
    user: str
    predictions: list[int]
    name: str = field(default="prediction_saved", init=False)


Event = FeePaid | Refunded | Claimed | MatchCompleted | PredictionSaved


# ============================================================================
# Sinks
# ============================================================================


class NotificationSink(Protocol):
    def emit(self, event: Event) -> None: ...


class LoggingSink:
    """Writes every event to the log at INFO."""

    def emit(self, event: Event) -> None:
        payload = {k: v for k, v in asdict(event).items() if k != "name"}
        logger.info(f"[{event.name}] {payload}")


class MemorySink:
    """Keeps events in a list. Handy in tests and for the CLI summary."""

    def __init__(self):
        self.events: list[Event] = []

    def emit(self, event: Event) -> None:
        self.events.append(event)

    def names(self) -> list[str]:
        return [e.name for e in self.events]

    def clear(self) -> None:
        self.events.clear()


class BufferedSink:
    """Holds events until flush(); discard() drops them after a failed call."""

    def __init__(self, target: NotificationSink):
        self._target = target
        self._pending: list[Event] = []

    def emit(self, event: Event) -> None:
        self._pending.append(event)

    def flush(self) -> None:
        pending, self._pending = self._pending, []
        for event in pending:
            self._target.emit(event)

    def discard(self) -> None:
        if self._pending:
            logger.debug(f"Discarding {len(self._pending)} unsent event(s)")
        self._pending = []

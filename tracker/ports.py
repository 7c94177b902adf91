"""
Capabilities the polling core consumes.

The core never talks to HTTP, Kafka or the wall clock directly; it goes
through these interfaces so each one can be swapped for a test double.
"""

import threading
import time
from abc import ABC, abstractmethod
from concurrent.futures import Future
from datetime import datetime, timezone

from .models import ScoreData, ScoreMessage


class FetchError(Exception):
    pass


class PublishError(Exception):
    pass


class SerializationError(PublishError):
    pass


class ScoreFetcher(ABC):
    @abstractmethod
    def fetch(self, event_id: str) -> ScoreData:
        """Return the current score for an event. Raise on failure."""
        ...

    def close(self) -> None:
        pass


class Publisher(ABC):
    @abstractmethod
    def publish(self, key: str, message: ScoreMessage) -> Future:
        """
        Hand a message off for delivery and return immediately.

        Raises SerializationError if the message cannot be encoded and
        PublishError if the hand-off itself fails. The returned future
        resolves once the broker acknowledges (or rejects) the message.
        """
        ...

    def close(self) -> None:
        pass


class Clock(ABC):
    @abstractmethod
    def now(self) -> float:
        """Monotonic seconds, used for scheduling."""
        ...

    @abstractmethod
    def wall(self) -> datetime:
        """Current wall-clock instant (aware, UTC), used for timestamps."""
        ...

    @abstractmethod
    def sleep_until(self, deadline: float, cancelled: threading.Event) -> bool:
        """Block until now() >= deadline. Returns False if cancelled first."""
        ...

    def ticker(self, initial_delay: float, period: float) -> "Ticker":
        return Ticker(self, initial_delay, period)


class Ticker:
    """
    Fixed-rate tick grid anchored at creation time + initial_delay.

    Tick k is due at origin + k * period. A late tick fires immediately and
    the grid is never re-anchored, so overruns do not cause drift.
    """

    def __init__(self, clock: Clock, initial_delay: float, period: float):
        if period <= 0:
            raise ValueError("period must be > 0")
        self._clock  = clock
        self._period = period
        self._origin = clock.now() + initial_delay
        self._ticks  = 0

    @property
    def next_tick(self) -> float:
        return self._origin + self._ticks * self._period

    def wait(self, cancelled: threading.Event) -> bool:
        """Sleep until the next tick. Returns False if cancelled."""
        deadline = self.next_tick
        self._ticks += 1
        if deadline <= self._clock.now():
            return not cancelled.is_set()
        return self._clock.sleep_until(deadline, cancelled)


class SystemClock(Clock):
    def now(self) -> float:
        return time.monotonic()

    def wall(self) -> datetime:
        return datetime.now(timezone.utc)

    def sleep_until(self, deadline: float, cancelled: threading.Event) -> bool:
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return not cancelled.is_set()
            if cancelled.wait(remaining):
                return False

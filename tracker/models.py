"""Data models for the event score tracker."""

from concurrent.futures import Future
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class Transition(Enum):
    NO_CHANGE       = "no_change"
    WENT_LIVE       = "went_live"
    WENT_DARK       = "went_dark"
    FIRST_SEEN_DARK = "first_seen_dark"


@dataclass(frozen=True)
class EventState:
    event_id: str
    is_live: bool

    @property
    def status(self) -> str:
        return "live" if self.is_live else "not live"


@dataclass(frozen=True)
class ScoreData:
    event_id: str
    current_score: str     # opaque, e.g. "2:1"


@dataclass(frozen=True)
class ScoreMessage:
    event_id: str
    current_score: str
    timestamp: datetime    # stamped after the fetch, aware UTC

    def to_dict(self) -> dict:
        return {
            "eventId":      self.event_id,
            "currentScore": self.current_score,
            "timestamp":    self.timestamp.isoformat().replace("+00:00", "Z"),
        }


@dataclass(frozen=True)
class PollPolicy:
    initial_delay: float        = 1.0
    period: float               = 10.0
    fetch_max_attempts: int     = 3
    fetch_backoff: float        = 1.0
    publish_max_attempts: int   = 3
    publish_backoff: float      = 0.5


@dataclass
class FetchOutcome:
    score: Optional[ScoreData] = None
    error: Optional[BaseException] = None
    attempts: int = 0
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        return self.score is not None


@dataclass
class PublishOutcome:
    future: Optional[Future] = None     # broker ack, resolved asynchronously
    error: Optional[BaseException] = None
    attempts: int = 0
    cancelled: bool = False

    @property
    def dispatched(self) -> bool:
        return self.future is not None

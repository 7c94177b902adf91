"""
Live event score tracker: per-event polling lifecycle and its adapters.
"""

from .models import EventState, PollPolicy, ScoreData, ScoreMessage, Transition
from .registry import InvalidEventIdError, Registry
from .service import EventStatusService
from .supervisor import PollerHandle, PollerSupervisor
from .worker import PollWorker

__all__ = [
    "EventState",
    "EventStatusService",
    "InvalidEventIdError",
    "PollPolicy",
    "PollWorker",
    "PollerHandle",
    "PollerSupervisor",
    "Registry",
    "ScoreData",
    "ScoreMessage",
    "Transition",
]

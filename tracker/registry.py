"""In-memory registry of event live/not-live state."""

import logging
import threading
from typing import Optional

from .models import EventState, Transition

logger = logging.getLogger("event_tracker.registry")


class InvalidEventIdError(ValueError):
    pass


class Registry:
    """
    Authoritative map from event id to its live flag.

    update_status() only classifies and records the change; acting on the
    returned Transition is the caller's job.
    """

    def __init__(self):
        self._lock   = threading.Lock()
        self._events: dict[str, EventState] = {}

    def update_status(self, event_id: str, is_live: bool) -> Transition:
        if not event_id or not event_id.strip():
            raise InvalidEventIdError("Event ID is required")
        is_live = bool(is_live)

        with self._lock:
            prior = self._events.get(event_id)
            if prior is not None and prior.is_live == is_live:
                return Transition.NO_CHANGE
            self._events[event_id] = EventState(event_id, is_live)

        if is_live:
            transition = Transition.WENT_LIVE
        elif prior is None:
            transition = Transition.FIRST_SEEN_DARK
        else:
            transition = Transition.WENT_DARK
        logger.debug("Event %s: %s", event_id, transition.value)
        return transition

    def get(self, event_id: str) -> Optional[EventState]:
        with self._lock:
            return self._events.get(event_id)

    def active_count(self) -> int:
        with self._lock:
            return sum(1 for s in self._events.values() if s.is_live)

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)

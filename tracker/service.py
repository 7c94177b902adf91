"""
EventStatusService — the entry point admin traffic goes through.

Holds a per-event lock across Registry.update_status() and
PollerSupervisor.on_transition() so that, for any one event, the registry
and the handle table never disagree once a call returns. Different events
never contend.
"""

import logging
import threading
from typing import Optional

from .models import EventState, Transition
from .registry import Registry
from .supervisor import DEFAULT_DRAIN_TIMEOUT_S, PollerSupervisor

logger = logging.getLogger("event_tracker.service")


class EventStatusService:
    def __init__(self, registry: Registry, supervisor: PollerSupervisor):
        self.registry   = registry
        self.supervisor = supervisor
        self._locks_guard = threading.Lock()
        self._event_locks: dict[str, threading.Lock] = {}

    def update_status(self, event_id: str, is_live: bool) -> Transition:
        logger.info("Updating event status: eventId=%s, isLive=%s",
                    event_id, is_live)
        with self._lock_for(event_id):
            transition = self.registry.update_status(event_id, is_live)
            if transition == Transition.NO_CHANGE:
                logger.debug("Event status unchanged for eventId=%s", event_id)
            else:
                self.supervisor.on_transition(event_id, transition)
        return transition

    def get_status(self, event_id: str) -> Optional[EventState]:
        return self.registry.get(event_id)

    def active_count(self) -> int:
        return self.registry.active_count()

    def health(self) -> dict:
        return {
            "status":        "healthy",
            "known_events":  len(self.registry),
            "active_events": self.registry.active_count(),
            "pollers":       self.supervisor.active_pollers(),
        }

    def shutdown(self, drain_timeout: Optional[float] = DEFAULT_DRAIN_TIMEOUT_S) -> None:
        logger.info("Shutting down event status service")
        self.supervisor.shutdown(drain_timeout)

    def _lock_for(self, event_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._event_locks.get(event_id)
            if lock is None:
                lock = self._event_locks[event_id] = threading.Lock()
            return lock

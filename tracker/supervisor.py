"""
PollerSupervisor — keeps exactly one PollWorker per live event.

Registry transitions come in through on_transition(); the supervisor owns
the handle table and is the only thing that spawns or cancels workers.
Workers that find their event dark call back into release().
"""

import logging
import threading
import time
from typing import Optional

from .models import PollPolicy, Transition
from .ports import Clock, Publisher, ScoreFetcher
from .registry import Registry
from .worker import PollWorker

logger = logging.getLogger("event_tracker.supervisor")

# A replaced worker is joined in slices of this length, warning after each
REPLACE_JOIN_TIMEOUT_S = 5.0
# Drain used by shutdown() when the caller does not pass one
DEFAULT_DRAIN_TIMEOUT_S = 10.0


class PollerHandle:
    def __init__(self, worker: PollWorker, thread: threading.Thread):
        self.event_id = worker.event_id
        self.worker   = worker
        self._thread  = thread

    def cancel(self) -> None:
        self.worker.cancel()

    @property
    def cancelled(self) -> bool:
        return self.worker.cancelled

    def is_alive(self) -> bool:
        return self._thread.is_alive()

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for the worker thread to exit. Returns True if it did."""
        if self._thread is threading.current_thread():
            return False
        self._thread.join(timeout)
        return not self._thread.is_alive()


class PollerSupervisor:
    def __init__(
        self,
        registry: Registry,
        fetcher: ScoreFetcher,
        publisher: Publisher,
        clock: Clock,
        policy: Optional[PollPolicy] = None,
        log: Optional[logging.Logger] = None,
    ):
        self._registry  = registry
        self._fetcher   = fetcher
        self._publisher = publisher
        self._clock     = clock
        self._policy    = policy or PollPolicy()
        self._log       = log or logger
        self._lock      = threading.Lock()
        self._handles: dict[str, PollerHandle] = {}
        # Cancelled handles whose thread may still be finishing a fetch;
        # the next spawn for the same event waits on it.
        self._retiring: dict[str, PollerHandle] = {}
        self._closed    = False

    # ── Transitions ────────────────────────────────────────────────────────────

    def on_transition(self, event_id: str, transition: Transition) -> None:
        if transition == Transition.WENT_LIVE:
            self._start(event_id)
        elif transition == Transition.WENT_DARK:
            self._stop(event_id)

    def _start(self, event_id: str) -> None:
        with self._lock:
            if self._closed:
                self._log.warning("Supervisor is shut down, not polling %s",
                                  event_id)
                return
            existing = self._handles.pop(event_id, None)
            retiring = self._retiring.pop(event_id, None)

        if existing is not None:
            self._log.warning("Replacing existing poller for %s", event_id)
            existing.cancel()
            if not self._await_stop(existing):
                return
        if retiring is not None and not self._await_stop(retiring):
            return

        worker = PollWorker(
            event_id,
            registry=self._registry,
            fetcher=self._fetcher,
            publisher=self._publisher,
            clock=self._clock,
            policy=self._policy,
            on_dark=self._on_worker_dark,
            log=self._log,
        )
        thread = threading.Thread(
            target=self._run_worker, args=(worker,),
            daemon=True, name=f"poll-{event_id}",
        )
        handle = PollerHandle(worker, thread)

        with self._lock:
            if self._closed:
                return
            self._handles[event_id] = handle
        thread.start()
        self._log.info("Started poller for %s", event_id)

    def _stop(self, event_id: str) -> None:
        with self._lock:
            handle = self._handles.pop(event_id, None)
            if handle is not None:
                self._retiring[event_id] = handle
        if handle is not None:
            handle.cancel()
            self._log.info("Stopping poller for %s", event_id)

    def _await_stop(self, handle: PollerHandle) -> bool:
        """
        Block until a cancelled worker's thread has exited.

        A worker stuck in a fetch only notices cancellation once the call
        returns. Joins in REPLACE_JOIN_TIMEOUT_S slices with no overall
        deadline. Returns False if the supervisor was shut down meanwhile.
        """
        waited = 0.0
        while not handle.join(REPLACE_JOIN_TIMEOUT_S):
            waited += REPLACE_JOIN_TIMEOUT_S
            if self._closed:
                return False
            self._log.warning("Old poller for %s still running after %.1fs, waiting",
                              handle.event_id, waited)
        return True

    def _run_worker(self, worker: PollWorker) -> None:
        try:
            worker.run()
        finally:
            with self._lock:
                retiring = self._retiring.get(worker.event_id)
                if retiring is not None and retiring.worker is worker:
                    del self._retiring[worker.event_id]

    def _on_worker_dark(self, worker: PollWorker) -> None:
        with self._lock:
            handle = self._handles.get(worker.event_id)
        if handle is not None and handle.worker is worker:
            self.release(worker.event_id, handle)

    def release(self, event_id: str, handle: PollerHandle) -> bool:
        """Cancel and drop handle, but only if it is still the current one."""
        with self._lock:
            if self._handles.get(event_id) is not handle:
                return False
            del self._handles[event_id]
            self._retiring[event_id] = handle
        handle.cancel()
        self._log.info("Released poller for %s", event_id)
        return True

    # ── Introspection ──────────────────────────────────────────────────────────

    def handle_for(self, event_id: str) -> Optional[PollerHandle]:
        with self._lock:
            return self._handles.get(event_id)

    def active_pollers(self) -> int:
        with self._lock:
            return len(self._handles)

    def retiring_pollers(self) -> int:
        """Cancelled workers whose threads have not exited yet."""
        with self._lock:
            return len(self._retiring)

    # ── Shutdown ───────────────────────────────────────────────────────────────

    def shutdown(self, drain_timeout: Optional[float] = DEFAULT_DRAIN_TIMEOUT_S) -> None:
        """
        Cancel every worker and wait up to drain_timeout for them to exit.

        Pass drain_timeout=None to return without waiting; a worker that
        was already past its cancellation check may then still make one
        more fetch or publish call after this returns.
        """
        with self._lock:
            self._closed = True
            handles = list(self._handles.values())
            retiring = list(self._retiring.values())
            self._handles.clear()
            self._retiring.clear()

        self._log.info("Shutting down supervisor, cancelling %d pollers",
                       len(handles))
        for handle in handles:
            handle.cancel()

        if drain_timeout is None:
            return
        deadline = time.monotonic() + drain_timeout
        for handle in handles + retiring:
            remaining = max(0.0, deadline - time.monotonic())
            if not handle.join(remaining):
                self._log.warning("Poller for %s still running after drain",
                                  handle.event_id)

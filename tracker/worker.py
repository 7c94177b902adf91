"""
PollWorker — one event's fetch-and-publish loop.

Cycle
-----
  1. sleep until the next fixed-rate tick (cancellable)
  2. re-check the registry; release itself if the event went dark
  3. fetch the score, retrying with exponential backoff
  4. stamp a ScoreMessage with the clock's wall time
  5. hand the message to the publisher, retrying failed hand-offs

The publish ack is observed through a future callback, so a slow broker
never delays the next tick. Cycles run one after another on the worker's
own thread, which is what keeps per-event messages in fetch order.
"""

import logging
import threading
from concurrent.futures import Future
from datetime import datetime
from typing import Callable, Optional

from .models import (
    FetchOutcome, PollPolicy, PublishOutcome, ScoreData, ScoreMessage,
)
from .ports import Clock, FetchError, Publisher, ScoreFetcher, SerializationError
from .registry import Registry

logger    = logging.getLogger("event_tracker.worker")
score_log = logging.getLogger("event_tracker.scores")
error_log = logging.getLogger("event_tracker.errors")


class PollWorker:
    def __init__(
        self,
        event_id: str,
        registry: Registry,
        fetcher: ScoreFetcher,
        publisher: Publisher,
        clock: Clock,
        policy: PollPolicy,
        on_dark: Callable[["PollWorker"], None],
        log: Optional[logging.Logger] = None,
    ):
        self.event_id   = event_id
        self._registry  = registry
        self._fetcher   = fetcher
        self._publisher = publisher
        self._clock     = clock
        self._policy    = policy
        self._on_dark   = on_dark
        self._log       = log or logger
        self._cancelled = threading.Event()
        # Anchored now so the grid starts at spawn time + initial delay
        self._ticker    = clock.ticker(policy.initial_delay, policy.period)
        self._last_ts: Optional[datetime] = None
        self.cycles     = 0

    # ── Lifecycle ──────────────────────────────────────────────────────────────

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def run(self) -> None:
        self._log.info(
            "Poller started for %s (first tick in %.1fs, every %.1fs)",
            self.event_id, self._policy.initial_delay, self._policy.period,
        )
        while self._ticker.wait(self._cancelled):
            try:
                self.run_cycle()
            except Exception as exc:
                error_log.error("[%s] poll cycle crashed: %s",
                                self.event_id, exc, exc_info=True)
            if self._cancelled.is_set():
                break
        self._log.info("Poller stopped for %s after %d cycles",
                       self.event_id, self.cycles)

    # ── Cycle ──────────────────────────────────────────────────────────────────

    def run_cycle(self) -> None:
        self.cycles += 1

        state = self._registry.get(self.event_id)
        if state is None or not state.is_live:
            self._log.warning("Event %s is no longer live, stopping poller",
                              self.event_id)
            self._cancelled.set()
            self._on_dark(self)
            return

        fetched = self._fetch_with_retry()
        if fetched.cancelled:
            return
        if not fetched.ok:
            error_log.error("[%s] giving up on score after %d attempts: %s",
                            self.event_id, fetched.attempts, fetched.error)
            return
        if self._cancelled.is_set():
            return

        message = ScoreMessage(
            event_id=fetched.score.event_id,
            current_score=fetched.score.current_score,
            timestamp=self._stamp(),
        )
        self._publish_with_retry(message)

    def _stamp(self) -> datetime:
        now = self._clock.wall()
        if self._last_ts is not None and now < self._last_ts:
            now = self._last_ts
        self._last_ts = now
        return now

    # ── Fetch ──────────────────────────────────────────────────────────────────

    def _fetch_with_retry(self) -> FetchOutcome:
        max_attempts = self._policy.fetch_max_attempts
        delay        = self._policy.fetch_backoff
        last_exc     = None

        for attempt in range(1, max_attempts + 1):
            if self._cancelled.is_set():
                return FetchOutcome(attempts=attempt - 1, cancelled=True)
            try:
                score = self._fetcher.fetch(self.event_id)
                if not isinstance(score, ScoreData) or not score.current_score:
                    raise FetchError("empty score response")
                self._log.debug("[%s] fetched score %s (attempt %d)",
                                self.event_id, score.current_score, attempt)
                return FetchOutcome(score=score, attempts=attempt)
            except Exception as exc:
                last_exc = exc
                if attempt < max_attempts:
                    self._log.warning(
                        "[%s] fetch attempt %d failed: %s, retrying in %.1fs",
                        self.event_id, attempt, exc, delay,
                    )
                    if not self._backoff(delay):
                        return FetchOutcome(error=exc, attempts=attempt,
                                            cancelled=True)
                    delay *= 2

        return FetchOutcome(error=last_exc, attempts=max_attempts)

    # ── Publish ────────────────────────────────────────────────────────────────

    def _publish_with_retry(self, message: ScoreMessage) -> PublishOutcome:
        max_attempts = self._policy.publish_max_attempts
        delay        = self._policy.publish_backoff
        last_exc     = None

        for attempt in range(1, max_attempts + 1):
            if self._cancelled.is_set():
                self._log.debug("[%s] publish abandoned on cancellation",
                                self.event_id)
                return PublishOutcome(attempts=attempt - 1, cancelled=True)
            try:
                future = self._publisher.publish(self.event_id, message)
            except SerializationError as exc:
                error_log.error("[%s] failed to serialize message: %s",
                                self.event_id, exc)
                return PublishOutcome(error=exc, attempts=attempt)
            except Exception as exc:
                last_exc = exc
                if attempt < max_attempts:
                    self._log.warning(
                        "[%s] publish attempt %d failed: %s, retrying in %.1fs",
                        self.event_id, attempt, exc, delay,
                    )
                    if not self._backoff(delay):
                        return PublishOutcome(error=exc, attempts=attempt,
                                              cancelled=True)
                    delay *= 2
                continue

            future.add_done_callback(
                lambda f, m=message: self._on_publish_done(m, f)
            )
            return PublishOutcome(future=future, attempts=attempt)

        error_log.error("[%s] dropping score %s after %d publish attempts: %s",
                        self.event_id, message.current_score, max_attempts,
                        last_exc)
        return PublishOutcome(error=last_exc, attempts=max_attempts)

    def _on_publish_done(self, message: ScoreMessage, future: Future) -> None:
        if future.cancelled():
            self._log.debug("[%s] publish of %s cancelled",
                            self.event_id, message.current_score)
            return
        exc = future.exception()
        if exc is not None:
            error_log.error("[%s] failed to publish score %s: %s",
                            self.event_id, message.current_score, exc)
        else:
            score_log.info("PUBLISHED | %s | %s | %s", self.event_id,
                           message.current_score, message.to_dict()["timestamp"])

    def _backoff(self, delay: float) -> bool:
        return self._clock.sleep_until(self._clock.now() + delay, self._cancelled)

"""
Score publishers.

KafkaScorePublisher hands messages to a confluent-kafka Producer keyed by
event id. Delivery reports are served by a background poll thread and
resolve the future returned from publish(). Broker-side retries are left to
librdkafka, capped at the publish attempt budget, with a single in-flight
request per connection so retried messages keep their per-key order.

InMemoryPublisher keeps a bounded history instead, for running without a
broker and for tests.
"""

import json
import logging
import threading
from collections import deque
from concurrent.futures import Future
from typing import Optional

from confluent_kafka import KafkaException, Producer

from .models import PollPolicy, ScoreMessage
from .ports import Publisher, PublishError, SerializationError

logger = logging.getLogger("event_tracker.publisher")

DELIVERY_POLL_S = 0.5
FLUSH_TIMEOUT_S = 10.0


def encode_message(message: ScoreMessage) -> bytes:
    try:
        return json.dumps(message.to_dict(), separators=(",", ":")).encode("utf-8")
    except (TypeError, ValueError, AttributeError) as exc:
        raise SerializationError(f"cannot encode message for {message.event_id}: {exc}") from exc


class KafkaScorePublisher(Publisher):
    def __init__(
        self,
        topic: str,
        bootstrap_servers: str = "localhost:9092",
        max_attempts: int = 3,
        backoff: float = 0.5,
        acks: str = "all",
        producer: Optional[Producer] = None,
    ):
        self.topic = topic
        if producer is None:
            producer = Producer({
                "bootstrap.servers":                     bootstrap_servers,
                "acks":                                  acks,
                "message.send.max.retries":              max(0, max_attempts - 1),
                "retry.backoff.ms":                      int(backoff * 1000),
                "max.in.flight.requests.per.connection": 1,
            })
        self._producer = producer
        self._stopped = threading.Event()
        self._poller: Optional[threading.Thread] = None

    # ── Lifecycle ──────────────────────────────────────────────────────────────

    def start(self) -> None:
        self._poller = threading.Thread(
            target=self._delivery_loop, daemon=True, name="kafka-delivery"
        )
        self._poller.start()
        logger.info("Kafka publisher started (topic=%s)", self.topic)

    def close(self) -> None:
        self._stopped.set()
        if self._poller is not None:
            self._poller.join(DELIVERY_POLL_S * 4)
        remaining = self._producer.flush(FLUSH_TIMEOUT_S)
        if remaining:
            logger.warning("%d messages still undelivered at close", remaining)
        logger.info("Kafka publisher closed")

    def _delivery_loop(self) -> None:
        while not self._stopped.is_set():
            try:
                self._producer.poll(DELIVERY_POLL_S)
            except Exception as exc:
                logger.error("Delivery poll error: %s", exc)

    # ── Publish ────────────────────────────────────────────────────────────────

    def publish(self, key: str, message: ScoreMessage) -> Future:
        payload = encode_message(message)
        future: Future = Future()
        future.set_running_or_notify_cancel()

        def _on_delivery(err, msg) -> None:
            if err is not None:
                future.set_exception(PublishError(str(err)))
            else:
                future.set_result({"partition": msg.partition(),
                                   "offset": msg.offset()})

        try:
            self._producer.produce(
                self.topic,
                key=key.encode("utf-8"),
                value=payload,
                on_delivery=_on_delivery,
            )
        except (BufferError, KafkaException) as exc:
            raise PublishError(f"producer rejected message for {key}: {exc}") from exc
        return future


class InMemoryPublisher(Publisher):
    def __init__(self, history_size: int = 1000):
        self._lock = threading.Lock()
        self._history: deque = deque(maxlen=history_size)
        self._published = 0

    def publish(self, key: str, message: ScoreMessage) -> Future:
        payload = encode_message(message)
        with self._lock:
            self._history.append((key, message))
            offset = self._published
            self._published += 1
        future: Future = Future()
        future.set_result({"partition": 0, "offset": offset, "bytes": len(payload)})
        return future

    def history(self, key: Optional[str] = None) -> list:
        with self._lock:
            return [(k, m) for k, m in self._history if key is None or k == key]


def create_publisher(cfg: dict, policy: PollPolicy) -> Publisher:
    backend = cfg["publish"]["backend"]
    if backend == "memory":
        logger.info("Using in-memory publisher")
        return InMemoryPublisher()

    kafka = cfg["kafka"]
    publisher = KafkaScorePublisher(
        topic=cfg["publish"]["topic"],
        bootstrap_servers=kafka["bootstrap-servers"],
        max_attempts=policy.publish_max_attempts,
        backoff=policy.publish_backoff,
        acks=kafka["acks"],
    )
    publisher.start()
    return publisher

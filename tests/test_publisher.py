"""
Tests for the score publishers
==============================
Wire format, Kafka hand-off and delivery reports, and the in-memory backend.
"""

import json
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest
from confluent_kafka import KafkaException

from tracker.config import build_config
from tracker.models import PollPolicy, ScoreMessage
from tracker.ports import PublishError, SerializationError
from tracker.publisher import (
    InMemoryPublisher,
    KafkaScorePublisher,
    create_publisher,
    encode_message,
)

TS = datetime(2024, 5, 1, 12, 30, 15, tzinfo=timezone.utc)


def _message(score="1:0"):
    return ScoreMessage(event_id="e1", current_score=score, timestamp=TS)


def test_encode_message_wire_format():
    body = json.loads(encode_message(_message()))
    assert body == {
        "eventId": "e1",
        "currentScore": "1:0",
        "timestamp": "2024-05-01T12:30:15Z",
    }


def test_encode_message_rejects_unserialisable():
    with pytest.raises(SerializationError):
        encode_message(_message(score=object()))


# ── Kafka ──────────────────────────────────────────────────────────────────────

def test_producer_config():
    with patch("tracker.publisher.Producer") as producer_cls:
        KafkaScorePublisher("scores", "broker:9092", max_attempts=4, backoff=0.25, acks="1")
    conf, = producer_cls.call_args.args
    assert conf["bootstrap.servers"] == "broker:9092"
    assert conf["acks"] == "1"
    assert conf["message.send.max.retries"] == 3
    assert conf["retry.backoff.ms"] == 250
    assert conf["max.in.flight.requests.per.connection"] == 1


def test_publish_keys_by_event_id():
    producer = MagicMock()
    publisher = KafkaScorePublisher("scores", producer=producer)

    future = publisher.publish("e1", _message())

    producer.produce.assert_called_once()
    args, kwargs = producer.produce.call_args
    assert args == ("scores",)
    assert kwargs["key"] == b"e1"
    assert json.loads(kwargs["value"])["currentScore"] == "1:0"
    assert not future.done()


def test_delivery_report_resolves_future():
    producer = MagicMock()
    publisher = KafkaScorePublisher("scores", producer=producer)
    future = publisher.publish("e1", _message())

    msg = MagicMock()
    msg.partition.return_value = 2
    msg.offset.return_value = 41
    producer.produce.call_args.kwargs["on_delivery"](None, msg)

    assert future.result(0) == {"partition": 2, "offset": 41}


def test_delivery_error_fails_future():
    producer = MagicMock()
    publisher = KafkaScorePublisher("scores", producer=producer)
    future = publisher.publish("e1", _message())

    producer.produce.call_args.kwargs["on_delivery"]("Broker: timed out", None)

    with pytest.raises(PublishError):
        future.result(0)


@pytest.mark.parametrize("exc", [BufferError("queue full"), KafkaException("down")])
def test_producer_rejection_raises_publish_error(exc):
    producer = MagicMock()
    producer.produce.side_effect = exc
    publisher = KafkaScorePublisher("scores", producer=producer)
    with pytest.raises(PublishError):
        publisher.publish("e1", _message())


def test_serialization_error_never_reaches_producer():
    producer = MagicMock()
    publisher = KafkaScorePublisher("scores", producer=producer)
    with pytest.raises(SerializationError):
        publisher.publish("e1", _message(score=object()))
    producer.produce.assert_not_called()


def test_start_and_close():
    producer = MagicMock()
    producer.flush.return_value = 0
    publisher = KafkaScorePublisher("scores", producer=producer)
    publisher.start()
    publisher.close()
    producer.flush.assert_called_once()
    assert not publisher._poller.is_alive()


# ── In-memory ──────────────────────────────────────────────────────────────────

def test_in_memory_history_and_offsets():
    publisher = InMemoryPublisher(history_size=2)
    offsets = [
        publisher.publish(key, _message(score)).result(0)["offset"]
        for key, score in (("a", "0:0"), ("b", "1:0"), ("a", "2:0"))
    ]
    assert offsets == [0, 1, 2]
    assert [(k, m.current_score) for k, m in publisher.history()] == [("b", "1:0"), ("a", "2:0")]
    assert [m.current_score for _, m in publisher.history("a")] == ["2:0"]


def test_in_memory_rejects_unserialisable():
    publisher = InMemoryPublisher()
    with pytest.raises(SerializationError):
        publisher.publish("e1", _message(score=object()))
    assert publisher.history() == []


def test_create_publisher_memory_backend():
    cfg = build_config({"publish": {"backend": "memory"}})
    assert isinstance(create_publisher(cfg, PollPolicy()), InMemoryPublisher)


def test_create_publisher_kafka_backend():
    cfg = build_config({
        "publish": {"topic": "scores", "max-attempts": 5, "backoff": {"initial": "200ms"}},
        "kafka": {"bootstrap-servers": "k1:9092"},
    })
    policy = PollPolicy(publish_max_attempts=5, publish_backoff=0.2)
    with patch("tracker.publisher.Producer") as producer_cls:
        publisher = create_publisher(cfg, policy)
        try:
            assert isinstance(publisher, KafkaScorePublisher)
            assert publisher.topic == "scores"
            conf, = producer_cls.call_args.args
            assert conf["bootstrap.servers"] == "k1:9092"
            assert conf["message.send.max.retries"] == 4
        finally:
            producer_cls.return_value.flush.return_value = 0
            publisher.close()

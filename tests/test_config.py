"""
Tests for configuration loading
===============================
"""

import pytest

from tracker.config import build_config, load_config, parse_duration, policy_from_config


@pytest.mark.parametrize("value,expected", [
    (2, 2.0),
    (1.5, 1.5),
    ("10s", 10.0),
    ("500ms", 0.5),
    ("2m", 120.0),
    ("3", 3.0),
])
def test_parse_duration(value, expected):
    assert parse_duration(value) == expected


@pytest.mark.parametrize("value", ["soon", "10h", -1, True, ""])
def test_parse_duration_rejects(value):
    with pytest.raises(ValueError):
        parse_duration(value)


def test_defaults():
    cfg = build_config({"publish": {"topic": "scores"}})
    assert cfg["poll"]["initial-delay"] == 1.0
    assert cfg["poll"]["period"] == 10.0
    assert cfg["external-api"]["timeout"] == 3.0
    assert cfg["publish"]["backoff"]["initial"] == 0.5
    assert cfg["fetch"]["backoff"]["initial"] == 1.0
    assert cfg["shutdown"]["drain-timeout"] == 10.0
    assert cfg["external-api"]["url"] == "http://127.0.0.1:8080/mock-api"


def test_explicit_url_wins_over_mock():
    cfg = build_config({
        "external-api": {"url": "http://scores.internal/api"},
        "publish": {"topic": "scores"},
    })
    assert cfg["external-api"]["url"] == "http://scores.internal/api"


def test_nested_override_keeps_siblings():
    cfg = build_config({"publish": {"topic": "t", "backoff": {"initial": "2s"}}})
    assert cfg["publish"]["backoff"]["initial"] == 2.0
    assert cfg["publish"]["max-attempts"] == 3


@pytest.mark.parametrize("raw,message", [
    ({"mock-upstream": {"enabled": False}, "publish": {"topic": "t"}}, "external-api.url"),
    ({"publish": {"topic": "t"}, "poll": {"period": 0}}, "poll.period"),
    ({"publish": {"backend": "carrier-pigeon"}}, "publish.backend"),
    ({}, "publish.topic"),
    ({"publish": {"topic": "t"}, "fetch": {"max-attempts": 0}}, "fetch.max-attempts"),
    ({"publish": {"topic": "t", "max-attempts": True}}, "publish.max-attempts"),
    ([1, 2], "mapping"),
    ({"publish": {"topic": "t"}, "logging": {"level": "LOUD"}}, "logging.level"),
])
def test_validation_errors(raw, message):
    with pytest.raises(ValueError, match=message):
        build_config(raw)


def test_memory_backend_needs_no_topic():
    cfg = build_config({"publish": {"backend": "memory"}})
    assert cfg["publish"]["topic"] is None


def test_load_config_from_yaml(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "external-api:\n"
        "  url: http://up:9000\n"
        "  timeout: 750ms\n"
        "publish:\n"
        "  topic: live-scores\n"
        "poll:\n"
        "  initial-delay: 0s\n"
        "  period: 5s\n"
    )
    cfg = load_config(str(path))
    assert cfg["external-api"]["url"] == "http://up:9000"
    assert cfg["external-api"]["timeout"] == 0.75
    assert cfg["poll"]["initial-delay"] == 0.0
    assert cfg["poll"]["period"] == 5.0


def test_load_empty_yaml_still_requires_topic(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("")
    with pytest.raises(ValueError, match="publish.topic"):
        load_config(str(path))


def test_policy_from_config():
    cfg = build_config({
        "publish": {"topic": "t", "max-attempts": 5, "backoff": {"initial": "250ms"}},
        "fetch": {"max-attempts": 2, "backoff": {"initial": "2s"}},
        "poll": {"initial-delay": "0s", "period": "30s"},
    })
    policy = policy_from_config(cfg)
    assert policy.initial_delay == 0.0
    assert policy.period == 30.0
    assert policy.fetch_max_attempts == 2
    assert policy.fetch_backoff == 2.0
    assert policy.publish_max_attempts == 5
    assert policy.publish_backoff == 0.25


def test_empty_section_keeps_defaults(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "publish:\n"
        "  topic: live-scores\n"
        "poll:\n"
        "fetch:\n"
        "  backoff:\n"
    )
    cfg = load_config(str(path))
    assert cfg["poll"]["period"] == 10.0
    assert cfg["poll"]["initial-delay"] == 1.0
    assert cfg["fetch"]["backoff"]["initial"] == 1.0


def test_scalar_section_is_rejected():
    with pytest.raises(ValueError, match="poll must be a mapping"):
        build_config({"publish": {"topic": "t"}, "poll": 5})

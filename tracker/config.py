"""YAML configuration: defaults, duration parsing and validation."""

import copy
import logging
import re

import yaml

from .models import PollPolicy

DEFAULTS: dict = {
    "external-api": {"url": None, "timeout": "3s"},
    "publish": {
        "topic":        None,
        "backend":      "kafka",        # "kafka" | "memory"
        "max-attempts": 3,
        "backoff":      {"initial": "500ms"},
    },
    "poll": {"initial-delay": "1s", "period": "10s"},
    "fetch": {"max-attempts": 3, "backoff": {"initial": "1s"}},
    "mock-upstream": {"enabled": True},
    "kafka": {"bootstrap-servers": "localhost:9092", "acks": "all"},
    "shutdown": {"drain-timeout": "10s"},
    "server": {"host": "127.0.0.1", "port": 8080},
    "logging": {"log_dir": "logs", "level": "INFO"},
}

_DURATION_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(ms|s|m)?\s*$")
_UNIT_SECONDS = {"ms": 0.001, "s": 1.0, "m": 60.0, None: 1.0}

# (section, key) pairs holding durations, normalised to float seconds
_DURATIONS = [
    ("external-api", "timeout"),
    ("poll", "initial-delay"),
    ("poll", "period"),
    ("shutdown", "drain-timeout"),
]


def parse_duration(value) -> float:
    """Accept 1.5, "1.5", "500ms", "10s" or "2m" and return seconds."""
    if isinstance(value, bool):
        raise ValueError(f"invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        seconds = float(value)
    else:
        m = _DURATION_RE.match(str(value))
        if not m:
            raise ValueError(f"invalid duration: {value!r}")
        seconds = float(m.group(1)) * _UNIT_SECONDS[m.group(2)]
    if seconds < 0:
        raise ValueError(f"duration must be >= 0: {value!r}")
    return seconds


def _merge(base: dict, override: dict) -> dict:
    out = copy.deepcopy(base)
    for key, value in (override or {}).items():
        if value is None and isinstance(out.get(key), dict):
            continue    # "poll:" with nothing under it keeps the defaults
        if isinstance(out.get(key), dict):
            if not isinstance(value, dict):
                raise ValueError(f"{key} must be a mapping, got {value!r}")
            out[key] = _merge(out[key], value)
        else:
            out[key] = value
    return out


def build_config(raw: dict) -> dict:
    """Merge raw settings over DEFAULTS, normalise durations and validate."""
    if raw is not None and not isinstance(raw, dict):
        raise ValueError("config root must be a mapping")
    cfg = _merge(DEFAULTS, raw or {})

    for section, key in _DURATIONS:
        cfg[section][key] = parse_duration(cfg[section][key])
    for section in ("fetch", "publish"):
        cfg[section]["backoff"]["initial"] = parse_duration(
            cfg[section]["backoff"]["initial"]
        )

    if not cfg["external-api"]["url"] and cfg["mock-upstream"]["enabled"]:
        server = cfg["server"]
        cfg["external-api"]["url"] = f"http://{server['host']}:{server['port']}/mock-api"

    _validate_config(cfg)
    return cfg


def load_config(path: str) -> dict:
    with open(path) as f:
        return build_config(yaml.safe_load(f))


def _validate_config(cfg: dict) -> None:
    """Raise ValueError for missing or obviously wrong config values."""
    if not cfg["external-api"]["url"]:
        raise ValueError("external-api.url is required")
    if cfg["poll"]["period"] <= 0:
        raise ValueError("poll.period must be > 0")

    publish = cfg["publish"]
    if publish["backend"] not in ("kafka", "memory"):
        raise ValueError("publish.backend must be 'kafka' or 'memory'")
    if publish["backend"] == "kafka" and not publish["topic"]:
        raise ValueError("publish.topic is required")

    level = cfg["logging"]["level"]
    if not isinstance(logging.getLevelName(str(level).upper()), int):
        raise ValueError(f"logging.level is not a log level: {level!r}")

    for section in ("fetch", "publish"):
        attempts = cfg[section]["max-attempts"]
        if isinstance(attempts, bool) or not isinstance(attempts, int) or attempts < 1:
            raise ValueError(f"{section}.max-attempts must be an integer >= 1")


def policy_from_config(cfg: dict) -> PollPolicy:
    return PollPolicy(
        initial_delay=cfg["poll"]["initial-delay"],
        period=cfg["poll"]["period"],
        fetch_max_attempts=cfg["fetch"]["max-attempts"],
        fetch_backoff=cfg["fetch"]["backoff"]["initial"],
        publish_max_attempts=cfg["publish"]["max-attempts"],
        publish_backoff=cfg["publish"]["backoff"]["initial"],
    )

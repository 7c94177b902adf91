#!/usr/bin/env python3
"""
Live Event Score Tracker
========================
Entry point — loads config, wires components, serves the admin API.
Each event switched live through POST /events/status gets its own poller
that fetches the upstream score and publishes it keyed by event id.

Usage:
    python main.py [--config config.yaml] [--host 127.0.0.1] [--port 8080]
"""

import argparse
import logging
import sys

import uvicorn

from admin.server import app, set_mock_upstream, set_service
from tracker.client import HttpScoreFetcher
from tracker.config import load_config, policy_from_config
from tracker.logger import setup_logger
from tracker.ports import SystemClock
from tracker.publisher import create_publisher
from tracker.registry import Registry
from tracker.service import EventStatusService
from tracker.supervisor import PollerSupervisor


def main() -> None:
    parser = argparse.ArgumentParser(description="Live Event Score Tracker")
    parser.add_argument("--config", default="config.yaml", help="Path to config file")
    parser.add_argument("--host", default=None)
    parser.add_argument("--port", type=int, default=None)
    args = parser.parse_args()

    try:
        cfg = load_config(args.config)
    except (OSError, ValueError) as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        sys.exit(1)

    host = args.host or cfg["server"]["host"]
    port = args.port or cfg["server"]["port"]
    policy = policy_from_config(cfg)

    log = setup_logger(cfg["logging"]["log_dir"], cfg["logging"]["level"])
    log.info("=" * 60)
    log.info("Live Event Score Tracker starting on %s:%d", host, port)
    log.info(
        "Config: upstream=%s | backend=%s | topic=%s | first tick=%.1fs | "
        "period=%.1fs | fetch attempts=%d | publish attempts=%d",
        cfg["external-api"]["url"],
        cfg["publish"]["backend"],
        cfg["publish"]["topic"],
        policy.initial_delay,
        policy.period,
        policy.fetch_max_attempts,
        policy.publish_max_attempts,
    )
    log.info("=" * 60)

    # ── Wiring ───────────────────────────────────────────────────────────────
    registry  = Registry()
    fetcher   = HttpScoreFetcher(
        cfg["external-api"]["url"], timeout=cfg["external-api"]["timeout"]
    )
    publisher = create_publisher(cfg, policy)
    supervisor = PollerSupervisor(
        registry, fetcher, publisher, SystemClock(),
        policy=policy,
        log=logging.getLogger("event_tracker.poller"),
    )
    service = EventStatusService(registry, supervisor)

    set_service(service)
    set_mock_upstream(cfg["mock-upstream"]["enabled"])
    if cfg["mock-upstream"]["enabled"]:
        log.info("Mock upstream enabled at http://%s:%d/mock-api", host, port)

    # ── FastAPI server (blocks until SIGINT/SIGTERM) ─────────────────────────
    try:
        uvicorn.run(
            app,
            host=host,
            port=port,
            log_level="warning",   # suppress uvicorn's own access logs
        )
    finally:
        log.info("Shutting down.")
        service.shutdown(cfg["shutdown"]["drain-timeout"])
        publisher.close()
        fetcher.close()


if __name__ == "__main__":
    main()

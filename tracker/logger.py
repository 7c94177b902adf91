"""
Logging setup for the tracker.

  console + main.log   everything, tagged with the thread name, so lines
                       from a poller carry its poll-<eventId> name
  scores.log           one line per acknowledged score, timestamp + message
  errors.log           ERROR and above from anywhere in the tracker
"""

import logging
import os
from pathlib import Path

ROOT_LOGGER = "event_tracker"
SCORES_LOGGER = f"{ROOT_LOGGER}.scores"

MAIN_FORMAT  = "%(asctime)s | %(levelname)-8s | %(threadName)-16s | %(name)s | %(message)s"
SCORE_FORMAT = "%(asctime)s | %(message)s"
DATE_FORMAT  = "%Y-%m-%d %H:%M:%S"


def _level(name: str) -> int:
    level = logging.getLevelName(str(name).upper())
    if not isinstance(level, int):
        raise ValueError(f"unknown log level: {name!r}")
    return level


def setup_logger(log_dir: str, level: str = "INFO") -> logging.Logger:
    root = logging.getLogger(ROOT_LOGGER)
    if root.handlers:
        return root   # already configured

    log_level = _level(level)
    Path(log_dir).mkdir(parents=True, exist_ok=True)
    main_fmt = logging.Formatter(MAIN_FORMAT, datefmt=DATE_FORMAT)

    def _file(filename: str, fmt: logging.Formatter,
              min_level: int = logging.NOTSET) -> logging.FileHandler:
        h = logging.FileHandler(os.path.join(log_dir, filename))
        h.setFormatter(fmt)
        h.setLevel(min_level)
        return h

    root.setLevel(log_level)
    root.propagate = False

    console = logging.StreamHandler()
    console.setFormatter(main_fmt)
    root.addHandler(console)
    root.addHandler(_file("main.log", main_fmt))
    # Errors are collected by level, whichever module logged them
    root.addHandler(_file("errors.log", main_fmt, logging.ERROR))

    logging.getLogger(SCORES_LOGGER).addHandler(
        _file("scores.log", logging.Formatter(SCORE_FORMAT, datefmt=DATE_FORMAT))
    )
    return root

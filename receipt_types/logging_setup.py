"""File-based logging setup for the terminal UI."""

from __future__ import annotations

import logging
from pathlib import Path

from receipt_types.config import LOG_LEVEL, LOG_PATH

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def configure_logging(path: str | Path = LOG_PATH, level: str | int = LOG_LEVEL) -> logging.Logger:
    """Route package log records to a file.

    The terminal belongs to Textual, so nothing is ever written to stdout or
    stderr. If the log file cannot be opened the package logger falls back to
    a NullHandler: logging must never interfere with app flow.
    """
    logger = logging.getLogger("receipt_types")
    logger.setLevel(level if isinstance(level, int) else level.upper())
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    try:
        log_file = Path(path)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handler: logging.Handler = logging.FileHandler(log_file, encoding="utf-8")
    except OSError:
        handler = logging.NullHandler()

    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
    logger.propagate = False
    return logger

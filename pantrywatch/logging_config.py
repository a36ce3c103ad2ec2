"""Per-module loggers writing to stderr and, optionally, ``logs/pantrywatch.log``."""

from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_PATH = Path(os.getenv("PANTRYWATCH_LOG_DIR", "logs")) / "pantrywatch.log"
MAX_LOG_BYTES = 2_000_000
LOG_BACKUPS = 5


def _wants_file_output() -> bool:
    # Serverless hosts have a read-only filesystem.
    flag = os.getenv("PANTRYWATCH_LOG_TO_FILE", "1").strip().lower()
    return flag not in {"0", "false", "no", "off"}


def _handlers() -> list[logging.Handler]:
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if _wants_file_output():
        LOG_PATH.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            RotatingFileHandler(LOG_PATH, maxBytes=MAX_LOG_BYTES, backupCount=LOG_BACKUPS, encoding="utf-8")
        )
    return handlers


def get_logger(name: str) -> logging.Logger:
    """Return the named logger, attaching handlers on first use."""

    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    logger.setLevel(LOG_LEVEL)
    logger.propagate = False
    formatter = logging.Formatter(LOG_FORMAT)
    for handler in _handlers():
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    return logger

"""Logging configuration helpers for the faire-scout pipeline."""

from __future__ import annotations

import logging
import os
import sys
from logging.handlers import RotatingFileHandler

LOG_DIR = os.getenv("FAIRE_SCOUT_LOG_DIR", "logs")
LOG_FILE = os.path.join(LOG_DIR, "faire_scout.log")
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
DEFAULT_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


class SafeStreamHandler(logging.StreamHandler):
    """A StreamHandler that degrades to ASCII instead of failing on encoding errors."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            msg = self.format(record)
        except Exception:
            self.handleError(record)
            return
        try:
            self.stream.write(msg + self.terminator)
        except UnicodeEncodeError:
            self.stream.write(msg.encode("ascii", "replace").decode("ascii") + self.terminator)
        self.flush()


def get_logger(name: str) -> logging.Logger:
    """Return a configured logger with console and rotating file handlers."""
    os.makedirs(LOG_DIR, exist_ok=True)

    logger = logging.getLogger(name)
    logger.setLevel(DEFAULT_LEVEL)
    logger.propagate = False

    if not logger.handlers:
        formatter = logging.Formatter(LOG_FORMAT)

        file_handler = RotatingFileHandler(
            LOG_FILE,
            maxBytes=1_000_000,
            backupCount=3,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        file_handler.setLevel(DEFAULT_LEVEL)

        console_handler = SafeStreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        console_handler.setLevel(DEFAULT_LEVEL)

        logger.addHandler(file_handler)
        logger.addHandler(console_handler)

    return logger

# Overview: Logging setup for the docledger package.

from __future__ import annotations

import logging
import sys

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(level: str = "INFO") -> logging.Logger:
    """
    Attach a single stream handler to the package logger.

    Safe to call repeatedly (create_app runs once per test session).
    """
    logger = logging.getLogger("docledger")
    logger.setLevel(getattr(logging, str(level).upper(), logging.INFO))

    if not any(getattr(h, "_docledger", False) for h in logger.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
        handler._docledger = True
        logger.addHandler(handler)

    return logger

# Overview: Logging setup for the stockflow logger hierarchy.

from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str | int = "INFO") -> logging.Logger:
    """
    Attach a single stream handler to the ``stockflow`` logger.

    Safe to call repeatedly (app factory runs once per test app).
    """
    logger = logging.getLogger("stockflow")
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    logger.setLevel(level)

    if not any(getattr(h, "_stockflow", False) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._stockflow = True
        logger.addHandler(handler)

    return logger

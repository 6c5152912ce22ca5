"""Loguru sink configuration for command-line entry points."""

from __future__ import annotations

import sys

from loguru import logger

CONSOLE_FORMAT = "<dim>{time:HH:mm:ss}</dim> | <level>{level: <8}</level> | {message}"


def configure_logging(level: str = "INFO", log_file: str | None = None) -> None:
    """Replace the default loguru sink with the console (and optional file) sinks."""
    logger.remove()
    logger.add(sys.stderr, level=level, format=CONSOLE_FORMAT)
    if log_file:
        logger.add(log_file, level=level, rotation="1 week", retention="4 weeks")

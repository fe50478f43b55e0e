"""Logging setup for threadvault.

Library modules log through ``logging.getLogger(__name__)``; only the CLI (or an
embedding application) calls ``setup_logging()``.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

_ROOT_LOGGER = "threadvault"
_DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(
    level: int = logging.INFO,
    log_file: Path | None = None,
    format_string: str | None = None,
) -> logging.Logger:
    """Configure the ``threadvault`` logger.

    Args:
        level: Logging level (default: INFO).
        log_file: Optional path to a log file, written in addition to stderr.
        format_string: Optional custom format string.

    Returns:
        The configured package logger.
    """
    formatter = logging.Formatter(format_string or _DEFAULT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    logger = logging.getLogger(_ROOT_LOGGER)
    logger.setLevel(level)

    # Remove existing handlers to avoid duplicates on repeated calls
    logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


"""Logging setup for the CLI and server entry points."""

from __future__ import annotations

import logging
import sys

from loguru import logger

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{module}</cyan>:<cyan>{line}</cyan>\n"
    "{message}"
)

# stdlib has no TRACE/SUCCESS levels
_STDLIB_LEVELS = {"TRACE": "DEBUG", "SUCCESS": "INFO"}


def configure_logging(level: str = "INFO") -> None:
    """Reset loguru to a single stderr sink and align the stdlib root level.

    Core modules log through ``logging.getLogger(__name__)``; the outer
    surfaces log through loguru. Both end up on stderr at *level*.
    """
    level = level.upper()
    logger.remove()
    logger.add(sys.stderr, level=level, format=LOG_FORMAT)
    std_level = _STDLIB_LEVELS.get(level, level)
    logging.basicConfig(
        stream=sys.stderr,
        format="%(asctime)s | %(levelname)-8s | %(name)s\n%(message)s",
        force=True,
    )
    logging.getLogger().setLevel(std_level)


def pretty(value: object, limit: int = 80) -> str:
    """Collapse whitespace and truncate *value* for single-line log messages."""
    text = " ".join(str(value).split())
    if len(text) <= limit:
        return text
    return text[: max(0, limit - 3)] + "..."

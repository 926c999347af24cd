"""Logging configuration for todosync."""

import sys
from pathlib import Path

from loguru import logger

LOG_FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{line} | {message}"


def configure_logging(*, verbose: bool = False) -> None:
    """Configure loguru with appropriate level."""
    logger.remove()
    level = "DEBUG" if verbose else "INFO"
    logger.add(sys.stderr, level=level, format="{level.icon} {message}")


def add_log_file(path: Path, *, verbose: bool = False) -> int:
    """Also log to ``path``, for long-running commands (``watch``, ``serve``).

    The file rotates at 1 MB and three old files are kept. Returns the sink id.
    """
    sink_id = logger.add(
        path,
        level="DEBUG" if verbose else "INFO",
        format=LOG_FILE_FORMAT,
        rotation="1 MB",
        retention=3,
        encoding="utf-8",
    )
    logger.debug("Logging to {}", path)
    return sink_id

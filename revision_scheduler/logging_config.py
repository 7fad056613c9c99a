"""Loguru sink configuration shared by the CLI and the API server."""

from __future__ import annotations

import sys

from loguru import logger


def configure_logging(level: str = "INFO", log_file: str | None = None) -> None:
    """
    Replace default sinks with a stderr sink and an optional rotating file.

    Args:
        level: Minimum level for both sinks
        log_file: Path of a rotating log file (skipped if None)
    """
    logger.remove()
    logger.add(
        sys.stderr,
        level=level,
        format="<level>{message}</level>",
    )
    if log_file:
        logger.add(
            log_file,
            level=level,
            rotation="10 MB",
            retention=5,
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{line} | {message}",
        )

"""Loguru sink setup for applications embedding the toolkit. Library modules only log."""

import sys
from pathlib import Path
from typing import Optional, Union

from loguru import logger

LOG_FORMAT = (
    "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"
)


def configure_logging(level: str = "INFO", log_file: Optional[Union[str, Path]] = None) -> None:
    """Replace the default sink with stderr and an optional daily-rotated file."""
    logger.remove()
    logger.add(sys.stderr, format=LOG_FORMAT, level=level.upper())
    if log_file:
        logger.add(
            str(log_file),
            rotation="1 day",
            retention="30 days",
            level="DEBUG",
        )


__all__ = ["configure_logging", "LOG_FORMAT"]

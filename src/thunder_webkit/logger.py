"""
Logging setup for thunder_webkit.

All modules log through loguru:

    from thunder_webkit.logger import get_logger

    logger = get_logger(__name__)
"""

import os
import sys

from loguru import logger

DEFAULT_FORMAT = (
    "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{extra[name]}</cyan> - <level>{message}</level>"
)


def setup_logging(level: str | None = None) -> None:
    """Replace loguru's default sink with a single stderr sink at ``level``."""
    level = (level or os.getenv("LOGURU_LEVEL") or "INFO").upper()
    # Records from loggers that were never bound still need extra[name].
    logger.configure(extra={"name": "thunder_webkit"})
    logger.remove()
    logger.add(sys.stderr, level=level, format=DEFAULT_FORMAT)


def get_logger(name: str):
    """Return a logger bound to a module name."""
    return logger.bind(name=name)

"""
batchcoder.logging_setup
~~~~~~~~~~~~~~~~~~~~~~~~
One place to (re)configure the loguru sink used by every module.
"""

from __future__ import annotations

import sys

from loguru import logger

LOGGER_FORMAT = (
    "<green>{time:MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "<level>{message}</level>"
)


def configure_logging(level: str = "INFO") -> None:
    """Replace loguru's default handler with a stderr sink at *level*."""
    logger.remove()
    logger.add(sys.stderr, level=level.upper(), format=LOGGER_FORMAT)

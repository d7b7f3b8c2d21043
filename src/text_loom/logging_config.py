"""Logging configuration for text-loom."""

import sys

from loguru import logger


def configure_logging(*, verbose: bool = False) -> None:
    """Route loguru to stderr; DEBUG when verbose, INFO otherwise."""
    logger.remove()
    level = "DEBUG" if verbose else "INFO"
    logger.add(sys.stderr, level=level, format="{level.icon} {message}")

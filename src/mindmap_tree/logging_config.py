"""Logging configuration for the mind-map tree engine."""

import sys

from loguru import logger

_PLAIN_FORMAT = "{level.icon} {message}"
_VERBOSE_FORMAT = "{time:HH:mm:ss.SSS} {level.icon} {name}: {message}"


def configure_logging(*, verbose: bool = False, quiet: bool = False) -> None:
    """Configure loguru with a single stderr sink.

    ``quiet`` keeps only warnings and errors (used by the MCP server, whose
    stdout belongs to the protocol); ``verbose`` wins over ``quiet``.
    """
    logger.remove()
    if verbose:
        logger.add(sys.stderr, level="DEBUG", format=_VERBOSE_FORMAT)
        return
    level = "WARNING" if quiet else "INFO"
    logger.add(sys.stderr, level=level, format=_PLAIN_FORMAT)

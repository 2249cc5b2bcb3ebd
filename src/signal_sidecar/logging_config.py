"""Logging setup for the sidecar process."""

import logging

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def configure_logging(level: str = "info") -> None:
    """Configure root logging at the given level name."""
    logging.basicConfig(
        level=_LEVELS.get(level.lower(), logging.INFO),
        format=LOG_FORMAT,
        force=True,
    )
    # aiohttp's access log duplicates our request metrics
    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)

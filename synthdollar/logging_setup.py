"""Logging configuration for the CLI and embedding applications."""
from __future__ import annotations

import logging

_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
_DATEFMT = "%Y-%m-%d %H:%M:%S"


def configure_logging(level: str = "INFO") -> None:
    """Configure the root logger; unknown level names fall back to INFO."""
    numeric = getattr(logging, level.upper(), None)
    if not isinstance(numeric, int):
        numeric = logging.INFO

    logging.basicConfig(format=_FORMAT, datefmt=_DATEFMT)
    logging.getLogger().setLevel(numeric)

    # HTTP client chatter
    logging.getLogger("aiohttp").setLevel(logging.WARNING)

"""Centralized logging configuration for Scene Generator."""

import logging
import sys
from typing import Optional


NOISY_LOGGERS = [
    "httpx",
    "httpcore",
    "google.genai",
    "google_genai",
    "google.genai.models",
    "google.auth",
    "google.auth.transport",
    "urllib3",
    "PIL",
    "gradio",
    "asyncio",
]


def configure_logging(
    level: str = "INFO",
    format: Optional[str] = None,
    suppress_external: bool = True
) -> None:
    """Configure logging for the application.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR)
        format: Custom format string, or None for default
        suppress_external: If True, suppress noisy external library logs
    """
    # Default format: levelname | time | filename:lineno | message
    if format is None:
        format = "%(levelname)-5s | %(asctime)s | %(filename)s:%(lineno)d | %(message)s"

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=format,
        datefmt="%H:%M:%S",
        stream=sys.stdout,
        force=True
    )

    if suppress_external:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

        for name in list(logging.root.manager.loggerDict):
            if name.startswith("google."):
                logging.getLogger(name).setLevel(logging.WARNING)

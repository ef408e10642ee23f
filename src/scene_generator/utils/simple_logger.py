"""Progress logging helpers for long-running operations."""

import logging


def log_start(logger: logging.Logger, message: str):
    """Log the start of a task."""
    logger.info(f"🚀 {message}", stacklevel=2)


def log_update(logger: logging.Logger, message: str):
    """Log a progress update."""
    logger.info(f"   ▶ {message}", stacklevel=2)


def log_complete(logger: logging.Logger, message: str):
    """Log task completion."""
    logger.info(f"✅ {message}", stacklevel=2)

"""Logging helpers for the workflow orchestrator."""

import logging


def get_logger(name: str, level: str | None = None) -> logging.Logger:
    """Get a logger with the orchestrator's stream format.

    Args:
        name: Logger name (usually ``blueprint_workflow.<component>``)
        level: Optional level name; defaults to the configured log level

    Returns:
        Logger instance
    """
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter(
            "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
        )
        handler.setFormatter(formatter)
        logger.addHandler(handler)
        if level is None:
            from .settings import get_settings

            level = get_settings().log_level
        logger.setLevel(level.upper())
    return logger

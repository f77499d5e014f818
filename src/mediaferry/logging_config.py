"""Logging setup for command-line use."""

import logging
import os

from rich.console import Console
from rich.logging import RichHandler

LOGGER_NAME = "mediaferry"


def setup_logging(level: str | None = None, console: Console | None = None) -> logging.Logger:
    """Attach a RichHandler to the package logger.

    Level comes from the argument, then MEDIAFERRY_LOG_LEVEL, then INFO.
    """
    level = (level or os.getenv("MEDIAFERRY_LOG_LEVEL", "INFO")).upper()

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    logger.propagate = False
    logger.handlers.clear()

    handler = RichHandler(console=console, show_path=False, rich_tracebacks=True)
    handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))
    logger.addHandler(handler)
    return logger

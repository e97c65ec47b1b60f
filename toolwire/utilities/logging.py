"""Logging utilities for toolwire."""

import logging
from typing import Literal

from rich.console import Console
from rich.logging import RichHandler


def get_logger(name: str) -> logging.Logger:
    """Get a logger for a toolwire module.

    Args:
        name: the module name, usually ``__name__``

    Returns:
        a logger instance
    """
    return logging.getLogger(name)


def configure_logging(
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO",
) -> None:
    """Configure logging for toolwire.

    Logs go to stderr; stdout is reserved for the stdio transport.

    Args:
        level: the log level to use
    """
    handlers: list[logging.Handler] = [
        RichHandler(console=Console(stderr=True), rich_tracebacks=True),
    ]

    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=handlers,
    )

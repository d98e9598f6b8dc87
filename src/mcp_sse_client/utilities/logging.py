"""Logging utilities for the MCP SSE client."""

import logging
from typing import Literal

from rich.console import Console
from rich.logging import RichHandler

# Namespace logger for all package logging. Only this logger is configured,
# never the root logger.
_LOGGER_NAME = "mcp_sse_client"


def get_logger(name: str) -> logging.Logger:
    """Get a logger nested under the package namespace.

    Args:
        name: The name of the logger.

    Returns:
        A configured logger instance.
    """
    if name == _LOGGER_NAME or name.startswith(f"{_LOGGER_NAME}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{_LOGGER_NAME}.{name}")


def configure_logging(
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO",
) -> None:
    """Configure logging for the client.

    Sets the level of the package logger and attaches a rich handler to it
    once. Calling it again only changes the level.

    Args:
        level: The log level to use.
    """
    package_logger = logging.getLogger(_LOGGER_NAME)
    package_logger.setLevel(level)

    if package_logger.handlers:
        return

    handler = RichHandler(console=Console(stderr=True), rich_tracebacks=True)
    package_logger.addHandler(handler)

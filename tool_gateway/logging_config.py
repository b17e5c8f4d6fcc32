"""
Logging Configuration Module

Centralized loguru setup for the gateway process.

Usage:
    from tool_gateway.logging_config import configure_logging
    configure_logging()  # Call once at startup

Environment Variables:
    LOG_LEVEL: Console log verbosity (default: INFO)
        - DEBUG: session state transitions, correlation bookkeeping
        - INFO: handshakes, discovery counts, catalog rebuilds (default)
        - WARNING: confirmation blocks, timeouts, name collisions
        - ERROR: connection failures and dispatch errors only
    GATEWAY_LOG_FILE: Optional path of a DEBUG-level file sink
"""

import os
import sys

from loguru import logger


VALID_LOG_LEVELS: set[str] = {"DEBUG", "INFO", "WARNING", "ERROR"}

DEFAULT_LOG_LEVEL = "INFO"

CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - {message}"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} - {message}"


def get_log_level() -> str:
    """
    Get the console log level from the LOG_LEVEL environment variable.

    Returns:
        str: DEBUG, INFO, WARNING, or ERROR. Falls back to INFO if invalid or unset.
    """
    level = os.getenv("LOG_LEVEL", DEFAULT_LOG_LEVEL).strip().upper()
    if level not in VALID_LOG_LEVELS:
        return DEFAULT_LOG_LEVEL
    return level


def get_log_file() -> str | None:
    """Path of the file sink, or None when GATEWAY_LOG_FILE is unset or blank."""
    path = os.getenv("GATEWAY_LOG_FILE", "").strip()
    return path or None


def configure_logging() -> None:
    """
    Replace loguru's default sink with the gateway's console (and optional file) sinks.

    The file sink always logs at DEBUG so that session traffic can be
    reconstructed after the fact, independent of the console level.
    """
    level = get_log_level()

    logger.remove()
    logger.add(sys.stderr, level=level, format=CONSOLE_FORMAT, colorize=True)

    log_file = get_log_file()
    if log_file:
        logger.add(
            log_file,
            rotation="100 MB",
            retention="7 days",
            level="DEBUG",
            format=FILE_FORMAT,
        )

    logger.debug(f"Logging configured: console level={level}, file={log_file}")

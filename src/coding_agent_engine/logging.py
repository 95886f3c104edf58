"""
Logging utilities for the coding agent engine.

All modules log through children of the ``coding_agent_engine`` logger.
Nothing is configured on import; call :func:`setup_logging` from the
application entry point.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import TextIO

PACKAGE_LOGGER = "coding_agent_engine"
LOG_LEVEL_ENV = "CODING_AGENT_LOG_LEVEL"

DEFAULT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

_root_logger = logging.getLogger(PACKAGE_LOGGER)
_level_before_disable: int | None = None


def _coerce_level(level: str | int) -> int:
    if isinstance(level, str):
        return getattr(logging, level.upper(), logging.INFO)
    return level


def setup_logging(
    level: str | int | None = None,
    format: str | None = None,
    stream: TextIO | None = None,
    file: str | None = None,
) -> None:
    """
    Configure logging for the engine.

    Args:
        level: Log level name or int. Falls back to ``CODING_AGENT_LOG_LEVEL``,
            then INFO.
        format: Custom log format string
        stream: Output stream (defaults to stderr)
        file: Optional file path; records are appended to it

    Example:
        from coding_agent_engine.logging import setup_logging

        setup_logging("DEBUG", file="logs/agent.log")
    """
    if level is None:
        level = os.environ.get(LOG_LEVEL_ENV, "INFO")
    resolved = _coerce_level(level)

    _root_logger.setLevel(resolved)
    _root_logger.handlers.clear()

    formatter = logging.Formatter(format or DEFAULT_FORMAT)

    stream_handler = logging.StreamHandler(stream or sys.stderr)
    stream_handler.setFormatter(formatter)
    stream_handler.setLevel(resolved)
    _root_logger.addHandler(stream_handler)

    if file:
        directory = os.path.dirname(file)
        if directory:
            os.makedirs(directory, exist_ok=True)
        file_handler = logging.FileHandler(file)
        file_handler.setFormatter(formatter)
        file_handler.setLevel(resolved)
        _root_logger.addHandler(file_handler)


def get_logger(name: str) -> logging.Logger:
    """
    Get a child logger for a submodule.

    Args:
        name: Submodule name (e.g., "agent", "adapters.openai")

    Returns:
        Logger instance
    """
    if name.startswith(f"{PACKAGE_LOGGER}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{PACKAGE_LOGGER}.{name}")


def set_level(level: str | int) -> None:
    """Set the log level for the engine."""
    _root_logger.setLevel(_coerce_level(level))


def disable() -> None:
    """Disable all logging for the engine, child loggers included."""
    global _level_before_disable
    if _level_before_disable is None:
        _level_before_disable = _root_logger.level
    _root_logger.setLevel(logging.CRITICAL + 1)


def enable() -> None:
    """Re-enable logging at the level in effect before :func:`disable`."""
    global _level_before_disable
    if _level_before_disable is not None:
        _root_logger.setLevel(_level_before_disable)
        _level_before_disable = None

"""Structured logging configuration.

This module initializes structlog once with a stable JSON event format.
The minimum level comes from PARAMSTORE_LOG_LEVEL.
"""

from __future__ import annotations

import logging
import os
from typing import Any

import structlog

from core.constants import DEFAULT_LOG_LEVEL, ENV_LOG_LEVEL

_CONFIGURED = False


def get_logger(name: str) -> Any:
    """Return a module logger instance.

    Args:
        name: Logger name, usually __name__.

    Returns:
        A structlog bound logger with structured JSON output.
    """
    if not _CONFIGURED:
        configure_logging(os.getenv(ENV_LOG_LEVEL, DEFAULT_LOG_LEVEL))
    return structlog.get_logger(name)


def configure_logging(level_name: str) -> None:
    """Configure structlog processors and the minimum event level.

    Args:
        level_name: Standard level name such as DEBUG or WARNING.
            Unknown names fall back to INFO.
    """
    global _CONFIGURED
    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(_resolve_level(level_name)),
        cache_logger_on_first_use=False,
    )
    _CONFIGURED = True


def _resolve_level(level_name: str) -> int:
    level = logging.getLevelName(level_name.strip().upper())
    if isinstance(level, int):
        return level
    return logging.INFO

"""Structured logging configuration using structlog.

Call setup_logging() once at application startup before any log calls.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import TextIO

import structlog


def setup_logging(
    *,
    json_output: bool = True,
    log_level: str = "INFO",
    log_file: Path | None = None,
    enabled: bool = True,
) -> TextIO | None:
    """Configure structlog for the application.

    Args:
        json_output: If True, render logs as JSON. If False, use dev-friendly console output.
        log_level: Minimum log level to emit (DEBUG, INFO, WARNING, ERROR).
        log_file: Append log lines to this file instead of stderr. Parent dirs are created.
        enabled: When False only CRITICAL events pass, keeping the terminal clean.

    Returns the opened log file handle (caller closes it at shutdown), or None.
    """
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if json_output:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=log_file is None)

    level = logging.getLevelName(log_level.upper()) if enabled else logging.CRITICAL
    if not isinstance(level, int):
        level = logging.INFO

    handle: TextIO | None = None
    if log_file is not None and enabled:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handle = log_file.open("a", encoding="utf-8")
        logger_factory = structlog.WriteLoggerFactory(file=handle)
    else:
        logger_factory = structlog.PrintLoggerFactory(file=sys.stderr)

    structlog.configure(
        processors=[*shared_processors, renderer],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=logger_factory,
        cache_logger_on_first_use=True,
    )
    return handle

"""Structlog configuration for hosts embedding the endpoint engine.

Colored console output for development, JSON lines otherwise.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Optional

import structlog


def configure_logging(json_output: Optional[bool] = None, level: int = logging.INFO) -> None:
    """Configure structlog processors for the engine's loggers.

    Args:
        json_output: Force JSON (`True`) or console (`False`) rendering. When
            omitted, console output is used on a TTY or when `FORCE_COLOR` is
            set.
        level: Minimum level passed through the filtering logger.
    """

    if json_output is None:
        force_color = os.environ.get("FORCE_COLOR", "").lower() in ("1", "true", "yes")
        json_output = not (force_color or sys.stdout.isatty())

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    if json_output:
        processors: list[structlog.types.Processor] = [
            *shared_processors,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = [*shared_processors, structlog.dev.ConsoleRenderer(colors=True)]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

"""
Logging setup shared by the CLI and tests.

Module loggers use the standard library; the fix flow uses structlog bound
loggers. Both render to stderr so `--json` output on stdout stays parseable.
"""

from __future__ import annotations

import logging
import sys

import structlog


def configure_logging(level: str = "WARNING", log_format: str = "console") -> None:
    """Configure stdlib logging and structlog.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ...)
        log_format: "json" for JSON lines, anything else for console output
    """
    numeric_level = getattr(logging, level.upper(), logging.WARNING)

    logging.basicConfig(
        level=numeric_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
        force=True,
    )

    renderer = (
        structlog.processors.JSONRenderer()
        if log_format == "json"
        else structlog.dev.ConsoleRenderer(colors=False)
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )

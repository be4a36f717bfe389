"""Structured logging configuration for memleak.

The library modules only ever call get_logger(); configure_logging() is called
once by the command line entry points to pick console or JSON output.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor


def add_app_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Add application context to log events."""
    event_dict["app"] = "memleak"
    return event_dict


def configure_logging(
    log_level: str = "INFO",
    log_format: str = "console",
    log_file: str | None = None,
) -> None:
    """Configure structured logging for memleak.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_format: Output format - "console" for colored development output,
                   "json" for structured production logging.
        log_file: Optional file path to write logs to. If None, logs to stderr.
    """
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    # stdout carries the JSON snapshots of `memleak check`, keep logs off it
    if log_file:
        logging.basicConfig(format="%(message)s", level=numeric_level, filename=log_file, force=True)
    else:
        logging.basicConfig(format="%(message)s", level=numeric_level, stream=sys.stderr, force=True)

    shared_processors: list[Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_app_context,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if log_format == "json":
        processors = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = shared_processors + [
            structlog.processors.ExceptionRenderer(),
            structlog.dev.ConsoleRenderer(
                colors=log_file is None,
                exception_formatter=structlog.dev.plain_traceback,
            ),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        # Module level loggers must pick up later reconfiguration (tests capture logs)
        cache_logger_on_first_use=False,
    )


def get_logger(name: str, **initial_context: Any) -> structlog.stdlib.BoundLogger:
    """Get a logger instance with optional initial context.

    Args:
        name: Logger name, typically __name__ of the calling module.
        **initial_context: Additional context to bind to all log messages.

    Example:
        >>> logger = get_logger(__name__, component="cluster")
        >>> logger.warning("total_size_exceeded_limit", total_size=2048)
    """
    logger = structlog.get_logger(name)
    if initial_context:
        logger = logger.bind(**initial_context)
    return logger

"""Shared logging utilities for structured logging across the application.

This module provides a centralized logging configuration using structlog for
structured, JSON-formatted logs. Ingestion steps, retrieval fan-out and
generation streams all log through the same pipeline so that a single video or
request can be followed end to end by its bound fields (video_id, collection,
conversation_id).
"""

import logging
import os
import sys

import structlog

_configured = False


def _configure(level: int) -> None:
    """Configure structlog and stdlib logging once per process."""
    global _configured

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=level,
    )
    _configured = True


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a configured structured logger instance.

    The first call configures structlog with JSON output, timestamps, log levels
    and exception formatting. The level is read from the LOG_LEVEL environment
    variable (default: INFO).

    Args:
        name: Logger name (typically __name__ from the calling module).

    Returns:
        Configured structlog logger instance ready for use.

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.info("collection_created", collection="video-abc123")
        >>> logger.exception("embedding_failed", video_id="abc123")
    """
    if not _configured:
        level_name = os.getenv("LOG_LEVEL", "INFO").upper()
        _configure(getattr(logging, level_name, logging.INFO))

    return structlog.get_logger(name)

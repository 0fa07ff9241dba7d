"""Observability for repeater: structured logging of retry decisions."""

from .logging import (
    BoundLogger,
    LogEntry,
    LogRenderer,
    configure_from_settings,
    configure_logging,
    get_logger,
    log_context,
)

__all__ = [
    "BoundLogger",
    "LogEntry",
    "LogRenderer",
    "configure_from_settings",
    "configure_logging",
    "get_logger",
    "log_context",
]

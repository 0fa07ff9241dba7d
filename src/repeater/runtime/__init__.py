"""Runtime - Execution flow, cancellation, and logging.

Contains: retry, concurrency, observability.
"""

from __future__ import annotations

__all__ = [
    # Retry
    "Repeater", "Stats", "Outcome", "Strategy", "FixedDelay", "Backoff", "BackoffType",
    # Concurrency
    "Context", "background", "with_cancel", "with_deadline", "with_timeout",
    # Observability
    "BoundLogger", "configure_logging", "get_logger", "log_context",
]


def __getattr__(name: str):
    """Lazy imports to avoid circular dependencies."""
    if name in ("Repeater", "Stats", "Outcome", "Strategy", "FixedDelay", "Backoff", "BackoffType"):
        from . import retry
        return getattr(retry, name)

    if name in ("Context", "background", "with_cancel", "with_deadline", "with_timeout"):
        from . import concurrency
        return getattr(concurrency, name)

    if name in ("BoundLogger", "configure_logging", "get_logger", "log_context"):
        from . import observability
        return getattr(observability, name)

    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

"""Repeater - Bounded, policy-controlled retries for fallible operations.

Wraps an unreliable call (network, I/O) in a retry loop with an attempt
budget, a delay strategy, terminal errors that stop early, and a
cancellation context that can interrupt both attempts and delays.

Quick Start:
    >>> from repeater import Repeater, with_timeout
    >>>
    >>> r = Repeater.backoff(5, 0.1)  # exponential, 30s cap, 10% jitter
    >>> data = r.do(lambda: client.get("/items"), ctx=with_timeout(10))
    >>> r.stats().attempts
    1

Terminal Errors:
    >>> from repeater import ANY_ERROR
    >>> r.do(upload, PermissionError)  # never retry permission problems
    >>> r.do(upload, ANY_ERROR)        # single-shot with statistics

Async:
    >>> r = Repeater.fixed(3, 0.5)
    >>> await r.ado(fetch_async)

Custom Strategies:
    >>> class Tripling:
    ...     def next_delay(self, attempt: int) -> float:
    ...         return 0.1 * 3 ** (attempt - 1) if attempt > 0 else 0.0
    >>> r = Repeater(4, Tripling())
"""

from __future__ import annotations

__version__ = "0.1.0"

# Config
from .foundation.config import (
    LoggingSettings,
    RepeaterSettings,
    RetrySettings,
    clear_settings_cache,
    get_settings,
)

# Errors
from .foundation.errors import ANY_ERROR, Cancelled, ContextError, DeadlineExceeded, is_terminal

# Cancellation
from .runtime.concurrency import Context, background, with_cancel, with_deadline, with_timeout

# Logging
from .runtime.observability import configure_logging, get_logger

# Retry
from .runtime.retry import Backoff, BackoffType, FixedDelay, Outcome, Repeater, Stats, Strategy

__all__ = [
    "__version__",
    # Retry
    "Repeater", "Stats", "Outcome",
    "Strategy", "FixedDelay", "Backoff", "BackoffType",
    # Cancellation
    "Context", "background", "with_cancel", "with_deadline", "with_timeout",
    # Errors
    "ContextError", "Cancelled", "DeadlineExceeded", "ANY_ERROR", "is_terminal",
    # Config
    "RepeaterSettings", "RetrySettings", "LoggingSettings", "get_settings", "clear_settings_cache",
    # Logging
    "configure_logging", "get_logger",
]

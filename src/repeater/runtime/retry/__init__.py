"""Retry orchestration with pluggable delay strategies.

Example:
    >>> from repeater.runtime.retry import Repeater, Backoff, BackoffType
    >>> from repeater.foundation.errors import ANY_ERROR
    >>>
    >>> r = Repeater(5, Backoff(0.2, BackoffType.LINEAR, max_delay=1.0, jitter=0))
    >>> r.do(flaky_call, PermissionError)  # give up at once on PermissionError
    >>> r.do(flaky_call, ANY_ERROR)        # give up on the first failure
    >>> r.stats().outcome
    <Outcome.SUCCESS: 'success'>
"""

from .backoff import Backoff, BackoffType, FixedDelay, Strategy
from .repeater import Repeater
from .stats import Outcome, Stats

__all__ = [
    # Strategies
    "Strategy",
    "FixedDelay",
    "Backoff",
    "BackoffType",
    # Orchestration
    "Repeater",
    "Stats",
    "Outcome",
]

"""Error handling for repeater.

- ContextError/Cancelled/DeadlineExceeded: Errors raised by a cancelled Context
- ANY_ERROR: Sentinel that makes every failure terminal
- is_terminal/iter_causes: Terminal matching across wrapped causes
"""

from .errors import (
    ANY_ERROR,
    Cancelled,
    ContextError,
    DeadlineExceeded,
    Terminal,
    is_terminal,
    iter_causes,
)

__all__ = [
    "ANY_ERROR",
    "Cancelled",
    "ContextError",
    "DeadlineExceeded",
    "Terminal",
    "is_terminal",
    "iter_causes",
]

"""Cancellation primitives for blocking and async retry loops.

Key Components:
    - Context: Thread-safe cancellation signal with optional deadline
    - background/with_cancel/with_timeout/with_deadline: Context factories

Example:
    >>> from repeater.runtime.concurrency import with_timeout
    >>> ctx = with_timeout(2.0)
    >>> ctx.wait(0.1)  # False, still live after 100ms
    False
"""

from __future__ import annotations

from .context import Context, background, with_cancel, with_deadline, with_timeout

__all__ = [
    "Context",
    "background",
    "with_cancel",
    "with_deadline",
    "with_timeout",
]

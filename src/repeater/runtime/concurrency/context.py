"""Cancellation contexts with optional deadlines.

A Context carries a cancellation signal that can be polled synchronously
(``err()``) and waited on, either by blocking a thread (``wait``) or by
awaiting on an event loop (``wait_async``). Contexts form a tree: cancelling
a parent cancels every live child, and a child's deadline is never later
than its parent's.

Deadlines are evaluated lazily against the monotonic clock, so a Context
never owns a timer thread or task. Waiting is a bounded Event.wait or a
bare future registered as a one-shot callback, and both are released on
every exit path.

Example:
    >>> ctx = with_timeout(5.0)
    >>> repeater.do(fetch, ctx=ctx)  # raises DeadlineExceeded after 5s

    >>> with with_cancel() as ctx:
    ...     threading.Timer(1.0, ctx.cancel).start()
    ...     ctx.wait(10.0)
    True
"""

from __future__ import annotations

import asyncio
import math
import threading
import time
import weakref
from functools import partial
from typing import TYPE_CHECKING, Callable

from repeater.foundation.errors import Cancelled, ContextError, DeadlineExceeded

if TYPE_CHECKING:
    from types import TracebackType


def _earliest(a: float | None, b: float | None) -> float | None:
    if a is None:
        return b
    return a if b is None else min(a, b)


def _resolve(fut: asyncio.Future[None]) -> None:
    if not fut.done():
        fut.set_result(None)


class Context:
    """Cancellation signal with an optional monotonic deadline.

    Thread-safe: cancel() may be called from any thread and wakes both
    blocking and async waiters. Prefer the module factories over calling
    the constructor directly.

    Args:
        parent: Context whose cancellation propagates to this one
        deadline: time.monotonic() value after which err() is DeadlineExceeded
    """

    __slots__ = (
        "_parent", "_deadline", "_cancellable", "_event", "_lock",
        "_err", "_callbacks", "_children", "__weakref__",
    )

    def __init__(
        self,
        parent: Context | None = None,
        *,
        deadline: float | None = None,
        _cancellable: bool = True,
    ) -> None:
        self._parent = parent
        self._deadline = _earliest(deadline, parent.deadline if parent else None)
        self._cancellable = _cancellable
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._err: ContextError | None = None
        self._callbacks: list[Callable[[], None]] = []
        self._children: weakref.WeakSet[Context] = weakref.WeakSet()
        if parent is not None and parent._cancellable:
            parent._attach(self)

    # ─────────────────────────────────────────────────────────────────────
    # Inspection
    # ─────────────────────────────────────────────────────────────────────

    @property
    def deadline(self) -> float | None:
        """Monotonic deadline, or None if there is none."""
        return self._deadline

    @property
    def done(self) -> bool:
        return self.err() is not None

    @property
    def waiters(self) -> int:
        """Number of async waiters currently registered."""
        with self._lock:
            return len(self._callbacks)

    def remaining(self) -> float | None:
        """Seconds until the deadline (never negative), None without one."""
        if self._deadline is None:
            return None
        return max(self._deadline - time.monotonic(), 0.0)

    def err(self) -> ContextError | None:
        """Return the cancellation error, or None while the context is live.

        The same error instance is returned on every call once set.
        """
        if self._err is None and self._deadline is not None and time.monotonic() >= self._deadline:
            self._cancel(DeadlineExceeded())
        return self._err

    # ─────────────────────────────────────────────────────────────────────
    # Cancellation
    # ─────────────────────────────────────────────────────────────────────

    def cancel(self) -> None:
        """Cancel this context and its children. Idempotent; first cause wins."""
        if self._cancellable and self.err() is None:
            self._cancel(Cancelled())

    def _cancel(self, err: ContextError) -> bool:
        with self._lock:
            if self._err is not None:
                return False
            self._err = err
            callbacks, self._callbacks = self._callbacks, []
            children = list(self._children)
            self._children.clear()
        self._event.set()
        if self._parent is not None:
            self._parent._detach(self)
        # Every child and waiter is notified even if one of them fails
        failures: list[Exception] = []
        for notify in [*(partial(child._cancel, err) for child in children), *callbacks]:
            try:
                notify()
            except Exception as exc:
                failures.append(exc)
        if len(failures) == 1:
            raise failures[0]
        if failures:
            raise ExceptionGroup("context cancellation callbacks failed", failures)
        return True

    def _attach(self, child: Context) -> None:
        with self._lock:
            err = self._err
            if err is None:
                self._children.add(child)
        if err is not None:
            child._cancel(err)

    def _detach(self, child: Context) -> None:
        with self._lock:
            self._children.discard(child)

    def _add_callback(self, callback: Callable[[], None]) -> bool:
        with self._lock:
            if self._err is not None:
                return False
            self._callbacks.append(callback)
            return True

    def _remove_callback(self, callback: Callable[[], None]) -> None:
        with self._lock:
            try:
                self._callbacks.remove(callback)
            except ValueError:
                pass  # Already consumed by _cancel

    # ─────────────────────────────────────────────────────────────────────
    # Waiting
    # ─────────────────────────────────────────────────────────────────────

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the context is done or timeout elapses.

        Returns:
            True if the context finished first, False on timeout
        """
        end = None if timeout is None or math.isinf(timeout) else time.monotonic() + timeout
        while self.err() is None:
            now = time.monotonic()
            if end is not None and now >= end:
                return False
            limit = _earliest(end, self._deadline)
            self._event.wait(None if limit is None else max(limit - now, 0.0))
        return True

    async def wait_async(self, timeout: float | None = None) -> bool:
        """Await until the context is done or timeout elapses.

        Returns:
            True if the context finished first, False on timeout
        """
        if self.err() is not None:
            return True
        loop = asyncio.get_running_loop()
        waiter: asyncio.Future[None] = loop.create_future()

        def wake() -> None:
            if not loop.is_closed():
                loop.call_soon_threadsafe(_resolve, waiter)

        if not self._add_callback(wake):
            return True
        try:
            end = None if timeout is None or math.isinf(timeout) else time.monotonic() + timeout
            while self.err() is None:
                now = time.monotonic()
                if end is not None and now >= end:
                    return False
                limit = _earliest(end, self._deadline)
                await asyncio.wait({waiter}, timeout=None if limit is None else max(limit - now, 0.0))
            return True
        finally:
            self._remove_callback(wake)
            waiter.cancel()

    # ─────────────────────────────────────────────────────────────────────
    # Scoped usage
    # ─────────────────────────────────────────────────────────────────────

    def __enter__(self) -> Context:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.cancel()

    def __repr__(self) -> str:
        state = type(self._err).__name__ if self._err else "live"
        return f"Context({state}, deadline={self._deadline})"


_BACKGROUND = Context(_cancellable=False)


def background() -> Context:
    """Root context: never cancelled, no deadline."""
    return _BACKGROUND


def with_cancel(parent: Context | None = None) -> Context:
    """Child context cancelled by cancel() or by its parent."""
    return Context(parent)


def with_deadline(deadline: float, parent: Context | None = None) -> Context:
    """Child context that expires at a time.monotonic() deadline."""
    return Context(parent, deadline=deadline)


def with_timeout(timeout: float, parent: Context | None = None) -> Context:
    """Child context that expires timeout seconds from now."""
    return Context(parent, deadline=time.monotonic() + timeout)

"""Retry orchestration.

Repeater calls a fallible operation until it succeeds, raises a terminal
error, runs out of attempts, or its Context is cancelled. Between attempts
it asks a Strategy for the delay and races that delay against the Context.

Failures are exceptions. Whatever ends the run is raised unchanged: the
operation's own exception for terminal and exhausted runs, the Context's
Cancelled/DeadlineExceeded for cancelled ones. Exceptions that are not
Exception subclasses (KeyboardInterrupt, asyncio.CancelledError) are never
retried.

One Repeater keeps the statistics of its latest run, so it must not be
shared by concurrent invocations. Strategies are immutable and can be
shared freely.

Example:
    >>> r = Repeater.backoff(5, 0.1, max_delay=2.0)
    >>> body = r.do(lambda: fetch(url), PermissionError, ctx=with_timeout(10))
    >>> r.stats().attempts
    2
"""

from __future__ import annotations

import inspect
import time
from collections.abc import Awaitable
from typing import TYPE_CHECKING, Callable, TypeVar

from repeater.foundation.errors import ContextError, Terminal, is_terminal
from repeater.runtime.concurrency import Context, background
from repeater.runtime.observability.logging import BoundLogger, get_logger

from .backoff import Backoff, BackoffType, FixedDelay, Strategy
from .stats import Outcome, RunRecord, Stats

if TYPE_CHECKING:
    from repeater.foundation.config import RetrySettings

T = TypeVar("T")

logger = get_logger("repeater.retry")


class Repeater:
    """Retry loop with an attempt budget and a delay strategy.

    Args:
        attempts: Maximum operation calls per invocation (<= 0 becomes 1)
        strategy: Delay policy between attempts (default: 1s FixedDelay)
        name: Optional label bound into every log line
    """

    __slots__ = ("_attempts", "_strategy", "_record", "_log")

    def __init__(self, attempts: int = 1, strategy: Strategy | None = None, *, name: str | None = None) -> None:
        self._attempts = attempts if attempts > 0 else 1
        self._strategy: Strategy = strategy if strategy is not None else FixedDelay(1.0)
        self._record: RunRecord | None = None
        self._log: BoundLogger = logger.bind(repeater=name) if name else logger

    @classmethod
    def fixed(cls, attempts: int, delay: float, *, name: str | None = None) -> Repeater:
        """Repeater waiting the same delay before every retry."""
        return cls(attempts, FixedDelay(delay), name=name)

    @classmethod
    def backoff(
        cls,
        attempts: int,
        initial: float,
        *,
        type: BackoffType | str = BackoffType.EXPONENTIAL,  # noqa: A002
        max_delay: float | None = 30.0,
        jitter: float = 0.1,
        multiplier: float = 2.0,
        name: str | None = None,
    ) -> Repeater:
        """Repeater with growing delays. Defaults: exponential, 30s cap, 10% jitter."""
        strategy = Backoff(initial, BackoffType(type), max_delay, jitter, multiplier)
        return cls(attempts, strategy, name=name)

    @classmethod
    def from_settings(cls, settings: RetrySettings | None = None, *, name: str | None = None) -> Repeater:
        """Repeater built from RetrySettings (defaults to the global settings)."""
        if settings is None:
            from repeater.foundation.config import get_settings
            settings = get_settings().retry
        return cls(settings.attempts, settings.build_strategy(), name=name)

    @property
    def attempts(self) -> int:
        return self._attempts

    @property
    def strategy(self) -> Strategy:
        return self._strategy

    def stats(self) -> Stats:
        """Statistics of the latest invocation; Stats() before the first one."""
        return self._record.current() if self._record is not None else Stats()

    # ─────────────────────────────────────────────────────────────────────
    # Execution
    # ─────────────────────────────────────────────────────────────────────

    def do(self, operation: Callable[[], T], *terminal: Terminal, ctx: Context | None = None) -> T:
        """Call operation until it succeeds, blocking the current thread.

        Args:
            operation: Zero-argument callable; raising an Exception means failure
            *terminal: Exception classes, exception instances, or ANY_ERROR
                that stop the loop immediately
            ctx: Cancellation context (default: background, never cancelled)

        Returns:
            The operation's return value from the first successful attempt

        Raises:
            Exception: The terminal error, the last error once attempts run
                out, or the Context error on cancellation
        """
        ctx = ctx or background()
        run = self._record = RunRecord()
        try:
            for attempt in range(self._attempts):
                if (cancelled := ctx.err()) is not None:
                    raise self._cancel(run, cancelled)

                run.attempts += 1
                started = time.monotonic()
                try:
                    result = operation()
                except Exception as exc:
                    run.work += time.monotonic() - started
                    error: Exception = exc
                else:
                    run.work += time.monotonic() - started
                    self._succeed(run)
                    return result

                if self._stop_on(run, error, terminal):
                    raise error
                if (delay := self._delay_after(attempt, error)) > 0:
                    waited = time.monotonic()
                    if ctx.wait(delay) and (cancelled := ctx.err()) is not None:
                        run.delay += time.monotonic() - waited
                        raise self._cancel(run, cancelled)
                    run.delay += delay

            raise self._exhaust(run, error)
        except BaseException as exc:
            run.finish(Outcome.INTERRUPTED, exc)  # no-op unless nothing else finalized
            raise

    async def ado(
        self,
        operation: Callable[[], Awaitable[T]] | Callable[[], T],
        *terminal: Terminal,
        ctx: Context | None = None,
    ) -> T:
        """Async twin of do(): awaits the operation and the delays.

        The operation may return an awaitable or a plain value. Semantics,
        statistics and raised errors are identical to do().
        """
        ctx = ctx or background()
        run = self._record = RunRecord()
        try:
            for attempt in range(self._attempts):
                if (cancelled := ctx.err()) is not None:
                    raise self._cancel(run, cancelled)

                run.attempts += 1
                started = time.monotonic()
                try:
                    result = operation()
                    if inspect.isawaitable(result):
                        result = await result
                except Exception as exc:
                    run.work += time.monotonic() - started
                    error: Exception = exc
                else:
                    run.work += time.monotonic() - started
                    self._succeed(run)
                    return result  # type: ignore[return-value]

                if self._stop_on(run, error, terminal):
                    raise error
                if (delay := self._delay_after(attempt, error)) > 0:
                    waited = time.monotonic()
                    if await ctx.wait_async(delay) and (cancelled := ctx.err()) is not None:
                        run.delay += time.monotonic() - waited
                        raise self._cancel(run, cancelled)
                    run.delay += delay

            raise self._exhaust(run, error)
        except BaseException as exc:
            run.finish(Outcome.INTERRUPTED, exc)
            raise

    # ─────────────────────────────────────────────────────────────────────
    # Bookkeeping
    # ─────────────────────────────────────────────────────────────────────

    def _succeed(self, run: RunRecord) -> None:
        stats = run.finish(Outcome.SUCCESS)
        self._log.debug("succeeded", attempts=stats.attempts, duration=stats.duration)

    def _stop_on(self, run: RunRecord, error: Exception, terminal: tuple[Terminal, ...]) -> bool:
        """Record a failure; finalize and return True if it is terminal."""
        run.last_error = error
        if not is_terminal(error, terminal):
            return False
        run.finish(Outcome.TERMINAL)
        self._log.debug("terminal error", attempts=run.attempts, error=error)
        return True

    def _delay_after(self, attempt: int, error: Exception) -> float:
        """Delay before the next attempt, 0 after the last one."""
        if attempt + 1 >= self._attempts:
            return 0.0
        delay = self._strategy.next_delay(attempt + 1)
        self._log.info(
            "retrying", attempt=attempt + 1, max_attempts=self._attempts, delay=delay, error=error,
        )
        return delay

    def _cancel(self, run: RunRecord, err: ContextError) -> ContextError:
        """Finalize as cancelled and hand back the context's error for raising.

        The context keeps one error instance for its lifetime; its traceback
        is dropped so frames from earlier runs are not retained.
        """
        run.finish(Outcome.CANCELLED, err)
        self._log.debug("cancelled", attempts=run.attempts, error=err)
        return err.with_traceback(None)

    def _exhaust(self, run: RunRecord, error: Exception) -> Exception:
        stats = run.finish(Outcome.EXHAUSTED, error)
        self._log.warning("attempts exhausted", attempts=stats.attempts, error=error)
        return error

    def __repr__(self) -> str:
        return f"Repeater(attempts={self._attempts}, strategy={self._strategy!r})"

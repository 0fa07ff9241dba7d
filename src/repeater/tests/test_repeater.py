"""Tests for the blocking retry loop (Repeater.do).

Validates:
- Budget handling and coercion
- Terminal errors, wrapped causes and ANY_ERROR
- Cancellation before attempts and during delays
- Statistics lifecycle
- No thread growth across many short runs
"""

from __future__ import annotations

import threading
import time
import traceback
from datetime import datetime

import pytest

from repeater import (
    ANY_ERROR,
    Backoff,
    Cancelled,
    DeadlineExceeded,
    FixedDelay,
    Outcome,
    Repeater,
    Stats,
    with_cancel,
    with_timeout,
)


class Flaky:
    """Callable failing a fixed number of times before returning."""

    def __init__(self, failures: int, error: Exception | None = None, result: object = "ok") -> None:
        self.failures = failures
        self.error = error or ValueError("some error")
        self.result = result
        self.calls = 0

    def __call__(self) -> object:
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return self.result


class Abort(BaseException):
    """Non-Exception escape, like KeyboardInterrupt."""


# ═════════════════════════════════════════════════════════════════════════════
# Success & Exhaustion
# ═════════════════════════════════════════════════════════════════════════════


def test_success_first_try() -> None:
    op = Flaky(0, result=42)
    r = Repeater.fixed(5, 0.01)

    assert r.do(op) == 42
    assert op.calls == 1

    st = r.stats()
    assert st.attempts == 1
    assert st.success
    assert st.outcome is Outcome.SUCCESS
    assert st.last_error is None
    assert st.delay_duration == 0.0


def test_eventual_success_waits_between_attempts() -> None:
    op = Flaky(4)
    r = Repeater.fixed(10, 0.01)

    start = time.monotonic()
    assert r.do(op) == "ok"
    elapsed = time.monotonic() - start

    assert op.calls == 5
    assert elapsed >= 0.04
    st = r.stats()
    assert st.attempts == 5
    assert st.delay_duration == pytest.approx(0.04)
    assert st.success


def test_exhaustion_raises_last_error() -> None:
    err = ValueError("always fails")
    op = Flaky(100, err)
    r = Repeater.fixed(4, 0.001)

    with pytest.raises(ValueError) as excinfo:
        r.do(op)

    assert excinfo.value is err
    assert op.calls == 4
    st = r.stats()
    assert st.attempts == 4
    assert not st.success
    assert st.outcome is Outcome.EXHAUSTED
    assert st.last_error is err


@pytest.mark.parametrize("budget", [0, -1, -100])
def test_non_positive_budget_coerced_to_one(budget: int) -> None:
    op = Flaky(100)
    r = Repeater.fixed(budget, 0.001)
    assert r.attempts == 1

    with pytest.raises(ValueError):
        r.do(op)
    assert op.calls == 1
    assert r.stats().attempts == 1


def test_default_strategy_is_one_second_fixed() -> None:
    r = Repeater(3)
    assert r.strategy == FixedDelay(1.0)


def test_no_delay_after_last_attempt() -> None:
    op = Flaky(100)
    r = Repeater.fixed(2, 0.05)

    start = time.monotonic()
    with pytest.raises(ValueError):
        r.do(op)
    assert time.monotonic() - start < 0.09
    assert r.stats().delay_duration == pytest.approx(0.05)


def test_backoff_timing() -> None:
    """Exponential 10ms: waits 10 + 20 + 40ms across 4 attempts."""
    stamps: list[float] = []

    def op() -> None:
        stamps.append(time.monotonic())
        raise RuntimeError("test error")

    r = Repeater.backoff(4, 0.01, jitter=0)
    start = time.monotonic()
    with pytest.raises(RuntimeError):
        r.do(op)

    assert len(stamps) == 4
    assert stamps[0] - start < 0.05  # first attempt is immediate
    assert stamps[-1] - start >= 0.07
    assert r.stats().delay_duration == pytest.approx(0.07)


def test_work_duration_accumulates() -> None:
    def op() -> None:
        time.sleep(0.01)
        raise OSError("slow failure")

    r = Repeater.fixed(3, 0.0)
    with pytest.raises(OSError):
        r.do(op)

    st = r.stats()
    assert st.work_duration >= 0.03
    assert st.duration >= st.work_duration


# ═════════════════════════════════════════════════════════════════════════════
# Terminal Errors
# ═════════════════════════════════════════════════════════════════════════════


def test_terminal_class_stops_immediately() -> None:
    op = Flaky(100, PermissionError("denied"))
    r = Repeater.fixed(5, 0.01)

    with pytest.raises(PermissionError):
        r.do(op, PermissionError)

    assert op.calls == 1
    st = r.stats()
    assert st.outcome is Outcome.TERMINAL
    assert st.attempts == 1
    assert st.delay_duration == 0.0


def test_terminal_instance_matches_by_identity() -> None:
    critical = ConnectionError("critical")
    op = Flaky(100, critical)
    r = Repeater.fixed(5, 0.001)

    with pytest.raises(ConnectionError) as excinfo:
        r.do(op, critical)
    assert excinfo.value is critical
    assert op.calls == 1


def test_unmatched_terminal_keeps_retrying() -> None:
    op = Flaky(4)
    r = Repeater.fixed(5, 0.001)

    assert r.do(op, ValueError("unknown error"), KeyError) == "ok"
    assert op.calls == 5


def test_terminal_found_in_cause_chain() -> None:
    critical = ConnectionError("critical")
    calls = 0

    def op() -> None:
        nonlocal calls
        calls += 1
        raise RuntimeError("wrapped") from critical

    r = Repeater.fixed(5, 0.001)
    with pytest.raises(RuntimeError) as excinfo:
        r.do(op, critical)

    assert calls == 1
    assert excinfo.value.__cause__ is critical  # raised unchanged, not rewrapped


def test_error_raised_while_handling_terminal_is_retried() -> None:
    """A transient error raised inside an except block does not wrap what it handled."""
    calls = 0

    def op() -> None:
        nonlocal calls
        calls += 1
        try:
            raise KeyError("cache miss")
        except KeyError:
            raise ConnectionError("upstream reset")  # noqa: B904

    r = Repeater.fixed(3, 0.0)
    with pytest.raises(ConnectionError):
        r.do(op, KeyError)
    assert calls == 3
    assert r.stats().outcome is Outcome.EXHAUSTED


def test_terminal_found_in_exception_group() -> None:
    calls = 0

    def op() -> None:
        nonlocal calls
        calls += 1
        raise ExceptionGroup("joined", [ValueError("wrapped"), PermissionError("critical")])

    r = Repeater.fixed(5, 0.001)
    with pytest.raises(ExceptionGroup):
        r.do(op, PermissionError)
    assert calls == 1


def test_any_error_stops_on_first_failure() -> None:
    op = Flaky(100, OSError("boom"))
    r = Repeater.fixed(5, 0.001)

    with pytest.raises(OSError):
        r.do(op, KeyError, ANY_ERROR)
    assert op.calls == 1
    assert r.stats().outcome is Outcome.TERMINAL


def test_any_error_still_returns_success() -> None:
    r = Repeater.fixed(5, 0.001)
    assert r.do(lambda: "fine", ANY_ERROR) == "fine"
    assert r.stats().success


# ═════════════════════════════════════════════════════════════════════════════
# Cancellation
# ═════════════════════════════════════════════════════════════════════════════


def test_pre_cancelled_context_never_calls() -> None:
    ctx = with_cancel()
    ctx.cancel()
    op = Flaky(0)
    r = Repeater.fixed(5, 0.001)

    with pytest.raises(Cancelled) as excinfo:
        r.do(op, ctx=ctx)

    assert op.calls == 0
    assert excinfo.value is ctx.err()
    st = r.stats()
    assert st.attempts == 0
    assert st.outcome is Outcome.CANCELLED
    assert st.last_error is ctx.err()


def test_cancel_during_delay() -> None:
    ctx = with_cancel()
    op = Flaky(100)
    r = Repeater.fixed(3, 10.0)

    timer = threading.Timer(0.05, ctx.cancel)
    timer.start()
    start = time.monotonic()
    try:
        with pytest.raises(Cancelled):
            r.do(op, ctx=ctx)
    finally:
        timer.join()

    assert time.monotonic() - start < 2.0
    assert op.calls == 1
    st = r.stats()
    assert st.attempts == 1  # the aborted wait does not count
    assert st.outcome is Outcome.CANCELLED
    assert 0.0 < st.delay_duration < 2.0
    assert isinstance(st.last_error, Cancelled)


def test_deadline_exceeded() -> None:
    """Exponential 10ms: 6 calls fit in 450ms (10+20+40+80+160 = 310ms)."""
    op = Flaky(10_000, RuntimeError("some error"))
    r = Repeater(100, Backoff(0.01, jitter=0, max_delay=None))

    with pytest.raises(DeadlineExceeded):
        r.do(op, ctx=with_timeout(0.45))

    assert op.calls == 6
    assert r.stats().outcome is Outcome.CANCELLED


def test_cancellation_wins_over_business_error() -> None:
    ctx = with_cancel()

    def op() -> None:
        ctx.cancel()
        raise ValueError("business failure")

    r = Repeater.fixed(3, 0.0)
    with pytest.raises(Cancelled):
        r.do(op, ctx=ctx)
    assert r.stats().attempts == 1


def test_deadline_exceeded_is_timeout_error() -> None:
    r = Repeater.fixed(2, 0.0)
    ctx = with_timeout(0)
    with pytest.raises(TimeoutError):
        r.do(lambda: None, ctx=ctx)


# ═════════════════════════════════════════════════════════════════════════════
# Statistics
# ═════════════════════════════════════════════════════════════════════════════


def test_stats_zero_before_first_run() -> None:
    assert Repeater(3).stats() == Stats()
    assert not Stats().finished


def test_stats_reset_between_runs() -> None:
    r = Repeater.fixed(3, 0.001)

    with pytest.raises(ValueError):
        r.do(Flaky(100))
    assert r.stats().attempts == 3

    r.do(Flaky(0))
    st = r.stats()
    assert st.attempts == 1
    assert st.success
    assert st.last_error is None
    assert st.delay_duration == 0.0


def test_stats_timestamps() -> None:
    r = Repeater.fixed(2, 0.001)
    r.do(Flaky(1))
    st = r.stats()

    assert isinstance(st.started_at, datetime)
    assert isinstance(st.finished_at, datetime)
    assert st.started_at.tzinfo is not None
    assert st.finished_at >= st.started_at
    assert st.duration >= st.delay_duration


def test_stats_snapshot_is_frozen() -> None:
    r = Repeater.fixed(1, 0.0)
    r.do(Flaky(0))
    with pytest.raises(AttributeError):
        r.stats().attempts = 5  # type: ignore[misc]


def test_base_exception_not_retried() -> None:
    calls = 0

    def op() -> None:
        nonlocal calls
        calls += 1
        raise Abort()

    r = Repeater.fixed(5, 0.001)
    with pytest.raises(Abort):
        r.do(op)

    assert calls == 1
    st = r.stats()
    assert st.outcome is Outcome.INTERRUPTED
    assert isinstance(st.last_error, Abort)


def test_strategy_shared_across_repeaters() -> None:
    shared = Backoff(0.001, jitter=0)
    a, b = Repeater(3, shared), Repeater(2, shared)

    with pytest.raises(ValueError):
        a.do(Flaky(100))
    b.do(Flaky(1))

    assert a.stats().attempts == 3
    assert b.stats().attempts == 2


# ═════════════════════════════════════════════════════════════════════════════
# Resource Leaks
# ═════════════════════════════════════════════════════════════════════════════


def test_no_thread_growth_fixed() -> None:
    before = threading.active_count()
    for _ in range(100):
        with pytest.raises(ValueError):
            Repeater.fixed(3, 0.0005).do(Flaky(100))
    assert threading.active_count() <= before


def test_no_thread_growth_backoff_with_cancellation() -> None:
    before = threading.active_count()
    for i in range(100):
        ctx = with_timeout(0.002)
        r = Repeater.backoff(10, 0.001)
        with pytest.raises((ValueError, DeadlineExceeded)):
            r.do(Flaky(100), ctx=ctx)
        if i % 2:
            ctx.cancel()
    assert threading.active_count() <= before


@pytest.mark.parametrize("expired", [True, False])
def test_reused_done_context_does_not_accumulate_frames(expired: bool) -> None:
    """The context's single error instance is re-raised without old tracebacks."""
    ctx = with_timeout(0) if expired else with_cancel()
    ctx.cancel()
    r = Repeater.fixed(3, 0.0)
    for _ in range(500):
        with pytest.raises((Cancelled, DeadlineExceeded)):
            r.do(Flaky(0), ctx=ctx)

    err = ctx.err()
    assert err is not None
    assert len(traceback.extract_tb(err.__traceback__)) < 10

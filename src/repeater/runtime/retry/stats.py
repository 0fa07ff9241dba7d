"""Execution statistics for a single repeater invocation."""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum


class Outcome(StrEnum):
    """How an invocation ended."""
    SUCCESS = "success"          # Operation returned
    TERMINAL = "terminal"        # Error matched a terminal candidate
    EXHAUSTED = "exhausted"      # Attempt budget spent
    CANCELLED = "cancelled"      # Context cancelled or expired
    INTERRUPTED = "interrupted"  # BaseException escaped the operation


@dataclass(slots=True, frozen=True)
class Stats:
    """Snapshot of the most recent invocation.

    Durations are seconds measured on the monotonic clock; timestamps are
    wall-clock UTC. The zero value describes "no invocation yet".

    Attributes:
        last_error: Error that ended the run, None on success
        started_at: When the invocation began
        finished_at: When the outcome was reached
        duration: Total elapsed time
        work_duration: Time spent inside the operation
        delay_duration: Time spent waiting between attempts
        attempts: Number of operation calls made
        success: Whether the operation eventually returned
        outcome: How the invocation ended
    """

    last_error: BaseException | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None
    duration: float = 0.0
    work_duration: float = 0.0
    delay_duration: float = 0.0
    attempts: int = 0
    success: bool = False
    outcome: Outcome | None = None

    @property
    def finished(self) -> bool:
        return self.outcome is not None


class RunRecord:
    """Mutable bookkeeping for one invocation, frozen into Stats exactly once."""

    __slots__ = ("started_at", "_t0", "work", "delay", "attempts", "last_error", "snapshot")

    def __init__(self) -> None:
        self.started_at = datetime.now(UTC)
        self._t0 = time.monotonic()
        self.work = 0.0
        self.delay = 0.0
        self.attempts = 0
        self.last_error: BaseException | None = None
        self.snapshot: Stats | None = None

    @property
    def finalized(self) -> bool:
        return self.snapshot is not None

    def current(self) -> Stats:
        """Frozen stats if finished, otherwise a live view."""
        if self.snapshot is not None:
            return self.snapshot
        return Stats(
            last_error=self.last_error,
            started_at=self.started_at,
            duration=time.monotonic() - self._t0,
            work_duration=self.work,
            delay_duration=self.delay,
            attempts=self.attempts,
        )

    def finish(self, outcome: Outcome, error: BaseException | None = None) -> Stats:
        """Freeze the record. Later calls return the first snapshot unchanged."""
        if self.snapshot is None:
            if error is not None:
                self.last_error = error
            self.snapshot = Stats(
                last_error=None if outcome is Outcome.SUCCESS else self.last_error,
                started_at=self.started_at,
                finished_at=datetime.now(UTC),
                duration=time.monotonic() - self._t0,
                work_duration=self.work,
                delay_duration=self.delay,
                attempts=self.attempts,
                success=outcome is Outcome.SUCCESS,
                outcome=outcome,
            )
        return self.snapshot

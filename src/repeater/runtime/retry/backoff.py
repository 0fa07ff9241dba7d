"""Delay strategies for repeaters.

Provides pluggable delay calculation between attempts:
- FixedDelay: Same delay before every retry
- Backoff: Constant, linear or exponential growth with cap and jitter

Any object with a ``next_delay(attempt)`` method can stand in for these.
Attempt numbers are 1-indexed (first retry = attempt 1); attempt <= 0
always yields no delay.
"""

from __future__ import annotations

import math
import random
from dataclasses import dataclass
from enum import StrEnum
from typing import Protocol, runtime_checkable


@runtime_checkable
class Strategy(Protocol):
    """Protocol for delay calculation between attempts."""

    def next_delay(self, attempt: int) -> float:
        """Calculate delay in seconds before the given retry.

        Args:
            attempt: 1-indexed retry number

        Returns:
            Delay in seconds, never negative
        """
        ...


class BackoffType(StrEnum):
    """Growth curve of a Backoff strategy."""
    CONSTANT = "constant"
    LINEAR = "linear"
    EXPONENTIAL = "exponential"


@dataclass(frozen=True, slots=True)
class FixedDelay:
    """Fixed delay between retries.

    Simple strategy for rate-limited APIs with known cooldown.

    Attributes:
        delay: Delay in seconds (default: 1.0)
    """

    delay: float = 1.0

    def __post_init__(self) -> None:
        if self.delay < 0:
            raise ValueError(f"delay must be non-negative, got {self.delay}")

    def next_delay(self, attempt: int) -> float:
        return self.delay if attempt > 0 else 0.0


@dataclass(frozen=True, slots=True)
class Backoff:
    """Growing delay with optional cap and jitter.

    Delay = cap(initial * growth(attempt)) +/- jitter/2

    growth is 1 for constant, attempt for linear and
    multiplier ** (attempt - 1) for exponential. The cap applies before
    jitter, so a jittered delay may exceed max_delay by at most jitter/2.

    Attributes:
        initial: Delay before the first retry in seconds
        type: Growth curve (default: exponential)
        max_delay: Cap in seconds, None or 0 for no cap (default: 30.0)
        jitter: Randomization fraction in [0, 1] (default: 0.1)
        multiplier: Exponential growth factor (default: 2.0)
    """

    initial: float = 1.0
    type: BackoffType = BackoffType.EXPONENTIAL
    max_delay: float | None = 30.0
    jitter: float = 0.1
    multiplier: float = 2.0

    def __post_init__(self) -> None:
        if self.initial < 0:
            raise ValueError(f"initial must be non-negative, got {self.initial}")
        if self.max_delay is not None and self.max_delay < 0:
            raise ValueError(f"max_delay must be non-negative or None, got {self.max_delay}")
        if not 0.0 <= self.jitter <= 1.0:
            raise ValueError(f"jitter must be within [0, 1], got {self.jitter}")
        if self.multiplier < 1.0:
            raise ValueError(f"multiplier must be >= 1, got {self.multiplier}")
        # Accept plain strings for type
        object.__setattr__(self, "type", BackoffType(self.type))

    def _scaled(self, attempt: int) -> float:
        match self.type:
            case BackoffType.CONSTANT:
                return self.initial
            case BackoffType.LINEAR:
                return self.initial * attempt
            case BackoffType.EXPONENTIAL:
                try:
                    return self.initial * self.multiplier ** (attempt - 1)
                except OverflowError:
                    return math.inf if self.initial else 0.0

    def next_delay(self, attempt: int) -> float:
        if attempt <= 0:
            return 0.0
        d = self._scaled(attempt)
        if self.max_delay and d > self.max_delay:
            d = self.max_delay
        if self.jitter and math.isfinite(d):
            d += d * self.jitter * (random.random() - 0.5)
        return max(d, 0.0)

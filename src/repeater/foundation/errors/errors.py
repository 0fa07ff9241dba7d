"""Error taxonomy for retry orchestration.

Provides the cancellation errors raised by contexts and the terminal-error
matching used to stop a retry loop early.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from typing import Final, TypeAlias


class ContextError(Exception):
    """Base for errors produced by a cancelled or expired Context."""


class Cancelled(ContextError):
    """Context was cancelled explicitly."""

    def __init__(self, message: str = "context cancelled") -> None:
        super().__init__(message)


class DeadlineExceeded(ContextError, TimeoutError):
    """Context deadline passed before the work finished."""

    def __init__(self, message: str = "context deadline exceeded") -> None:
        super().__init__(message)


class _AnyError:
    """Sentinel type for ANY_ERROR."""

    __slots__ = ()
    _instance: _AnyError | None = None

    def __new__(cls) -> _AnyError:
        if cls._instance is None:
            cls._instance = object.__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "ANY_ERROR"

    def __reduce__(self) -> str:
        return "ANY_ERROR"


# Passed among terminal errors, makes the first failure terminal
ANY_ERROR: Final = _AnyError()

Terminal: TypeAlias = type[BaseException] | BaseException | _AnyError


def iter_causes(error: BaseException) -> Iterator[BaseException]:
    """Walk an exception and everything it wraps, depth-first.

    Follows explicit causes (``raise ... from``) and the members of exception
    groups. Implicit context (an error raised while handling another) is not
    a wrap and is not followed. Each exception is yielded once even if the
    graph has cycles.
    """
    seen: set[int] = set()
    stack = [error]
    while stack:
        exc = stack.pop()
        if id(exc) in seen:
            continue
        seen.add(id(exc))
        yield exc
        if isinstance(exc, BaseExceptionGroup):
            stack.extend(reversed(exc.exceptions))
        if exc.__cause__ is not None:
            stack.append(exc.__cause__)


def _matches(exc: BaseException, candidate: type[BaseException] | BaseException) -> bool:
    if isinstance(candidate, type):
        return isinstance(exc, candidate)
    return exc is candidate


def is_terminal(error: BaseException, terminal: Iterable[Terminal]) -> bool:
    """Check whether error matches any terminal candidate.

    Exception classes match by isinstance, exception instances by identity.
    ANY_ERROR matches everything and is checked before the chain walk.
    """
    candidates = tuple(terminal)
    if not candidates:
        return False
    if any(c is ANY_ERROR for c in candidates):
        return True
    return any(_matches(exc, c) for exc in iter_causes(error) for c in candidates)  # type: ignore[arg-type]

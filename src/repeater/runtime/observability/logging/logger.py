"""Structured logging for retry loops.

Every Repeater reports its decisions (retry scheduled, budget exhausted,
terminal stop, cancellation) as structured events: an event name plus
key-value fields such as attempt, delay and error.

- BoundLogger is immutable; bind() derives a logger carrying extra fields
- log_context() scopes fields to everything logged inside a with block
- Output is rendered for humans (console) or machines (JSON Lines)

Level and renderer are process-global and looked up on every call, so the
module-level loggers created at import time follow later configuration.

Quick Start:
    >>> from repeater.runtime.observability.logging import configure_logging, get_logger
    >>>
    >>> configure_logging(format="console", level="INFO")  # retries become visible
    >>>
    >>> log = get_logger("payments")
    >>> log.info("retrying", attempt=2, delay=0.5)
"""

from __future__ import annotations

import logging
import sys
import time
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Callable, Protocol, TextIO, runtime_checkable

import orjson

if TYPE_CHECKING:
    from types import TracebackType

    from repeater.foundation.config import LoggingSettings

Fields = dict[str, object]

# Fields added by log_context(); copied per task by asyncio
_scoped: ContextVar[Fields] = ContextVar("repeater_log_scope", default={})


# ─────────────────────────────────────────────────────────────────────────────
# Loggers
# ─────────────────────────────────────────────────────────────────────────────


@dataclass(slots=True, frozen=True)
class BoundLogger:
    """Logger with a fixed set of fields attached to every event.

    Example:
        >>> log = get_logger("repeater.retry").bind(repeater="fetch")
        >>> log.info("retrying", attempt=2)
        # => 10:30:45.120 [info] retrying attempt=2 logger="repeater.retry" repeater="fetch"
    """

    context: Fields = field(default_factory=dict)
    renderer: LogRenderer | None = None
    level: int | None = None  # None follows configure_logging()

    def bind(self, **fields: object) -> BoundLogger:
        """Derive a logger with fields added (later keys win)."""
        return BoundLogger({**self.context, **fields}, self.renderer, self.level)

    def unbind(self, *keys: str) -> BoundLogger:
        """Derive a logger with the given fields dropped."""
        kept = {k: v for k, v in self.context.items() if k not in keys}
        return BoundLogger(kept, self.renderer, self.level)

    def is_enabled_for(self, level: int) -> bool:
        threshold = _state.level if self.level is None else self.level
        return level >= threshold

    def _emit(self, level: int, event: str, fields: Fields) -> None:
        if not self.is_enabled_for(level):
            return
        # Precedence: call site > bound > scoped
        entry = LogEntry(time.time(), logging.getLevelName(level).lower(), event,
                         {**_scoped.get(), **self.context, **fields})
        (self.renderer or _active_renderer()).render(entry)

    def debug(self, event: str, **fields: object) -> None:
        self._emit(logging.DEBUG, event, fields)

    def info(self, event: str, **fields: object) -> None:
        self._emit(logging.INFO, event, fields)

    def warning(self, event: str, **fields: object) -> None:
        self._emit(logging.WARNING, event, fields)

    def error(self, event: str, **fields: object) -> None:
        self._emit(logging.ERROR, event, fields)


@dataclass(slots=True, frozen=True)
class LogEntry:
    """One rendered event."""

    timestamp: float
    level: str
    event: str
    context: Fields

    @property
    def when(self) -> datetime:
        return datetime.fromtimestamp(self.timestamp, tz=UTC)


class log_context:
    """Attach fields to every event logged inside the block.

    Example:
        >>> with log_context(job="nightly-sync"):
        ...     repeater.do(upload)  # retry events carry job="nightly-sync"
    """

    __slots__ = ("_fields", "_token")

    def __init__(self, **fields: object) -> None:
        self._fields = fields
        self._token = None

    def __enter__(self) -> log_context:
        self._token = _scoped.set({**_scoped.get(), **self._fields})
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if self._token is not None:
            _scoped.reset(self._token)
            self._token = None


# ─────────────────────────────────────────────────────────────────────────────
# Renderers
# ─────────────────────────────────────────────────────────────────────────────


@runtime_checkable
class LogRenderer(Protocol):
    """Anything that can write a LogEntry somewhere."""

    def render(self, entry: LogEntry) -> None: ...


@dataclass(slots=True, frozen=True)
class _Palette:
    reset: str = ""
    dim: str = ""
    bold: str = ""
    key: str = ""
    text: str = ""
    number: str = ""
    error: str = ""
    levels: dict[str, str] = field(default_factory=dict)


_PLAIN = _Palette()
_ANSI = _Palette(
    reset="\033[0m", dim="\033[2m", bold="\033[1m", key="\033[36m",
    text="\033[33m", number="\033[34m", error="\033[31m",
    levels={"debug": "\033[2m", "info": "\033[32m", "warning": "\033[33m", "error": "\033[31m"},
)


@dataclass(slots=True)
class ConsoleRenderer:
    """One line per event on stderr: ``HH:MM:SS.mmm [level] event key=value ...``.

    Fields are sorted by key. Floats (delays, durations) print with
    millisecond precision and exceptions as ``Type('message')``.
    """

    output: TextIO = field(default_factory=lambda: sys.stderr)
    colors: bool | None = None  # None: color only when output is a terminal
    show_timestamp: bool = True

    def __post_init__(self) -> None:
        if self.colors is None:
            isatty = getattr(self.output, "isatty", None)
            self.colors = bool(isatty and isatty())

    def render(self, entry: LogEntry) -> None:
        p = _ANSI if self.colors else _PLAIN
        head = f"{p.levels.get(entry.level, '')}[{entry.level}]{p.reset} {p.bold}{entry.event}{p.reset}"
        if self.show_timestamp:
            head = f"{p.dim}{entry.when.strftime('%H:%M:%S.%f')[:-3]}{p.reset} {head}"
        fields = " ".join(f"{p.key}{k}{p.reset}={_show(v, p)}" for k, v in sorted(entry.context.items()))
        self.output.write(f"{head} {fields}\n" if fields else f"{head}\n")


@dataclass(slots=True)
class JsonRenderer:
    """JSON Lines on stdout; non-JSON values (exceptions, enums) become strings."""

    output: TextIO = field(default_factory=lambda: sys.stdout)

    def render(self, entry: LogEntry) -> None:
        record = {"timestamp": entry.when.isoformat(), "level": entry.level, "event": entry.event, **entry.context}
        self.output.write(orjson.dumps(record, default=str, option=orjson.OPT_NON_STR_KEYS).decode() + "\n")


@dataclass(slots=True)
class NoOpRenderer:
    """Discards everything."""

    def render(self, entry: LogEntry) -> None:
        pass


def _show(value: object, p: _Palette) -> str:
    match value:
        case BaseException():
            return f"{p.error}{type(value).__name__}({str(value)!r}){p.reset}"
        case str():
            return f'{p.text}"{value}"{p.reset}'
        case bool():
            return f"{p.number}{'true' if value else 'false'}{p.reset}"
        case float():
            return f"{p.number}{value:.3f}{p.reset}"
        case int():
            return f"{p.number}{value}{p.reset}"
        case _:
            return repr(value)


# ─────────────────────────────────────────────────────────────────────────────
# Global Configuration
# ─────────────────────────────────────────────────────────────────────────────


@dataclass(slots=True)
class _State:
    level: int = logging.WARNING
    renderer: LogRenderer | None = None  # built on first event


_state = _State()

_FORMATS: dict[str, Callable[[TextIO | None, bool | None], LogRenderer]] = {
    "console": lambda out, colors: ConsoleRenderer(output=out or sys.stderr, colors=colors),
    "json": lambda out, colors: JsonRenderer(output=out or sys.stdout),
    "none": lambda out, colors: NoOpRenderer(),
}


def configure_logging(
    format: str = "console",  # noqa: A002
    level: str = "WARNING",
    *,
    output: TextIO | None = None,
    colors: bool | None = None,
) -> LogRenderer:
    """Set the process-wide renderer and level.

    Args:
        format: "console", "json" or "none"
        level: Standard level name; unknown names fall back to WARNING
        output: Stream to write to (default stderr for console, stdout for json)
        colors: Force ANSI colors on or off for the console format

    Returns:
        The renderer now in use
    """
    try:
        factory = _FORMATS[format]
    except KeyError:
        raise ValueError(f"Unknown format: {format!r}, expected one of {sorted(_FORMATS)}") from None
    renderer = factory(output, colors)
    _state.level = logging.getLevelNamesMapping().get(level.upper(), logging.WARNING)
    _state.renderer = renderer
    return renderer


def configure_from_settings(settings: LoggingSettings | None = None) -> LogRenderer:
    """Apply LoggingSettings (the global settings when omitted)."""
    if settings is None:
        from repeater.foundation.config import get_settings
        settings = get_settings().logging
    return configure_logging(settings.format, settings.level, colors=settings.colors)


def _active_renderer() -> LogRenderer:
    if _state.renderer is None:
        _state.renderer = ConsoleRenderer()
    return _state.renderer


def get_logger(name: str | None = None, **fields: object) -> BoundLogger:
    """Logger carrying fields, plus ``logger=name`` when a name is given."""
    return BoundLogger({**fields, "logger": name} if name else dict(fields))

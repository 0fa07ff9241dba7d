"""Foundation - Core building blocks for repeater.

Contains: error taxonomy, config.
"""

from __future__ import annotations

__all__ = [
    # Errors
    "ContextError", "Cancelled", "DeadlineExceeded", "ANY_ERROR", "Terminal", "is_terminal", "iter_causes",
    # Config
    "RepeaterSettings", "RetrySettings", "LoggingSettings", "get_settings", "clear_settings_cache",
]


def __getattr__(name: str):
    """Lazy imports to avoid circular dependencies."""
    if name in ("ContextError", "Cancelled", "DeadlineExceeded", "ANY_ERROR", "Terminal", "is_terminal", "iter_causes"):
        from . import errors
        return getattr(errors, name)

    if name in ("RepeaterSettings", "RetrySettings", "LoggingSettings", "get_settings", "clear_settings_cache"):
        from . import config
        return getattr(config, name)

    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

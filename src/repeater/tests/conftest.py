"""Shared fixtures: every test starts from default logging and fresh settings."""

from __future__ import annotations

from collections.abc import Iterator

import pytest

from repeater.foundation.config import clear_settings_cache
from repeater.runtime.observability.logging import logger as logger_module


@pytest.fixture(autouse=True)
def _isolate_globals(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    for name in ("REPEATER_RETRY_ATTEMPTS", "REPEATER_RETRY_STRATEGY", "REPEATER_RETRY_DELAY", "REPEATER_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    level, renderer = logger_module._state.level, logger_module._state.renderer
    clear_settings_cache()
    yield
    logger_module._state.level, logger_module._state.renderer = level, renderer
    clear_settings_cache()

"""Environment-based configuration using pydantic-settings.

Provides type-safe, validated defaults for repeaters and logging, read
from environment variables with sensible fallbacks. Supports .env files
and nested configuration.

Example:
    >>> from repeater.foundation.config import get_settings
    >>> settings = get_settings()
    >>> settings.retry.attempts
    3
    >>> settings.logging.level
    'WARNING'

    # Or with environment variables:
    # REPEATER_RETRY_ATTEMPTS=5
    # REPEATER_RETRY_BACKOFF_TYPE=linear
    # REPEATER_LOG_LEVEL=DEBUG
"""

from __future__ import annotations

from functools import lru_cache
from typing import TYPE_CHECKING, Annotated, Literal

from pydantic import Field, NonNegativeFloat, computed_field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from repeater.runtime.retry.backoff import Backoff, BackoffType, FixedDelay

if TYPE_CHECKING:
    from repeater.runtime.retry.backoff import Strategy


class RetrySettings(BaseSettings):
    """Default repeater configuration.

    attempts is deliberately unbounded here: budgets <= 0 are coerced to a
    single attempt by Repeater itself.
    """

    model_config = SettingsConfigDict(
        env_prefix="REPEATER_RETRY_",
        extra="ignore",
    )

    attempts: int = Field(default=3, description="Attempt budget per invocation")
    strategy: Literal["fixed", "backoff"] = "backoff"
    delay: NonNegativeFloat = Field(default=1.0, description="Fixed delay or initial backoff delay in seconds")
    backoff_type: BackoffType = BackoffType.EXPONENTIAL
    max_delay: NonNegativeFloat = Field(default=30.0, description="Backoff cap in seconds, 0 disables")
    jitter: Annotated[float, Field(ge=0.0, le=1.0)] = 0.1
    multiplier: Annotated[float, Field(ge=1.0)] = 2.0

    @field_validator("backoff_type", "strategy", mode="before")
    @classmethod
    def _normalize_case(cls, v: str) -> str:
        """Accept LINEAR as well as linear."""
        return v.lower() if isinstance(v, str) else v

    def build_strategy(self) -> Strategy:
        """Create the delay strategy this configuration describes."""
        if self.strategy == "fixed":
            return FixedDelay(self.delay)
        return Backoff(
            initial=self.delay,
            type=self.backoff_type,
            max_delay=self.max_delay or None,
            jitter=self.jitter,
            multiplier=self.multiplier,
        )


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    model_config = SettingsConfigDict(
        env_prefix="REPEATER_LOG_",
        extra="ignore",
    )

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "WARNING"
    format: Literal["console", "json", "none"] = "console"
    colors: bool | None = None

    @field_validator("level", mode="before")
    @classmethod
    def _normalize_level(cls, v: str) -> str:
        return v.upper() if isinstance(v, str) else v


class RepeaterSettings(BaseSettings):
    """Root settings for repeater.

    Loads configuration from environment variables with REPEATER_ prefix.
    Supports nested configuration and .env files.

    Example environment variables:
        REPEATER_RETRY_ATTEMPTS=5
        REPEATER_RETRY_STRATEGY=fixed
        REPEATER_RETRY_DELAY=0.25
        REPEATER_LOG_FORMAT=json
    """

    model_config = SettingsConfigDict(
        env_prefix="REPEATER_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
        validate_default=True,
    )

    retry: RetrySettings = Field(default_factory=RetrySettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @computed_field
    @property
    def is_verbose(self) -> bool:
        """Whether retry attempts are logged."""
        return self.logging.level in ("DEBUG", "INFO")


@lru_cache(maxsize=1)
def get_settings() -> RepeaterSettings:
    """Get the global settings instance (cached)."""
    return RepeaterSettings()


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing).

    After calling this, the next get_settings() call will
    reload configuration from environment.
    """
    get_settings.cache_clear()

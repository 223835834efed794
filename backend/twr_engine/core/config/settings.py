"""
Settings module for the TWR engine using Pydantic v2.

Every group is a nested model; values are read from the environment with
``__`` as the nested delimiter, e.g. ``TODAY__EQUITY_THRESHOLD=0.05``.
"""

import os
from decimal import Decimal
from functools import lru_cache
from pathlib import Path
from typing import Optional, Union

import pytz
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from twr_engine.core.enums import (
    Environment,
    FillPolicy,
    FlowAttribution,
    Granularity,
    LogLevel,
)

# ─────────────────────────────────────────────────────────────────────────────
# Nested Models for Different Configuration Areas
# ─────────────────────────────────────────────────────────────────────────────

class AppSettings(BaseModel):
    """Application-level settings."""
    PROJECT_NAME: str = Field(
        default="TWR Engine",
        description="Name of the project",
        min_length=1,
        max_length=100,
    )
    VERSION: str = Field(
        default="1.0.0",
        description="Engine version",
        pattern=r"^\d+\.\d+\.\d+$",
    )
    ENVIRONMENT: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Deployment environment",
    )
    EXCHANGE_TIMEZONE: str = Field(
        default="America/New_York",
        description="Timezone that defines a trading day",
    )

    @field_validator("EXCHANGE_TIMEZONE")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        if v not in pytz.all_timezones_set:
            raise ValueError(f"Unknown timezone: {v}")
        return v


class LoggingSettings(BaseModel):
    """Logging configuration."""
    LOG_LEVEL: LogLevel = Field(default=LogLevel.INFO, description="Logging level")
    LOG_FORMAT: str = Field(default="text", description="Log format (json/text/compact)")
    LOG_FILE_PATH: Optional[Path] = Field(
        default=None,
        description="Rotating log file path; file logging is off when unset",
    )
    ERROR_LOG_FILE_PATH: Optional[Path] = Field(
        default=None,
        description="Rotating error log file path",
    )
    MAX_LOG_SIZE: int = Field(
        default=10485760,  # 10MB
        description="Max log file size in bytes",
        gt=0,
    )
    MAX_LOG_BACKUPS: int = Field(
        default=5,
        description="Number of log file backups to retain",
        gt=0,
    )
    CONSOLE_LOGGING: bool = Field(default=True, description="Enable console logging")
    USE_COLORS: bool = Field(default=True, description="Use colors in text log format")

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def validate_log_level(cls, v: Union[str, LogLevel]) -> LogLevel:
        """Convert string log levels to enum values."""
        if isinstance(v, str):
            try:
                return LogLevel(v.upper())
            except ValueError:
                valid_levels = [e.value for e in LogLevel]
                raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v

    @field_validator("LOG_FORMAT")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        if v.lower() not in {"json", "text", "compact"}:
            raise ValueError(f"Invalid log format: {v}")
        return v.lower()


class BrokerSettings(BaseModel):
    """Brokerage REST client configuration."""
    LIVE_BASE_URL: str = Field(
        default="https://api.alpaca.markets",
        description="Base URL for live accounts",
    )
    PAPER_BASE_URL: str = Field(
        default="https://paper-api.alpaca.markets",
        description="Base URL for paper accounts",
    )
    REQUEST_TIMEOUT: float = Field(
        default=30.0,
        description="Total HTTP request timeout in seconds",
        gt=0,
    )
    MAX_CONCURRENT_REQUESTS: int = Field(
        default=8,
        description="Concurrent requests allowed per client",
        gt=0,
    )
    EXTENDED_HOURS: bool = Field(
        default=False,
        description="Include extended hours in portfolio history",
    )
    HISTORY_GRANULARITY: Granularity = Field(
        default=Granularity.ONE_DAY,
        description="Timeframe requested from the history feed",
    )


class LedgerSettings(BaseModel):
    """Cash-flow ledger pagination."""
    PAGE_SIZE: int = Field(
        default=100,
        description="Activities requested per page",
        gt=0,
        le=100,
    )
    MAX_PAGES: int = Field(
        default=1000,
        description="Safety cap on pages fetched per ledger read",
        gt=0,
    )


class AggregationSettings(BaseModel):
    """Multi-account aggregation policy."""
    FETCH_TIMEOUT_SECONDS: Optional[float] = Field(
        default=None,
        description="Caller-level timeout for the per-account fan-out",
        gt=0,
    )
    FILL_POLICY: FillPolicy = Field(
        default=FillPolicy.NONE,
        description="Treatment of accounts missing a snapshot on a day",
    )
    FLOW_ATTRIBUTION: FlowAttribution = Field(
        default=FlowAttribution.SAME_DAY,
        description="Cash-flow attribution used by the aggregate recurrence",
    )


class TodaySettings(BaseModel):
    """Today point synthesis."""
    TIMEOUT_SECONDS: float = Field(
        default=10.0,
        description="Bounded wait for live balance and today's flows",
        gt=0,
    )
    EQUITY_THRESHOLD: Decimal = Field(
        default=Decimal("0.01"),
        description="Absolute equity change that refreshes an aggregate today point",
        ge=0,
    )
    TWR_THRESHOLD: float = Field(
        default=0.001,
        description="Cumulative TWR change that refreshes an aggregate today point",
        ge=0,
    )


class RebaseSettings(BaseModel):
    """Rebase consistency checks."""
    TOLERANCE: float = Field(
        default=1e-6,
        description="Relative tolerance between rebase strategies",
        gt=0,
    )


# ─────────────────────────────────────────────────────────────────────────────
# Main Settings Model
# ─────────────────────────────────────────────────────────────────────────────

class Settings(BaseSettings):
    """Main settings container."""
    app: AppSettings = Field(default_factory=AppSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    broker: BrokerSettings = Field(default_factory=BrokerSettings)
    ledger: LedgerSettings = Field(default_factory=LedgerSettings)
    aggregation: AggregationSettings = Field(default_factory=AggregationSettings)
    today: TodaySettings = Field(default_factory=TodaySettings)
    rebase: RebaseSettings = Field(default_factory=RebaseSettings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=".env",
        env_nested_delimiter="__",
        validate_assignment=True,
        extra="ignore",
    )

    @property
    def timezone(self) -> pytz.BaseTzInfo:
        """Exchange timezone as a pytz object."""
        return pytz.timezone(self.app.EXCHANGE_TIMEZONE)

    @classmethod
    def reload(cls) -> None:
        """Force reload settings by clearing the cache."""
        get_settings.cache_clear()


# ─────────────────────────────────────────────────────────────────────────────
# Settings Instance Management
# ─────────────────────────────────────────────────────────────────────────────

@lru_cache()
def get_settings() -> Settings:
    """Return a cached instance of the settings."""
    env_file = os.environ.get("ENV_FILE", ".env")
    return Settings(_env_file=env_file)


settings = get_settings()

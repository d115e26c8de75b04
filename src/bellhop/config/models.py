"""Configuration models using Pydantic."""

from pathlib import Path
from typing import Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, field_validator

from bellhop.config.paths import get_database_path


class SchedulerConfig(BaseModel):
    """Configuration for the job scheduler."""

    # Cron expressions are evaluated in this zone
    timezone: str = "Asia/Ho_Chi_Minh"
    overlap: Literal["allow", "skip"] = "allow"
    # Seconds; None disables the timeout
    execution_timeout: float | None = Field(default=None, gt=0)
    # Resolve targets when jobs are created
    check_targets: bool = True
    max_sleep_seconds: float = Field(default=60.0, gt=0)

    @field_validator("timezone")
    @classmethod
    def _validate_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {value!r}") from e
        return value


class DatabaseConfig(BaseModel):
    """Configuration for the job database.

    ``url`` takes precedence over ``path`` when both are set.
    """

    url: str | None = None
    path: Path = Field(default_factory=get_database_path)


class LoggingConfig(BaseModel):
    """Configuration for logging."""

    level: str = "INFO"
    use_rich: bool = True
    log_to_file: bool = False
    retention_days: int = Field(default=7, ge=1)
    redact_secrets: bool = True

    @field_validator("level")
    @classmethod
    def _normalize_level(cls, value: str) -> str:
        level = value.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {value}")
        return level


class ConfigError(Exception):
    """Configuration error."""


class BellhopConfig(BaseModel):
    """Root configuration model."""

    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

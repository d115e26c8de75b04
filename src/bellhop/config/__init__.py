"""Configuration module."""

from bellhop.config.loader import get_default_config, load_config
from bellhop.config.models import (
    BellhopConfig,
    ConfigError,
    DatabaseConfig,
    LoggingConfig,
    SchedulerConfig,
)
from bellhop.config.paths import (
    get_bellhop_home,
    get_config_path,
    get_database_path,
    get_logs_path,
)

__all__ = [
    "BellhopConfig",
    "ConfigError",
    "DatabaseConfig",
    "LoggingConfig",
    "SchedulerConfig",
    "get_bellhop_home",
    "get_config_path",
    "get_database_path",
    "get_default_config",
    "get_logs_path",
    "load_config",
]

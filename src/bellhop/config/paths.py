"""Centralized path management for Bellhop.

All state (config, database, logs) is stored under a single base directory.
The base directory can be overridden with the BELLHOP_HOME environment
variable.

Default locations:
- Linux/macOS: ~/.bellhop
- Windows: %USERPROFILE%\\.bellhop
"""

import os
from functools import lru_cache
from pathlib import Path

ENV_VAR = "BELLHOP_HOME"


@lru_cache(maxsize=1)
def get_bellhop_home() -> Path:
    """Get the base directory for all Bellhop data.

    Resolution order:
    1. BELLHOP_HOME environment variable (if set)
    2. Platform default (~/.bellhop)
    """
    if env_home := os.environ.get(ENV_VAR):
        return Path(env_home).expanduser().resolve()
    return Path.home() / ".bellhop"


def get_config_path() -> Path:
    """Get the default config file path."""
    return get_bellhop_home() / "config.toml"


def get_database_path() -> Path:
    """Get the default SQLite database path."""
    return get_bellhop_home() / "data" / "bellhop.db"


def get_logs_path() -> Path:
    """Get the default logs directory path."""
    return get_bellhop_home() / "logs"


def get_all_paths() -> dict[str, Path]:
    """Get all standard paths for display."""
    return {
        "home": get_bellhop_home(),
        "config": get_config_path(),
        "database": get_database_path(),
        "logs": get_logs_path(),
    }

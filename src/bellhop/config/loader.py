"""Configuration loading from TOML files and environment variables."""

import os
import tomllib
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from bellhop.config.models import BellhopConfig, ConfigError
from bellhop.config.paths import get_config_path

# (section, key, environment variable)
ENV_OVERRIDES = [
    ("scheduler", "timezone", "BELLHOP_TIMEZONE"),
    ("database", "url", "BELLHOP_DATABASE_URL"),
    ("logging", "level", "BELLHOP_LOG_LEVEL"),
]


def _get_default_config_paths() -> list[Path]:
    """Get ordered list of default config file locations."""
    return [
        Path("config.toml"),  # Current directory
        get_config_path(),  # ~/.bellhop/config.toml (or BELLHOP_HOME)
        Path("/etc/bellhop/config.toml"),  # System-wide
    ]


def _apply_env_overrides(config: dict[str, Any]) -> dict[str, Any]:
    """Environment variables win over values from the config file."""
    for section, key, env_var in ENV_OVERRIDES:
        value = os.environ.get(env_var)
        if not value:
            continue
        target = config.setdefault(section, {})
        if not isinstance(target, dict):
            raise ConfigError(f"[{section}] must be a table")
        target[key] = value
    return config


def _validate(raw_config: dict[str, Any], source: str) -> BellhopConfig:
    try:
        return BellhopConfig.model_validate(raw_config)
    except ValidationError as e:
        raise ValueError(f"Invalid configuration in {source}: {e}") from e


def load_config(path: Path | None = None) -> BellhopConfig:
    """Load configuration from TOML file.

    Args:
        path: Explicit path to config file. If None, searches default locations.

    Returns:
        Validated BellhopConfig instance.

    Raises:
        FileNotFoundError: If no config file is found.
        ValueError: If config file is invalid.
    """
    config_path: Path | None = None

    default_paths = _get_default_config_paths()

    if path is not None:
        config_path = Path(path).expanduser()
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
    else:
        for default_path in default_paths:
            expanded = default_path.expanduser()
            if expanded.exists():
                config_path = expanded
                break

    if config_path is None:
        searched = ", ".join(str(p) for p in default_paths)
        raise FileNotFoundError(f"No config file found. Searched: {searched}")

    try:
        with config_path.open("rb") as f:
            raw_config = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ValueError(f"Invalid TOML in {config_path}: {e}") from e

    return _validate(_apply_env_overrides(raw_config), str(config_path))


def get_default_config() -> BellhopConfig:
    """Get a default configuration for development/testing.

    Environment overrides still apply.
    """
    return _validate(_apply_env_overrides({}), "environment")

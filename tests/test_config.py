"""Tests for configuration loading and models."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from bellhop.config.loader import get_default_config, load_config
from bellhop.config.models import (
    BellhopConfig,
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


class TestSchedulerConfig:
    def test_defaults(self):
        config = SchedulerConfig()
        assert config.timezone == "Asia/Ho_Chi_Minh"
        assert config.overlap == "allow"
        assert config.execution_timeout is None
        assert config.check_targets is True
        assert config.max_sleep_seconds == 60.0

    def test_invalid_timezone(self):
        with pytest.raises(ValidationError):
            SchedulerConfig(timezone="Not/AZone")

    def test_invalid_overlap(self):
        with pytest.raises(ValidationError):
            SchedulerConfig(overlap="queue")

    def test_timeout_must_be_positive(self):
        with pytest.raises(ValidationError):
            SchedulerConfig(execution_timeout=0)


class TestLoggingConfig:
    def test_level_is_normalized(self):
        assert LoggingConfig(level="debug").level == "DEBUG"

    def test_unknown_level(self):
        with pytest.raises(ValidationError):
            LoggingConfig(level="verbose")


class TestPaths:
    def test_home_from_env(self, tmp_path):
        assert get_bellhop_home() == (tmp_path / "home").resolve()

    def test_derived_paths(self):
        home = get_bellhop_home()
        assert get_config_path() == home / "config.toml"
        assert get_database_path() == home / "data" / "bellhop.db"
        assert get_logs_path() == home / "logs"

    def test_database_default(self):
        assert DatabaseConfig().path == get_database_path()


class TestLoadConfig:
    def test_load_explicit_path(self, tmp_path):
        path = tmp_path / "config.toml"
        path.write_text("""
[scheduler]
timezone = "Europe/Berlin"
overlap = "skip"
execution_timeout = 30

[database]
url = "sqlite+aiosqlite:///jobs.db"

[logging]
level = "warning"
""")
        config = load_config(path)

        assert config.scheduler.timezone == "Europe/Berlin"
        assert config.scheduler.overlap == "skip"
        assert config.scheduler.execution_timeout == 30
        assert config.database.url == "sqlite+aiosqlite:///jobs.db"
        assert config.logging.level == "WARNING"

    def test_missing_explicit_path(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "missing.toml")

    def test_invalid_toml(self, tmp_path):
        path = tmp_path / "config.toml"
        path.write_text("not valid toml [[[")
        with pytest.raises(ValueError):
            load_config(path)

    def test_invalid_values(self, tmp_path):
        path = tmp_path / "config.toml"
        path.write_text('[scheduler]\ntimezone = "Atlantis/Capital"\n')
        with pytest.raises(ValueError, match="Invalid configuration"):
            load_config(path)

    def test_searches_bellhop_home(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        home_config = get_config_path()
        home_config.parent.mkdir(parents=True)
        home_config.write_text('[scheduler]\ntimezone = "UTC"\n')

        assert load_config().scheduler.timezone == "UTC"

    def test_env_overrides_file(self, monkeypatch, tmp_path):
        path = tmp_path / "config.toml"
        path.write_text('[scheduler]\ntimezone = "UTC"\n')
        monkeypatch.setenv("BELLHOP_TIMEZONE", "America/New_York")
        monkeypatch.setenv("BELLHOP_DATABASE_URL", "sqlite+aiosqlite://")

        config = load_config(path)

        assert config.scheduler.timezone == "America/New_York"
        assert config.database.url == "sqlite+aiosqlite://"


class TestDefaultConfig:
    def test_defaults(self):
        config = get_default_config()
        assert isinstance(config, BellhopConfig)
        assert config.scheduler.timezone == "Asia/Ho_Chi_Minh"
        assert config.database.url is None
        assert config.logging.level == "INFO"

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("BELLHOP_LOG_LEVEL", "debug")
        assert get_default_config().logging.level == "DEBUG"

    def test_invalid_env_timezone(self, monkeypatch):
        monkeypatch.setenv("BELLHOP_TIMEZONE", "Nope/Nope")
        with pytest.raises(ValueError):
            get_default_config()


def test_config_file_fixture_loads(config_file: Path):
    config = load_config(config_file)
    assert config.database.path.name == "cli.db"

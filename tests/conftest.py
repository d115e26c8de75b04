"""Shared test fixtures and factories."""

import asyncio
from collections.abc import AsyncGenerator
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import pytest

from bellhop.config.models import BellhopConfig, DatabaseConfig, SchedulerConfig
from bellhop.db.engine import Database
from bellhop.scheduling.dispatch import Dispatcher, TargetRegistry
from bellhop.scheduling.scheduler import JobScheduler
from bellhop.scheduling.store import ExecutionLog, JobStore
from bellhop.scheduling.types import Target

# =============================================================================
# Configuration Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch, tmp_path: Path):
    """Keep tests away from the real ~/.bellhop and BELLHOP_* variables."""
    from bellhop.config.paths import get_bellhop_home

    for var in ("BELLHOP_TIMEZONE", "BELLHOP_DATABASE_URL", "BELLHOP_LOG_LEVEL"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("BELLHOP_HOME", str(tmp_path / "home"))
    get_bellhop_home.cache_clear()
    yield
    get_bellhop_home.cache_clear()


@pytest.fixture
def config(tmp_path: Path) -> BellhopConfig:
    """Configuration pointing at a temporary database."""
    return BellhopConfig(
        scheduler=SchedulerConfig(timezone="UTC"),
        database=DatabaseConfig(path=tmp_path / "jobs.db"),
    )


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    """Config file pointing at a temporary database."""
    config_path = tmp_path / "config.toml"
    config_path.write_text(f"""
[scheduler]
timezone = "UTC"

[database]
path = "{tmp_path / 'cli.db'}"
""")
    return config_path


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture
async def database(tmp_path: Path) -> AsyncGenerator[Database, None]:
    """Create a temporary test database."""
    db = Database(database_path=tmp_path / "test.db")
    await db.connect()
    await db.create_tables()

    yield db

    await db.disconnect()


@pytest.fixture
def execution_log(database: Database) -> ExecutionLog:
    return ExecutionLog(database)


@pytest.fixture
def store(database: Database, execution_log: ExecutionLog) -> JobStore:
    return JobStore(database, execution_log)


# =============================================================================
# Collaborators and Clock
# =============================================================================


class FakeClock:
    """Injectable clock that only moves when told to."""

    def __init__(self, now: datetime | None = None):
        self.now = now or datetime(2026, 3, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class RecordingCollaborator:
    """Collaborator whose capabilities record every call."""

    def __init__(self):
        self.calls: list[tuple[str, tuple[Any, ...]]] = []

    def ping(self, *args: Any) -> str:
        self.calls.append(("ping", args))
        return "pong"

    async def remind(self, payload: dict[str, Any]) -> dict[str, Any]:
        self.calls.append(("remind", (payload,)))
        return {"sent": True}

    def boom(self) -> None:
        self.calls.append(("boom", ()))
        raise RuntimeError("boom")

    async def slow(self, seconds: float = 0.3) -> str:
        self.calls.append(("slow", (seconds,)))
        await asyncio.sleep(seconds)
        return "done"

    def count(self, name: str) -> int:
        return sum(1 for call, _ in self.calls if call == name)


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def collaborator() -> RecordingCollaborator:
    return RecordingCollaborator()


@pytest.fixture
def registry(collaborator: RecordingCollaborator) -> TargetRegistry:
    registry = TargetRegistry()
    registry.register("tasks", collaborator)
    return registry


@pytest.fixture
def dispatcher(registry: TargetRegistry) -> Dispatcher:
    return Dispatcher(registry)


@pytest.fixture
async def scheduler(
    store: JobStore, dispatcher: Dispatcher
) -> AsyncGenerator[JobScheduler, None]:
    """Scheduler on the real clock, shut down after the test."""
    scheduler = JobScheduler(store, dispatcher, timezone="UTC", max_sleep=0.05)
    yield scheduler
    await scheduler.shutdown(wait=True)


PING = Target("tasks", "ping")
BOOM = Target("tasks", "boom")


async def wait_for(predicate, timeout: float = 3.0, interval: float = 0.02) -> None:
    """Poll an async predicate until it returns True."""
    deadline = asyncio.get_running_loop().time() + timeout
    while True:
        if await predicate():
            return
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(interval)


# =============================================================================
# CLI Fixtures
# =============================================================================


@pytest.fixture
def cli_runner():
    """Typer CLI test runner."""
    from typer.testing import CliRunner

    return CliRunner(env={"NO_COLOR": "1", "COLUMNS": "200"})


@pytest.fixture
def restore_root_logger():
    """Undo configure_logging() so handlers don't leak between tests."""
    import logging

    import bellhop.logging as bellhop_logging

    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    redactor = bellhop_logging._redactor
    yield root
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers = handlers
    root.setLevel(level)
    bellhop_logging._redactor = redactor

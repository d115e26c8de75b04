"""Process-level wiring for the scheduling subsystem.

Builds the database, registry, dispatcher, store, scheduler and recovery
manager from configuration and drives their lifecycle:

    runtime = SchedulingRuntime(config)
    runtime.register("tasks", task_manager, capabilities=["send_reminder"])
    await runtime.setup()   # connect, create tables
    await runtime.start()   # recover persisted jobs
    ...
    await runtime.shutdown()
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING

from bellhop.config import BellhopConfig, get_default_config
from bellhop.db import Database
from bellhop.scheduling.dispatch import Dispatcher, TargetRegistry
from bellhop.scheduling.recovery import RecoveryManager, RecoveryReport
from bellhop.scheduling.scheduler import JobScheduler
from bellhop.scheduling.store import ExecutionLog, JobStore
from bellhop.scheduling.timing import utc_now
from bellhop.scheduling.types import HealthStatus

if TYPE_CHECKING:
    from pydantic import BaseModel

logger = logging.getLogger(__name__)


def create_database(config: BellhopConfig) -> Database:
    """Build a Database from the [database] section."""
    if config.database.url:
        return Database(database_url=config.database.url)
    return Database(database_path=config.database.path)


class SchedulingRuntime:
    """Owns the scheduling components for one process."""

    def __init__(
        self,
        config: BellhopConfig | None = None,
        *,
        database: Database | None = None,
        registry: TargetRegistry | None = None,
    ) -> None:
        self._config = config or get_default_config()
        self._database = database or create_database(self._config)
        self._registry = registry or TargetRegistry()
        self._dispatcher = Dispatcher(self._registry)
        self._execution_log = ExecutionLog(self._database)
        self._store = JobStore(self._database, self._execution_log)

        scheduler_config = self._config.scheduler
        self._scheduler = JobScheduler(
            self._store,
            self._dispatcher,
            timezone=scheduler_config.timezone,
            overlap=scheduler_config.overlap,
            execution_timeout=scheduler_config.execution_timeout,
            check_targets=scheduler_config.check_targets,
            max_sleep=scheduler_config.max_sleep_seconds,
        )
        self._recovery = RecoveryManager(self._store, self._scheduler)
        self._owns_connection = False
        self._started = False

    @property
    def config(self) -> BellhopConfig:
        return self._config

    @property
    def database(self) -> Database:
        return self._database

    @property
    def registry(self) -> TargetRegistry:
        return self._registry

    @property
    def store(self) -> JobStore:
        return self._store

    @property
    def execution_log(self) -> ExecutionLog:
        return self._execution_log

    @property
    def scheduler(self) -> JobScheduler:
        return self._scheduler

    @property
    def started(self) -> bool:
        return self._started

    def register(
        self,
        name: str,
        collaborator: object,
        capabilities: Iterable[str] | None = None,
        schemas: Mapping[str, type[BaseModel]] | None = None,
    ) -> None:
        """Expose a collaborator to scheduled jobs. See TargetRegistry.register."""
        self._registry.register(name, collaborator, capabilities, schemas)

    async def setup(self) -> None:
        """Connect to the database and create the tables if missing."""
        if not self._database.is_connected:
            await self._database.connect()
            self._owns_connection = True
        await self._database.create_tables()
        logger.debug(f"Scheduling database ready: {self._database.url}")

    async def start(self) -> RecoveryReport:
        """Re-arm persisted jobs. Collaborators must be registered first."""
        if self._started:
            raise RuntimeError("Scheduling runtime already started")
        if not self._database.is_connected:
            await self.setup()
        report = await self._recovery.recover()
        self._started = True
        logger.info(
            "scheduling_started",
            extra={
                "scheduler.timezone": self._scheduler.timezone,
                "scheduler.timers": len(self._scheduler.handles),
            },
        )
        return report

    async def shutdown(self, wait: bool = True) -> None:
        """Stop timers, wait for running executions, then disconnect."""
        await self._scheduler.shutdown(wait=wait)
        self._started = False
        if self._owns_connection:
            await self._database.disconnect()
            self._owns_connection = False
        logger.info("scheduling_stopped")

    def health_check(self) -> HealthStatus:
        if not self._started:
            return HealthStatus(
                healthy=False,
                live_timers=0,
                timestamp=utc_now(),
                issues=["Scheduler not started"],
            )
        return self._scheduler.health_check()

    async def __aenter__(self) -> SchedulingRuntime:
        await self.setup()
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.shutdown()

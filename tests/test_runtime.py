"""Tests for scheduling runtime wiring and lifecycle."""

from datetime import timedelta

import pytest

from bellhop.config.models import BellhopConfig, DatabaseConfig, SchedulerConfig
from bellhop.scheduling.runtime import SchedulingRuntime, create_database
from bellhop.scheduling.scheduler import JobScheduler
from bellhop.scheduling.types import Target
from tests.conftest import RecordingCollaborator, wait_for


class TestCreateDatabase:
    def test_path(self, tmp_path):
        config = BellhopConfig(database=DatabaseConfig(path=tmp_path / "a" / "b.db"))
        database = create_database(config)
        assert database.url == f"sqlite+aiosqlite:///{tmp_path / 'a' / 'b.db'}"

    def test_url_wins(self, tmp_path):
        config = BellhopConfig(
            database=DatabaseConfig(url="sqlite+aiosqlite://", path=tmp_path / "x.db")
        )
        assert create_database(config).url == "sqlite+aiosqlite://"


class TestSchedulingRuntime:
    async def test_scheduler_built_from_config(self, tmp_path):
        config = BellhopConfig(
            scheduler=SchedulerConfig(timezone="Europe/Berlin", overlap="skip"),
            database=DatabaseConfig(path=tmp_path / "jobs.db"),
        )
        runtime = SchedulingRuntime(config)

        assert isinstance(runtime.scheduler, JobScheduler)
        assert runtime.scheduler.timezone == "Europe/Berlin"
        assert runtime.scheduler.store is runtime.store
        assert runtime.store.execution_log is runtime.execution_log

    async def test_default_timezone(self):
        runtime = SchedulingRuntime()
        assert runtime.scheduler.timezone == "Asia/Ho_Chi_Minh"

    async def test_lifecycle_and_recovery(self, config):
        runtime = SchedulingRuntime(config)
        runtime.register("tasks", RecordingCollaborator())
        await runtime.setup()
        assert runtime.health_check().issues == ["Scheduler not started"]

        job = await runtime.scheduler.create_recurring_job(
            "digest", "0 8 * * *", Target("tasks", "ping")
        )
        await runtime.shutdown()
        assert runtime.database.is_connected is False

        # A new process recovers the persisted job
        restarted = SchedulingRuntime(config)
        restarted.register("tasks", RecordingCollaborator())
        async with restarted:
            assert restarted.started
            assert restarted.scheduler.is_scheduled(job.id)
            health = restarted.health_check()
            assert health.healthy is True
            assert health.live_timers == 1

        assert restarted.scheduler.handles == {}

    async def test_start_twice(self, config):
        async with SchedulingRuntime(config) as runtime:
            with pytest.raises(RuntimeError):
                await runtime.start()

    async def test_start_reports_lapsed_jobs(self, config):
        async with SchedulingRuntime(config) as runtime:
            runtime.register("tasks", RecordingCollaborator())
            job = await runtime.scheduler.create_one_time_job(
                "soon",
                runtime.scheduler.now() + timedelta(milliseconds=300),
                Target("tasks", "ping"),
            )
            await runtime.shutdown()

        # Reopen after the instant passed without the job having run
        runtime = SchedulingRuntime(config)
        await runtime.setup()

        async def lapsed() -> bool:
            return runtime.scheduler.now() > job.run_at

        await wait_for(lapsed)
        report = await runtime.start()
        try:
            assert report.lapsed == [job.id]
            assert (await runtime.store.get(job.id)).enabled is False
            assert await runtime.execution_log.query() == []
        finally:
            await runtime.shutdown()

    async def test_external_database_is_left_open(self, config, database):
        runtime = SchedulingRuntime(config, database=database)
        await runtime.setup()
        await runtime.start()
        await runtime.shutdown()

        assert database.is_connected is True

"""Tests for startup recovery of persisted jobs."""

from collections.abc import AsyncGenerator
from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import update

from bellhop.db.models import JobRecord
from bellhop.scheduling.dispatch import Dispatcher
from bellhop.scheduling.errors import PersistenceError
from bellhop.scheduling.recovery import RecoveryManager
from bellhop.scheduling.scheduler import JobScheduler
from bellhop.scheduling.store import JobStore
from bellhop.scheduling.types import JobKind, JobSpec
from tests.conftest import PING, FakeClock, wait_for


@pytest.fixture
async def scheduler(
    store: JobStore, dispatcher: Dispatcher, fake_clock: FakeClock
) -> AsyncGenerator[JobScheduler, None]:
    scheduler = JobScheduler(
        store, dispatcher, timezone="UTC", clock=fake_clock, max_sleep=0.01
    )
    yield scheduler
    await scheduler.shutdown(wait=True)


@pytest.fixture
def recovery(store: JobStore, scheduler: JobScheduler) -> RecoveryManager:
    return RecoveryManager(store, scheduler)


async def create_recurring(store: JobStore, name: str, cron: str = "0 8 * * *"):
    return await store.create(
        JobSpec(
            name=name,
            kind=JobKind.RECURRING,
            target=PING,
            cron=cron,
            # Stale value from before the restart
            next_run=datetime(2026, 2, 1, 8, 0, tzinfo=UTC),
        )
    )


async def create_one_time(store: JobStore, name: str, run_at: datetime):
    return await store.create(
        JobSpec(
            name=name,
            kind=JobKind.ONE_TIME,
            target=PING,
            run_at=run_at,
            next_run=run_at,
        )
    )


class TestRecoverRecurring:
    async def test_rearms_with_next_run_from_now(
        self, recovery, scheduler, store, collaborator
    ):
        job = await create_recurring(store, "digest")

        report = await recovery.recover()

        assert report.recurring == [job.id]
        assert report.ok
        expected = datetime(2026, 3, 2, 8, 0, tzinfo=UTC)
        assert scheduler.handles[job.id].next_run == expected
        assert (await store.get(job.id)).next_run == expected
        # Missed ticks are not replayed
        assert collaborator.calls == []
        assert await store.execution_log.query() == []

    async def test_disabled_jobs_are_ignored(self, recovery, scheduler, store):
        job = await create_recurring(store, "digest")
        await store.disable(job.id)

        report = await recovery.recover()

        assert report.rearmed == 0
        assert not scheduler.is_scheduled(job.id)


class TestRecoverOneTime:
    async def test_lapsed_job_is_disabled_without_running(
        self, recovery, scheduler, store, collaborator, fake_clock
    ):
        job = await create_one_time(store, "late", fake_clock.now - timedelta(hours=1))

        report = await recovery.recover()

        assert report.lapsed == [job.id]
        recovered = await store.get(job.id)
        assert recovered.enabled is False
        assert recovered.last_run is None
        assert recovered.run_count == 0
        assert await store.execution_log.query() == []
        assert collaborator.calls == []
        assert not scheduler.is_scheduled(job.id)

    async def test_future_job_rearmed_with_remaining_delay(
        self, recovery, scheduler, store, fake_clock
    ):
        run_at = fake_clock.now + timedelta(minutes=30)
        job = await create_one_time(store, "soon", run_at)

        report = await recovery.recover()

        assert report.one_time == [job.id]
        assert scheduler.handles[job.id].delay == 30 * 60

    async def test_rearmed_job_fires(
        self, recovery, store, collaborator, fake_clock
    ):
        run_at = fake_clock.now + timedelta(minutes=30)
        job = await create_one_time(store, "soon", run_at)
        await recovery.recover()

        fake_clock.advance(minutes=30)

        async def done() -> bool:
            return (await store.get(job.id)).run_count == 1

        await wait_for(done)
        assert collaborator.count("ping") == 1


class TestRecoveryFailures:
    async def test_bad_job_does_not_stop_the_rest(
        self, recovery, scheduler, store, database
    ):
        broken = await create_recurring(store, "broken")
        healthy = await create_recurring(store, "healthy")
        async with database.session() as session:
            await session.execute(
                update(JobRecord)
                .where(JobRecord.id == broken.id)
                .values(cron_expression="not a cron")
            )

        report = await recovery.recover()

        assert report.recurring == [healthy.id]
        assert [failure.job_id for failure in report.failures] == [broken.id]
        assert "not a cron" in report.failures[0].error
        assert not report.ok
        assert scheduler.is_scheduled(healthy.id)
        assert not scheduler.is_scheduled(broken.id)

    async def test_listing_failure_propagates(self, recovery, database):
        async with database.engine.begin() as conn:
            await conn.exec_driver_sql("DROP TABLE execution_logs")
            await conn.exec_driver_sql("DROP TABLE jobs")

        with pytest.raises(PersistenceError):
            await recovery.recover()

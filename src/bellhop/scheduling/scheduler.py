"""Scheduler core: owns live timers and runs jobs when they fire.

Each armed job has one timer task that sleeps until the job's next run.
When it fires, execution is spawned as its own task so the timer keeps its
cadence and so that stopping a job never interrupts a running handler.

Per-job lifecycle:

    Created -> Scheduled -> Firing -> Scheduled   (recurring)
                                   -> Terminal    (one-time)
"""

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel

from bellhop.scheduling.dispatch import Dispatcher
from bellhop.scheduling.errors import (
    ExecutionTimeout,
    InvalidScheduleExpression,
    JobNotFound,
    PastScheduleTime,
    PersistenceError,
    SchedulingError,
)
from bellhop.scheduling.store import JobStore
from bellhop.scheduling.timing import (
    compute_next_run,
    get_zone,
    next_run_on_enable,
    resolve_one_time,
    utc_now,
    validate_expression,
)
from bellhop.scheduling.types import (
    ExecutionLogEntry,
    ExecutionOutcome,
    ExecutionStatus,
    HealthStatus,
    Job,
    JobKind,
    JobSpec,
    JobStatus,
    SchedulerStats,
    Target,
)

logger = logging.getLogger(__name__)

OverlapPolicy = Literal["allow", "skip"]

# Timers sleep in slices of at most this many seconds so that wall-clock
# jumps (suspend/resume, NTP corrections) are noticed.
DEFAULT_MAX_SLEEP_SECONDS = 60.0


@dataclass
class JobHandle:
    """Live timer for one job."""

    job_id: int
    name: str
    kind: JobKind
    next_run: datetime
    # Seconds between arming and the first target instant
    delay: float
    task: asyncio.Task | None = None

    @property
    def active(self) -> bool:
        return self.task is not None and not self.task.done()


def _as_target(target: Target | tuple[str, str]) -> Target:
    if isinstance(target, Target):
        return target
    collaborator, capability = target
    return Target(collaborator, capability)


def _normalize_parameters(parameters: Any) -> Any:
    if isinstance(parameters, BaseModel):
        return parameters.model_dump(mode="json")
    if isinstance(parameters, tuple):
        return list(parameters)
    return parameters


class JobScheduler:
    """Creates jobs, arms their timers and executes them.

    Example:
        scheduler = JobScheduler(store, Dispatcher(registry), timezone="UTC")
        await scheduler.create_recurring_job(
            "daily-digest", "0 8 * * *", Target("digest", "post")
        )
    """

    def __init__(
        self,
        store: JobStore,
        dispatcher: Dispatcher,
        *,
        timezone: str = "UTC",
        overlap: OverlapPolicy = "allow",
        execution_timeout: float | None = None,
        check_targets: bool = True,
        clock: Callable[[], datetime] = utc_now,
        max_sleep: float = DEFAULT_MAX_SLEEP_SECONDS,
    ) -> None:
        get_zone(timezone)
        if overlap not in ("allow", "skip"):
            raise ValueError(f"Unknown overlap policy: {overlap}")
        self._store = store
        self._dispatcher = dispatcher
        self._timezone = timezone
        self._overlap = overlap
        self._execution_timeout = execution_timeout
        self._check_targets = check_targets
        self._clock = clock
        self._max_sleep = max_sleep
        self._handles: dict[int, JobHandle] = {}
        self._inflight: dict[int, set[asyncio.Task]] = {}

    @property
    def store(self) -> JobStore:
        return self._store

    @property
    def dispatcher(self) -> Dispatcher:
        return self._dispatcher

    @property
    def timezone(self) -> str:
        return self._timezone

    @property
    def handles(self) -> dict[int, JobHandle]:
        return dict(self._handles)

    def now(self) -> datetime:
        return self._clock()

    def is_scheduled(self, job_id: int) -> bool:
        return job_id in self._handles

    def is_executing(self, job_id: int) -> bool:
        return bool(self._inflight.get(job_id))

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create_recurring_job(
        self,
        name: str,
        expression: str,
        target: Target | tuple[str, str],
        parameters: Any = None,
        *,
        description: str = "",
        enabled: bool = True,
    ) -> Job:
        """Persist a recurring job and arm its timer.

        Raises:
            InvalidScheduleExpression: If the cron expression is invalid.
            DuplicateName: If the name is taken.
            DispatchError: If the target cannot be resolved.
            InvalidParameters: If parameters do not fit the capability.
            PersistenceError: If the store fails.
        """
        target = _as_target(target)
        parameters = _normalize_parameters(parameters)
        validate_expression(expression)
        if self._check_targets:
            self._dispatcher.check(target, parameters)

        next_run = compute_next_run(expression, self._clock(), self._timezone)
        job = await self._store.create(
            JobSpec(
                name=name,
                kind=JobKind.RECURRING,
                target=target,
                cron=expression,
                parameters=parameters,
                description=description,
                enabled=enabled,
                next_run=next_run,
            )
        )
        if enabled:
            self.schedule_recurring(job, next_run=next_run)
        return job

    async def create_one_time_job(
        self,
        name: str,
        run_at: datetime,
        target: Target | tuple[str, str],
        parameters: Any = None,
        *,
        description: str = "",
    ) -> Job:
        """Persist a one-time job and arm its single-shot timer.

        Naive ``run_at`` values are read in the scheduler's timezone.

        Raises:
            PastScheduleTime: If ``run_at`` is not strictly in the future.
            DuplicateName: If the name is taken.
            DispatchError: If the target cannot be resolved.
            PersistenceError: If the store fails.
        """
        target = _as_target(target)
        parameters = _normalize_parameters(parameters)
        run_at = resolve_one_time(run_at, self._clock(), self._timezone)
        if self._check_targets:
            self._dispatcher.check(target, parameters)

        job = await self._store.create(
            JobSpec(
                name=name,
                kind=JobKind.ONE_TIME,
                target=target,
                run_at=run_at,
                parameters=parameters,
                description=description,
                next_run=run_at,
            )
        )
        # Validated above; persisting may have eaten the remaining margin
        self._arm_one_time(job, run_at)
        return job

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------

    def schedule_recurring(
        self, job: Job, next_run: datetime | None = None
    ) -> JobHandle:
        """Arm the timer for a recurring job, replacing any existing one.

        Args:
            job: The job to arm.
            next_run: First occurrence; computed from now when omitted.
        """
        if not job.cron:
            raise InvalidScheduleExpression(
                "", f"job '{job.name}' has no cron expression"
            )
        if next_run is None:
            next_run = compute_next_run(job.cron, self._clock(), self._timezone)

        self.stop(job.id)
        handle = self._new_handle(job, next_run)
        handle.task = asyncio.create_task(
            self._run_recurring(handle, job), name=f"bellhop-timer-{job.name}"
        )
        self._handles[job.id] = handle
        logger.info(
            "job_scheduled",
            extra={
                "job.id": job.id,
                "job.name": job.name,
                "job.cron": job.cron,
                "job.next_run": next_run.isoformat(),
            },
        )
        return handle

    def schedule_one_time(self, job: Job) -> JobHandle:
        """Arm the single-shot timer for a one-time job.

        Raises:
            PastScheduleTime: If the job's instant is not in the future.
        """
        run_at = job.run_at or job.next_run
        now = self._clock()
        if run_at is None or run_at <= now:
            raise PastScheduleTime(run_at or now, now)
        return self._arm_one_time(job, run_at)

    def _arm_one_time(self, job: Job, run_at: datetime) -> JobHandle:
        self.stop(job.id)
        handle = self._new_handle(job, run_at)
        handle.task = asyncio.create_task(
            self._run_one_time(handle, job), name=f"bellhop-timer-{job.name}"
        )
        self._handles[job.id] = handle
        logger.info(
            "one_time_job_scheduled",
            extra={
                "job.id": job.id,
                "job.name": job.name,
                "job.run_at": run_at.isoformat(),
                "job.delay_minutes": round(handle.delay / 60),
            },
        )
        return handle

    def _new_handle(self, job: Job, next_run: datetime) -> JobHandle:
        delay = max((next_run - self._clock()).total_seconds(), 0.0)
        return JobHandle(
            job_id=job.id,
            name=job.name,
            kind=job.kind,
            next_run=next_run,
            delay=delay,
        )

    def stop(self, job_id: int) -> bool:
        """Cancel a job's live timer. In-flight executions keep running.

        Returns:
            True if a timer was cancelled, False if none was armed.
        """
        handle = self._handles.pop(job_id, None)
        if handle is None:
            logger.debug(f"Job {job_id} has no live timer")
            return False
        if handle.task is not None:
            handle.task.cancel()
        logger.info("job_stopped", extra={"job.id": job_id, "job.name": handle.name})
        return True

    def stop_by_name(self, name: str) -> bool:
        for job_id, handle in list(self._handles.items()):
            if handle.name == name:
                return self.stop(job_id)
        logger.debug(f"Job '{name}' has no live timer")
        return False

    def stop_all(self) -> list[asyncio.Task]:
        """Cancel every live timer.

        Returns:
            The cancelled timer tasks, for callers that want to await them.
        """
        tasks = [h.task for h in self._handles.values() if h.task is not None]
        for job_id in list(self._handles):
            self.stop(job_id)
        logger.info("all_jobs_stopped", extra={"scheduler.timers": len(tasks)})
        return tasks

    async def wait_idle(self) -> None:
        """Wait until no execution is in flight."""
        while True:
            pending = [t for tasks in self._inflight.values() for t in tasks]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    async def shutdown(self, wait: bool = True) -> None:
        """Stop all timers and optionally wait for running executions."""
        tasks = self.stop_all()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        if wait:
            await self.wait_idle()

    async def _sleep_until(self, target: datetime) -> None:
        while True:
            remaining = (target - self._clock()).total_seconds()
            if remaining <= 0:
                return
            await asyncio.sleep(min(remaining, self._max_sleep))

    async def _run_recurring(self, handle: JobHandle, job: Job) -> None:
        assert job.cron is not None
        try:
            while True:
                await self._sleep_until(handle.next_run)
                fired_at = handle.next_run
                self._fire(job)
                handle.next_run = compute_next_run(
                    job.cron, max(fired_at, self._clock()), self._timezone
                )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(
                "job_timer_failed",
                extra={"job.id": job.id, "job.name": job.name, "error.message": str(e)},
                exc_info=True,
            )
            if self._handles.get(job.id) is handle:
                self._handles.pop(job.id, None)

    async def _run_one_time(self, handle: JobHandle, job: Job) -> None:
        await self._sleep_until(handle.next_run)
        # Terminal: the timer is spent once it fires
        if self._handles.get(job.id) is handle:
            self._handles.pop(job.id, None)
        self._fire(job)

    def _fire(self, job: Job) -> None:
        running = self._inflight.setdefault(job.id, set())
        if running and self._overlap == "skip":
            logger.warning(
                "job_fire_skipped_overlap",
                extra={"job.id": job.id, "job.name": job.name},
            )
            return

        task = asyncio.create_task(self._execute(job), name=f"bellhop-exec-{job.name}")
        running.add(task)

        def _done(finished: asyncio.Task) -> None:
            running.discard(finished)
            if not running and self._inflight.get(job.id) is running:
                self._inflight.pop(job.id, None)

        task.add_done_callback(_done)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def _invoke(self, job: Job) -> Any:
        call = self._dispatcher.invoke(job.target, job.parameters)
        if self._execution_timeout is None:
            return await call
        return await asyncio.wait_for(call, timeout=self._execution_timeout)

    async def _execute(self, job: Job) -> ExecutionOutcome:
        """Run one attempt of a job and record the outcome.

        Never raises: dispatch, handler and persistence failures are logged
        and recorded so that other timers are unaffected.
        """
        started_at = self._clock()
        start = time.monotonic()
        status = ExecutionStatus.SUCCESS
        output: Any = None
        error_message: str | None = None

        logger.info(
            "job_executing",
            extra={
                "job.id": job.id,
                "job.name": job.name,
                "job.target": str(job.target),
            },
        )
        try:
            output = await self._invoke(job)
        except TimeoutError:
            assert self._execution_timeout is not None
            status = ExecutionStatus.TIMEOUT
            error_message = str(ExecutionTimeout(self._execution_timeout))
        except SchedulingError as e:
            status = ExecutionStatus.ERROR
            error_message = str(e)
        except Exception as e:
            status = ExecutionStatus.ERROR
            error_message = str(e) or type(e).__name__
            logger.error(
                "job_execution_unexpected_error",
                extra={"job.id": job.id, "error.message": error_message},
                exc_info=True,
            )

        duration_ms = int((time.monotonic() - start) * 1000)
        outcome = ExecutionOutcome(
            status=status,
            started_at=started_at,
            duration_ms=duration_ms,
            output=output,
            error_message=error_message,
        )

        if outcome.succeeded:
            logger.info(
                "job_succeeded",
                extra={
                    "job.id": job.id,
                    "job.name": job.name,
                    "job.duration_ms": duration_ms,
                },
            )
        else:
            logger.error(
                "job_failed",
                extra={
                    "job.id": job.id,
                    "job.name": job.name,
                    "job.status": status.value,
                    "error.message": error_message,
                },
            )

        if job.is_recurring:
            # Failures never disable a recurring job
            next_run = self._next_after_execution(job)
            disable = False
        else:
            next_run = None
            disable = True

        try:
            await self._store.record_outcome(job.id, next_run, outcome, disable=disable)
        except JobNotFound:
            logger.warning(
                "job_deleted_during_execution",
                extra={"job.id": job.id, "job.name": job.name},
            )
        except PersistenceError as e:
            logger.error(
                "record_outcome_failed",
                extra={"job.id": job.id, "job.name": job.name, "error.message": str(e)},
            )
        return outcome

    def _next_after_execution(self, job: Job) -> datetime | None:
        assert job.cron is not None
        try:
            return compute_next_run(job.cron, self._clock(), self._timezone)
        except SchedulingError as e:
            logger.error(
                "next_run_failed",
                extra={"job.id": job.id, "job.cron": job.cron, "error.message": str(e)},
            )
            return None

    # ------------------------------------------------------------------
    # Management
    # ------------------------------------------------------------------

    async def _require(self, job_id: int) -> Job:
        job = await self._store.get(job_id)
        if job is None:
            raise JobNotFound(job_id)
        return job

    async def enable_job(self, job_id: int) -> Job:
        """Enable a job and arm its timer.

        Raises:
            JobNotFound: If the job does not exist.
            PastScheduleTime: If it is a one-time job whose instant has passed.
        """
        job = await self._require(job_id)
        next_run = next_run_on_enable(job, self._clock(), self._timezone)
        await self._store.update_next_run(job.id, next_run)
        await self._store.set_enabled(job.id, True)
        job.next_run = next_run
        job.enabled = True
        if job.is_recurring:
            self.schedule_recurring(job, next_run=next_run)
        else:
            self._arm_one_time(job, next_run)
        logger.info("job_enabled", extra={"job.id": job.id, "job.name": job.name})
        return job

    async def disable_job(self, job_id: int) -> None:
        """Disable a job and cancel its timer.

        Raises:
            JobNotFound: If the job does not exist.
        """
        if not await self._store.disable(job_id):
            raise JobNotFound(job_id)
        self.stop(job_id)
        logger.info("job_disabled", extra={"job.id": job_id})

    async def delete_job(self, job_id: int) -> bool:
        """Cancel a job's timer and delete it with its log rows."""
        self.stop(job_id)
        deleted = await self._store.delete(job_id)
        if deleted:
            logger.info("job_deleted", extra={"job.id": job_id})
        else:
            logger.warning("job_not_found", extra={"job.id": job_id})
        return deleted

    async def list_jobs(self, enabled_only: bool = False) -> list[JobStatus]:
        jobs = await self._store.list_all(enabled_only=enabled_only)
        return [JobStatus(job=job, is_running=job.id in self._handles) for job in jobs]

    async def get_logs(
        self, job_id: int | None = None, limit: int = 50
    ) -> list[ExecutionLogEntry]:
        return await self._store.execution_log.query(job_id=job_id, limit=limit)

    async def get_stats(self) -> SchedulerStats:
        """Job counts plus today's executions (today in the scheduler timezone)."""
        local_now = self._clock().astimezone(get_zone(self._timezone))
        midnight = local_now.replace(hour=0, minute=0, second=0, microsecond=0)
        log = self._store.execution_log

        total = await self._store.count()
        enabled = await self._store.count(enabled_only=True)
        executions = await log.count_since(midnight)
        successes = await log.count_since(midnight, ExecutionStatus.SUCCESS)
        return SchedulerStats(
            total_jobs=total,
            enabled_jobs=enabled,
            live_timers=len(self._handles),
            executions_today=executions,
            success_rate_today=round(successes / executions * 100) if executions else 0,
        )

    def health_check(self) -> HealthStatus:
        issues: list[str] = []
        if not self._handles:
            issues.append("No live job timers")
        dead = [h.name for h in self._handles.values() if not h.active]
        if dead:
            issues.append(f"Timers not running: {', '.join(sorted(dead))}")
        return HealthStatus(
            healthy=not issues,
            live_timers=len(self._handles),
            timestamp=self._clock(),
            issues=issues,
        )


__all__ = ["JobHandle", "JobScheduler", "OverlapPolicy"]

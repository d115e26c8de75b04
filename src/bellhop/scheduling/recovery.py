"""Startup recovery: rebuild live timers from persisted jobs.

Missed recurring ticks are not replayed: the next run is recomputed from
now. One-time jobs whose instant passed while the process was down are
treated as abandoned and disabled without running.
"""

import logging
from dataclasses import dataclass, field

from bellhop.scheduling.errors import SchedulingError
from bellhop.scheduling.scheduler import JobScheduler
from bellhop.scheduling.store import JobStore
from bellhop.scheduling.timing import compute_next_run
from bellhop.scheduling.types import Job

logger = logging.getLogger(__name__)


@dataclass
class RecoveryFailure:
    job_id: int
    job_name: str
    error: str


@dataclass
class RecoveryReport:
    """What recovery did with each enabled job."""

    recurring: list[int] = field(default_factory=list)
    one_time: list[int] = field(default_factory=list)
    lapsed: list[int] = field(default_factory=list)
    failures: list[RecoveryFailure] = field(default_factory=list)

    @property
    def rearmed(self) -> int:
        return len(self.recurring) + len(self.one_time)

    @property
    def ok(self) -> bool:
        return not self.failures


class RecoveryManager:
    """Re-arms enabled jobs once at startup."""

    def __init__(self, store: JobStore, scheduler: JobScheduler) -> None:
        self._store = store
        self._scheduler = scheduler

    async def recover(self) -> RecoveryReport:
        """Load enabled jobs and re-arm their timers.

        A failing job is reported and skipped; the rest are still recovered.

        Raises:
            PersistenceError: If the enabled jobs cannot be listed at all.
        """
        jobs = await self._store.list_enabled()
        report = RecoveryReport()
        logger.info("recovery_started", extra={"recovery.jobs": len(jobs)})

        for job in jobs:
            try:
                await self._recover_job(job, report)
            except (SchedulingError, ValueError) as e:
                self._record_failure(report, job, str(e))
            except Exception as e:
                self._record_failure(report, job, str(e) or type(e).__name__)
                logger.debug("recovery_failure_traceback", exc_info=True)

        logger.info(
            "recovery_completed",
            extra={
                "recovery.recurring": len(report.recurring),
                "recovery.one_time": len(report.one_time),
                "recovery.lapsed": len(report.lapsed),
                "recovery.failed": len(report.failures),
            },
        )
        return report

    async def _recover_job(self, job: Job, report: RecoveryReport) -> None:
        now = self._scheduler.now()

        if job.is_recurring:
            if not job.cron:
                raise ValueError("recurring job has no cron expression")
            next_run = compute_next_run(job.cron, now, self._scheduler.timezone)
            await self._store.update_next_run(job.id, next_run)
            job.next_run = next_run
            self._scheduler.schedule_recurring(job, next_run=next_run)
            report.recurring.append(job.id)
            return

        run_at = job.run_at or job.next_run
        if run_at is None:
            raise ValueError("one-time job has no scheduled instant")

        if run_at <= now:
            logger.warning(
                "one_time_job_lapsed",
                extra={
                    "job.id": job.id,
                    "job.name": job.name,
                    "job.run_at": run_at.isoformat(),
                },
            )
            await self._store.disable(job.id)
            report.lapsed.append(job.id)
            return

        handle = self._scheduler.schedule_one_time(job)
        logger.info(
            "one_time_job_rescheduled",
            extra={
                "job.id": job.id,
                "job.name": job.name,
                "job.delay_seconds": round(handle.delay),
            },
        )
        report.one_time.append(job.id)

    def _record_failure(self, report: RecoveryReport, job: Job, error: str) -> None:
        logger.error(
            "job_recovery_failed",
            extra={"job.id": job.id, "job.name": job.name, "error.message": error},
        )
        report.failures.append(RecoveryFailure(job.id, job.name, error))

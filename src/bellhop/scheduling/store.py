"""Job store and execution log backed by async SQLAlchemy.

All mutation of the ``jobs`` and ``execution_logs`` tables goes through
these two classes. Recording an outcome updates the job statistics and
inserts the log row in a single transaction.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from bellhop.db.engine import Database
from bellhop.db.models import ExecutionLogRecord, JobRecord
from bellhop.scheduling.errors import (
    DuplicateName,
    InvalidParameters,
    JobNotFound,
    PersistenceError,
)
from bellhop.scheduling.types import (
    ExecutionLogEntry,
    ExecutionOutcome,
    ExecutionStatus,
    Job,
    JobKind,
    JobSpec,
    Target,
)

logger = logging.getLogger(__name__)


def _snapshot(output: Any) -> Any:
    """Make a handler return value storable as JSON."""
    if output is None:
        return None
    try:
        json.dumps(output)
    except (TypeError, ValueError):
        return repr(output)
    return output


def _to_job(record: JobRecord) -> Job:
    return Job(
        id=record.id,
        name=record.name,
        kind=JobKind(record.kind),
        target=Target(record.target_collaborator, record.target_capability),
        cron=record.cron_expression,
        run_at=record.run_at,
        parameters=record.parameters,
        description=record.description or "",
        enabled=record.enabled,
        last_run=record.last_run,
        next_run=record.next_run,
        run_count=record.run_count,
        error_count=record.error_count,
        last_error=record.last_error,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


def _to_entry(
    record: ExecutionLogRecord, job_name: str | None = None
) -> ExecutionLogEntry:
    return ExecutionLogEntry(
        id=record.id,
        job_id=record.job_id,
        executed_at=record.executed_at,
        status=ExecutionStatus(record.status),
        duration_ms=record.duration_ms,
        output=record.output,
        error_message=record.error_message,
        job_name=job_name,
    )


@asynccontextmanager
async def _transaction(
    database: Database, operation: str
) -> AsyncIterator[AsyncSession]:
    """Open a session, translating driver failures into PersistenceError."""
    try:
        async with database.session() as session:
            yield session
    except (SQLAlchemyError, OSError) as e:
        logger.error(
            "job_store_failed",
            extra={"store.operation": operation, "error.message": str(e)},
        )
        raise PersistenceError(f"{operation} failed: {e}") from e


class ExecutionLog:
    """Append-only log of job invocation attempts."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def append(
        self,
        job_id: int,
        outcome: ExecutionOutcome,
        *,
        session: AsyncSession | None = None,
    ) -> ExecutionLogEntry:
        """Insert one log row.

        Args:
            job_id: Job the attempt belongs to.
            outcome: Result of the attempt.
            session: Join an existing transaction instead of opening one.
        """
        record = ExecutionLogRecord(
            job_id=job_id,
            executed_at=outcome.started_at,
            status=outcome.status.value,
            duration_ms=outcome.duration_ms,
            output=_snapshot(outcome.output),
            error_message=outcome.error_message,
        )
        if session is not None:
            session.add(record)
            await session.flush()
            return _to_entry(record)

        async with _transaction(self._db, "append_log") as own_session:
            own_session.add(record)
            await own_session.flush()
            return _to_entry(record)

    async def query(
        self, job_id: int | None = None, limit: int = 50
    ) -> list[ExecutionLogEntry]:
        """Get log entries, newest first."""
        stmt = select(ExecutionLogRecord, JobRecord.name).join(
            JobRecord, ExecutionLogRecord.job_id == JobRecord.id
        )
        if job_id is not None:
            stmt = stmt.where(ExecutionLogRecord.job_id == job_id)
        stmt = stmt.order_by(
            ExecutionLogRecord.executed_at.desc(), ExecutionLogRecord.id.desc()
        ).limit(limit)

        async with _transaction(self._db, "query_logs") as session:
            rows = (await session.execute(stmt)).all()
            return [_to_entry(record, name) for record, name in rows]

    async def count_since(
        self, since: datetime, status: ExecutionStatus | None = None
    ) -> int:
        stmt = (
            select(func.count())
            .select_from(ExecutionLogRecord)
            .where(ExecutionLogRecord.executed_at >= since)
        )
        if status is not None:
            stmt = stmt.where(ExecutionLogRecord.status == status.value)
        async with _transaction(self._db, "count_logs") as session:
            return int(await session.scalar(stmt) or 0)


class JobStore:
    """Durable record of every job and its run statistics."""

    def __init__(
        self, database: Database, execution_log: ExecutionLog | None = None
    ) -> None:
        self._db = database
        self._log = execution_log or ExecutionLog(database)

    @property
    def execution_log(self) -> ExecutionLog:
        return self._log

    # ------------------------------------------------------------------
    # Read operations
    # ------------------------------------------------------------------

    async def get(self, job_id: int) -> Job | None:
        async with _transaction(self._db, "get") as session:
            record = await session.get(JobRecord, job_id)
            return _to_job(record) if record else None

    async def get_by_name(self, name: str) -> Job | None:
        async with _transaction(self._db, "get_by_name") as session:
            record = await session.scalar(
                select(JobRecord).where(JobRecord.name == name)
            )
            return _to_job(record) if record else None

    async def list_all(self, enabled_only: bool = False) -> list[Job]:
        stmt = select(JobRecord).order_by(JobRecord.name)
        if enabled_only:
            stmt = stmt.where(JobRecord.enabled.is_(True))
        async with _transaction(self._db, "list") as session:
            records = (await session.scalars(stmt)).all()
            return [_to_job(record) for record in records]

    async def list_enabled(self) -> list[Job]:
        return await self.list_all(enabled_only=True)

    async def count(self, enabled_only: bool = False) -> int:
        stmt = select(func.count()).select_from(JobRecord)
        if enabled_only:
            stmt = stmt.where(JobRecord.enabled.is_(True))
        async with _transaction(self._db, "count") as session:
            return int(await session.scalar(stmt) or 0)

    # ------------------------------------------------------------------
    # Write operations
    # ------------------------------------------------------------------

    async def create(self, spec: JobSpec) -> Job:
        """Persist a new job.

        Raises:
            DuplicateName: If a job with the same name exists.
            InvalidParameters: If parameters are not JSON-serializable.
            PersistenceError: If the store fails.
        """
        try:
            json.dumps(spec.parameters)
        except (TypeError, ValueError) as e:
            raise InvalidParameters(
                f"Parameters for job '{spec.name}' are not JSON-serializable: {e}"
            ) from e

        async with _transaction(self._db, "create") as session:
            existing = await session.scalar(
                select(JobRecord.id).where(JobRecord.name == spec.name)
            )
            if existing is not None:
                raise DuplicateName(spec.name)

            record = JobRecord(
                name=spec.name,
                description=spec.description,
                kind=spec.kind.value,
                cron_expression=spec.cron,
                run_at=spec.run_at,
                target_collaborator=spec.target.collaborator,
                target_capability=spec.target.capability,
                parameters=spec.parameters,
                enabled=spec.enabled,
                next_run=spec.next_run,
                run_count=0,
                error_count=0,
            )
            session.add(record)
            try:
                await session.flush()
            except IntegrityError as e:
                raise DuplicateName(spec.name) from e
            job = _to_job(record)

        logger.info(
            "job_created",
            extra={"job.id": job.id, "job.name": job.name, "job.kind": job.kind.value},
        )
        return job

    async def set_enabled(self, job_id: int, enabled: bool) -> bool:
        async with _transaction(self._db, "set_enabled") as session:
            result = await session.execute(
                update(JobRecord).where(JobRecord.id == job_id).values(enabled=enabled)
            )
            return result.rowcount > 0

    async def disable(self, job_id: int) -> bool:
        return await self.set_enabled(job_id, False)

    async def update_next_run(self, job_id: int, next_run: datetime | None) -> bool:
        async with _transaction(self._db, "update_next_run") as session:
            result = await session.execute(
                update(JobRecord)
                .where(JobRecord.id == job_id)
                .values(next_run=next_run)
            )
            return result.rowcount > 0

    async def delete(self, job_id: int) -> bool:
        """Delete a job and, by cascade, its log rows."""
        async with _transaction(self._db, "delete") as session:
            result = await session.execute(
                delete(JobRecord).where(JobRecord.id == job_id)
            )
            return result.rowcount > 0

    async def record_outcome(
        self,
        job_id: int,
        next_run: datetime | None,
        outcome: ExecutionOutcome,
        *,
        disable: bool = False,
    ) -> ExecutionLogEntry:
        """Update run statistics and append the log row in one transaction.

        Args:
            job_id: Job that ran.
            next_run: Next occurrence, or None for a terminal one-time job.
            outcome: Result of the attempt.
            disable: Also mark the job disabled.

        Raises:
            JobNotFound: If the job was deleted while it ran.
            PersistenceError: If the store fails; neither write is kept.
        """
        values: dict[str, Any] = {
            "last_run": outcome.finished_at,
            "next_run": next_run,
            "run_count": JobRecord.run_count + 1,
        }
        if outcome.succeeded:
            values["last_error"] = None
        else:
            values["error_count"] = JobRecord.error_count + 1
            values["last_error"] = outcome.error_message
        if disable:
            values["enabled"] = False

        async with _transaction(self._db, "record_outcome") as session:
            result = await session.execute(
                update(JobRecord).where(JobRecord.id == job_id).values(**values)
            )
            if result.rowcount == 0:
                raise JobNotFound(job_id)
            return await self._log.append(job_id, outcome, session=session)

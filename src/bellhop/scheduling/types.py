"""Scheduling types.

Public types:
- Job: A persisted schedulable unit (recurring or one-time)
- JobSpec: Creation payload for the job store
- Target: (collaborator, capability) reference resolved at fire time
- ExecutionOutcome: Result of one invocation attempt, before it is persisted
- ExecutionLogEntry: Persisted, immutable record of one invocation attempt
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any


class JobKind(str, Enum):
    """Schedule variant of a job."""

    RECURRING = "recurring"
    ONE_TIME = "one_time"


class ExecutionStatus(str, Enum):
    """Outcome status of one invocation attempt."""

    SUCCESS = "success"
    ERROR = "error"
    TIMEOUT = "timeout"


@dataclass(frozen=True, slots=True)
class Target:
    """Reference to an external capability."""

    collaborator: str
    capability: str

    def __str__(self) -> str:
        return f"{self.collaborator}.{self.capability}"


@dataclass
class JobSpec:
    """Everything needed to persist a new job."""

    name: str
    kind: JobKind
    target: Target
    cron: str | None = None  # Recurring
    run_at: datetime | None = None  # One-time
    parameters: Any = None
    description: str = ""
    enabled: bool = True
    next_run: datetime | None = None


@dataclass
class Job:
    """A persisted job record."""

    id: int
    name: str
    kind: JobKind
    target: Target
    cron: str | None = None
    run_at: datetime | None = None
    parameters: Any = None
    description: str = ""
    enabled: bool = True
    last_run: datetime | None = None
    next_run: datetime | None = None
    run_count: int = 0
    error_count: int = 0
    last_error: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_recurring(self) -> bool:
        return self.kind is JobKind.RECURRING

    @property
    def schedule(self) -> str:
        """Human-readable schedule (cron expression or ISO instant)."""
        if self.is_recurring:
            return self.cron or ""
        return self.run_at.isoformat() if self.run_at else ""

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-serializable dict."""

        def iso(value: datetime | None) -> str | None:
            return value.isoformat() if value else None

        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "kind": self.kind.value,
            "schedule": self.schedule,
            "collaborator": self.target.collaborator,
            "capability": self.target.capability,
            "parameters": self.parameters,
            "enabled": self.enabled,
            "last_run": iso(self.last_run),
            "next_run": iso(self.next_run),
            "run_count": self.run_count,
            "error_count": self.error_count,
            "last_error": self.last_error,
        }


@dataclass
class ExecutionOutcome:
    """Result of one invocation attempt."""

    status: ExecutionStatus
    started_at: datetime
    duration_ms: int = 0
    output: Any = None
    error_message: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status is ExecutionStatus.SUCCESS

    @property
    def finished_at(self) -> datetime:
        return self.started_at + timedelta(milliseconds=self.duration_ms)


@dataclass(frozen=True)
class ExecutionLogEntry:
    """One persisted invocation attempt. Never updated after insert."""

    id: int
    job_id: int
    executed_at: datetime
    status: ExecutionStatus
    duration_ms: int
    output: Any = None
    error_message: str | None = None
    job_name: str | None = None


@dataclass
class JobStatus:
    """A job together with its live-timer state."""

    job: Job
    is_running: bool = False


@dataclass
class SchedulerStats:
    """Counters reported by the scheduler."""

    total_jobs: int = 0
    enabled_jobs: int = 0
    live_timers: int = 0
    executions_today: int = 0
    success_rate_today: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "total_jobs": self.total_jobs,
            "enabled_jobs": self.enabled_jobs,
            "live_timers": self.live_timers,
            "executions_today": self.executions_today,
            "success_rate_today": self.success_rate_today,
        }


@dataclass
class HealthStatus:
    """Health check result."""

    healthy: bool
    live_timers: int
    timestamp: datetime
    issues: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "healthy": self.healthy,
            "issues": list(self.issues),
            "live_timers": self.live_timers,
            "timestamp": self.timestamp.isoformat(),
        }

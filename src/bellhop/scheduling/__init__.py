"""Persistent job scheduling.

Public API:
- JobScheduler: Creates jobs, arms timers and executes them
- JobStore / ExecutionLog: Durable job records and execution history
- TargetRegistry / Dispatcher: Collaborators the scheduler can invoke
- RecoveryManager: Re-arms persisted jobs at startup
- SchedulingRuntime: Wires everything together from configuration

Types:
- Job, JobSpec, JobKind, Target
- ExecutionOutcome, ExecutionLogEntry, ExecutionStatus
"""

from bellhop.scheduling.dispatch import Capability, Dispatcher, TargetRegistry
from bellhop.scheduling.errors import (
    CapabilityNotFound,
    DispatchError,
    DuplicateName,
    ExecutionError,
    ExecutionTimeout,
    InvalidParameters,
    InvalidScheduleExpression,
    InvalidTimezone,
    JobNotFound,
    PastScheduleTime,
    PersistenceError,
    SchedulingError,
    TargetNotFound,
    ValidationError,
)
from bellhop.scheduling.recovery import RecoveryFailure, RecoveryManager, RecoveryReport
from bellhop.scheduling.runtime import SchedulingRuntime
from bellhop.scheduling.scheduler import JobHandle, JobScheduler, OverlapPolicy
from bellhop.scheduling.store import ExecutionLog, JobStore
from bellhop.scheduling.timing import (
    compute_next_run,
    next_run_on_enable,
    resolve_one_time,
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

__all__ = [
    "Capability",
    "CapabilityNotFound",
    "DispatchError",
    "Dispatcher",
    "DuplicateName",
    "ExecutionError",
    "ExecutionLog",
    "ExecutionLogEntry",
    "ExecutionOutcome",
    "ExecutionStatus",
    "ExecutionTimeout",
    "HealthStatus",
    "InvalidParameters",
    "InvalidScheduleExpression",
    "InvalidTimezone",
    "Job",
    "JobHandle",
    "JobKind",
    "JobNotFound",
    "JobScheduler",
    "JobSpec",
    "JobStatus",
    "JobStore",
    "OverlapPolicy",
    "PastScheduleTime",
    "PersistenceError",
    "RecoveryFailure",
    "RecoveryManager",
    "RecoveryReport",
    "SchedulerStats",
    "SchedulingError",
    "SchedulingRuntime",
    "Target",
    "TargetNotFound",
    "TargetRegistry",
    "ValidationError",
    "compute_next_run",
    "next_run_on_enable",
    "resolve_one_time",
]

"""Scheduling error taxonomy.

- ValidationError: bad input at creation time, raised to the caller, never retried
- PersistenceError: store unreachable or a statement failed
- DispatchError: the target could not be resolved
- ExecutionError: the handler itself failed
"""


class SchedulingError(Exception):
    """Base class for all scheduling errors."""


class ValidationError(SchedulingError):
    """Job definition rejected before anything was persisted."""


class InvalidScheduleExpression(ValidationError):
    """Cron expression could not be parsed."""

    def __init__(self, expression: str, reason: str | None = None) -> None:
        self.expression = expression
        message = f"Invalid cron expression: {expression!r}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class InvalidTimezone(ValidationError):
    """Timezone is not a known IANA zone name."""

    def __init__(self, timezone: str) -> None:
        self.timezone = timezone
        super().__init__(f"Unknown timezone: {timezone!r}")


class PastScheduleTime(ValidationError):
    """One-time job instant is not strictly in the future."""

    def __init__(self, run_at, now) -> None:
        self.run_at = run_at
        self.now = now
        super().__init__(
            f"Scheduled time must be in the future (now={now.isoformat()}, "
            f"scheduled={run_at.isoformat()})"
        )


class DuplicateName(ValidationError):
    """A job with the same name already exists."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Job '{name}' already exists")


class InvalidParameters(ValidationError):
    """Parameters do not match the capability's declared schema."""


class PersistenceError(SchedulingError):
    """The job store could not complete an operation."""


class JobNotFound(SchedulingError):
    """No job with the given id exists."""

    def __init__(self, job_id: int) -> None:
        self.job_id = job_id
        super().__init__(f"Job {job_id} not found")


class DispatchError(SchedulingError):
    """Target could not be resolved to an invocable capability."""


class TargetNotFound(DispatchError):
    """Collaborator is not registered."""

    def __init__(self, collaborator: str) -> None:
        self.collaborator = collaborator
        super().__init__(f"Collaborator '{collaborator}' not found")


class CapabilityNotFound(DispatchError):
    """Collaborator does not expose the named capability."""

    def __init__(self, collaborator: str, capability: str) -> None:
        self.collaborator = collaborator
        self.capability = capability
        super().__init__(
            f"Capability '{capability}' not found on collaborator '{collaborator}'"
        )


class ExecutionError(SchedulingError):
    """The handler raised while running a job."""


class ExecutionTimeout(ExecutionError):
    """The handler did not finish within the execution timeout."""

    def __init__(self, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(f"Execution timed out after {timeout:g}s")

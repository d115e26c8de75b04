"""Time resolution for schedule expressions.

Cron expressions are evaluated in a configured local timezone, then
converted to UTC for storage and comparison. This keeps "08:00 daily"
at 08:00 local time across DST changes.

Two cron shapes are accepted:
- five fields: minute hour day-of-month month day-of-week
- six fields: second minute hour day-of-month month day-of-week
"""

from datetime import UTC, datetime
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from croniter import croniter

from bellhop.scheduling.errors import (
    InvalidScheduleExpression,
    InvalidTimezone,
    PastScheduleTime,
)
from bellhop.scheduling.types import Job


def utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(UTC)


@lru_cache(maxsize=32)
def get_zone(timezone: str) -> ZoneInfo:
    """Resolve an IANA timezone name.

    Raises:
        InvalidTimezone: If the name is not a known zone.
    """
    try:
        return ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise InvalidTimezone(timezone) from e


def validate_expression(expression: str) -> str:
    """Validate a cron expression and return it in croniter field order.

    Six-field expressions carry seconds first; croniter expects them last.

    Raises:
        InvalidScheduleExpression: If the expression cannot be parsed.
    """
    if not isinstance(expression, str):
        raise InvalidScheduleExpression(str(expression), "not a string")

    fields = expression.split()
    if len(fields) == 6:
        fields = fields[1:] + fields[:1]
    elif len(fields) != 5:
        raise InvalidScheduleExpression(
            expression, f"expected 5 or 6 fields, got {len(fields)}"
        )

    normalized = " ".join(fields)
    if not croniter.is_valid(normalized):
        raise InvalidScheduleExpression(expression)
    return normalized


def to_local(instant: datetime, timezone: str) -> datetime:
    """Attach or convert an instant to the given zone.

    Naive datetimes are interpreted as wall-clock time in ``timezone``.
    """
    zone = get_zone(timezone)
    if instant.tzinfo is None:
        return instant.replace(tzinfo=zone)
    return instant.astimezone(zone)


def to_utc(instant: datetime, timezone: str = "UTC") -> datetime:
    """Normalize an instant to aware UTC (naive values read in ``timezone``)."""
    return to_local(instant, timezone).astimezone(UTC)


def compute_next_run(
    expression: str, from_instant: datetime, timezone: str = "UTC"
) -> datetime:
    """Get the first occurrence of ``expression`` strictly after ``from_instant``.

    Args:
        expression: Five- or six-field cron expression.
        from_instant: Reference instant. Naive values are read in ``timezone``.
        timezone: IANA timezone the calendar fields are evaluated in.

    Returns:
        The next occurrence as an aware UTC datetime.

    Raises:
        InvalidScheduleExpression: If the expression cannot be parsed.
        InvalidTimezone: If the timezone is unknown.
    """
    normalized = validate_expression(expression)
    base = to_local(from_instant, timezone)
    base_utc = base.astimezone(UTC)

    try:
        schedule = croniter(normalized, base)
        next_local = schedule.get_next(datetime)
        # Same-zone comparison ignores fold, so a repeated DST hour needs UTC
        while next_local.astimezone(UTC) <= base_utc:
            next_local = schedule.get_next(datetime)
    except (ValueError, KeyError) as e:
        raise InvalidScheduleExpression(expression, str(e)) from e

    return next_local.astimezone(UTC)


def resolve_one_time(
    run_at: datetime, now: datetime, timezone: str = "UTC"
) -> datetime:
    """Resolve a one-time instant, requiring it to be strictly in the future.

    Returns:
        ``run_at`` as an aware UTC datetime.

    Raises:
        PastScheduleTime: If ``run_at`` is not after ``now``.
    """
    target = to_utc(run_at, timezone)
    current = to_utc(now, timezone)
    if target <= current:
        raise PastScheduleTime(target, current)
    return target


def next_run_on_enable(job: Job, now: datetime, timezone: str = "UTC") -> datetime:
    """Get the instant a re-enabled job should next fire.

    Recurring jobs resume from ``now``; missed ticks are not replayed.
    One-time jobs keep their instant, which must still be in the future.

    Raises:
        InvalidScheduleExpression: If a recurring job's cron cannot be parsed.
        PastScheduleTime: If a one-time job's instant has passed.
    """
    if job.is_recurring:
        if not job.cron:
            raise InvalidScheduleExpression("", "recurring job has no cron expression")
        return compute_next_run(job.cron, now, timezone)

    run_at = job.run_at or job.next_run
    if run_at is None:
        raise PastScheduleTime(now, now)
    return resolve_one_time(run_at, now, timezone)

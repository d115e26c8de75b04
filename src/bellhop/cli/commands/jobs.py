"""Scheduled job management commands."""

from __future__ import annotations

import asyncio
from datetime import datetime
from pathlib import Path
from typing import Annotated

import typer

from bellhop.cli.console import (
    confirm_or_cancel,
    console,
    create_table,
    dim,
    error,
    success,
    warning,
)
from bellhop.cli.runtime import get_config, open_runtime
from bellhop.config import BellhopConfig
from bellhop.scheduling.errors import SchedulingError
from bellhop.scheduling.timing import get_zone, next_run_on_enable, utc_now
from bellhop.scheduling.types import ExecutionStatus

ConfigOption = Annotated[
    Path | None,
    typer.Option(
        "--config",
        "-c",
        help="Path to configuration file",
    ),
]

JobIdOption = Annotated[
    int,
    typer.Option(
        "--id",
        "-i",
        help="Job ID",
    ),
]

_STATUS_STYLES = {
    ExecutionStatus.SUCCESS: "green",
    ExecutionStatus.ERROR: "red",
    ExecutionStatus.TIMEOUT: "yellow",
}


def _format_countdown(next_run: datetime | None) -> str:
    """Format a countdown string for the next run."""
    if next_run is None:
        return "[dim]-[/dim]"

    now = utc_now()
    if next_run <= now:
        return "[green]now[/green]"

    total_seconds = int((next_run - now).total_seconds())
    if total_seconds < 60:
        return f"in {total_seconds}s"

    total_minutes = total_seconds // 60
    if total_minutes < 60:
        return f"in {total_minutes}m"

    hours = total_minutes // 60
    minutes = total_minutes % 60
    if hours < 24:
        if minutes:
            return f"in {hours}h {minutes}m"
        return f"in {hours}h"

    days = hours // 24
    hours = hours % 24
    if hours:
        return f"in {days}d {hours}h"
    return f"in {days}d"


def _format_local(value: datetime | None, timezone: str) -> str:
    if value is None:
        return "[dim]-[/dim]"
    return value.astimezone(get_zone(timezone)).strftime("%Y-%m-%d %H:%M:%S")


def _truncate(text: str | None, width: int = 40) -> str:
    if not text:
        return ""
    return text[:width] + "..." if len(text) > width else text


def _run(coro) -> None:
    """Run a command coroutine, turning scheduling errors into exit code 1."""
    try:
        asyncio.run(coro)
    except SchedulingError as e:
        error(str(e))
        raise typer.Exit(1) from e


def register(app: typer.Typer) -> None:
    """Register the jobs command group."""
    jobs_app = typer.Typer(help="Scheduled job management", no_args_is_help=True)

    @jobs_app.command("list")
    def jobs_list(
        enabled: Annotated[
            bool,
            typer.Option(
                "--enabled",
                "-e",
                help="Only show enabled jobs",
            ),
        ] = False,
        config_path: ConfigOption = None,
    ) -> None:
        """List scheduled jobs.

        Examples:
            bellhop jobs list
            bellhop jobs list --enabled
        """
        _run(_jobs_list(get_config(config_path), enabled))

    @jobs_app.command("logs")
    def jobs_logs(
        job_id: Annotated[
            int | None,
            typer.Option(
                "--id",
                "-i",
                help="Only show logs for this job",
            ),
        ] = None,
        limit: Annotated[
            int,
            typer.Option(
                "--limit",
                "-n",
                min=1,
                help="Maximum number of entries",
            ),
        ] = 50,
        config_path: ConfigOption = None,
    ) -> None:
        """Show recent executions, newest first."""
        _run(_jobs_logs(get_config(config_path), job_id, limit))

    @jobs_app.command("disable")
    def jobs_disable(job_id: JobIdOption, config_path: ConfigOption = None) -> None:
        """Disable a job. It is not re-armed on the next start."""
        _run(_jobs_set_enabled(get_config(config_path), job_id, False))

    @jobs_app.command("enable")
    def jobs_enable(job_id: JobIdOption, config_path: ConfigOption = None) -> None:
        """Enable a job. It is armed on the next start."""
        _run(_jobs_set_enabled(get_config(config_path), job_id, True))

    @jobs_app.command("delete")
    def jobs_delete(
        job_id: JobIdOption,
        force: Annotated[
            bool,
            typer.Option(
                "--force",
                "-f",
                help="Delete without confirmation",
            ),
        ] = False,
        config_path: ConfigOption = None,
    ) -> None:
        """Delete a job and its execution history."""
        _run(_jobs_delete(get_config(config_path), job_id, force))

    @jobs_app.command("stats")
    def jobs_stats(config_path: ConfigOption = None) -> None:
        """Show job counts and today's executions."""
        _run(_jobs_stats(get_config(config_path)))

    app.add_typer(jobs_app, name="jobs")


async def _jobs_list(config: BellhopConfig, enabled_only: bool) -> None:
    async with open_runtime(config) as runtime:
        jobs = await runtime.store.list_all(enabled_only=enabled_only)

    if not jobs:
        warning("No jobs found")
        return

    timezone = config.scheduler.timezone
    table = create_table(
        "Scheduled Jobs",
        [
            ("ID", "dim"),
            ("Name", "cyan"),
            ("Kind", ""),
            ("Schedule", ""),
            ("Target", ""),
            ("Enabled", ""),
            ("Runs", {"justify": "right"}),
            ("Errors", {"justify": "right"}),
            ("Last Run", ""),
            ("Next Run", ""),
        ],
    )
    for job in jobs:
        table.add_row(
            str(job.id),
            job.name,
            "recurring" if job.is_recurring else "one-time",
            job.cron if job.is_recurring else _format_local(job.run_at, timezone),
            str(job.target),
            "[green]yes[/green]" if job.enabled else "[dim]no[/dim]",
            str(job.run_count),
            f"[red]{job.error_count}[/red]" if job.error_count else "0",
            _format_local(job.last_run, timezone),
            _format_countdown(job.next_run) if job.enabled else "[dim]-[/dim]",
        )

    console.print(table)
    dim(f"Total: {len(jobs)} job(s), times in {timezone}")


async def _jobs_logs(config: BellhopConfig, job_id: int | None, limit: int) -> None:
    async with open_runtime(config) as runtime:
        if job_id is not None and await runtime.store.get(job_id) is None:
            error(f"Job {job_id} not found")
            raise typer.Exit(1)
        entries = await runtime.execution_log.query(job_id=job_id, limit=limit)

    if not entries:
        warning("No executions found")
        return

    timezone = config.scheduler.timezone
    table = create_table(
        "Execution Log",
        [
            ("Time", "dim"),
            ("Job", "cyan"),
            ("Status", ""),
            ("Duration", {"justify": "right"}),
            ("Error", ""),
        ],
    )
    for entry in entries:
        style = _STATUS_STYLES[entry.status]
        table.add_row(
            _format_local(entry.executed_at, timezone),
            entry.job_name or str(entry.job_id),
            f"[{style}]{entry.status.value}[/{style}]",
            f"{entry.duration_ms}ms",
            _truncate(entry.error_message),
        )

    console.print(table)


async def _jobs_set_enabled(config: BellhopConfig, job_id: int, enabled: bool) -> None:
    async with open_runtime(config) as runtime:
        store = runtime.store
        job = await store.get(job_id)
        if job is None:
            error(f"Job {job_id} not found")
            raise typer.Exit(1)

        if enabled:
            next_run = next_run_on_enable(job, utc_now(), config.scheduler.timezone)
            await store.update_next_run(job.id, next_run)
        await store.set_enabled(job.id, enabled)

    action = "Enabled" if enabled else "Disabled"
    success(f"{action} job {job.id} ({job.name})")


async def _jobs_delete(config: BellhopConfig, job_id: int, force: bool) -> None:
    async with open_runtime(config) as runtime:
        job = await runtime.store.get(job_id)
        if job is None:
            error(f"Job {job_id} not found")
            raise typer.Exit(1)

        if not confirm_or_cancel(
            f"Delete job {job.id} ({job.name}) and its execution history?", force
        ):
            return

        await runtime.store.delete(job.id)

    success(f"Deleted job {job.id} ({job.name})")


async def _jobs_stats(config: BellhopConfig) -> None:
    async with open_runtime(config) as runtime:
        stats = await runtime.scheduler.get_stats()

    console.print(f"[bold]Total jobs:[/bold] {stats.total_jobs}")
    console.print(f"[bold]Enabled jobs:[/bold] {stats.enabled_jobs}")
    console.print(f"[bold]Executions today:[/bold] {stats.executions_today}")
    console.print(f"[bold]Success rate today:[/bold] {stats.success_rate_today}%")
    dim(f"Today starts at midnight {config.scheduler.timezone}")

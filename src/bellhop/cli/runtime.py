"""Shared bootstrap helpers for CLI commands."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

import click
import typer

from bellhop.cli.console import error
from bellhop.config import BellhopConfig, get_default_config, load_config
from bellhop.logging import configure_logging
from bellhop.scheduling.runtime import SchedulingRuntime


def _verbose_requested() -> bool:
    ctx = click.get_current_context(silent=True)
    if ctx is None:
        return False
    return bool(ctx.find_root().params.get("verbose"))


def setup_logging(config: BellhopConfig, verbose: bool = False) -> None:
    """Apply the [logging] section; --verbose forces DEBUG."""
    logging_config = config.logging
    configure_logging(
        level="DEBUG" if verbose else logging_config.level,
        use_rich=logging_config.use_rich,
        log_to_file=logging_config.log_to_file,
        retention_days=logging_config.retention_days,
        redact=logging_config.redact_secrets,
    )


def get_config(config_path: Path | None) -> BellhopConfig:
    """Load config from an explicit path, the default locations, or defaults.

    Logging is configured from the loaded config. An explicit path that is
    missing or invalid exits with status 1.
    """
    try:
        if config_path is not None:
            config = load_config(config_path)
        else:
            try:
                config = load_config()
            except FileNotFoundError:
                config = get_default_config()
    except (FileNotFoundError, ValueError) as e:
        error(str(e))
        raise typer.Exit(1) from e

    setup_logging(config, verbose=_verbose_requested())
    return config


@asynccontextmanager
async def open_runtime(config: BellhopConfig) -> AsyncIterator[SchedulingRuntime]:
    """Connect to the job database without arming any timers.

    CLI commands operate on the store only; a running bot process picks up
    the changes the next time it recovers.
    """
    runtime = SchedulingRuntime(config)
    await runtime.setup()
    try:
        yield runtime
    finally:
        await runtime.shutdown(wait=False)

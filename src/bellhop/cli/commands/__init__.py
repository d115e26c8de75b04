"""CLI command modules."""

from bellhop.cli.commands import jobs

__all__ = ["jobs"]

"""Main CLI application."""

from typing import Annotated

import typer

from bellhop.cli.commands import jobs

app = typer.Typer(
    name="bellhop",
    help="Bellhop - persistent job scheduling for chat bots",
    no_args_is_help=True,
)


@app.callback()
def main(
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            "-v",
            help="Show debug logging",
        ),
    ] = False,
) -> None:
    """Inspect and manage scheduled jobs.

    Logging follows the [logging] config section once a command loads it.
    """


@app.command()
def paths() -> None:
    """Show where Bellhop keeps its config, database and logs."""
    from bellhop.cli.console import console
    from bellhop.config.paths import get_all_paths

    for name, path in get_all_paths().items():
        console.print(f"[bold]{name}:[/bold] {path}")


jobs.register(app)


if __name__ == "__main__":
    app()

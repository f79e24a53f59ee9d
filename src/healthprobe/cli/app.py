"""Main Typer application, entry point for the ``healthprobe`` CLI."""

from __future__ import annotations

import typer

from healthprobe import __version__
from healthprobe.cli.init_cmd import init_cmd
from healthprobe.cli.run import run_cmd

app = typer.Typer(
    name="healthprobe",
    help="Ramped load tests against service health endpoints.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

app.command("run", help="Run a load scenario (the built-in health scenario by default).")(run_cmd)
app.command("init", help="Scaffold a new scenario file.")(init_cmd)


def _version_callback(value: bool) -> None:
    """Print version and exit.

    Args:
        value: True if --version was passed.
    """
    if value:
        typer.echo(f"healthprobe {__version__}")
        raise typer.Exit


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """healthprobe: ramped load tests against service health endpoints."""

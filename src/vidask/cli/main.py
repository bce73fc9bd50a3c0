"""vidask CLI entry point."""

from __future__ import annotations

import importlib.metadata
from typing import Annotated

import typer

from vidask.cli.ask import ask_cmd, chat_cmd
from vidask.log import setup_logging


def _installed_version() -> str:
    try:
        return importlib.metadata.version("vidask")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"vidask {_installed_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="vidask",
    help=(
        "vidask — ask questions about video transcripts.\n\n"
        "  vidask ask   Process a transcript and answer one question with cited segments.\n"
        "  vidask chat  Process a transcript, then hold a multi-turn conversation about it."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Show debug logging on stderr."),
    ] = False,
) -> None:
    """vidask — ask questions about video transcripts."""
    setup_logging(verbose=verbose)


app.command("ask")(ask_cmd)
app.command("chat")(chat_cmd)


@app.command("version")
def version_cmd() -> None:
    """Show the installed vidask version."""
    typer.echo(f"vidask {_installed_version()}")


if __name__ == "__main__":
    app()

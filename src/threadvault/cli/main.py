"""threadvault CLI entry point."""

from __future__ import annotations

import importlib.metadata
import logging
from typing import Annotated

import typer

from threadvault.cli.ingest import ingest_cmd
from threadvault.cli.init import init_cmd
from threadvault.cli.remove import remove_cmd, reset_cmd
from threadvault.cli.search import search_cmd, thread_cmd
from threadvault.cli.status import status_cmd
from threadvault.logging_config import setup_logging


def _installed_version() -> str:
    try:
        return importlib.metadata.version("threadvault")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"threadvault {_installed_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="threadvault",
    help=(
        "threadvault: local semantic search over documents, messages, emails and notes.\n\n"
        "  threadvault ingest  Import item records, grouped into threads.\n"
        "  threadvault search  Find threads by meaning."
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
        typer.Option("--verbose", "-v", help="Log debug output to stderr."),
    ] = False,
) -> None:
    """threadvault: local semantic search over personal content."""
    setup_logging(logging.DEBUG if verbose else logging.WARNING)


app.command("init")(init_cmd)
app.command("ingest")(ingest_cmd)
app.command("search")(search_cmd)
app.command("thread")(thread_cmd)
app.command("status")(status_cmd)
app.command("remove")(remove_cmd)
app.command("reset")(reset_cmd)


@app.command("version")
def version_cmd() -> None:
    """Show the installed threadvault version."""
    typer.echo(f"threadvault {_installed_version()}")


if __name__ == "__main__":
    app()

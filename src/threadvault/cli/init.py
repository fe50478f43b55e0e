"""threadvault init: create the store and a project config.

Creates:
  .threadvault.db            empty store at the configured schema version
  threadvault.yaml           project config with defaults (kept if present)
  ~/.threadvault/config.yaml global model defaults (created once, mode 0o600)
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from threadvault.cli.common import open_store
from threadvault.cli.errors import err_config
from threadvault.config import (
    PROJECT_CONFIG_NAME,
    ensure_global_config,
    load_config,
    write_project_config,
)
from threadvault.db.vectors import METRICS
from threadvault.errors import ConfigError

console = Console()

_DEFAULT_PROJECT_DIR = Path(".")


def init_cmd(
    project_dir: Annotated[
        Path,
        typer.Argument(help="Directory to initialize. Defaults to current directory."),
    ] = _DEFAULT_PROJECT_DIR,
    model: Annotated[
        str | None,
        typer.Option("--model", help="Embedding model (LiteLLM name) for a new config."),
    ] = None,
    dimensions: Annotated[
        int | None,
        typer.Option("--dimensions", help="Embedding width for a new config."),
    ] = None,
    metric: Annotated[
        str | None,
        typer.Option("--metric", help="Distance metric for a new config: l2 or cosine."),
    ] = None,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip confirmation prompt."),
    ] = False,
) -> None:
    """Initialize a threadvault store in PROJECT_DIR."""
    project_dir = project_dir.resolve()
    project_dir.mkdir(parents=True, exist_ok=True)

    if metric is not None and metric.lower() not in METRICS:
        console.print(err_config(f"--metric must be one of {sorted(METRICS)}, got '{metric}'"))
        raise typer.Exit(1)

    try:
        cfg = load_config(project_dir)
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1) from exc

    config_path = project_dir / PROJECT_CONFIG_NAME
    if not config_path.exists():
        if model:
            cfg.embedding.model = model
        if dimensions:
            cfg.embedding.dimensions = dimensions
        if metric:
            cfg.store.metric = metric.lower()
        write_project_config(project_dir, cfg)
        console.print(f"  [green]✓[/] {PROJECT_CONFIG_NAME}")
    elif model or dimensions or metric:
        console.print(
            f"[yellow]⚠[/]  {PROJECT_CONFIG_NAME} already exists; "
            "--model/--dimensions/--metric ignored."
        )

    db_path = cfg.db_path(project_dir)
    if db_path.exists() and not yes:
        console.print(f"[yellow]⚠[/]  {db_path} already exists.")
        if not typer.confirm("Re-initialize? Existing data is preserved.", default=False):
            console.print("[dim]Cancelled.[/]")
            raise typer.Exit(0)

    store = open_store(cfg, db_path)
    store.close()
    console.print(f"  [green]✓[/] {db_path.name}")

    cfg_path = ensure_global_config()
    console.print(f"  [green]✓[/] {cfg_path} (global config)")

    console.print("\n[bold green]✓ Store initialized.[/]")
    console.print(
        f"  Model: {cfg.embedding.model} ({cfg.embedding.dimensions} dims, {cfg.store.metric})"
    )
    console.print("\nNext steps:")
    console.print("  1. threadvault ingest --items <file.json>   (import items)")
    console.print("  2. threadvault search \"<query>\"             (semantic search)")

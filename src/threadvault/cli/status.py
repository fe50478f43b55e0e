"""threadvault status command.

Shows the store overview: location, schema version, vector layout, embedding
model and row counts per table. Never modifies the store: a schema version
mismatch is reported, not acted on.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from threadvault.cli import common
from threadvault.config import ThreadVaultConfig
from threadvault.db.connection import Database
from threadvault.db.schema import read_meta
from threadvault.db.store import IndexStore

console = Console()


def status_cmd(
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the store."),
    ] = None,
) -> None:
    """Show store status: layout, model and item counts."""
    cfg, db_path = common.load_settings(db)

    if not db_path.exists():
        console.print(
            Panel(
                "[yellow]No store found.[/]\n"
                "  Run:  threadvault init",
                title="[bold]Store[/]",
                expand=False,
            )
        )
        return

    conn = Database(db_path).connect()
    try:
        meta = read_meta(conn)
        _show_store_panel(db_path, cfg, meta)
        if meta and int(meta.get("schema_version", 0)) == cfg.store.schema_version:
            store = IndexStore(
                conn,
                int(meta.get("dimensions", cfg.embedding.dimensions)),
                metric=meta.get("metric", cfg.store.metric),
                schema_version=cfg.store.schema_version,
            )
            _show_counts_panel(store.stats())
    finally:
        conn.close()


def _show_store_panel(db_path: Path, cfg: ThreadVaultConfig, meta: dict[str, str]) -> None:
    size_mb = db_path.stat().st_size / (1024 * 1024)
    lines = [
        f"Store:     {db_path} ({size_mb:.1f} MB)",
        f"Model:     [bold]{cfg.embedding.model}[/]",
    ]
    if not meta:
        lines.append("[yellow]Store is not initialized.[/]  Run:  threadvault init")
    else:
        stored_version = meta.get("schema_version", "?")
        lines.append(f"Schema:    v{stored_version}")
        lines.append(f"Vectors:   {meta.get('dimensions', '?')} dims, {meta.get('metric', '?')}")
        if stored_version != str(cfg.store.schema_version):
            lines.append(
                f"[yellow]⚠ Configured schema is v{cfg.store.schema_version}; "
                "the store will be reset when next opened.[/]"
            )
        elif meta.get("dimensions") != str(cfg.embedding.dimensions):
            lines.append(
                f"[red]✗ Config expects {cfg.embedding.dimensions} dims.[/]  "
                "Fix embedding.dimensions or run:  threadvault reset"
            )
    console.print(Panel("\n".join(lines), title="[bold]Store[/]", expand=False))


def _show_counts_panel(counts: dict[str, int]) -> None:
    table = Table(show_header=False, box=None, padding=(0, 1))
    table.add_column("Table", style="bold")
    table.add_column("Rows", justify="right")
    for name, value in counts.items():
        table.add_row(name, f"{value:,}")
    console.print(Panel(table, title="[bold]Contents[/]", expand=False))

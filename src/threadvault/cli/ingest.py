"""threadvault ingest: import item records into the store.

The input is a JSON list of records (see ``threadvault.ingest.records``).
Items are grouped into threads, chunked, embedded and written one thread per
transaction. Threads that fail are listed; the others are kept.
"""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from threadvault.cli import common
from threadvault.cli.errors import err_config, err_records
from threadvault.errors import ConfigError, RecordError
from threadvault.ingest.chunker import Chunker
from threadvault.ingest.pipeline import ImportReport, IngestionPipeline
from threadvault.ingest.records import load_items

console = Console()


def ingest_cmd(
    items: Annotated[
        Path,
        typer.Option("--items", "-i", help="JSON file with a list of item records."),
    ],
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the store (created if missing)."),
    ] = None,
    workers: Annotated[
        int | None,
        typer.Option("--workers", help="Threads imported in parallel (overrides config)."),
    ] = None,
) -> None:
    """Import items from a JSON file into the store."""
    cfg, db_path = common.load_settings(db)

    if not items.is_file():
        console.print(err_records(str(items), "File not found."))
        raise typer.Exit(1)
    try:
        records = load_items(items)
    except RecordError as exc:
        console.print(err_records(str(items), str(exc)))
        raise typer.Exit(1) from exc

    if not records:
        console.print("[yellow]No items found to import.[/]")
        raise typer.Exit(0)

    store = common.open_store(cfg, db_path)
    embedder = common.build_embedder(cfg, store)
    cancel = threading.Event()
    try:
        try:
            pipeline = IngestionPipeline(
                store,
                embedder,
                chunker=Chunker(cfg.chunking.window_size, cfg.chunking.overlap),
                max_workers=workers or cfg.ingest.max_workers,
            )
        except (ConfigError, ValueError) as exc:
            console.print(err_config(str(exc)))
            raise typer.Exit(1) from exc

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
            transient=True,
        ) as progress:
            progress.add_task(f"Importing {len(records)} items from {items.name}", total=None)
            report = pipeline.import_items(records, cancel=cancel)
    except KeyboardInterrupt:
        cancel.set()
        console.print("\n[yellow]Import cancelled.[/] Threads already written are kept.")
        raise typer.Exit(130) from None
    finally:
        store.close()

    _print_report(report)
    if not report.ok:
        raise typer.Exit(1)


def _print_report(report: ImportReport) -> None:
    console.print(
        f"[green]✓[/] Imported {len(report.item_ids)} items "
        f"into {len(report.thread_ids)} threads"
    )
    if report.ok:
        return

    table = Table(title=f"{len(report.failures)} thread(s) failed", title_style="red")
    table.add_column("Thread key", style="bold")
    table.add_column("Error")
    for failure in report.failures:
        table.add_row(failure.thread_key, f"{type(failure.error).__name__}: {failure.error}")
    console.print(table)

"""threadvault remove / reset: delete data from the store.

``remove --thread`` deletes a thread with its items, chunks and vectors.
``remove --item`` deletes one item; its thread keeps the remaining items and
is deleted once empty. ``reset`` wipes the whole store.

Usage:
  threadvault remove --thread 6f1c...
  threadvault remove --item msg-42 --yes
  threadvault reset --yes
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape

from threadvault.cli import common
from threadvault.cli.errors import err_item_not_found, err_storage, err_thread_not_found
from threadvault.db.store import IndexStore
from threadvault.errors import StorageError

console = Console()


def remove_cmd(
    thread: Annotated[
        str | None,
        typer.Option("--thread", help="Thread id to remove (with all its items)."),
    ] = None,
    item: Annotated[
        str | None,
        typer.Option("--item", help="Item id to remove."),
    ] = None,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the store."),
    ] = None,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip confirmation prompt."),
    ] = False,
) -> None:
    """Remove a thread or a single item from the store."""
    if (thread is None) == (item is None):
        console.print("[red]Error:[/] Pass exactly one of --thread or --item.")
        raise typer.Exit(1)

    cfg, db_path = common.load_settings(db)
    common.require_db(db_path)
    store = common.open_store(cfg, db_path)
    try:
        if thread is not None:
            _remove_thread(store, thread, yes)
        else:
            _remove_item(store, item, yes)
    except StorageError as exc:
        console.print(err_storage(str(exc)))
        raise typer.Exit(1) from exc
    finally:
        store.close()


def reset_cmd(
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the store."),
    ] = None,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip confirmation prompt."),
    ] = False,
) -> None:
    """Delete every item, thread and vector in the store."""
    cfg, db_path = common.load_settings(db)
    common.require_db(db_path)
    store = common.open_store(cfg, db_path)
    try:
        counts = store.stats()
        console.print(f"\nReset store: [bold]{db_path}[/]")
        console.print(f"  Threads: {counts['threads']}  |  Chunks: {counts['chunks']}")
        if not yes and not typer.confirm("This cannot be undone. Continue?", default=False):
            console.print("[dim]Cancelled.[/]")
            raise typer.Exit(0)
        store.reset()
    except StorageError as exc:
        console.print(err_storage(str(exc)))
        raise typer.Exit(1) from exc
    finally:
        store.close()
    console.print("\n[green]✓[/] Store reset.")


def _remove_thread(store: IndexStore, thread_id: str, yes: bool) -> None:
    existing = store.find_thread(thread_id)
    if existing is None:
        console.print(err_thread_not_found(thread_id))
        raise typer.Exit(1)

    chunk_count = store.count_chunks_by_thread(thread_id)
    console.print(f"\nRemove thread: [bold]{escape(existing.snippet)}[/] ({existing.type.display_name})")
    console.print(f"  Items: {len(existing.item_ids)}  |  Chunks: {chunk_count}")
    if not yes and not typer.confirm("Confirm removal?", default=False):
        console.print("[dim]Cancelled.[/]")
        raise typer.Exit(0)

    store.delete_thread(thread_id)
    console.print(f"\n[green]✓[/] Removed thread {thread_id}")
    console.print(f"  {len(existing.item_ids)} items, {chunk_count} chunks deleted")


def _remove_item(store: IndexStore, item_id: str, yes: bool) -> None:
    existing = store.find_item(item_id)
    if existing is None:
        console.print(err_item_not_found(item_id))
        raise typer.Exit(1)

    console.print(f"\nRemove item: [bold]{escape(existing.display_title)}[/] ({existing.type.display_name})")
    if not yes and not typer.confirm("Confirm removal?", default=False):
        console.print("[dim]Cancelled.[/]")
        raise typer.Exit(0)

    store.delete_item(item_id)
    console.print(f"\n[green]✓[/] Removed item {item_id}")

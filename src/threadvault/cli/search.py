"""threadvault search / thread: query the store from the terminal."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from threadvault.cli import common
from threadvault.cli.errors import (
    err_dimension_mismatch,
    err_embedding,
    err_storage,
    err_thread_not_found,
)
from threadvault.db.models import ContentType, SearchResult
from threadvault.errors import ConfigError, EmbeddingError, StorageError
from threadvault.rag import tools
from threadvault.rag.retriever import RetrievalService

console = Console()


def search_cmd(
    query: Annotated[str, typer.Argument(help="Natural language query.")],
    limit: Annotated[
        int | None,
        typer.Option("--limit", "-k", help="Maximum number of results (default: retrieval.top_k)."),
    ] = None,
    content_type: Annotated[
        list[ContentType] | None,
        typer.Option("--type", "-t", help="Restrict to a content type (repeatable)."),
    ] = None,
    plain: Annotated[
        bool,
        typer.Option("--plain", help="Print the text an LLM agent would receive."),
    ] = False,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the store."),
    ] = None,
) -> None:
    """Search threads by meaning."""
    cfg, db_path = common.load_settings(db)
    common.require_db(db_path)
    store = common.open_store(cfg, db_path)
    service = RetrievalService(store, common.build_embedder(cfg, store))
    k = limit if limit is not None else cfg.retrieval.top_k

    try:
        if plain:
            text = tools.semantic_search(service, query, limit=k, type_filter=content_type)
            console.print(text, markup=False, highlight=False)
            return
        results = service.search(query, k=k, type_filter=content_type)
    except EmbeddingError as exc:
        console.print(err_embedding(str(exc)))
        raise typer.Exit(1) from exc
    except ConfigError as exc:
        console.print(err_dimension_mismatch(str(exc)))
        raise typer.Exit(1) from exc
    except StorageError as exc:
        console.print(err_storage(str(exc)))
        raise typer.Exit(1) from exc
    finally:
        store.close()

    if not results:
        console.print(f"[yellow]No results[/] for '{query}'.")
        return
    console.print(_results_table(query, results))


def thread_cmd(
    thread_id: Annotated[str, typer.Argument(help="Thread id (from search results).")],
    count: Annotated[
        int | None,
        typer.Option("--count", "-n", help="Only the last N items of the thread."),
    ] = None,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the store."),
    ] = None,
) -> None:
    """Print every item of one thread, oldest first."""
    cfg, db_path = common.load_settings(db)
    common.require_db(db_path)
    store = common.open_store(cfg, db_path)
    try:
        if store.find_thread(thread_id) is None:
            console.print(err_thread_not_found(thread_id))
            raise typer.Exit(1)
        service = RetrievalService(store, common.build_embedder(cfg, store))
        text = tools.get_full_thread(service, thread_id, item_count=count)
    finally:
        store.close()
    console.print(text, markup=False, highlight=False)


def _results_table(query: str, results: list[SearchResult]) -> Table:
    table = Table(title=f'Results for "{query}"', show_lines=False)
    table.add_column("#", style="dim", justify="right")
    table.add_column("Similarity", justify="right")
    table.add_column("Type")
    table.add_column("Snippet")
    table.add_column("Thread ID", style="dim")
    for rank, result in enumerate(results, start=1):
        table.add_row(
            str(rank),
            result.similarity_percentage,
            result.thread.type.display_name,
            escape(result.thread.snippet),
            result.thread.id,
        )
    return table

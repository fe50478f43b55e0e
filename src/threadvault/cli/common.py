"""Shared helpers for CLI commands: config, store and embedder setup.

Each helper prints an actionable error and raises ``typer.Exit(1)`` instead of
letting a ThreadVaultError reach the user as a traceback.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console

from threadvault.cli.errors import (
    err_config,
    err_dimension_mismatch,
    err_no_api_key,
    err_no_db,
    err_storage,
    warn_store_reset,
)
from threadvault.config import ThreadVaultConfig, load_config
from threadvault.db.store import IndexStore
from threadvault.errors import ConfigError, DimensionMismatch, StorageError
from threadvault.ingest.embedder import Embedder, LiteLLMEmbedder

console = Console()


def load_settings(db: Path | None = None) -> tuple[ThreadVaultConfig, Path]:
    """Load the merged config and resolve the store path (``--db`` wins)."""
    try:
        cfg = load_config()
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1) from exc
    db_path = db if db is not None else cfg.db_path(Path.cwd())
    return cfg, db_path


def require_db(db_path: Path) -> None:
    if not db_path.exists():
        console.print(err_no_db(str(db_path)))
        raise typer.Exit(1)


def open_store(cfg: ThreadVaultConfig, db_path: Path) -> IndexStore:
    """Open the store with the configured width, metric and schema version."""
    try:
        store = IndexStore.open(
            db_path,
            cfg.embedding.dimensions,
            schema_version=cfg.store.schema_version,
            metric=cfg.store.metric,
        )
    except ConfigError as exc:
        console.print(err_dimension_mismatch(str(exc)))
        raise typer.Exit(1) from exc
    except StorageError as exc:
        console.print(err_storage(str(exc)))
        raise typer.Exit(1) from exc
    if store.was_reset:
        console.print(warn_store_reset(str(db_path), cfg.store.schema_version))
    return store


def make_embedder(cfg: ThreadVaultConfig) -> Embedder:
    """Build the embedding collaborator for *cfg* (patched in tests)."""
    return LiteLLMEmbedder(cfg.embedding.to_embedding_config())


def build_embedder(cfg: ThreadVaultConfig, store: IndexStore) -> Embedder:
    """``make_embedder`` with CLI error reporting; closes *store* on failure."""
    try:
        embedder = make_embedder(cfg)
        if embedder.dimensions != store.dimensions:
            raise DimensionMismatch(
                f"Embedder produces {embedder.dimensions}-dimensional vectors, "
                f"store expects {store.dimensions}"
            )
    except DimensionMismatch as exc:
        store.close()
        console.print(err_dimension_mismatch(str(exc)))
        raise typer.Exit(1) from exc
    except ConfigError as exc:
        store.close()
        provider = cfg.embedding.model.split("/")[0] if "/" in cfg.embedding.model else ""
        if provider and "API key" in str(exc):
            console.print(err_no_api_key(provider))
        else:
            console.print(err_config(str(exc)))
        raise typer.Exit(1) from exc
    return embedder

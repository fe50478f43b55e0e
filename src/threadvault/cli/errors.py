"""threadvault rich error messages.

Every error shown to the user states what went wrong and the command or
change that fixes it.

Usage:
    from threadvault.cli.errors import err_no_db
    console.print(err_no_db(".threadvault.db"))
    raise typer.Exit(1)
"""

from __future__ import annotations


def err_no_db(db_path: str = ".threadvault.db") -> str:
    """No store found at *db_path*."""
    return (
        f"[red]Error:[/] No store found at '{db_path}'.\n"
        "  Run:  threadvault init"
    )


def err_config(message: str) -> str:
    """Configuration could not be loaded or validated."""
    return (
        f"[red]Error:[/] Invalid configuration.\n"
        f"  {message}\n"
        "  Fix threadvault.yaml or ~/.threadvault/config.yaml and retry."
    )


def err_no_api_key(provider: str) -> str:
    """No API key for a hosted embedding *provider*."""
    env_var = f"{provider.upper()}_API_KEY"
    return (
        f"[red]Error:[/] No API key for '{provider}'.\n"
        f"  Set:  export {env_var}=...\n"
        "  Or use a local model:  embedding.model: ollama/all-minilm"
    )


def err_dimension_mismatch(message: str) -> str:
    """Configured embedding width or metric disagrees with the store."""
    return (
        f"[red]Error:[/] Store and configuration disagree.\n"
        f"  {message}\n"
        "  Restore the original embedding settings, or wipe the store:  threadvault reset"
    )


def err_storage(message: str) -> str:
    return (
        f"[red]Error:[/] Store operation failed.\n"
        f"  {message}\n"
        "  Check the database file is writable and not used by another process."
    )


def err_records(path: str, message: str) -> str:
    """Import file could not be parsed."""
    return (
        f"[red]Error:[/] Cannot read items from '{path}'.\n"
        f"  {message}\n"
        "  Expected a JSON list of records, each with a 'type' and 'id'."
    )


def err_embedding(message: str) -> str:
    return (
        f"[red]Error:[/] Embedding request failed.\n"
        f"  {message}\n"
        "  Check that the embedding model is running (ollama serve) or reachable."
    )


def err_thread_not_found(thread_id: str) -> str:
    """Thread id not present in the store."""
    return (
        f"[yellow]Thread not found:[/] '{thread_id}'.\n"
        "  Run:  threadvault search <query>  to find thread ids."
    )


def err_item_not_found(item_id: str) -> str:
    return (
        f"[yellow]Item not found:[/] '{item_id}'.\n"
        "  Run:  threadvault status  to see what is indexed."
    )


def warn_store_reset(db_path: str, schema_version: int) -> str:
    """Shown when opening the store wiped it for a schema version change."""
    return (
        f"[yellow]⚠[/] Store '{db_path}' was at another schema version and has been reset "
        f"to version {schema_version}.\n"
        "  Re-import your items:  threadvault ingest --items <file.json>"
    )

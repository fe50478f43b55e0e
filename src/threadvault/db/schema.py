"""Database schema DDL and version-gated initialization.

There are no migrations: when the stored schema version differs from the one
the store is opened with, every table is dropped and recreated empty. The
reset is logged at WARNING level because it destroys all indexed content.
"""

from __future__ import annotations

import logging
import sqlite3

from threadvault.db.vectors import VEC_TABLE, ensure_vec_table
from threadvault.errors import ConfigError, DimensionMismatch

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

_CREATE_STORE_META = """
CREATE TABLE IF NOT EXISTS store_meta (
    key     TEXT PRIMARY KEY,
    value   TEXT NOT NULL
)
"""

_CREATE_TABLES = """
CREATE TABLE IF NOT EXISTS threads (
    id          TEXT PRIMARY KEY,
    type        TEXT NOT NULL,
    thread_key  TEXT NOT NULL,
    item_ids    TEXT NOT NULL DEFAULT '[]',
    snippet     TEXT NOT NULL DEFAULT '',
    content     TEXT NOT NULL DEFAULT '',
    created     TEXT NOT NULL
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_threads_thread_key ON threads(thread_key);

CREATE TABLE IF NOT EXISTS documents (
    id              TEXT PRIMARY KEY,
    thread_id       TEXT REFERENCES threads(id) ON DELETE SET NULL,
    thread_key      TEXT NOT NULL,
    title           TEXT NOT NULL DEFAULT '',
    content         TEXT NOT NULL,
    embeddable_text TEXT NOT NULL,
    snippet         TEXT NOT NULL DEFAULT '',
    date            TEXT NOT NULL,
    created_at      DATETIME NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS messages (
    id              TEXT PRIMARY KEY,
    thread_id       TEXT REFERENCES threads(id) ON DELETE SET NULL,
    thread_key      TEXT NOT NULL,
    title           TEXT NOT NULL DEFAULT '',
    content         TEXT NOT NULL,
    embeddable_text TEXT NOT NULL,
    snippet         TEXT NOT NULL DEFAULT '',
    date            TEXT NOT NULL,
    original_id     TEXT NOT NULL DEFAULT '',
    is_from_me      INTEGER NOT NULL DEFAULT 0,
    service         TEXT NOT NULL DEFAULT '',
    contact         TEXT NOT NULL DEFAULT '',
    chat_id         TEXT NOT NULL DEFAULT '',
    chat_name       TEXT NOT NULL DEFAULT '',
    created_at      DATETIME NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS emails (
    id              TEXT PRIMARY KEY,
    thread_id       TEXT REFERENCES threads(id) ON DELETE SET NULL,
    thread_key      TEXT NOT NULL,
    title           TEXT NOT NULL DEFAULT '',
    content         TEXT NOT NULL,
    embeddable_text TEXT NOT NULL,
    snippet         TEXT NOT NULL DEFAULT '',
    date            TEXT NOT NULL,
    original_id     TEXT NOT NULL DEFAULT '',
    sender          TEXT NOT NULL DEFAULT '',
    recipient       TEXT NOT NULL DEFAULT '',
    labels          TEXT NOT NULL DEFAULT '[]',
    created_at      DATETIME NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS notes (
    id              TEXT PRIMARY KEY,
    thread_id       TEXT REFERENCES threads(id) ON DELETE SET NULL,
    thread_key      TEXT NOT NULL,
    title           TEXT NOT NULL DEFAULT '',
    content         TEXT NOT NULL,
    embeddable_text TEXT NOT NULL,
    snippet         TEXT NOT NULL DEFAULT '',
    date            TEXT NOT NULL,
    original_id     TEXT NOT NULL DEFAULT '',
    folder          TEXT NOT NULL DEFAULT '',
    note_created    TEXT,
    created_at      DATETIME NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS thread_chunks (
    id              TEXT PRIMARY KEY,
    thread_id       TEXT NOT NULL REFERENCES threads(id),
    parent_ids      TEXT NOT NULL DEFAULT '[]',
    type            TEXT NOT NULL,
    content         TEXT NOT NULL,
    chunk_index     INTEGER NOT NULL,
    start_position  INTEGER NOT NULL,
    end_position    INTEGER NOT NULL,
    UNIQUE (thread_id, chunk_index)
);
"""

# Children before parents so foreign keys never block a drop.
OWNED_TABLES: tuple[str, ...] = (
    VEC_TABLE,
    "thread_chunks",
    "documents",
    "messages",
    "emails",
    "notes",
    "threads",
    "store_meta",
)


def initialize(
    conn: sqlite3.Connection,
    dimensions: int,
    schema_version: int = SCHEMA_VERSION,
    metric: str = "l2",
) -> bool:
    """Bring the database to *schema_version*, creating tables as needed.

    Returns:
        True if an existing store at a different version was wiped.

    Raises:
        DimensionMismatch: If the store was created with a different vector width.
        ConfigError: If the store was created with a different distance metric.
    """
    stored = read_meta(conn)
    wiped = False

    if stored and int(stored.get("schema_version", 0)) != schema_version:
        logger.warning(
            "Schema version changed (stored %s, expected %s): dropping all tables in %s",
            stored.get("schema_version"),
            schema_version,
            _db_file(conn),
        )
        drop_all(conn)
        stored = {}
        wiped = True

    if stored:
        if int(stored.get("dimensions", dimensions)) != dimensions:
            raise DimensionMismatch(
                f"Store was created with {stored['dimensions']}-dimensional vectors, "
                f"but {dimensions} were configured"
            )
        if stored.get("metric", metric) != metric:
            raise ConfigError(
                f"Store was created with distance metric {stored['metric']!r}, "
                f"but {metric!r} was configured"
            )

    conn.execute(_CREATE_STORE_META)
    conn.executescript(_CREATE_TABLES)
    ensure_vec_table(conn, dimensions, metric)
    if not stored:
        conn.executemany(
            "INSERT OR REPLACE INTO store_meta (key, value) VALUES (?, ?)",
            [
                ("schema_version", str(schema_version)),
                ("dimensions", str(dimensions)),
                ("metric", metric),
            ],
        )
    conn.commit()
    return wiped


def read_meta(conn: sqlite3.Connection) -> dict[str, str]:
    """Return the persisted store metadata, or {} for a fresh database."""
    exists = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name='store_meta'"
    ).fetchone()
    if exists is None:
        # Tables without store_meta come from an unversioned store
        owned = conn.execute(
            "SELECT COUNT(*) FROM sqlite_master WHERE type='table' AND name='threads'"
        ).fetchone()[0]
        return {"schema_version": "0"} if owned else {}
    rows = conn.execute("SELECT key, value FROM store_meta").fetchall()
    return {r["key"]: r["value"] for r in rows}


def drop_all(conn: sqlite3.Connection) -> None:
    """Drop every table owned by the store. Irreversible."""
    for table in OWNED_TABLES:
        conn.execute(f"DROP TABLE IF EXISTS {table}")
    conn.commit()


def _db_file(conn: sqlite3.Connection) -> str:
    row = conn.execute("PRAGMA database_list").fetchone()
    return row["file"] or ":memory:"

"""sqlite-vec virtual table for thread chunk embeddings.

The vec table row for a chunk uses ``rowid = thread_chunks.rowid``. Two
metadata columns (``content_type``, ``chunk_index``) live inside the vec0
table so the type filter and the representative-chunk restriction are applied
inside the KNN scan rather than after it.
"""

from __future__ import annotations

import sqlite3

VEC_TABLE = "vec_thread_chunks"

METRICS: frozenset[str] = frozenset({"l2", "cosine"})


def ensure_vec_table(conn: sqlite3.Connection, dimensions: int, metric: str = "l2") -> str:
    """Create the vec0 table for chunk embeddings if it doesn't already exist.

    Args:
        conn: Active database connection (sqlite-vec must be loaded).
        dimensions: Embedding vector dimensions (e.g. 384 for all-MiniLM-L6-v2).
        metric: ``"l2"`` (Euclidean) or ``"cosine"``; fixed for the table's lifetime.

    Returns:
        The table name.
    """
    if dimensions < 1:
        raise ValueError(f"dimensions must be >= 1, got {dimensions}")
    if metric not in METRICS:
        raise ValueError(f"metric must be one of {sorted(METRICS)}, got {metric!r}")

    existing = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name=?", (VEC_TABLE,)
    ).fetchone()

    if existing is None:
        conn.execute(
            f"CREATE VIRTUAL TABLE {VEC_TABLE} USING vec0("
            f"embedding float[{dimensions}] distance_metric={metric}, "
            "content_type text, "
            "chunk_index integer)"
        )
        conn.commit()

    return VEC_TABLE

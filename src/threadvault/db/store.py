"""IndexStore: persistent storage for items, threads, chunks and their vectors.

Single interface for: typed content tables, the thread table, the chunk table
and the sqlite-vec index over chunk embeddings. All statements go through one
connection guarded by a re-entrant lock, so the store is a single logical
writer and readers never observe a half-written thread.
"""

from __future__ import annotations

import json
import logging
import math
import sqlite3
import threading
from collections.abc import Iterable, Iterator, Sequence
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any

from threadvault.db.codec import VectorCodec
from threadvault.db.connection import Database
from threadvault.db.models import (
    ContentType,
    DocumentMeta,
    EmailMeta,
    Item,
    MessageMeta,
    NoteMeta,
    Thread,
    ThreadChunk,
    VectorHit,
)
from threadvault.db.schema import SCHEMA_VERSION, drop_all, initialize
from threadvault.db.vectors import VEC_TABLE
from threadvault.errors import StorageError

logger = logging.getLogger(__name__)

# vec0 rejects KNN queries with k above this bound.
_MAX_KNN = 4096

_ITEM_COLUMNS = (
    "id",
    "thread_id",
    "thread_key",
    "title",
    "content",
    "embeddable_text",
    "snippet",
    "date",
)

_META_COLUMNS: dict[ContentType, tuple[str, ...]] = {
    ContentType.DOCUMENT: (),
    ContentType.MESSAGE: ("original_id", "is_from_me", "service", "contact", "chat_id", "chat_name"),
    ContentType.EMAIL: ("original_id", "sender", "recipient", "labels"),
    ContentType.NOTE: ("original_id", "folder", "note_created"),
}

_THREAD_COLUMNS = "id, type, thread_key, item_ids, snippet, content, created"
_CHUNK_COLUMNS = (
    "rowid, id, thread_id, parent_ids, type, content, chunk_index, start_position, end_position"
)


class IndexStore:
    """Data access layer for all threadvault entities.

    Wraps an open sqlite3.Connection. Use ``IndexStore.open()`` to create the
    connection, load sqlite-vec and bring the schema to the requested version.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        dimensions: int,
        metric: str = "l2",
        schema_version: int = SCHEMA_VERSION,
    ) -> None:
        """Initialise with an open, schema-initialised connection.

        Args:
            conn: An open sqlite3.Connection with sqlite-vec loaded.
            dimensions: Width of every stored embedding.
            metric: Distance metric the vec table was created with.
            schema_version: Version the schema was initialised at.
        """
        self._conn = conn
        self._codec = VectorCodec(dimensions)
        self._lock = threading.RLock()
        self._depth = 0
        self.dimensions = dimensions
        self.metric = metric
        self.schema_version = schema_version
        self.was_reset = False

    @classmethod
    def open(
        cls,
        path: Path | str,
        dimensions: int,
        schema_version: int = SCHEMA_VERSION,
        metric: str = "l2",
    ) -> IndexStore:
        """Open (or create) the store at *path*.

        A schema version differing from the persisted one wipes the store.

        Raises:
            DimensionMismatch: If the store holds vectors of another width.
            ConfigError: If the store uses another distance metric.
        """
        conn = Database(path).connect()
        try:
            wiped = initialize(conn, dimensions, schema_version=schema_version, metric=metric)
        except Exception:
            conn.close()
            raise
        store = cls(conn, dimensions, metric=metric, schema_version=schema_version)
        store.was_reset = wiped
        return store

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def __enter__(self) -> IndexStore:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Run the enclosed statements atomically.

        Re-entrant: only the outermost block commits (or rolls back on error).
        Holds the store lock for the whole block.
        """
        with self._lock:
            self._depth += 1
            try:
                yield
            except BaseException:
                self._depth -= 1
                if self._depth == 0:
                    self._conn.rollback()
                raise
            else:
                self._depth -= 1
                if self._depth == 0:
                    try:
                        self._conn.commit()
                    except sqlite3.Error as exc:
                        self._conn.rollback()
                        raise StorageError(f"Commit failed: {exc}") from exc

    def _execute(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Cursor:
        with self._lock:
            try:
                return self._conn.execute(sql, params)
            except sqlite3.Error as exc:
                raise StorageError(f"{exc} (while executing: {sql.split()[0]} ...)") from exc

    def _query(self, sql: str, params: Sequence[Any] = ()) -> list[sqlite3.Row]:
        with self._lock:
            return self._execute(sql, params).fetchall()

    # ------------------------------------------------------------------
    # Items
    # ------------------------------------------------------------------

    def insert_item(self, item: Item) -> str:
        """Insert *item* into its type's content table. Returns the item id."""
        columns = _ITEM_COLUMNS + _META_COLUMNS[item.type]
        placeholders = ", ".join("?" * len(columns))
        with self.transaction():
            self._execute(
                f"INSERT INTO {item.type.table_name} ({', '.join(columns)}) VALUES ({placeholders})",
                _item_values(item),
            )
        return item.id

    def find_item(self, item_id: str) -> Item | None:
        """Return an item by id from whichever content table holds it, or None."""
        for content_type in ContentType:
            rows = self._query(
                f"SELECT {_select_columns(content_type)} FROM {content_type.table_name} WHERE id = ?",
                (item_id,),
            )
            if rows:
                return _row_to_item(content_type, rows[0])
        return None

    def find_items(self, item_ids: Sequence[str]) -> list[Item]:
        """Return the items for *item_ids* in the given order; missing ids are skipped."""
        if not item_ids:
            return []
        wanted = list(dict.fromkeys(item_ids))
        placeholders = ",".join("?" * len(wanted))
        found: dict[str, Item] = {}
        for content_type in ContentType:
            for row in self._query(
                f"SELECT {_select_columns(content_type)} FROM {content_type.table_name} "
                f"WHERE id IN ({placeholders})",
                wanted,
            ):
                found[row["id"]] = _row_to_item(content_type, row)
        return [found[i] for i in wanted if i in found]

    def list_items(self, content_type: ContentType | None = None) -> list[Item]:
        """Return all items (optionally of one type), newest first."""
        types = [content_type] if content_type else list(ContentType)
        items: list[Item] = []
        for t in types:
            rows = self._query(f"SELECT {_select_columns(t)} FROM {t.table_name}")
            items.extend(_row_to_item(t, r) for r in rows)
        items.sort(key=lambda i: i.date, reverse=True)
        return items

    def delete_item(self, item_id: str) -> None:
        """Delete one item by id; unknown ids are ignored.

        The id is also removed from its thread's ``item_ids``. A thread left
        without items is deleted together with its chunks.
        """
        with self.transaction():
            item = self.find_item(item_id)
            if item is None:
                return
            self._execute(f"DELETE FROM {item.type.table_name} WHERE id = ?", (item_id,))
            if item.thread_id is None:
                return
            thread = self.find_thread(item.thread_id)
            if thread is None:
                return
            remaining = [i for i in thread.item_ids if i != item_id]
            if remaining:
                thread.item_ids = remaining
                self.update_thread(thread)
            else:
                self.delete_thread(thread.id, delete_items=False)

    def delete_items(self, item_ids: Iterable[str]) -> None:
        with self.transaction():
            for item_id in item_ids:
                self.delete_item(item_id)

    # ------------------------------------------------------------------
    # Threads
    # ------------------------------------------------------------------

    def insert_thread(self, thread: Thread) -> str:
        with self.transaction():
            self._execute(
                f"INSERT INTO threads ({_THREAD_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    thread.id,
                    thread.type.value,
                    thread.thread_key,
                    json.dumps(thread.item_ids),
                    thread.snippet,
                    thread.content,
                    thread.created.isoformat(),
                ),
            )
        return thread.id

    def update_thread(self, thread: Thread) -> None:
        """Rewrite the mutable aggregate fields of an existing thread row."""
        with self.transaction():
            self._execute(
                """
                UPDATE threads
                SET item_ids = ?, snippet = ?, content = ?, created = ?
                WHERE id = ?
                """,
                (
                    json.dumps(thread.item_ids),
                    thread.snippet,
                    thread.content,
                    thread.created.isoformat(),
                    thread.id,
                ),
            )

    def find_or_create_thread(self, thread: Thread) -> Thread:
        """Return the stored thread with *thread*'s key, inserting *thread* if none exists."""
        with self.transaction():
            existing = self.find_thread_by_key(thread.thread_key)
            if existing is not None:
                return existing
            self.insert_thread(thread)
            return thread

    def find_thread(self, thread_id: str) -> Thread | None:
        rows = self._query(f"SELECT {_THREAD_COLUMNS} FROM threads WHERE id = ?", (thread_id,))
        return _row_to_thread(rows[0]) if rows else None

    def find_thread_by_key(self, thread_key: str) -> Thread | None:
        rows = self._query(
            f"SELECT {_THREAD_COLUMNS} FROM threads WHERE thread_key = ?", (thread_key,)
        )
        return _row_to_thread(rows[0]) if rows else None

    def list_threads(self, content_type: ContentType | None = None) -> list[Thread]:
        """Return threads (optionally of one type), most recently created first."""
        if content_type is None:
            rows = self._query(f"SELECT {_THREAD_COLUMNS} FROM threads ORDER BY created DESC")
        else:
            rows = self._query(
                f"SELECT {_THREAD_COLUMNS} FROM threads WHERE type = ? ORDER BY created DESC",
                (content_type.value,),
            )
        return [_row_to_thread(r) for r in rows]

    def delete_thread(self, thread_id: str, delete_items: bool = True) -> None:
        """Delete a thread with its chunks and vectors (cascade done here, not by SQLite).

        Args:
            thread_id: System id of the thread.
            delete_items: Also delete the thread's items from the content tables.
        """
        with self.transaction():
            thread = self.find_thread(thread_id)
            if thread is None:
                return
            self.delete_chunks_by_thread(thread_id)
            if delete_items:
                for content_type in ContentType:
                    self._execute(
                        f"DELETE FROM {content_type.table_name} WHERE thread_id = ?", (thread_id,)
                    )
            self._execute("DELETE FROM threads WHERE id = ?", (thread_id,))

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    def insert_chunk(self, chunk: ThreadChunk) -> int:
        """Insert a chunk row and its vector. Returns the shared rowid."""
        blob = self._codec.encode(chunk.embedding)
        with self.transaction():
            cur = self._execute(
                """
                INSERT INTO thread_chunks
                    (id, thread_id, parent_ids, type, content, chunk_index, start_position, end_position)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    chunk.id,
                    chunk.thread_id,
                    json.dumps(chunk.parent_ids),
                    chunk.type.value,
                    chunk.content,
                    chunk.chunk_index,
                    chunk.start_position,
                    chunk.end_position,
                ),
            )
            rowid = cur.lastrowid
            # vec row shares the chunk's rowid
            self._execute(
                f"INSERT INTO {VEC_TABLE}(rowid, embedding, content_type, chunk_index) "
                "VALUES (?, ?, ?, ?)",
                (rowid, blob, chunk.type.value, chunk.chunk_index),
            )
        return rowid

    def get_chunks_by_thread(self, thread_id: str) -> list[ThreadChunk]:
        """Return a thread's chunks ordered by chunk_index, embeddings included."""
        rows = self._query(
            f"SELECT {_CHUNK_COLUMNS} FROM thread_chunks WHERE thread_id = ? ORDER BY chunk_index",
            (thread_id,),
        )
        return [self._row_to_chunk(r) for r in rows]

    def get_representative_chunk(self, thread_id: str) -> ThreadChunk | None:
        rows = self._query(
            f"SELECT {_CHUNK_COLUMNS} FROM thread_chunks WHERE thread_id = ? AND chunk_index = 0",
            (thread_id,),
        )
        return self._row_to_chunk(rows[0]) if rows else None

    def count_chunks_by_thread(self, thread_id: str) -> int:
        return self._query(
            "SELECT COUNT(*) FROM thread_chunks WHERE thread_id = ?", (thread_id,)
        )[0][0]

    def delete_chunks_by_thread(self, thread_id: str) -> None:
        """Delete chunks + vec rows for a thread (vec0 has no cascade)."""
        with self.transaction():
            rowids = [
                r[0]
                for r in self._query(
                    "SELECT rowid FROM thread_chunks WHERE thread_id = ?", (thread_id,)
                )
            ]
            if rowids:
                placeholders = ",".join("?" * len(rowids))
                self._execute(f"DELETE FROM {VEC_TABLE} WHERE rowid IN ({placeholders})", rowids)
            self._execute("DELETE FROM thread_chunks WHERE thread_id = ?", (thread_id,))

    def _row_to_chunk(self, row: sqlite3.Row) -> ThreadChunk:
        vec_rows = self._query(f"SELECT embedding FROM {VEC_TABLE} WHERE rowid = ?", (row["rowid"],))
        embedding = self._codec.decode(vec_rows[0]["embedding"]) if vec_rows else []
        return ThreadChunk(
            id=row["id"],
            thread_id=row["thread_id"],
            parent_ids=json.loads(row["parent_ids"]),
            type=ContentType(row["type"]),
            content=row["content"],
            embedding=embedding,
            chunk_index=row["chunk_index"],
            start_position=row["start_position"],
            end_position=row["end_position"],
        )

    # ------------------------------------------------------------------
    # Thread write (one transaction per thread)
    # ------------------------------------------------------------------

    def write_thread(self, thread: Thread, items: Sequence[Item], chunks: Sequence[ThreadChunk]) -> None:
        """Persist a thread, its new items and its chunks atomically.

        Insertion order is thread -> items -> chunks. Existing chunks of the
        thread are replaced, so re-chunking after an append leaves no stale rows.
        """
        with self.transaction():
            if self.find_thread(thread.id) is None:
                self.insert_thread(thread)
            else:
                self.update_thread(thread)
            for item in items:
                self.insert_item(item)
            self.delete_chunks_by_thread(thread.id)
            for chunk in chunks:
                self.insert_chunk(chunk)

    # ------------------------------------------------------------------
    # Vector search
    # ------------------------------------------------------------------

    def search(
        self,
        query_vector: Sequence[float],
        k: int,
        type_filter: Iterable[ContentType] | None = None,
    ) -> list[VectorHit]:
        """k-NN over representative chunks (chunk_index == 0), ascending distance.

        Args:
            query_vector: Vector of the store's width.
            k: Maximum number of hits.
            type_filter: Content types to consider; empty or None means all.
        """
        if k <= 0:
            return []
        blob = self._codec.encode(query_vector)
        limit = min(k, _MAX_KNN)
        types: list[ContentType | None] = list(dict.fromkeys(type_filter or ())) or [None]

        scored: list[tuple[int, float]] = []
        with self._lock:
            for content_type in types:
                sql = (
                    f"SELECT rowid, distance FROM {VEC_TABLE} "
                    "WHERE embedding MATCH ? AND k = ? AND chunk_index = 0"
                )
                params: list[Any] = [blob, limit]
                if content_type is not None:
                    sql += " AND content_type = ?"
                    params.append(content_type.value)
                sql += " ORDER BY distance"
                # a zero vector has no cosine distance: NULL or NaN
                scored.extend(
                    (r["rowid"], r["distance"])
                    for r in self._query(sql, params)
                    if r["distance"] is not None and not math.isnan(r["distance"])
                )

            scored.sort(key=lambda pair: pair[1])
            scored = scored[:limit]
            if not scored:
                return []

            placeholders = ",".join("?" * len(scored))
            owners = {
                r["rowid"]: (r["thread_id"], r["type"])
                for r in self._query(
                    f"SELECT rowid, thread_id, type FROM thread_chunks WHERE rowid IN ({placeholders})",
                    [rowid for rowid, _ in scored],
                )
            }

        hits: list[VectorHit] = []
        for rowid, distance in scored:
            if rowid in owners:
                thread_id, type_value = owners[rowid]
                hits.append(VectorHit(thread_id=thread_id, type=ContentType(type_value), distance=distance))
        logger.debug("Vector search k=%d types=%s -> %d hits", k, types, len(hits))
        return hits

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def stats(self) -> dict[str, int]:
        """Return row counts for threads, chunks and each content table."""
        counts = {
            "threads": self._query("SELECT COUNT(*) FROM threads")[0][0],
            "chunks": self._query("SELECT COUNT(*) FROM thread_chunks")[0][0],
        }
        for content_type in ContentType:
            counts[content_type.table_name] = self._query(
                f"SELECT COUNT(*) FROM {content_type.table_name}"
            )[0][0]
        return counts

    def reset(self) -> None:
        """Drop every table and recreate an empty store. Irreversible."""
        with self._lock:
            logger.warning("Resetting store: all items, threads and chunks are being deleted")
            try:
                drop_all(self._conn)
                initialize(
                    self._conn,
                    self.dimensions,
                    schema_version=self.schema_version,
                    metric=self.metric,
                )
            except sqlite3.Error as exc:
                raise StorageError(f"Reset failed: {exc}") from exc


# ------------------------------------------------------------------
# Row <-> model helpers
# ------------------------------------------------------------------


def _select_columns(content_type: ContentType) -> str:
    return ", ".join(_ITEM_COLUMNS + _META_COLUMNS[content_type])


def _item_values(item: Item) -> tuple[Any, ...]:
    common = (
        item.id,
        item.thread_id,
        item.thread_key,
        item.title,
        item.content,
        item.embeddable_text,
        item.snippet,
        item.date.isoformat(),
    )
    meta = item.metadata
    if isinstance(meta, MessageMeta):
        extra: tuple[Any, ...] = (
            meta.original_id,
            int(meta.is_from_me),
            meta.service,
            meta.contact,
            meta.chat_id,
            meta.chat_name,
        )
    elif isinstance(meta, EmailMeta):
        extra = (meta.original_id, meta.sender, meta.recipient, json.dumps(list(meta.labels)))
    elif isinstance(meta, NoteMeta):
        extra = (meta.original_id, meta.folder, meta.created.isoformat() if meta.created else None)
    else:
        extra = ()
    return common + extra


def _row_to_item(content_type: ContentType, row: sqlite3.Row) -> Item:
    if content_type is ContentType.MESSAGE:
        meta: Any = MessageMeta(
            original_id=row["original_id"],
            is_from_me=bool(row["is_from_me"]),
            service=row["service"],
            contact=row["contact"],
            chat_id=row["chat_id"],
            chat_name=row["chat_name"],
        )
    elif content_type is ContentType.EMAIL:
        meta = EmailMeta(
            original_id=row["original_id"],
            sender=row["sender"],
            recipient=row["recipient"],
            labels=tuple(json.loads(row["labels"])),
        )
    elif content_type is ContentType.NOTE:
        created = row["note_created"]
        meta = NoteMeta(
            original_id=row["original_id"],
            folder=row["folder"],
            created=datetime.fromisoformat(created) if created else None,
        )
    else:
        meta = DocumentMeta()
    return Item(
        id=row["id"],
        type=content_type,
        title=row["title"],
        content=row["content"],
        embeddable_text=row["embeddable_text"],
        snippet=row["snippet"],
        date=datetime.fromisoformat(row["date"]),
        thread_key=row["thread_key"],
        metadata=meta,
        thread_id=row["thread_id"],
    )


def _row_to_thread(row: sqlite3.Row) -> Thread:
    return Thread(
        id=row["id"],
        type=ContentType(row["type"]),
        item_ids=json.loads(row["item_ids"]),
        thread_key=row["thread_key"],
        snippet=row["snippet"],
        content=row["content"],
        created=datetime.fromisoformat(row["created"]),
    )

"""Ingestion pipeline: items -> threads -> chunks + embeddings -> store.

Each thread is processed by one task on a thread pool; ``import_items`` waits
for all of them before returning. Per thread:

1. Build the Thread, appending to the stored thread with the same key if any.
2. Chunk ``Thread.content`` and embed every window (the slow part, done
   outside the store lock).
3. Rewrite each new item's ``thread_id`` to the system thread id.
4. Write thread -> items -> chunks in one transaction.

A failure in one thread is recorded and never aborts its siblings.
"""

from __future__ import annotations

import concurrent.futures
import logging
import threading
from collections.abc import Sequence
from dataclasses import dataclass, field, replace

from threadvault.db.models import Item, Thread, ThreadChunk
from threadvault.db.store import IndexStore
from threadvault.errors import EmbeddingError, IngestCancelled
from threadvault.ingest import threads
from threadvault.ingest.chunker import Chunker
from threadvault.ingest.embedder import Embedder, check_dimensions

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 4


@dataclass(frozen=True)
class ThreadFailure:
    """One thread that could not be ingested."""

    thread_key: str
    error: BaseException

    def __str__(self) -> str:
        return f"{self.thread_key}: {type(self.error).__name__}: {self.error}"


@dataclass
class ImportReport:
    """Outcome of one ``import_items`` call.

    Attributes:
        item_ids: Ids of every persisted item, in the order they were supplied.
        thread_ids: System ids of the threads written successfully.
        failures: One entry per thread whose pipeline failed.
    """

    item_ids: list[str] = field(default_factory=list)
    thread_ids: list[str] = field(default_factory=list)
    failures: list[ThreadFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


@dataclass
class _ThreadOutcome:
    thread_id: str
    item_ids: list[str]


class IngestionPipeline:
    """Import items into an IndexStore.

    Args:
        store: Open IndexStore (shared by all worker threads).
        embedder: Embedding collaborator; must match the store's dimensions.
        chunker: Window configuration for thread content.
        max_workers: Size of the per-import thread pool.

    Raises:
        DimensionMismatch: If the embedder and store widths differ.
    """

    def __init__(
        self,
        store: IndexStore,
        embedder: Embedder,
        chunker: Chunker | None = None,
        max_workers: int = DEFAULT_MAX_WORKERS,
    ) -> None:
        check_dimensions(embedder, store.dimensions)
        if max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {max_workers}")
        self._store = store
        self._embedder = embedder
        self._chunker = chunker or Chunker()
        self._max_workers = max_workers

    def import_items(
        self,
        items: Sequence[Item],
        cancel: threading.Event | None = None,
    ) -> ImportReport:
        """Thread, chunk, embed and persist *items*.

        Args:
            items: Items to import, in caller order.
            cancel: When set, pending thread tasks are dropped and running ones
                stop before committing; they are reported as IngestCancelled.

        Returns:
            ImportReport with persisted item ids (input order) and per-thread failures.
        """
        cancel = cancel or threading.Event()
        groups = threads.group(items)
        report = ImportReport()
        persisted: set[str] = set()

        if groups:
            workers = min(self._max_workers, len(groups))
            with concurrent.futures.ThreadPoolExecutor(max_workers=workers) as executor:
                futures = {
                    executor.submit(self._ingest_thread, key, group_items, cancel): key
                    for key, group_items in groups.items()
                }
                try:
                    for future in concurrent.futures.as_completed(futures):
                        key = futures[future]
                        try:
                            outcome = future.result()
                        except Exception as exc:
                            logger.warning("Thread %r failed: %s", key, exc)
                            report.failures.append(ThreadFailure(key, exc))
                            continue
                        report.thread_ids.append(outcome.thread_id)
                        persisted.update(outcome.item_ids)
                except BaseException:
                    cancel.set()
                    for future in futures:
                        future.cancel()
                    raise

        seen: set[str] = set()
        for item in items:
            if item.id in persisted and item.id not in seen:
                seen.add(item.id)
                report.item_ids.append(item.id)

        logger.info(
            "Imported %d items into %d threads (%d failed)",
            len(report.item_ids),
            len(report.thread_ids),
            len(report.failures),
        )
        return report

    # ------------------------------------------------------------------
    # Per-thread pipeline
    # ------------------------------------------------------------------

    def _ingest_thread(
        self, key: str, items: list[Item], cancel: threading.Event
    ) -> _ThreadOutcome:
        _check_cancel(cancel, key)

        # Validates the batch on its own before any merge with stored items
        thread = threads.build(items)
        new_items = items

        existing = self._store.find_thread_by_key(key)
        if existing is not None:
            known = set(existing.item_ids)
            new_items = [i for i in items if i.id not in known]
            if not new_items:
                logger.debug("Thread %r already up to date", key)
                return _ThreadOutcome(existing.id, [i.id for i in items])
            stored_items = self._store.find_items(existing.item_ids)
            thread = threads.build(
                stored_items + new_items, thread_id=existing.id, created=existing.created
            )

        chunks = self._embed_chunks(thread, cancel)
        rewritten = [replace(item, thread_id=thread.id) for item in new_items]

        _check_cancel(cancel, key)
        self._store.write_thread(thread, rewritten, chunks)
        logger.debug(
            "Wrote thread %r (%s): %d new items, %d chunks", key, thread.id, len(rewritten), len(chunks)
        )
        return _ThreadOutcome(thread.id, [i.id for i in items])

    def _embed_chunks(self, thread: Thread, cancel: threading.Event) -> list[ThreadChunk]:
        windows = [w for w in self._chunker.chunk(thread.content) if w.text.strip()]
        if not windows:
            return []
        _check_cancel(cancel, thread.thread_key)
        embeddings = self._embedder.embed_batch([w.text for w in windows])
        if len(embeddings) != len(windows):
            raise EmbeddingError(
                f"Embedder returned {len(embeddings)} vectors for {len(windows)} chunks"
            )
        return [
            ThreadChunk(
                thread_id=thread.id,
                parent_ids=list(thread.item_ids),
                type=thread.type,
                content=window.text,
                embedding=embedding,
                chunk_index=index,
                start_position=window.start,
                end_position=window.end,
            )
            for index, (window, embedding) in enumerate(zip(windows, embeddings))
        ]


def _check_cancel(cancel: threading.Event, key: str) -> None:
    if cancel.is_set():
        raise IngestCancelled(f"Import cancelled before thread {key!r} was written")

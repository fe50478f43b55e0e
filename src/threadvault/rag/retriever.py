"""Dense retriever over thread representative chunks.

Ranking is always by the raw vec0 distance (smaller = more similar). Each hit is
hydrated into a SearchResult carrying the thread, every item the thread lists
and the representative chunk. ``SearchResult.similarity`` is a display score
derived from the distance and never feeds back into the order.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from threadvault.db.models import ContentType, Item, SearchResult
from threadvault.db.store import IndexStore
from threadvault.ingest.embedder import Embedder, check_dimensions

logger = logging.getLogger(__name__)

DEFAULT_TOP_K = 10


class RetrievalService:
    """Embed a query, run the k-NN search and hydrate the hits.

    Args:
        store: Open IndexStore.
        embedder: Embedding collaborator used for queries; must match the
            model the store was populated with.
    """

    def __init__(self, store: IndexStore, embedder: Embedder) -> None:
        check_dimensions(embedder, store.dimensions)
        self._store = store
        self._embedder = embedder

    def search(
        self,
        query: str,
        k: int = DEFAULT_TOP_K,
        type_filter: Iterable[ContentType] | None = None,
    ) -> list[SearchResult]:
        """Return up to *k* results, nearest first. A blank query returns []."""
        query = query.strip()
        if not query or k <= 0:
            return []

        query_vector = self._embedder.embed(query)
        hits = self._store.search(query_vector, k, type_filter)

        results: list[SearchResult] = []
        for hit in hits:
            thread = self._store.find_thread(hit.thread_id)
            chunk = self._store.get_representative_chunk(hit.thread_id)
            if thread is None or chunk is None:
                # Deleted between the KNN scan and hydration
                continue
            results.append(
                SearchResult(
                    thread_chunk=chunk,
                    thread=thread,
                    items=self._store.find_items(thread.item_ids),
                    distance=hit.distance,
                )
            )
        logger.debug("Search %r returned %d results", query, len(results))
        return results

    def get_full_thread(self, thread_id: str, item_count: int | None = None) -> list[Item]:
        """Return the items of a thread in thread order.

        Args:
            thread_id: System id of the thread.
            item_count: When positive, only the last *item_count* items.

        Returns:
            Items (empty if the thread does not exist).
        """
        thread = self._store.find_thread(thread_id)
        if thread is None:
            return []
        item_ids = thread.item_ids
        if item_count is not None and item_count > 0:
            item_ids = item_ids[-item_count:]
        return self._store.find_items(item_ids)

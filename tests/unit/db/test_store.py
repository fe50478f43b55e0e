"""Tests for IndexStore: items, threads, chunks, search and transactions."""

from __future__ import annotations

import sqlite3
from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from threadvault.db.models import (
    ContentType,
    Thread,
    ThreadChunk,
    document_item,
    email_item,
    message_item,
    note_item,
)
from threadvault.db.store import IndexStore
from threadvault.db.vectors import VEC_TABLE
from threadvault.errors import DimensionMismatch, StorageError
from threadvault.ingest import threads

DIMS = 64


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _vec(*head: float) -> list[float]:
    return list(head) + [0.0] * (DIMS - len(head))


def _write(store, items, vector=None):
    """Thread *items*, give the thread one chunk at *vector*, and persist it."""
    thread = threads.build(items)
    stamped = [replace(i, thread_id=thread.id) for i in items]
    chunk = ThreadChunk(
        thread_id=thread.id,
        parent_ids=list(thread.item_ids),
        type=thread.type,
        content=thread.content[:50],
        embedding=vector or _vec(1.0),
        chunk_index=0,
        start_position=0,
        end_position=min(50, len(thread.content)),
    )
    store.write_thread(thread, stamped, [chunk])
    return thread


def _email(id: str, thread_key: str = "t-1", day: int = 1):
    return email_item(
        id=id,
        thread_key=thread_key,
        subject="Quarterly report",
        sender="Ann <ann@example.com>",
        recipient="bob@example.com",
        content=f"Body of {id}",
        date=datetime(2024, 3, day, 9, 30),
        labels=["INBOX", "IMPORTANT"],
        original_id=f"gm-{id}",
    )


# ---------------------------------------------------------------------------
# Items
# ---------------------------------------------------------------------------


def test_item_round_trip_per_type(store):
    created = datetime(2023, 12, 24, 8, 0)
    items = [
        document_item("doc-1", "Plan", "Roadmap text", datetime(2024, 1, 2)),
        message_item("msg-1", "hi there", datetime(2024, 1, 3), contact="+15550001",
                     chat_name="Family", is_from_me=True, original_id="42"),
        _email("em-1"),
        note_item("note-1", "", "Shopping list", datetime(2024, 1, 5), folder="Home",
                  created=created),
    ]
    for item in items:
        assert store.insert_item(item) == item.id

    for item in items:
        assert store.find_item(item.id) == item


def test_find_item_missing_returns_none(store):
    assert store.find_item("nope") is None


def test_find_items_preserves_order_and_skips_missing(store):
    store.insert_item(document_item("a", "A", "a", datetime(2024, 1, 1)))
    store.insert_item(_email("b"))
    found = store.find_items(["b", "missing", "a", "b"])
    assert [i.id for i in found] == ["b", "a"]


def test_find_items_empty(store):
    assert store.find_items([]) == []


def test_list_items_newest_first_and_filtered(store):
    store.insert_item(_email("e1", day=1))
    store.insert_item(_email("e2", day=5))
    store.insert_item(document_item("d1", "D", "d", datetime(2024, 3, 3)))
    assert [i.id for i in store.list_items()] == ["e2", "d1", "e1"]
    assert [i.id for i in store.list_items(ContentType.EMAIL)] == ["e2", "e1"]


def test_list_items_mixed_timezones(store):
    store.insert_item(document_item("naive", "N", "n", datetime(2024, 1, 1, 12)))
    store.insert_item(document_item("utc", "U", "u", datetime(2024, 1, 1, 13, tzinfo=timezone.utc)))
    plus_two = timezone(timedelta(hours=2))
    store.insert_item(document_item("cest", "C", "c", datetime(2024, 1, 1, 13, tzinfo=plus_two)))

    items = store.list_items()
    assert [i.id for i in items] == ["utc", "naive", "cest"]
    assert all(i.date.tzinfo is None for i in items)
    assert store.find_item("cest").date == datetime(2024, 1, 1, 11)


def test_duplicate_item_insert_raises_storage_error(store):
    store.insert_item(_email("dup"))
    with pytest.raises(StorageError) as excinfo:
        store.insert_item(_email("dup"))
    assert isinstance(excinfo.value.__cause__, sqlite3.Error)


# ---------------------------------------------------------------------------
# Threads
# ---------------------------------------------------------------------------


def test_write_thread_persists_everything(store):
    thread = _write(store, [_email("e1"), _email("e2", day=2)])
    stored = store.find_thread(thread.id)
    assert stored == thread
    assert store.find_thread_by_key("t-1") == thread
    assert [i.thread_id for i in store.find_items(thread.item_ids)] == [thread.id, thread.id]
    assert store.count_chunks_by_thread(thread.id) == 1


def test_find_or_create_thread(store):
    thread = threads.build([_email("e1")])
    created = store.find_or_create_thread(thread)
    assert created.id == thread.id

    other = threads.build([_email("e2")])
    existing = store.find_or_create_thread(other)
    assert existing.id == thread.id
    assert len(store.list_threads()) == 1


def test_update_thread(store):
    thread = _write(store, [_email("e1")])
    thread.item_ids = ["e1", "e9"]
    thread.snippet = "changed"
    store.update_thread(thread)
    assert store.find_thread(thread.id).item_ids == ["e1", "e9"]
    assert store.find_thread(thread.id).snippet == "changed"


def test_list_threads_filtered(store):
    _write(store, [_email("e1")])
    _write(store, [document_item("d1", "Doc", "text", datetime(2024, 1, 1))])
    assert len(store.list_threads()) == 2
    assert [t.type for t in store.list_threads(ContentType.DOCUMENT)] == [ContentType.DOCUMENT]


def test_delete_thread_cascades(store):
    thread = _write(store, [_email("e1"), _email("e2")])
    store.delete_thread(thread.id)
    assert store.find_thread(thread.id) is None
    assert store.find_items(["e1", "e2"]) == []
    assert store.get_chunks_by_thread(thread.id) == []
    assert store._query(f"SELECT COUNT(*) FROM {VEC_TABLE}")[0][0] == 0


def test_delete_thread_keep_items(store):
    thread = _write(store, [_email("e1")])
    store.delete_thread(thread.id, delete_items=False)
    item = store.find_item("e1")
    assert item is not None
    assert item.thread_id is None


def test_delete_unknown_thread_is_noop(store):
    store.delete_thread("missing")


def test_delete_item_updates_thread(store):
    thread = _write(store, [_email("e1"), _email("e2")])
    store.delete_item("e1")
    assert store.find_item("e1") is None
    assert store.find_thread(thread.id).item_ids == ["e2"]
    assert store.count_chunks_by_thread(thread.id) == 1


def test_delete_last_item_removes_thread(store):
    thread = _write(store, [_email("e1")])
    store.delete_items(["e1", "unknown"])
    assert store.find_thread(thread.id) is None
    assert store.count_chunks_by_thread(thread.id) == 0
    assert store.stats()["threads"] == 0


# ---------------------------------------------------------------------------
# Chunks
# ---------------------------------------------------------------------------


def test_chunks_ordered_with_embeddings(store):
    thread = threads.build([_email("e1")])
    store.insert_thread(thread)
    for index in (2, 0, 1):
        store.insert_chunk(
            ThreadChunk(
                thread_id=thread.id,
                parent_ids=["e1"],
                type=ContentType.EMAIL,
                content=f"chunk {index}",
                embedding=_vec(float(index), 0.5),
                chunk_index=index,
                start_position=index * 10,
                end_position=index * 10 + 10,
            )
        )
    chunks = store.get_chunks_by_thread(thread.id)
    assert [c.chunk_index for c in chunks] == [0, 1, 2]
    assert chunks[2].embedding == _vec(2.0, 0.5)
    assert store.get_representative_chunk(thread.id).content == "chunk 0"


def test_insert_chunk_wrong_width(store):
    thread = threads.build([_email("e1")])
    store.insert_thread(thread)
    with pytest.raises(DimensionMismatch):
        store.insert_chunk(
            ThreadChunk(thread.id, ["e1"], ContentType.EMAIL, "x", [1.0, 2.0], 0, 0, 1)
        )


def test_write_thread_replaces_chunks(store):
    thread = _write(store, [_email("e1")])
    chunk = ThreadChunk(thread.id, ["e1"], ContentType.EMAIL, "new", _vec(0.0, 1.0), 0, 0, 3)
    store.write_thread(thread, [], [chunk])
    chunks = store.get_chunks_by_thread(thread.id)
    assert [c.content for c in chunks] == ["new"]


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------


def test_write_thread_rolls_back_on_failure(store):
    thread = threads.build([_email("e1")])
    bad_chunk = ThreadChunk(thread.id, ["e1"], ContentType.EMAIL, "x", [1.0], 0, 0, 1)
    with pytest.raises(DimensionMismatch):
        store.write_thread(thread, [_email("e1")], [bad_chunk])
    assert store.find_thread(thread.id) is None
    assert store.find_item("e1") is None


def test_nested_transaction_rolls_back_at_outermost(store):
    with pytest.raises(RuntimeError):
        with store.transaction():
            store.insert_item(_email("e1"))
            with store.transaction():
                store.insert_item(_email("e2"))
            raise RuntimeError("boom")
    assert store.find_items(["e1", "e2"]) == []


def test_transaction_commits(store):
    with store.transaction():
        store.insert_item(_email("e1"))
    assert store.find_item("e1") is not None


# ---------------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------------


def test_search_orders_by_distance_and_limits(store):
    near = _write(store, [_email("e1", "near")], _vec(1.0))
    mid = _write(store, [_email("e2", "mid")], _vec(0.5, 0.5))
    far = _write(store, [_email("e3", "far")], _vec(0.0, 1.0))

    hits = store.search(_vec(1.0), k=2)
    assert [h.thread_id for h in hits] == [near.id, mid.id]
    assert hits[0].distance <= hits[1].distance

    hits = store.search(_vec(1.0), k=10)
    assert [h.thread_id for h in hits] == [near.id, mid.id, far.id]


def test_search_non_positive_k(store):
    _write(store, [_email("e1")])
    assert store.search(_vec(1.0), k=0) == []
    assert store.search(_vec(1.0), k=-3) == []


def test_search_empty_store(store):
    assert store.search(_vec(1.0), k=5) == []


def test_search_only_representative_chunks(store):
    thread = threads.build([_email("e1")])
    store.insert_thread(thread)
    store.insert_chunk(ThreadChunk(thread.id, ["e1"], ContentType.EMAIL, "a", _vec(0.0, 1.0), 0, 0, 1))
    store.insert_chunk(ThreadChunk(thread.id, ["e1"], ContentType.EMAIL, "b", _vec(1.0), 1, 1, 2))
    hits = store.search(_vec(1.0), k=5)
    assert len(hits) == 1
    assert hits[0].distance == pytest.approx(2 ** 0.5, rel=1e-5)


def test_search_type_filter_inside_knn(store):
    # Five near emails must not crowd out the single document when filtering
    for n in range(5):
        _write(store, [_email(f"e{n}", f"k{n}")], _vec(1.0, 0.01 * n))
    doc = _write(store, [document_item("d1", "D", "far away", datetime(2024, 1, 1))], _vec(0.0, 1.0))

    hits = store.search(_vec(1.0), k=1, type_filter=[ContentType.DOCUMENT])
    assert [h.thread_id for h in hits] == [doc.id]
    assert hits[0].type is ContentType.DOCUMENT

    mixed = store.search(_vec(1.0), k=10, type_filter=[ContentType.DOCUMENT, ContentType.EMAIL])
    assert len(mixed) == 6
    assert mixed[-1].thread_id == doc.id


def test_search_wrong_query_width(store):
    with pytest.raises(DimensionMismatch):
        store.search([1.0, 2.0], k=1)


# ---------------------------------------------------------------------------
# Maintenance
# ---------------------------------------------------------------------------


def test_stats_counts(store):
    _write(store, [_email("e1"), _email("e2")])
    _write(store, [note_item("n1", "N", "note", datetime(2024, 1, 1))])
    assert store.stats() == {
        "threads": 2,
        "chunks": 2,
        "documents": 0,
        "messages": 0,
        "emails": 2,
        "notes": 1,
    }


def test_reset_empties_store(store):
    _write(store, [_email("e1")])
    store.reset()
    assert all(v == 0 for v in store.stats().values())
    _write(store, [_email("e2")])
    assert store.stats()["threads"] == 1


def test_thread_model_fields(store):
    thread = Thread(
        id="t-x",
        type=ContentType.NOTE,
        item_ids=[],
        thread_key="n-x",
        snippet="",
        content="",
        created=datetime(2024, 2, 2),
    )
    store.insert_thread(thread)
    assert store.find_thread("t-x") == thread


def test_cosine_search_skips_zero_vectors(tmp_path):
    with IndexStore.open(tmp_path / "cosine.db", DIMS, metric="cosine") as cosine:
        blank = _write(cosine, [_email("e0", "blank")], [0.0] * DIMS)
        near = _write(cosine, [_email("e1", "near")], _vec(1.0))
        far = _write(cosine, [_email("e2", "far")], _vec(0.0, 1.0))

        hits = cosine.search(_vec(1.0), k=10)
        assert [h.thread_id for h in hits] == [near.id, far.id]
        assert blank.id not in {h.thread_id for h in hits}
        assert all(h.distance is not None for h in hits)

        hits = cosine.search(_vec(1.0), k=10, type_filter=[ContentType.EMAIL])
        assert [h.thread_id for h in hits] == [near.id, far.id]

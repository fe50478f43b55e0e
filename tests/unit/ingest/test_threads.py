"""Tests for grouping items into threads."""

from __future__ import annotations

from datetime import datetime

import pytest

from threadvault.db.models import ContentType, document_item, email_item, message_item
from threadvault.errors import InconsistentThreadKey, InconsistentThreadType
from threadvault.ingest.threads import build, group


def _email(id: str, key: str = "t-1", subject: str = "Trip", day: int = 1):
    return email_item(id, key, subject, "ann@example.com", "bob@example.com",
                      f"content {id}", datetime(2024, 5, day))


def test_group_preserves_first_seen_order():
    items = [_email("a", "k1"), _email("b", "k2"), _email("c", "k1")]
    groups = group(items)
    assert list(groups) == ["k1", "k2"]
    assert [i.id for i in groups["k1"]] == ["a", "c"]


def test_group_collapses_duplicate_ids():
    groups = group([_email("a"), _email("a"), _email("b")])
    assert [i.id for i in groups["t-1"]] == ["a", "b"]


def test_group_empty():
    assert group([]) == {}


def test_build_email_thread():
    thread = build([_email("a", subject="Trip plans", day=3), _email("b", subject="Re: Trip", day=4)])
    assert thread.type is ContentType.EMAIL
    assert thread.item_ids == ["a", "b"]
    assert thread.thread_key == "t-1"
    assert thread.snippet == "Trip plans"
    assert thread.content == "content a\n\n----\n\ncontent b"
    assert thread.created == datetime(2024, 5, 3)
    assert len(thread.id) == 36


def test_build_keeps_input_order():
    thread = build([_email("late", day=9), _email("early", day=2)])
    assert thread.item_ids == ["late", "early"]
    assert thread.content == "content late\n\n----\n\ncontent early"
    assert thread.created == datetime(2024, 5, 9)


def test_build_message_snippet_is_display_name():
    thread = build([message_item("m1", "hey", datetime(2024, 1, 1), contact="Bob")])
    assert thread.snippet == "Bob"


def test_build_document_snippet():
    thread = build([document_item("d1", "Doc", "Some content", datetime(2024, 1, 1))])
    assert thread.snippet == "Some content"


def test_build_reuses_id_and_created():
    created = datetime(2020, 1, 1)
    thread = build([_email("a")], thread_id="fixed", created=created)
    assert (thread.id, thread.created) == ("fixed", created)


def test_build_rejects_mixed_keys():
    with pytest.raises(InconsistentThreadKey) as excinfo:
        build([_email("a", "k1"), _email("b", "k2")])
    assert (excinfo.value.expected, excinfo.value.found) == ("k1", "k2")


def test_build_rejects_mixed_types():
    doc = document_item("t-1", "Doc", "x", datetime(2024, 1, 1))
    with pytest.raises(InconsistentThreadType):
        build([_email("a", "t-1"), doc])


def test_build_rejects_empty():
    with pytest.raises(ValueError):
        build([])


def test_every_thread_from_group_has_single_key():
    items = [_email(f"e{n}", f"k{n % 3}") for n in range(10)]
    for key, members in group(items).items():
        thread = build(members)
        assert thread.thread_key == key
        assert {i.thread_key for i in members} == {key}

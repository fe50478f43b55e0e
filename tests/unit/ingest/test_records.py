"""Tests for turning JSON import records into items."""

from __future__ import annotations

import json
from datetime import datetime

import pytest

from threadvault.db.models import ContentType, EmailMeta, MessageMeta, NoteMeta
from threadvault.db.store import IndexStore
from threadvault.errors import RecordError
from threadvault.ingest.records import item_from_record, load_items


def test_email_record():
    item = item_from_record(
        {
            "type": "email",
            "id": "e1",
            "thread_key": "t-42",
            "subject": "Lunch",
            "sender": "Ann <ann@example.com>",
            "recipient": "me@example.com",
            "content": "Noon?",
            "date": "2024-05-01T12:00:00",
            "labels": ["INBOX"],
        }
    )
    assert item.type is ContentType.EMAIL
    assert item.thread_key == "t-42"
    assert item.date == datetime(2024, 5, 1, 12, 0)
    assert isinstance(item.metadata, EmailMeta)
    assert item.metadata.labels == ("INBOX",)


def test_message_record():
    item = item_from_record(
        {"type": "message", "id": "m1", "text": "hey", "date": "2024-05-01T08:00:00",
         "contact": "Bob", "is_from_me": True}
    )
    assert item.thread_key == "Bob"
    assert isinstance(item.metadata, MessageMeta)
    assert item.metadata.is_from_me is True


def test_message_record_needs_thread_key():
    with pytest.raises(RecordError, match="contact or chat_id"):
        item_from_record({"type": "message", "id": "m1", "text": "x", "date": "2024-05-01"})


def test_note_record_uses_modified():
    item = item_from_record(
        {"type": "note", "id": "n1", "content": "list", "modified": "2024-02-02T10:00:00",
         "created": "2024-01-01T09:00:00", "folder": "Home"}
    )
    assert item.date == datetime(2024, 2, 2, 10, 0)
    assert isinstance(item.metadata, NoteMeta)
    assert item.metadata.created == datetime(2024, 1, 1, 9, 0)
    assert item.title == "Untitled Note"


def test_document_record():
    item = item_from_record(
        {"type": "Document", "id": "d1", "title": "Plan", "content": "x", "date": "2024-01-01"}
    )
    assert item.type is ContentType.DOCUMENT


@pytest.mark.parametrize(
    "record,match",
    [
        ({"type": "fax", "id": "x"}, "Unknown record type"),
        ({"type": "document", "content": "x", "date": "2024-01-01"}, "missing 'id'"),
        ({"type": "document", "id": "d", "content": "x", "date": "yesterday"}, "bad date"),
        ({"type": "email", "id": "e", "content": "x", "date": "2024-01-01"}, "thread_key"),
    ],
)
def test_bad_records(record, match):
    with pytest.raises(RecordError, match=match):
        item_from_record(record)


def test_load_items(tmp_path):
    path = tmp_path / "items.json"
    path.write_text(
        json.dumps([{"type": "document", "id": "d1", "content": "x", "date": "2024-01-01"}]),
        encoding="utf-8",
    )
    assert [i.id for i in load_items(path)] == ["d1"]


@pytest.mark.parametrize("payload", ["{not json", '{"type": "document"}', "[1, 2]"])
def test_load_items_rejects_bad_files(tmp_path, payload):
    path = tmp_path / "items.json"
    path.write_text(payload, encoding="utf-8")
    with pytest.raises(RecordError):
        load_items(path)


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("2024-03-01T09:00:00", datetime(2024, 3, 1, 9, 0)),
        ("2024-03-01T09:00:00Z", datetime(2024, 3, 1, 9, 0)),
        ("2024-03-01T11:00:00+02:00", datetime(2024, 3, 1, 9, 0)),
        ("2024-03-01T01:30:00-07:30", datetime(2024, 3, 1, 9, 0)),
    ],
)
def test_dates_become_naive_utc(raw, expected):
    item = item_from_record({"type": "document", "id": "d", "content": "x", "date": raw})
    assert item.date == expected
    assert item.date.tzinfo is None


def test_mixed_timezone_records_list_in_date_order(tmp_path):
    path = tmp_path / "items.json"
    path.write_text(
        json.dumps(
            [
                {"type": "document", "id": "naive", "content": "a", "date": "2024-01-01T10:00:00"},
                {"type": "document", "id": "zulu", "content": "b", "date": "2024-01-01T11:00:00Z"},
                {"type": "note", "id": "offset", "content": "c",
                 "modified": "2024-01-01T10:30:00+01:00", "created": "2024-01-01T08:00:00+01:00"},
            ]
        ),
        encoding="utf-8",
    )
    with IndexStore.open(tmp_path / "store.db", 8) as store:
        for item in load_items(path):
            store.insert_item(item)
        assert [i.id for i in store.list_items()] == ["zulu", "naive", "offset"]
        assert store.find_item("offset").metadata.created == datetime(2024, 1, 1, 7, 0)

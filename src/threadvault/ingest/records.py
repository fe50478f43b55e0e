"""Turn JSON import records into Items.

A record is a flat object with a ``type`` field (document, message, email,
note) plus the fields of the matching item factory. Dates are ISO 8601
strings. Example::

    {"type": "email", "id": "e1", "thread_key": "t-42", "subject": "Lunch",
     "sender": "Ann <ann@example.com>", "recipient": "me@example.com",
     "content": "Noon?", "date": "2024-05-01T12:00:00", "labels": ["INBOX"]}
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from datetime import datetime
from pathlib import Path
from typing import Any

from threadvault.db.models import (
    ContentType,
    Item,
    document_item,
    email_item,
    message_item,
    naive_utc,
    note_item,
)
from threadvault.errors import RecordError


def item_from_record(record: Mapping[str, Any]) -> Item:
    """Build an Item from one import record.

    Raises:
        RecordError: If the type is unknown or a required field is missing.
    """
    try:
        content_type = ContentType(str(record.get("type", "")).lower())
    except ValueError:
        raise RecordError(f"Unknown record type: {record.get('type')!r}") from None

    item_id = _required(record, "id")
    if content_type is ContentType.DOCUMENT:
        return document_item(
            id=item_id,
            title=str(record.get("title", "")),
            content=_required(record, "content"),
            date=_date(record, "date"),
        )
    if content_type is ContentType.MESSAGE:
        contact = str(record.get("contact", ""))
        chat_id = str(record.get("chat_id", ""))
        if not contact and not chat_id:
            raise RecordError(f"Message {item_id!r} needs a contact or chat_id")
        return message_item(
            id=item_id,
            text=_required(record, "text"),
            date=_date(record, "date"),
            contact=contact,
            chat_name=str(record.get("chat_name", "")),
            chat_id=chat_id,
            is_from_me=bool(record.get("is_from_me", False)),
            service=str(record.get("service", "iMessage")),
            original_id=str(record.get("original_id", "")),
        )
    if content_type is ContentType.EMAIL:
        return email_item(
            id=item_id,
            thread_key=_required(record, "thread_key"),
            subject=str(record.get("subject", "")),
            sender=str(record.get("sender", "")),
            recipient=str(record.get("recipient", "")),
            content=_required(record, "content"),
            date=_date(record, "date"),
            labels=tuple(record.get("labels") or ()),
            original_id=str(record.get("original_id", "")),
        )
    created = record.get("created")
    return note_item(
        id=item_id,
        title=str(record.get("title", "")),
        content=_required(record, "content"),
        modified=_date(record, "modified" if "modified" in record else "date"),
        folder=str(record.get("folder", "")),
        created=_date(record, "created") if created else None,
        snippet=record.get("snippet"),
        original_id=str(record.get("original_id", "")),
    )


def load_items(path: Path) -> list[Item]:
    """Read a JSON file holding a list of records."""
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise RecordError(f"'{path}' is not valid JSON: {exc}") from exc
    if not isinstance(data, list):
        raise RecordError(f"'{path}' must contain a JSON list of item records")
    items = []
    for index, record in enumerate(data):
        if not isinstance(record, dict):
            raise RecordError(f"Record {index} in '{path}' is not an object")
        items.append(item_from_record(record))
    return items


def _required(record: Mapping[str, Any], key: str) -> str:
    value = record.get(key)
    if value is None:
        raise RecordError(f"Record {record.get('id', '?')!r} is missing '{key}'")
    return str(value)


def _date(record: Mapping[str, Any], key: str) -> datetime:
    raw = _required(record, key)
    try:
        parsed = datetime.fromisoformat(raw[:-1] + "+00:00" if raw.endswith("Z") else raw)
    except ValueError as exc:
        raise RecordError(f"Record {record.get('id', '?')!r}: bad {key} {raw!r}") from exc
    return naive_utc(parsed)

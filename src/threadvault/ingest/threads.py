"""Group imported items into threads.

Items sharing an external ``thread_key`` (a contact, an email thread id, or the
item's own id for documents and notes) form one Thread. Building is pure: the
ingestion pipeline persists the result and rewrites each item's ``thread_id``.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable, Sequence
from datetime import datetime

from threadvault.db.models import ContentType, Item, MessageMeta, Thread, join_contents
from threadvault.errors import InconsistentThreadKey, InconsistentThreadType


def group(items: Iterable[Item]) -> dict[str, list[Item]]:
    """Group *items* by ``thread_key``, keeping first-seen order inside each group.

    An item id seen twice within a group keeps only its first occurrence.
    """
    groups: dict[str, list[Item]] = {}
    seen: dict[str, set[str]] = {}
    for item in items:
        ids = seen.setdefault(item.thread_key, set())
        if item.id in ids:
            continue
        ids.add(item.id)
        groups.setdefault(item.thread_key, []).append(item)
    return groups


def build(
    items: Sequence[Item],
    thread_id: str | None = None,
    created: datetime | None = None,
) -> Thread:
    """Build a Thread from the items of one group, in the given order.

    Args:
        items: Items of a single thread.
        thread_id: Reuse this system id (appending to a stored thread);
            a new uuid4 is generated otherwise.
        created: Override the creation date (defaults to the first item's date).

    Raises:
        ValueError: If *items* is empty.
        InconsistentThreadKey: If the items do not all share the first item's key.
        InconsistentThreadType: If the items are not all of one content type.
    """
    if not items:
        raise ValueError("Cannot build a thread from zero items")

    first = items[0]
    for item in items[1:]:
        if item.thread_key != first.thread_key:
            raise InconsistentThreadKey(first.thread_key, item.thread_key)
        if item.type is not first.type:
            raise InconsistentThreadType(
                f"Thread {first.thread_key!r} mixes {first.type.value} and {item.type.value} items"
            )

    return Thread(
        id=thread_id or str(uuid.uuid4()),
        type=first.type,
        item_ids=[item.id for item in items],
        thread_key=first.thread_key,
        snippet=_snippet(first),
        content=join_contents([item.content for item in items]),
        created=created or first.date,
    )


def _snippet(first: Item) -> str:
    if first.type is ContentType.EMAIL:
        return first.title or first.snippet
    if first.type is ContentType.MESSAGE and isinstance(first.metadata, MessageMeta):
        return first.metadata.display_name or first.snippet
    return first.snippet

"""Domain models for the threadvault database layer.

Items carry a typed metadata variant per content type instead of an open
string-keyed bag. All models are plain value objects built on read and
discarded after use.
"""

from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Union

_THREAD_SEPARATOR = "\n\n----\n\n"


def naive_utc(value: datetime) -> datetime:
    """Return *value* as naive UTC; naive input is returned unchanged."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class ContentType(str, enum.Enum):
    DOCUMENT = "document"
    MESSAGE = "message"
    EMAIL = "email"
    NOTE = "note"

    @property
    def display_name(self) -> str:
        return self.value.capitalize()

    @property
    def table_name(self) -> str:
        """Name of the content table holding items of this type."""
        return f"{self.value}s"


# ---------------------------------------------------------------------------
# Typed metadata
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DocumentMeta:
    pass


@dataclass(frozen=True)
class MessageMeta:
    original_id: str = ""
    is_from_me: bool = False
    service: str = ""
    contact: str = ""
    chat_id: str = ""
    chat_name: str = ""

    @property
    def display_name(self) -> str:
        return self.chat_name or self.contact or self.chat_id


@dataclass(frozen=True)
class EmailMeta:
    original_id: str = ""
    sender: str = ""
    recipient: str = ""
    labels: tuple[str, ...] = ()

    @property
    def sender_name(self) -> str:
        """Name part of a ``"Name <addr>"`` sender, or the raw sender."""
        if "<" in self.sender:
            name = self.sender.split("<", 1)[0].strip()
            return name or self.sender
        return self.sender

    @property
    def is_inbox(self) -> bool:
        return "INBOX" in self.labels


@dataclass(frozen=True)
class NoteMeta:
    original_id: str = ""
    folder: str = ""
    created: datetime | None = None


ItemMeta = Union[DocumentMeta, MessageMeta, EmailMeta, NoteMeta]

_META_TYPES: dict[ContentType, type] = {
    ContentType.DOCUMENT: DocumentMeta,
    ContentType.MESSAGE: MessageMeta,
    ContentType.EMAIL: EmailMeta,
    ContentType.NOTE: NoteMeta,
}


# ---------------------------------------------------------------------------
# Core entities
# ---------------------------------------------------------------------------


@dataclass
class Item:
    """One imported unit of content.

    ``thread_key`` is the external grouping key (contact, email thread id, or
    the item's own id). ``thread_id`` is the system Thread id and is only set
    once the item has been threaded by the ingestion pipeline.
    """

    id: str
    type: ContentType
    title: str
    content: str
    embeddable_text: str
    snippet: str
    date: datetime
    thread_key: str
    metadata: ItemMeta = field(default_factory=DocumentMeta)
    thread_id: str | None = None

    def __post_init__(self) -> None:
        self.date = naive_utc(self.date)
        expected = _META_TYPES[self.type]
        if not isinstance(self.metadata, expected):
            raise TypeError(
                f"{self.type.value} item requires {expected.__name__}, "
                f"got {type(self.metadata).__name__}"
            )

    @property
    def display_title(self) -> str:
        if not self.title:
            return f"{self.type.display_name} • {self.date:%b %d, %Y %H:%M}"
        return self.title


@dataclass
class Thread:
    id: str
    type: ContentType
    item_ids: list[str]
    thread_key: str
    snippet: str
    content: str
    created: datetime

    def __post_init__(self) -> None:
        self.created = naive_utc(self.created)


@dataclass
class ThreadChunk:
    thread_id: str
    parent_ids: list[str]
    type: ContentType
    content: str
    embedding: list[float]
    chunk_index: int
    start_position: int
    end_position: int
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @property
    def is_representative(self) -> bool:
        return self.chunk_index == 0


@dataclass(frozen=True)
class VectorHit:
    """One row of a k-NN query: a thread's representative chunk and its distance."""

    thread_id: str
    type: ContentType
    distance: float


@dataclass
class SearchResult:
    thread_chunk: ThreadChunk
    thread: Thread
    items: list[Item]
    distance: float

    @property
    def similarity(self) -> float:
        """Display score in (0, 1]; ranking always uses ``distance``."""
        return max(0.0, 1.0 / (1.0 + self.distance))

    @property
    def similarity_percentage(self) -> str:
        return f"{self.similarity * 100:.1f}%"


# ---------------------------------------------------------------------------
# Item factories (type-specific record -> Item)
# ---------------------------------------------------------------------------


def preview(text: str, max_length: int) -> str:
    """Return *text* truncated to *max_length* characters with a trailing ellipsis."""
    if len(text) <= max_length:
        return text
    return text[:max_length] + "..."


def document_item(id: str, title: str, content: str, date: datetime) -> Item:
    return Item(
        id=id,
        type=ContentType.DOCUMENT,
        title=title,
        content=content,
        embeddable_text=f"{title}\n\n{content}",
        snippet=preview(content, 200),
        date=date,
        thread_key=id,
        metadata=DocumentMeta(),
    )


def message_item(
    id: str,
    text: str,
    date: datetime,
    contact: str = "",
    chat_name: str = "",
    chat_id: str = "",
    is_from_me: bool = False,
    service: str = "iMessage",
    original_id: str = "",
) -> Item:
    """Build a message item; messages thread by contact (falling back to chat id)."""
    meta = MessageMeta(
        original_id=original_id,
        is_from_me=is_from_me,
        service=service,
        contact=contact,
        chat_id=chat_id,
        chat_name=chat_name,
    )
    return Item(
        id=id,
        type=ContentType.MESSAGE,
        title=meta.display_name,
        content=text,
        embeddable_text=text,
        snippet=preview(text, 100),
        date=date,
        thread_key=contact or chat_id,
        metadata=meta,
    )


def email_item(
    id: str,
    thread_key: str,
    subject: str,
    sender: str,
    recipient: str,
    content: str,
    date: datetime,
    labels: tuple[str, ...] | list[str] = (),
    original_id: str = "",
) -> Item:
    return Item(
        id=id,
        type=ContentType.EMAIL,
        title=subject,
        content=content,
        embeddable_text=f"{subject}\n\n{content}",
        snippet=preview(content, 200),
        date=date,
        thread_key=thread_key,
        metadata=EmailMeta(
            original_id=original_id,
            sender=sender,
            recipient=recipient,
            labels=tuple(labels),
        ),
    )


def note_item(
    id: str,
    title: str,
    content: str,
    modified: datetime,
    folder: str = "",
    created: datetime | None = None,
    snippet: str | None = None,
    original_id: str = "",
) -> Item:
    display_title = title or "Untitled Note"
    return Item(
        id=id,
        type=ContentType.NOTE,
        title=display_title,
        content=content,
        embeddable_text=f"{display_title}\n\n{content}",
        snippet=snippet or preview(content, 200),
        date=modified,
        thread_key=id,
        metadata=NoteMeta(
            original_id=original_id,
            folder=folder,
            created=naive_utc(created) if created else None,
        ),
    )


def join_contents(contents: list[str]) -> str:
    """Concatenate item contents into a thread body."""
    return _THREAD_SEPARATOR.join(contents)

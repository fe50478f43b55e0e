"""Tool-facing text surface for an LLM agent.

Two tools are exposed: ``semantic_search`` finds threads by meaning and
``get_full_thread`` dumps one conversation. Both return plain text the agent
reads back; errors are reported in the text rather than raised, so a failed
lookup never aborts the agent's turn.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from threadvault.db.models import ContentType, EmailMeta, Item, MessageMeta, naive_utc
from threadvault.errors import ThreadVaultError
from threadvault.rag.retriever import RetrievalService

logger = logging.getLogger(__name__)

SEMANTIC_SEARCH_DESCRIPTION = (
    "search through documents, emails, messages, and notes using semantic similarity. "
    "finds content based on meaning, not just keywords."
)
GET_FULL_THREAD_DESCRIPTION = (
    "get the complete conversation thread for an email chain or message conversation. "
    "shows full context."
)

_MAX_LIMIT = 10
_PREVIEW_CHARS = 150


def semantic_search(
    service: RetrievalService,
    query: str,
    limit: int = 5,
    now: datetime | None = None,
    type_filter: list[ContentType] | None = None,
) -> str:
    """Run a search and format the results for the agent.

    *limit* is clamped to 1..10. *type_filter* restricts the content types searched.
    """
    limit = max(1, min(limit, _MAX_LIMIT))
    try:
        results = service.search(query, k=limit, type_filter=type_filter)
    except ThreadVaultError as exc:
        logger.warning("semantic_search failed for %r: %s", query, exc)
        return f"error searching: {exc}"

    if not results:
        return f"no results found for: '{query}'"

    noun = "item" if len(results) == 1 else "items"
    header = f'search results for: "{query}"\nfound {len(results)} relevant {noun}\n\n'
    entries = []
    for index, result in enumerate(results, start=1):
        item = result.items[0] if result.items else None
        if item is None:
            entries.append(f"[{index}]: {result.thread.snippet}\nthread id: {result.thread.id}")
            continue
        content = item.content[:_PREVIEW_CHARS]
        if len(item.content) > _PREVIEW_CHARS:
            content += "..."
        entries.append(
            f"[{index}]: {result.thread.snippet}\n"
            f"from: {_search_sender(item)} - {format_date(item.date, now)}\n"
            f"content: {content}\n"
            f"thread id: {result.thread.id} (use getFullThread for complete conversation)"
        )
    text = header + "\n\n".join(entries)
    if len(results) == 1:
        text += "\n\nuse getFullThread to see the complete conversation?"
    return text


def get_full_thread(
    service: RetrievalService,
    thread_id: str,
    item_count: int | None = None,
    now: datetime | None = None,
) -> str:
    """Format the items of one thread, oldest first."""
    try:
        items = service.get_full_thread(thread_id, item_count)
    except ThreadVaultError as exc:
        logger.warning("get_full_thread failed for %r: %s", thread_id, exc)
        return f"error retrieving thread: {exc}"

    if not items:
        return f"thread is empty or not found: '{thread_id}'"

    kind = items[0].type.value
    plural = "" if len(items) == 1 else "s"
    header = f"thread contents ({len(items)} {kind}{plural}):\n\n"
    blocks = []
    for item in items:
        subject = f"subject: {item.title}\n" if item.type is ContentType.EMAIL and item.title else ""
        blocks.append(
            f"--- {format_date(item.date, now)} ---\n"
            f"from: {_thread_sender(item)}\n"
            f"{subject}{item.content}"
        )
    return header + "\n\n".join(blocks)


def format_date(date: datetime, now: datetime | None = None) -> str:
    """Human-relative timestamp: today, yesterday, weekday, else month-day with time."""
    now = now or naive_utc(datetime.now(timezone.utc))
    if date.date() == now.date():
        return f"today {date:%I:%M %p}".replace(" 0", " ")
    if date.date() == (now - timedelta(days=1)).date():
        return f"yesterday {date:%I:%M %p}".replace(" 0", " ")
    if date.isocalendar()[:2] == now.isocalendar()[:2]:
        return f"{date:%A %I:%M %p}".replace(" 0", " ")
    return f"{date:%b} {date.day}, {date:%I:%M %p}".replace(", 0", ", ")


def _search_sender(item: Item) -> str:
    meta = item.metadata
    if isinstance(meta, EmailMeta):
        if meta.sender_name != meta.sender:
            return meta.sender_name
        local = meta.sender.split("@", 1)[0] if meta.sender else ""
        return local.capitalize() if local else "unknown"
    if isinstance(meta, MessageMeta):
        return meta.contact or "unknown"
    return item.type.value


def _thread_sender(item: Item) -> str:
    meta = item.metadata
    if isinstance(meta, EmailMeta):
        return meta.sender or "unknown"
    if isinstance(meta, MessageMeta):
        return "me" if meta.is_from_me else (meta.contact or "them")
    return "document"


def tool_definitions() -> list[dict]:
    """Function-calling schemas (OpenAI / LiteLLM ``tools=`` format) for both tools."""
    return [
        {
            "type": "function",
            "function": {
                "name": "semanticSearch",
                "description": SEMANTIC_SEARCH_DESCRIPTION,
                "parameters": {
                    "type": "object",
                    "properties": {
                        "query": {
                            "type": "string",
                            "description": "natural language query to search for based on meaning and context",
                        },
                        "limit": {
                            "type": "integer",
                            "description": "maximum number of results to return, between 1 and 10",
                        },
                    },
                    "required": ["query", "limit"],
                },
            },
        },
        {
            "type": "function",
            "function": {
                "name": "getFullThread",
                "description": GET_FULL_THREAD_DESCRIPTION,
                "parameters": {
                    "type": "object",
                    "properties": {
                        "threadId": {
                            "type": "string",
                            "description": "the thread id to retrieve the full conversation for",
                        },
                        "itemCount": {
                            "type": "integer",
                            "description": "the amount of items in the conversation to find",
                        },
                    },
                    "required": ["threadId"],
                },
            },
        },
    ]

"""Fixed-window chunker with overlap.

Windows are measured in characters. The embedding model truncates its input at
its own token limit, and 512 characters stay well inside a 512-token window for
any tokenizer, so every window is embedded in full. Offsets always index the
source string: ``text[w.start:w.end] == w.text``.
"""

from __future__ import annotations

import math
from collections.abc import Iterator
from typing import NamedTuple

from threadvault.errors import InvalidChunkConfig

DEFAULT_WINDOW_SIZE = 512
DEFAULT_OVERLAP = 128


class TextWindow(NamedTuple):
    text: str
    start: int
    end: int


class ChunkWindows:
    """Lazy, restartable sequence of windows over one text.

    Each iteration starts a fresh generator; no state survives between passes.
    """

    def __init__(self, text: str, window_size: int, overlap: int) -> None:
        self._text = text
        self._window_size = window_size
        self._step = window_size - overlap

    def __iter__(self) -> Iterator[TextWindow]:
        text = self._text
        length = len(text)
        pos = 0
        while pos < length:
            end = min(pos + self._window_size, length)
            yield TextWindow(text[pos:end], pos, end)
            if end >= length:
                break
            pos += self._step

    def __len__(self) -> int:
        return window_count(len(self._text), self._window_size, self._window_size - self._step)

    def __repr__(self) -> str:
        return f"ChunkWindows(len={len(self)}, window_size={self._window_size}, step={self._step})"


def window_count(length: int, window_size: int, overlap: int) -> int:
    """Number of windows ``chunk()`` yields for a text of *length* characters."""
    if length == 0:
        return 0
    if length <= window_size:
        return 1
    return 1 + math.ceil((length - window_size) / (window_size - overlap))


def validate_window(window_size: int, overlap: int) -> None:
    """Raise InvalidChunkConfig unless the window advances on every step."""
    if window_size < 1:
        raise InvalidChunkConfig(f"window_size must be >= 1, got {window_size}")
    if overlap < 0:
        raise InvalidChunkConfig(f"overlap must be >= 0, got {overlap}")
    if overlap >= window_size:
        raise InvalidChunkConfig(
            f"overlap ({overlap}) must be smaller than window_size ({window_size})"
        )


def chunk(
    text: str,
    window_size: int = DEFAULT_WINDOW_SIZE,
    overlap: int = DEFAULT_OVERLAP,
) -> ChunkWindows:
    """Split *text* into overlapping windows of at most *window_size* characters.

    The window advances by ``window_size - overlap`` each step and the last
    window is clipped to the text length. Empty text yields no windows.

    Raises:
        InvalidChunkConfig: If ``overlap >= window_size`` or either value is out of range.
    """
    validate_window(window_size, overlap)
    return ChunkWindows(text, window_size, overlap)


class Chunker:
    """Chunker bound to one validated window / overlap pair.

    Default: 512 characters / 128 characters overlap.
    """

    def __init__(self, window_size: int = DEFAULT_WINDOW_SIZE, overlap: int = DEFAULT_OVERLAP) -> None:
        validate_window(window_size, overlap)
        self.window_size = window_size
        self.overlap = overlap

    def chunk(self, text: str) -> ChunkWindows:
        return ChunkWindows(text, self.window_size, self.overlap)

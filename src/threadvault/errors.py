"""Exception hierarchy for threadvault.

Configuration errors are fatal at startup. Storage errors surface to the caller
of the failing operation. A missing row is never an error: lookups return
``None`` or an empty list instead.
"""

from __future__ import annotations


class ThreadVaultError(Exception):
    """Base class for all threadvault errors."""


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class ConfigError(ThreadVaultError, ValueError):
    """Raised when configuration is invalid or inconsistent with the store."""


class InvalidChunkConfig(ConfigError):
    """Raised when the chunk window / overlap pair cannot produce progress."""


class DimensionMismatch(ConfigError):
    """Raised when a vector width disagrees with the store's configured width."""


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------


class StorageError(ThreadVaultError):
    """Raised when a SQLite statement fails (I/O, binding, constraint)."""


class MalformedBlob(StorageError):
    """Raised when a stored vector blob cannot be decoded."""


# ---------------------------------------------------------------------------
# Threading / ingestion
# ---------------------------------------------------------------------------


class ThreadBuildError(ThreadVaultError, ValueError):
    """Raised when a set of items cannot form a single thread."""


class InconsistentThreadKey(ThreadBuildError):
    """Raised when items passed to one thread carry different thread keys."""

    def __init__(self, expected: str, found: str) -> None:
        super().__init__(
            f"All items in a thread must share a thread_key: expected {expected!r}, got {found!r}"
        )
        self.expected = expected
        self.found = found


class InconsistentThreadType(ThreadBuildError):
    """Raised when items passed to one thread are of different content types."""


class EmbeddingError(ThreadVaultError):
    """Raised when the embedding collaborator returns an unusable vector."""


class IngestCancelled(ThreadVaultError):
    """Raised inside a per-thread task once the import has been cancelled."""


class RecordError(ThreadVaultError, ValueError):
    """Raised when an import record cannot be turned into an Item."""

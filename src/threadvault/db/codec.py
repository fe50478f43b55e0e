"""Float32 vector <-> blob codec.

sqlite-vec accepts vectors as a flat little-endian float32 blob, 4 bytes per
component, which is also how ``vec0`` returns stored vectors.
"""

from __future__ import annotations

import struct
from collections.abc import Sequence

from threadvault.errors import DimensionMismatch, MalformedBlob

_FLOAT_SIZE = 4


def encode(vector: Sequence[float]) -> bytes:
    """Pack *vector* as little-endian float32 values in index order."""
    return struct.pack(f"<{len(vector)}f", *vector)


def decode(blob: bytes, dimensions: int | None = None) -> list[float]:
    """Unpack a little-endian float32 blob.

    Raises:
        MalformedBlob: If the blob length is not a multiple of 4, or does not
            match *dimensions* when given.
    """
    if len(blob) % _FLOAT_SIZE:
        raise MalformedBlob(f"Vector blob length {len(blob)} is not a multiple of {_FLOAT_SIZE}")
    count = len(blob) // _FLOAT_SIZE
    if dimensions is not None and count != dimensions:
        raise MalformedBlob(f"Vector blob holds {count} floats, expected {dimensions}")
    return list(struct.unpack(f"<{count}f", blob))


class VectorCodec:
    """Codec bound to one fixed vector width."""

    def __init__(self, dimensions: int) -> None:
        if dimensions < 1:
            raise ValueError(f"dimensions must be >= 1, got {dimensions}")
        self.dimensions = dimensions

    def encode(self, vector: Sequence[float]) -> bytes:
        if len(vector) != self.dimensions:
            raise DimensionMismatch(
                f"Vector has {len(vector)} dimensions, store expects {self.dimensions}"
            )
        return encode(vector)

    def decode(self, blob: bytes) -> list[float]:
        return decode(blob, self.dimensions)

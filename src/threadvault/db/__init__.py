"""threadvault storage layer."""

from threadvault.db.codec import VectorCodec, decode, encode
from threadvault.db.connection import Database
from threadvault.db.schema import SCHEMA_VERSION, initialize
from threadvault.db.store import IndexStore
from threadvault.db.vectors import VEC_TABLE, ensure_vec_table

__all__ = [
    "Database",
    "IndexStore",
    "SCHEMA_VERSION",
    "VEC_TABLE",
    "VectorCodec",
    "decode",
    "encode",
    "ensure_vec_table",
    "initialize",
]

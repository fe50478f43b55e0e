"""threadvault ingest pipeline: threading, chunking, embedding, persistence."""

from threadvault.ingest.chunker import Chunker, chunk
from threadvault.ingest.embedder import Embedder, EmbeddingConfig, LiteLLMEmbedder
from threadvault.ingest.pipeline import ImportReport, IngestionPipeline, ThreadFailure

__all__ = [
    "Chunker",
    "Embedder",
    "EmbeddingConfig",
    "ImportReport",
    "IngestionPipeline",
    "LiteLLMEmbedder",
    "ThreadFailure",
    "chunk",
]

"""Embedding collaborator: LiteLLM embeddings with a fixed output width.

The default model runs locally through Ollama (``ollama/all-minilm``, 384
dimensions), so nothing leaves the machine unless a hosted provider is
configured explicitly.
"""

from __future__ import annotations

import math
import os
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

import litellm

from threadvault.errors import ConfigError, DimensionMismatch, EmbeddingError

_PROVIDER_KEYS = {
    "openai": "OPENAI_API_KEY",
    "cohere": "COHERE_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "voyage": "VOYAGE_API_KEY",
}


@runtime_checkable
class Embedder(Protocol):
    """Anything that turns text into fixed-width float vectors."""

    dimensions: int

    def embed(self, text: str) -> list[float]: ...

    def embed_batch(self, texts: Sequence[str]) -> list[list[float]]: ...


@dataclass
class EmbeddingConfig:
    """Configuration for embedding generation."""

    model: str = "ollama/all-minilm"
    dimensions: int = 384
    api_base: str | None = None


class LiteLLMEmbedder:
    """Embed text via ``litellm.embedding()``.

    Empty or whitespace-only input maps to the zero vector without a model
    call. Every returned vector is checked for width and finiteness.

    Args:
        config: Embedding configuration (model, dimensions, api_base).
    """

    def __init__(self, config: EmbeddingConfig | None = None) -> None:
        self._config = config or EmbeddingConfig()
        self.dimensions = self._config.dimensions
        self.model = self._config.model
        self._check_api_key()

    def embed(self, text: str) -> list[float]:
        return self.embed_batch([text])[0]

    def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        """Embed *texts* in one request; blanks are filled with zero vectors."""
        results: list[list[float] | None] = [None] * len(texts)
        pending = [(i, t) for i, t in enumerate(texts) if t.strip()]
        for i, t in enumerate(texts):
            if not t.strip():
                results[i] = [0.0] * self.dimensions

        if pending:
            kwargs = {"model": self.model, "input": [t for _, t in pending]}
            if self._config.api_base:
                kwargs["api_base"] = self._config.api_base
            try:
                response = litellm.embedding(**kwargs)
            except Exception as exc:
                raise EmbeddingError(f"Embedding request to '{self.model}' failed: {exc}") from exc
            for (i, _), entry in zip(pending, response.data):
                results[i] = self._validate(entry["embedding"])

        return [r for r in results if r is not None]

    # ------------------------------------------------------------------
    # Validation helpers
    # ------------------------------------------------------------------

    def _validate(self, vector: Sequence[float]) -> list[float]:
        if len(vector) != self.dimensions:
            raise DimensionMismatch(
                f"Model '{self.model}' returned {len(vector)}-dimensional vectors, "
                f"configured for {self.dimensions}"
            )
        values = [float(v) for v in vector]
        if not all(math.isfinite(v) for v in values):
            raise EmbeddingError(f"Model '{self.model}' returned a non-finite embedding")
        return values

    def _check_api_key(self) -> None:
        """Raise ConfigError if no API key is available for a hosted provider."""
        provider = self.model.split("/")[0].lower() if "/" in self.model else ""
        required_env = _PROVIDER_KEYS.get(provider)
        if required_env and not os.environ.get(required_env):
            raise ConfigError(
                f"No API key found for provider '{provider}'. "
                f"Set the {required_env} environment variable."
            )


def check_dimensions(embedder: Embedder, dimensions: int) -> None:
    """Raise DimensionMismatch unless *embedder* produces *dimensions*-wide vectors."""
    if embedder.dimensions != dimensions:
        raise DimensionMismatch(
            f"Embedder produces {embedder.dimensions}-dimensional vectors, "
            f"store expects {dimensions}"
        )

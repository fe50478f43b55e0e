"""Tests for the LiteLLM embedding collaborator."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from threadvault.errors import ConfigError, DimensionMismatch, EmbeddingError
from threadvault.ingest.embedder import (
    Embedder,
    EmbeddingConfig,
    LiteLLMEmbedder,
    check_dimensions,
)


def _response(*vectors: list[float]) -> MagicMock:
    mock = MagicMock()
    mock.data = [{"embedding": v} for v in vectors]
    return mock


def _embedder(dims: int = 3) -> LiteLLMEmbedder:
    return LiteLLMEmbedder(EmbeddingConfig(model="ollama/all-minilm", dimensions=dims))


def test_embedding_config_defaults():
    cfg = EmbeddingConfig()
    assert cfg.model == "ollama/all-minilm"
    assert cfg.dimensions == 384
    assert cfg.api_base is None


def test_satisfies_protocol():
    assert isinstance(_embedder(), Embedder)


def test_embed_batch_single_request():
    with patch(
        "threadvault.ingest.embedder.litellm.embedding",
        return_value=_response([0.1, 0.2, 0.3], [1.0, 0.0, 0.0]),
    ) as mock_embed:
        vectors = _embedder().embed_batch(["alpha", "beta"])
    assert vectors == [[0.1, 0.2, 0.3], [1.0, 0.0, 0.0]]
    mock_embed.assert_called_once_with(model="ollama/all-minilm", input=["alpha", "beta"])


def test_blank_text_is_zero_vector_without_call():
    with patch("threadvault.ingest.embedder.litellm.embedding") as mock_embed:
        assert _embedder().embed("   ") == [0.0, 0.0, 0.0]
    mock_embed.assert_not_called()


def test_blank_entries_keep_positions():
    with patch(
        "threadvault.ingest.embedder.litellm.embedding",
        return_value=_response([1.0, 1.0, 1.0]),
    ) as mock_embed:
        vectors = _embedder().embed_batch(["", "text", "\n"])
    assert vectors == [[0.0] * 3, [1.0, 1.0, 1.0], [0.0] * 3]
    assert mock_embed.call_args.kwargs["input"] == ["text"]


def test_api_base_forwarded():
    embedder = LiteLLMEmbedder(
        EmbeddingConfig(model="ollama/all-minilm", dimensions=3, api_base="http://gpu:11434")
    )
    with patch(
        "threadvault.ingest.embedder.litellm.embedding", return_value=_response([0.0, 0.0, 1.0])
    ) as mock_embed:
        embedder.embed("x")
    assert mock_embed.call_args.kwargs["api_base"] == "http://gpu:11434"


def test_wrong_width_raises():
    with patch("threadvault.ingest.embedder.litellm.embedding", return_value=_response([0.1, 0.2])):
        with pytest.raises(DimensionMismatch):
            _embedder().embed("text")


def test_non_finite_raises():
    with patch(
        "threadvault.ingest.embedder.litellm.embedding",
        return_value=_response([0.1, float("nan"), 0.3]),
    ):
        with pytest.raises(EmbeddingError):
            _embedder().embed("text")


def test_provider_failure_wrapped():
    with patch(
        "threadvault.ingest.embedder.litellm.embedding", side_effect=RuntimeError("connection refused")
    ):
        with pytest.raises(EmbeddingError, match="connection refused"):
            _embedder().embed("text")


def test_hosted_provider_requires_key(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    with pytest.raises(ConfigError, match="OPENAI_API_KEY"):
        LiteLLMEmbedder(EmbeddingConfig(model="openai/text-embedding-3-small", dimensions=1536))


def test_hosted_provider_with_key(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    embedder = LiteLLMEmbedder(EmbeddingConfig(model="openai/text-embedding-3-small", dimensions=1536))
    assert embedder.dimensions == 1536


def test_check_dimensions(embedder):
    check_dimensions(embedder, embedder.dimensions)
    with pytest.raises(DimensionMismatch):
        check_dimensions(embedder, embedder.dimensions + 1)

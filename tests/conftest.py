"""Shared pytest fixtures."""

from __future__ import annotations

import hashlib
import math
import re
from collections.abc import Sequence
from pathlib import Path

import pytest
import yaml

from threadvault.db.store import IndexStore

DIMS = 64

_WORD_RE = re.compile(r"[a-z0-9]+")


class HashingEmbedder:
    """Deterministic bag-of-words embedder: texts sharing words land close together.

    Each lowercase word is hashed into one of ``dimensions`` buckets; the count
    vector is L2-normalised. Blank text maps to the zero vector.
    """

    def __init__(self, dimensions: int = DIMS) -> None:
        self.dimensions = dimensions
        self.calls: list[list[str]] = []

    def embed(self, text: str) -> list[float]:
        return self.embed_batch([text])[0]

    def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        return [self._vector(t) for t in texts]

    def _vector(self, text: str) -> list[float]:
        vec = [0.0] * self.dimensions
        for word in _WORD_RE.findall(text.lower()):
            bucket = int(hashlib.md5(word.encode("utf-8")).hexdigest(), 16) % self.dimensions
            vec[bucket] += 1.0
        norm = math.sqrt(sum(v * v for v in vec))
        if norm == 0.0:
            return vec
        return [v / norm for v in vec]


@pytest.fixture
def embedder() -> HashingEmbedder:
    return HashingEmbedder()


@pytest.fixture
def store(tmp_path: Path):
    """File-based IndexStore in tmp_path, closed after the test."""
    s = IndexStore.open(tmp_path / "store.db", DIMS)
    yield s
    s.close()


@pytest.fixture
def cli_project(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, embedder: HashingEmbedder) -> Path:
    """A project directory set up for CLI tests.

    CWD is the project, the global config lives under tmp_path, the project
    config uses the hashing embedder's width and the CLI builds that embedder
    instead of calling LiteLLM.
    """
    project = tmp_path / "project"
    project.mkdir()
    monkeypatch.chdir(project)
    monkeypatch.delenv("THREADVAULT_DB", raising=False)
    monkeypatch.delenv("THREADVAULT_EMBEDDING_MODEL", raising=False)
    monkeypatch.setattr(
        "threadvault.config._GLOBAL_CONFIG_PATH", tmp_path / "global" / "config.yaml"
    )
    monkeypatch.setattr("threadvault.cli.common.make_embedder", lambda cfg: embedder)
    (project / "threadvault.yaml").write_text(
        yaml.safe_dump({"embedding": {"model": "test/hashing", "dimensions": DIMS}}),
        encoding="utf-8",
    )
    return project

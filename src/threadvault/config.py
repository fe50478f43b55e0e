"""threadvault configuration loader.

Priority (high to low):
  1. CLI flags              (handled at call site, not in this module)
  2. Environment variables  (THREADVAULT_DB, THREADVAULT_EMBEDDING_MODEL)
  3. Per-project threadvault.yaml
  4. Global ~/.threadvault/config.yaml  (model defaults only, no API keys)
  5. Hardcoded defaults

Global config must never contain API keys; use environment variables instead.
All YAML reads use yaml.safe_load().
"""

from __future__ import annotations

import os
import re
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from threadvault.db.schema import SCHEMA_VERSION
from threadvault.db.vectors import METRICS
from threadvault.errors import ConfigError
from threadvault.ingest.chunker import DEFAULT_OVERLAP, DEFAULT_WINDOW_SIZE, validate_window
from threadvault.ingest.embedder import EmbeddingConfig
from threadvault.ingest.pipeline import DEFAULT_MAX_WORKERS
from threadvault.rag.retriever import DEFAULT_TOP_K

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".threadvault"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
PROJECT_CONFIG_NAME: str = "threadvault.yaml"
DEFAULT_DB_NAME: str = ".threadvault.db"

# Key names that look like credentials; forbidden in global config.
# Does not match legitimate keys like top_k or max_workers.
_API_KEY_RE: re.Pattern[str] = re.compile(
    r"api[_\-]?(?:key|secret)"
    r"|_token$"
    r"|^token$"
    r"|_secret$"
    r"|^secret$"
    r"|passw(?:ord|d)"
    r"|credential",
    re.IGNORECASE,
)

_KNOWN_SECTIONS: frozenset[str] = frozenset(
    ["store", "embedding", "chunking", "ingest", "retrieval"]
)


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class StoreCfg:
    """Index store location and layout (threadvault.yaml: store:)."""

    path: str = DEFAULT_DB_NAME
    schema_version: int = SCHEMA_VERSION
    metric: str = "l2"


@dataclass
class EmbeddingCfg:
    """Embedding model configuration (threadvault.yaml: embedding:)."""

    model: str = "ollama/all-minilm"
    dimensions: int = 384
    api_base: str | None = None

    def to_embedding_config(self) -> EmbeddingConfig:
        return EmbeddingConfig(model=self.model, dimensions=self.dimensions, api_base=self.api_base)


@dataclass
class ChunkingCfg:
    """Window size and overlap in characters (threadvault.yaml: chunking:)."""

    window_size: int = DEFAULT_WINDOW_SIZE
    overlap: int = DEFAULT_OVERLAP


@dataclass
class IngestCfg:
    max_workers: int = DEFAULT_MAX_WORKERS


@dataclass
class RetrievalCfg:
    top_k: int = DEFAULT_TOP_K


@dataclass
class ThreadVaultConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    store: StoreCfg = field(default_factory=StoreCfg)
    embedding: EmbeddingCfg = field(default_factory=EmbeddingCfg)
    chunking: ChunkingCfg = field(default_factory=ChunkingCfg)
    ingest: IngestCfg = field(default_factory=IngestCfg)
    retrieval: RetrievalCfg = field(default_factory=RetrievalCfg)

    def db_path(self, project_dir: Path | None = None) -> Path:
        """Store path, resolved against *project_dir* when relative."""
        path = Path(self.store.path).expanduser()
        if path.is_absolute() or project_dir is None:
            return path
        return project_dir / path


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _check_no_api_keys(data: dict[str, Any], source: Path) -> None:
    """Raise ConfigError if *data* contains any API-key-like key names."""

    def _scan(obj: Any, path: str) -> None:
        if isinstance(obj, dict):
            for k, v in obj.items():
                full = f"{path}.{k}" if path else k
                if _API_KEY_RE.search(str(k)):
                    raise ConfigError(
                        f"Global config '{source}' contains a forbidden key '{full}'.\n"
                        f"  API keys must be set via environment variables, not config files.\n"
                        f"  Remove '{full}' from {source.name} and use:\n"
                        f"    export {str(k).upper().replace('-', '_')}=<value>"
                    )
                _scan(v, full)

    _scan(data, "")


def _warn_unknown_keys(data: dict[str, Any], source: Path) -> None:
    """Emit a UserWarning for unrecognised top-level keys."""
    for key in data:
        if key not in _KNOWN_SECTIONS:
            warnings.warn(
                f"Unknown config key '{key}' in '{source}', ignored.",
                UserWarning,
                stacklevel=4,
            )


def _read_yaml(path: Path) -> dict[str, Any]:
    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file '{path}' must contain a mapping at the top level")
    return data


def _validate(cfg: ThreadVaultConfig) -> None:
    if cfg.store.metric not in METRICS:
        raise ConfigError(
            f"store.metric must be one of {sorted(METRICS)}, got '{cfg.store.metric}'"
        )
    if cfg.store.schema_version < 1:
        raise ConfigError(f"store.schema_version must be >= 1, got {cfg.store.schema_version}")
    if cfg.embedding.dimensions < 1:
        raise ConfigError(f"embedding.dimensions must be >= 1, got {cfg.embedding.dimensions}")
    if cfg.ingest.max_workers < 1:
        raise ConfigError(f"ingest.max_workers must be >= 1, got {cfg.ingest.max_workers}")
    if cfg.retrieval.top_k < 1:
        raise ConfigError(f"retrieval.top_k must be >= 1, got {cfg.retrieval.top_k}")
    validate_window(cfg.chunking.window_size, cfg.chunking.overlap)


# ---------------------------------------------------------------------------
# Merge + build
# ---------------------------------------------------------------------------


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return a new dict that is *base* deep-merged with *override*."""
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


def _cfg_from_dict(data: dict[str, Any]) -> ThreadVaultConfig:
    """Build a *ThreadVaultConfig* from a merged raw YAML dict."""
    cfg = ThreadVaultConfig()

    try:
        if "store" in data:
            s = data["store"] or {}
            cfg.store = StoreCfg(
                path=str(s.get("path", cfg.store.path)),
                schema_version=int(s.get("schema_version", cfg.store.schema_version)),
                metric=str(s.get("metric", cfg.store.metric)).lower(),
            )

        if "embedding" in data:
            e = data["embedding"] or {}
            cfg.embedding = EmbeddingCfg(
                model=str(e.get("model", cfg.embedding.model)),
                dimensions=int(e.get("dimensions", cfg.embedding.dimensions)),
                api_base=e.get("api_base") or cfg.embedding.api_base,
            )

        if "chunking" in data:
            c = data["chunking"] or {}
            cfg.chunking = ChunkingCfg(
                window_size=int(c.get("window_size", cfg.chunking.window_size)),
                overlap=int(c.get("overlap", cfg.chunking.overlap)),
            )

        if "ingest" in data:
            i = data["ingest"] or {}
            cfg.ingest = IngestCfg(max_workers=int(i.get("max_workers", cfg.ingest.max_workers)))

        if "retrieval" in data:
            r = data["retrieval"] or {}
            cfg.retrieval = RetrievalCfg(top_k=int(r.get("top_k", cfg.retrieval.top_k)))
    except (TypeError, ValueError, AttributeError) as exc:
        raise ConfigError(f"Invalid config value: {exc}") from exc

    return cfg


def _apply_env_overrides(cfg: ThreadVaultConfig) -> ThreadVaultConfig:
    """Apply THREADVAULT_* environment variable overrides."""
    if path := os.environ.get("THREADVAULT_DB"):
        cfg.store.path = path
    if model := os.environ.get("THREADVAULT_EMBEDDING_MODEL"):
        cfg.embedding.model = model
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> ThreadVaultConfig:
    """Load and return a merged *ThreadVaultConfig*.

    Applies layers in order: global, per-project, env vars.
    CLI flag overrides must be applied by the caller after this function.

    Args:
        project_dir: Directory to search for *threadvault.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Raises:
        ConfigError: If global config contains API-key-like fields or any
            value is out of range.
        InvalidChunkConfig: If the chunking window is inconsistent.
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    search_dir = project_dir if project_dir is not None else Path.cwd()

    merged: dict[str, Any] = {}

    if global_path.exists():
        raw_global = _read_yaml(global_path)
        _check_no_api_keys(raw_global, global_path)
        _warn_unknown_keys(raw_global, global_path)
        merged = _deep_merge(merged, raw_global)

    project_cfg_path = search_dir / PROJECT_CONFIG_NAME
    if project_cfg_path.exists():
        raw_project = _read_yaml(project_cfg_path)
        _warn_unknown_keys(raw_project, project_cfg_path)
        merged = _deep_merge(merged, raw_project)

    cfg = _apply_env_overrides(_cfg_from_dict(merged))
    _validate(cfg)
    return cfg


def write_project_config(project_dir: Path, cfg: ThreadVaultConfig | None = None) -> Path:
    """Write *cfg* (defaults if None) to ``<project_dir>/threadvault.yaml``."""
    cfg = cfg or ThreadVaultConfig()
    data: dict[str, Any] = {
        "store": {
            "path": cfg.store.path,
            "schema_version": cfg.store.schema_version,
            "metric": cfg.store.metric,
        },
        "embedding": {"model": cfg.embedding.model, "dimensions": cfg.embedding.dimensions},
        "chunking": {"window_size": cfg.chunking.window_size, "overlap": cfg.chunking.overlap},
        "ingest": {"max_workers": cfg.ingest.max_workers},
        "retrieval": {"top_k": cfg.retrieval.top_k},
    }
    if cfg.embedding.api_base:
        data["embedding"]["api_base"] = cfg.embedding.api_base
    target = project_dir / PROJECT_CONFIG_NAME
    target.write_text(yaml.safe_dump(data, sort_keys=False), encoding="utf-8")
    return target


def ensure_global_config(
    global_config_path: Path | None = None,
) -> Path:
    """Create ``~/.threadvault/config.yaml`` with defaults if it does not exist.

    The directory is created with mode 0o700 and the file with mode 0o600.
    """
    target = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    target.parent.mkdir(mode=0o700, parents=True, exist_ok=True)

    if not target.exists():
        content = (
            "# threadvault global configuration: model defaults only.\n"
            "# NEVER store API keys here, use environment variables:\n"
            "#   export OPENAI_API_KEY=sk-...\n"
            "\n"
            "embedding:\n"
            "  model: ollama/all-minilm\n"
            "  dimensions: 384\n"
        )
        target.write_text(content, encoding="utf-8")
        target.chmod(0o600)

    return target

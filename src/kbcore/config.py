"""kbcore configuration loader.

Priority (high → low):
  1. CLI flags           (handled at call site — not in this module)
  2. Environment variables  (KBCORE_EMBEDDING_MODEL, KBCORE_EXTRACTION_MODEL,
                             KBCORE_DB, KBCORE_DISTANCE_THRESHOLD)
  3. Per-project kbcore.yaml
  4. Global ~/.kbcore/config.yaml  (model defaults only — no API keys)
  5. Hardcoded defaults

Global config must never contain API keys; use environment variables instead.
All YAML reads use yaml.safe_load() — never yaml.load().

The distance threshold here is only the *seed* value: the live value is a
process-wide setting stored in the corpus database (see
kbcore.rag.settings.RetrievalConfigStore).
"""

from __future__ import annotations

import os
import re
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".kbcore"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "kbcore.yaml"

# Fields that suggest an API key — forbidden in global config.
# Does NOT match legitimate config keys like max_tokens or top_k.
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
    ["storage", "embedding", "extraction", "chunking", "indexing", "retrieval"]
)

MIN_DISTANCE_THRESHOLD = 0.0
MAX_DISTANCE_THRESHOLD = 1.5


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(ValueError):
    """Raised when a config file contains an invalid or forbidden value."""


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class StorageCfg:
    """Where the corpus database and uploaded objects live (kbcore.yaml: storage:)."""

    db_path: str = ".kbcore.db"
    object_root: str = ".kbcore-objects"


@dataclass
class EmbeddingCfg:
    """Embedding model configuration (kbcore.yaml: embedding:)."""

    model: str = "gemini/text-embedding-004"
    dimensions: int = 768
    batch_size: int = 100
    timeout: float = 120.0
    num_retries: int = 3


@dataclass
class ExtractionCfg:
    """Generative document extraction (kbcore.yaml: extraction:)."""

    model: str = "gemini/gemini-1.5-flash"
    native_pdf: bool = False
    timeout: float = 600.0
    num_retries: int = 2


@dataclass
class ChunkingCfg:
    """Sliding-window chunk size and overlap, in characters."""

    chunk_size: int = 1000
    overlap: int = 100


@dataclass
class IndexingCfg:
    """Per-transaction chunk cap for writes and purge pages."""

    batch_size: int = 400


@dataclass
class RetrievalCfg:
    """Retrieval configuration (kbcore.yaml: retrieval:)."""

    distance_threshold: float = 0.7
    candidate_k: int = 20
    top_k: int = 5
    config_cache_ttl: float = 30.0


@dataclass
class KbConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    storage: StorageCfg = field(default_factory=StorageCfg)
    embedding: EmbeddingCfg = field(default_factory=EmbeddingCfg)
    extraction: ExtractionCfg = field(default_factory=ExtractionCfg)
    chunking: ChunkingCfg = field(default_factory=ChunkingCfg)
    indexing: IndexingCfg = field(default_factory=IndexingCfg)
    retrieval: RetrievalCfg = field(default_factory=RetrievalCfg)


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
                f"Unknown config key '{key}' in '{source}' — ignored.",
                UserWarning,
                stacklevel=4,
            )


def _validate(cfg: KbConfig) -> None:
    if cfg.chunking.chunk_size < 1:
        raise ConfigError(f"chunking.chunk_size must be >= 1, got {cfg.chunking.chunk_size}")
    if not 0 <= cfg.chunking.overlap < cfg.chunking.chunk_size:
        raise ConfigError(
            "chunking.overlap must be >= 0 and smaller than chunking.chunk_size "
            f"(got overlap={cfg.chunking.overlap}, chunk_size={cfg.chunking.chunk_size})"
        )
    if cfg.indexing.batch_size < 1:
        raise ConfigError(f"indexing.batch_size must be >= 1, got {cfg.indexing.batch_size}")
    if cfg.embedding.dimensions < 1:
        raise ConfigError(f"embedding.dimensions must be >= 1, got {cfg.embedding.dimensions}")
    if cfg.retrieval.candidate_k < cfg.retrieval.top_k:
        raise ConfigError(
            "retrieval.candidate_k must be >= retrieval.top_k "
            f"(got {cfg.retrieval.candidate_k} < {cfg.retrieval.top_k})"
        )


def clamp_threshold(value: float) -> float:
    """Clamp a distance threshold into [0.0, 1.5]."""
    return max(MIN_DISTANCE_THRESHOLD, min(MAX_DISTANCE_THRESHOLD, float(value)))


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


def _cfg_from_dict(data: dict[str, Any]) -> KbConfig:
    """Build a *KbConfig* from a merged raw YAML dict."""
    cfg = KbConfig()

    if "storage" in data:
        s = data["storage"]
        cfg.storage = StorageCfg(
            db_path=str(s.get("db_path", cfg.storage.db_path)),
            object_root=str(s.get("object_root", cfg.storage.object_root)),
        )

    if "embedding" in data:
        e = data["embedding"]
        cfg.embedding = EmbeddingCfg(
            model=str(e.get("model", cfg.embedding.model)),
            dimensions=int(e.get("dimensions", cfg.embedding.dimensions)),
            batch_size=int(e.get("batch_size", cfg.embedding.batch_size)),
            timeout=float(e.get("timeout", cfg.embedding.timeout)),
            num_retries=int(e.get("num_retries", cfg.embedding.num_retries)),
        )

    if "extraction" in data:
        x = data["extraction"]
        cfg.extraction = ExtractionCfg(
            model=str(x.get("model", cfg.extraction.model)),
            native_pdf=bool(x.get("native_pdf", cfg.extraction.native_pdf)),
            timeout=float(x.get("timeout", cfg.extraction.timeout)),
            num_retries=int(x.get("num_retries", cfg.extraction.num_retries)),
        )

    if "chunking" in data:
        c = data["chunking"]
        cfg.chunking = ChunkingCfg(
            chunk_size=int(c.get("chunk_size", cfg.chunking.chunk_size)),
            overlap=int(c.get("overlap", cfg.chunking.overlap)),
        )

    if "indexing" in data:
        i = data["indexing"]
        cfg.indexing = IndexingCfg(
            batch_size=int(i.get("batch_size", cfg.indexing.batch_size)),
        )

    if "retrieval" in data:
        r = data["retrieval"]
        cfg.retrieval = RetrievalCfg(
            distance_threshold=clamp_threshold(
                r.get("distance_threshold", cfg.retrieval.distance_threshold)
            ),
            candidate_k=int(r.get("candidate_k", cfg.retrieval.candidate_k)),
            top_k=int(r.get("top_k", cfg.retrieval.top_k)),
            config_cache_ttl=float(
                r.get("config_cache_ttl", cfg.retrieval.config_cache_ttl)
            ),
        )

    return cfg


def _apply_env_overrides(cfg: KbConfig) -> KbConfig:
    """Apply KBCORE_* environment variable overrides."""
    if model := os.environ.get("KBCORE_EMBEDDING_MODEL"):
        cfg.embedding.model = model
    if model := os.environ.get("KBCORE_EXTRACTION_MODEL"):
        cfg.extraction.model = model
    if db_path := os.environ.get("KBCORE_DB"):
        cfg.storage.db_path = db_path
    if threshold := os.environ.get("KBCORE_DISTANCE_THRESHOLD"):
        try:
            cfg.retrieval.distance_threshold = clamp_threshold(float(threshold))
        except ValueError as exc:
            raise ConfigError(
                f"KBCORE_DISTANCE_THRESHOLD must be a number, got '{threshold}'"
            ) from exc
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> KbConfig:
    """Load and return a merged *KbConfig*.

    Applies layers in order: global → per-project → env vars.
    CLI flag overrides must be applied by the caller after this function.

    Args:
        project_dir: Directory to search for *kbcore.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Raises:
        ConfigError: If global config contains API-key-like fields, or a value
            violates a chunking / indexing / retrieval constraint.
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    search_dir = project_dir if project_dir is not None else Path.cwd()

    merged: dict[str, Any] = {}

    if global_path.exists():
        raw_global = yaml.safe_load(global_path.read_text(encoding="utf-8")) or {}
        _check_no_api_keys(raw_global, global_path)
        _warn_unknown_keys(raw_global, global_path)
        merged = _deep_merge(merged, raw_global)

    project_cfg_path = search_dir / _PROJECT_CONFIG_NAME
    if project_cfg_path.exists():
        raw_project = yaml.safe_load(project_cfg_path.read_text(encoding="utf-8")) or {}
        _warn_unknown_keys(raw_project, project_cfg_path)
        merged = _deep_merge(merged, raw_project)

    cfg = _cfg_from_dict(merged)
    cfg = _apply_env_overrides(cfg)
    _validate(cfg)
    return cfg


def write_project_config(project_dir: Path, overwrite: bool = False) -> Path:
    """Write a commented ``kbcore.yaml`` with defaults into *project_dir*.

    Returns the path. Existing files are kept unless *overwrite* is set.
    """
    target = project_dir / _PROJECT_CONFIG_NAME
    if target.exists() and not overwrite:
        return target
    defaults = KbConfig()
    content = (
        "# kbcore project configuration.\n"
        "# NEVER store API keys here — use environment variables:\n"
        "#   export GEMINI_API_KEY=...\n"
        "\n"
        "storage:\n"
        f"  db_path: {defaults.storage.db_path}\n"
        f"  object_root: {defaults.storage.object_root}\n"
        "\n"
        "embedding:\n"
        f"  model: {defaults.embedding.model}\n"
        f"  dimensions: {defaults.embedding.dimensions}\n"
        "\n"
        "extraction:\n"
        f"  model: {defaults.extraction.model}\n"
        "  native_pdf: false\n"
        "\n"
        "chunking:\n"
        f"  chunk_size: {defaults.chunking.chunk_size}\n"
        f"  overlap: {defaults.chunking.overlap}\n"
        "\n"
        "retrieval:\n"
        f"  distance_threshold: {defaults.retrieval.distance_threshold}\n"
        f"  candidate_k: {defaults.retrieval.candidate_k}\n"
        f"  top_k: {defaults.retrieval.top_k}\n"
    )
    target.write_text(content, encoding="utf-8")
    return target

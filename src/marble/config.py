"""Marble configuration loader.

Priority (high → low):
  1. CLI flags           (handled at call site, not in this module)
  2. Environment variables  (MARBLE_CHUNK_SIZE, MARBLE_CHUNK_OVERLAP, MARBLE_TOP_K,
                             MARBLE_EMBEDDING_MODEL, MARBLE_CHAT_MODEL,
                             MARBLE_VECTOR_GENERATION)
  3. Per-project marble.yaml  (next to .marble.db)
  4. Global ~/.marble/config.yaml  (model defaults only, no API keys)
  5. Hardcoded defaults

Global config must never contain API keys; use environment variables instead.
All YAML reads use yaml.safe_load(), never yaml.load().
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

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".marble"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "marble.yaml"

# Overlap below this loses cross-chunk context; the chunker itself accepts it.
MIN_RECOMMENDED_OVERLAP: int = 200

VECTOR_GENERATIONS: frozenset[str] = frozenset(["auto", "namespaced", "filtered"])

# Fields that suggest an API key are forbidden in global config.
# Does NOT match legitimate config keys like max_tokens or top_k.
_API_KEY_RE: re.Pattern[str] = re.compile(
    r"api[_\-]?(?:key|secret)"  # api_key, api-key, api_secret, apikey
    r"|_token$"                  # github_token, access_token, auth_token (suffix)
    r"|^token$"                  # exactly "token" (standalone)
    r"|_secret$"                 # my_secret, client_secret (suffix)
    r"|^secret$"                 # exactly "secret" (standalone)
    r"|passw(?:ord|d)"           # password, passwd
    r"|credential",              # credential, credentials
    re.IGNORECASE,
)

_KNOWN_SECTIONS: frozenset[str] = frozenset(
    ["embedding", "generation", "retrieval", "chunking", "vectors", "storage"]
)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(ValueError):
    """Raised when a config file contains an invalid or forbidden value."""


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class EmbeddingCfg:
    """Embedding model configuration (marble.yaml: embedding:).

    Attributes:
        model: LiteLLM embedding model string.
        dimensions: Vector size; must equal what the model returns.
        timeout: Request timeout in seconds for one embedding call.
    """

    model: str = "text-embedding-3-small"
    dimensions: int = 1536
    timeout: float = 60.0


@dataclass
class GenerationCfg:
    """Chat model configuration (marble.yaml: generation:)."""

    model: str = "gpt-4.1-mini"
    timeout: float = 60.0
    max_tokens: int = 1024


@dataclass
class RetrievalCfg:
    """Retrieval configuration (marble.yaml: retrieval:)."""

    top_k: int = 8


@dataclass
class ChunkingCfg:
    """Chunk window size and overlap, both in characters (marble.yaml: chunking:)."""

    chunk_size: int = 1500
    overlap: int = 200


@dataclass
class VectorsCfg:
    """Vector index configuration (marble.yaml: vectors:).

    Attributes:
        generation: 'namespaced', 'filtered', or 'auto' (probe the index once).
    """

    generation: str = "auto"


@dataclass
class StorageCfg:
    """Blob storage configuration (marble.yaml: storage:)."""

    blob_root: str = ".marble/blobs"


@dataclass
class MarbleConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    embedding: EmbeddingCfg = field(default_factory=EmbeddingCfg)
    generation: GenerationCfg = field(default_factory=GenerationCfg)
    retrieval: RetrievalCfg = field(default_factory=RetrievalCfg)
    chunking: ChunkingCfg = field(default_factory=ChunkingCfg)
    vectors: VectorsCfg = field(default_factory=VectorsCfg)
    storage: StorageCfg = field(default_factory=StorageCfg)


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
                f"Unknown config key '{key}' in '{source}'; ignored.",
                UserWarning,
                stacklevel=4,
            )


def validate_config(cfg: MarbleConfig) -> None:
    """Raise ConfigError for values the pipeline cannot run with.

    Overlap below MIN_RECOMMENDED_OVERLAP only warns.
    """
    if cfg.chunking.chunk_size < 1:
        raise ConfigError(f"chunking.chunk_size must be >= 1, got {cfg.chunking.chunk_size}")
    if cfg.chunking.overlap < 0:
        raise ConfigError(f"chunking.overlap must be >= 0, got {cfg.chunking.overlap}")
    if cfg.retrieval.top_k < 1:
        raise ConfigError(f"retrieval.top_k must be >= 1, got {cfg.retrieval.top_k}")
    if cfg.embedding.dimensions < 1:
        raise ConfigError(f"embedding.dimensions must be >= 1, got {cfg.embedding.dimensions}")
    if cfg.vectors.generation not in VECTOR_GENERATIONS:
        raise ConfigError(
            f"vectors.generation must be one of {sorted(VECTOR_GENERATIONS)}, "
            f"got '{cfg.vectors.generation}'"
        )
    if cfg.chunking.overlap < MIN_RECOMMENDED_OVERLAP:
        warnings.warn(
            f"chunking.overlap={cfg.chunking.overlap} is below {MIN_RECOMMENDED_OVERLAP}; "
            "neighbouring chunks will share little context.",
            UserWarning,
            stacklevel=3,
        )


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


def _cfg_from_dict(data: dict[str, Any]) -> MarbleConfig:
    """Build a *MarbleConfig* from a merged raw YAML dict."""
    cfg = MarbleConfig()

    if "embedding" in data:
        e = data["embedding"] or {}
        cfg.embedding = EmbeddingCfg(
            model=str(e.get("model", cfg.embedding.model)),
            dimensions=int(e.get("dimensions", cfg.embedding.dimensions)),
            timeout=float(e.get("timeout", cfg.embedding.timeout)),
        )

    if "generation" in data:
        g = data["generation"] or {}
        cfg.generation = GenerationCfg(
            model=str(g.get("model", cfg.generation.model)),
            timeout=float(g.get("timeout", cfg.generation.timeout)),
            max_tokens=int(g.get("max_tokens", cfg.generation.max_tokens)),
        )

    if "retrieval" in data:
        r = data["retrieval"] or {}
        cfg.retrieval = RetrievalCfg(top_k=int(r.get("top_k", cfg.retrieval.top_k)))

    if "chunking" in data:
        c = data["chunking"] or {}
        cfg.chunking = ChunkingCfg(
            chunk_size=int(c.get("chunk_size", cfg.chunking.chunk_size)),
            overlap=int(c.get("overlap", cfg.chunking.overlap)),
        )

    if "vectors" in data:
        v = data["vectors"] or {}
        cfg.vectors = VectorsCfg(generation=str(v.get("generation", cfg.vectors.generation)))

    if "storage" in data:
        s = data["storage"] or {}
        cfg.storage = StorageCfg(blob_root=str(s.get("blob_root", cfg.storage.blob_root)))

    return cfg


def _env_int(name: str, fallback: int) -> int:
    """Parse an integer env var; unset or unparseable values keep *fallback*."""
    raw = os.environ.get(name)
    if not raw:
        return fallback
    try:
        return int(raw.strip())
    except ValueError:
        return fallback


def _apply_env_overrides(cfg: MarbleConfig) -> MarbleConfig:
    """Apply MARBLE_* environment variable overrides (layer 2)."""
    cfg.chunking.chunk_size = _env_int("MARBLE_CHUNK_SIZE", cfg.chunking.chunk_size)
    cfg.chunking.overlap = _env_int("MARBLE_CHUNK_OVERLAP", cfg.chunking.overlap)
    cfg.retrieval.top_k = _env_int("MARBLE_TOP_K", cfg.retrieval.top_k)
    if model := os.environ.get("MARBLE_EMBEDDING_MODEL"):
        cfg.embedding.model = model
    if model := os.environ.get("MARBLE_CHAT_MODEL"):
        cfg.generation.model = model
    if generation := os.environ.get("MARBLE_VECTOR_GENERATION"):
        cfg.vectors.generation = generation.strip().lower()
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> MarbleConfig:
    """Load and return a merged *MarbleConfig*.

    Applies layers in order: global → per-project → env vars.
    CLI flag overrides must be applied by the caller after this function.

    Args:
        project_dir: Directory to search for *marble.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Returns:
        Fully merged and validated *MarbleConfig*.

    Raises:
        ConfigError: If global config contains API-key-like fields, or a value
            is out of range.
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    search_dir = project_dir if project_dir is not None else Path.cwd()

    merged: dict[str, Any] = {}

    # Layer 1: global config
    if global_path.exists():
        raw_global = yaml.safe_load(global_path.read_text(encoding="utf-8")) or {}
        _check_no_api_keys(raw_global, global_path)
        _warn_unknown_keys(raw_global, global_path)
        merged = _deep_merge(merged, raw_global)

    # Layer 2: per-project config
    project_cfg_path = search_dir / _PROJECT_CONFIG_NAME
    if project_cfg_path.exists():
        raw_project = yaml.safe_load(project_cfg_path.read_text(encoding="utf-8")) or {}
        _warn_unknown_keys(raw_project, project_cfg_path)
        merged = _deep_merge(merged, raw_project)

    try:
        cfg = _cfg_from_dict(merged)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid config value: {exc}") from exc

    # Layer 3: env var overrides
    cfg = _apply_env_overrides(cfg)

    validate_config(cfg)
    return cfg


def ensure_global_config(
    global_config_path: Path | None = None,
) -> Path:
    """Create ``~/.marble/config.yaml`` with defaults if it does not exist.

    Creates parent directory with mode 0o700 and the config file with
    mode 0o600 (owner-readable only).

    Args:
        global_config_path: Override path (for testing).

    Returns:
        Path to the global config file.
    """
    target = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    target.parent.mkdir(mode=0o700, parents=True, exist_ok=True)

    if not target.exists():
        content = (
            "# Marble global configuration: model defaults only.\n"
            "# NEVER store API keys here. Use environment variables:\n"
            "#   export OPENAI_API_KEY=sk-...\n"
            "\n"
            "embedding:\n"
            "  model: text-embedding-3-small\n"
            "  dimensions: 1536\n"
            "\n"
            "generation:\n"
            "  model: gpt-4.1-mini\n"
        )
        target.write_text(content, encoding="utf-8")
        target.chmod(0o600)

    return target

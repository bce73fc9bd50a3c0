"""vidask configuration loader.

Priority (high → low):
  1. CLI flags           (handled at call site — not in this module)
  2. Environment variables  (VIDASK_GENERATION_MODEL, VIDASK_EMBEDDING_MODEL)
  3. Per-project vidask.yaml  (current working directory)
  4. Global ~/.vidask/config.yaml  (model defaults only — no API keys)
  5. Hardcoded defaults

Global config must never contain API keys; use environment variables instead.
All YAML reads use yaml.safe_load() — never yaml.load().
"""

from __future__ import annotations

import os
import re
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from vidask.errors import VidaskError

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".vidask"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "vidask.yaml"

# Fields that suggest an API key; forbidden in global config.
# Does NOT match legitimate config keys like max_tokens or top_k.
_API_KEY_RE: re.Pattern[str] = re.compile(
    r"api[_\-]?(?:key|secret)"  # api_key, api-key, api_secret, apikey
    r"|_token$"                  # hf_token, access_token (suffix)
    r"|^token$"                  # exactly "token" (standalone)
    r"|_secret$"
    r"|^secret$"
    r"|passw(?:ord|d)"
    r"|credential",
    re.IGNORECASE,
)

_KNOWN_SECTIONS: frozenset[str] = frozenset(["embedding", "generation", "retrieval", "chunking"])

DEFAULT_GREETING_PATTERNS: tuple[str, ...] = (
    "hi",
    "hello",
    "hey",
    "greetings",
    "what's up",
    "how are you",
    "how's it going",
)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(VidaskError, ValueError):
    """Raised when a config file contains an invalid or forbidden value."""

    kind = "config"


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class EmbeddingCfg:
    """Embedding model configuration (vidask.yaml: embedding:).

    Attributes:
        model: LiteLLM embedding model string (provider/model format).
        dimensions: Expected vector length; ``None`` accepts whatever the model returns.
        num_retries: Transient-error retries inside the LiteLLM call.
    """

    model: str = "huggingface/sentence-transformers/all-MiniLM-L6-v2"
    dimensions: int | None = None
    num_retries: int = 3


@dataclass
class GenerationCfg:
    """Answer generation configuration (vidask.yaml: generation:)."""

    model: str = "groq/llama-3.3-70b-versatile"
    temperature: float = 0.5
    conversational_temperature: float = 0.7
    max_tokens: int = 1_000
    num_retries: int = 0


@dataclass
class RetrievalCfg:
    """Retrieval configuration (vidask.yaml: retrieval:).

    ``similarity_threshold`` and ``greeting_patterns`` are product heuristics,
    observed rather than derived; tune them per corpus.
    """

    top_k: int = 3
    similarity_threshold: float = 0.3
    history_turns: int = 5
    greeting_patterns: list[str] = field(default_factory=lambda: list(DEFAULT_GREETING_PATTERNS))
    source_preview_chars: int = 200


@dataclass
class ChunkingCfg:
    """Transcript chunking configuration (vidask.yaml: chunking:)."""

    target_words: int = 500
    overlap_segments: int = 1
    segments_per_window: int = 5
    min_chunk_chars: int = 10


@dataclass
class VidaskConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    embedding: EmbeddingCfg = field(default_factory=EmbeddingCfg)
    generation: GenerationCfg = field(default_factory=GenerationCfg)
    retrieval: RetrievalCfg = field(default_factory=RetrievalCfg)
    chunking: ChunkingCfg = field(default_factory=ChunkingCfg)


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


def _validate(cfg: VidaskConfig) -> None:
    """Raise ConfigError for values the pipeline cannot work with."""
    r = cfg.retrieval
    if r.top_k < 1:
        raise ConfigError(f"retrieval.top_k must be >= 1, got {r.top_k}")
    if not -1.0 <= r.similarity_threshold <= 1.0:
        raise ConfigError(
            f"retrieval.similarity_threshold must be in [-1, 1], got {r.similarity_threshold}"
        )
    if r.history_turns < 0:
        raise ConfigError(f"retrieval.history_turns must be >= 0, got {r.history_turns}")

    c = cfg.chunking
    if c.target_words < 1:
        raise ConfigError(f"chunking.target_words must be >= 1, got {c.target_words}")
    if c.segments_per_window < 2:
        raise ConfigError(
            f"chunking.segments_per_window must be >= 2, got {c.segments_per_window}"
        )
    if c.overlap_segments < 0:
        raise ConfigError(f"chunking.overlap_segments must be >= 0, got {c.overlap_segments}")

    dims = cfg.embedding.dimensions
    if dims is not None and dims < 1:
        raise ConfigError(f"embedding.dimensions must be >= 1, got {dims}")


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


def _cfg_from_dict(data: dict[str, Any]) -> VidaskConfig:
    """Build a *VidaskConfig* from a merged raw YAML dict."""
    cfg = VidaskConfig()

    try:
        if "embedding" in data:
            e = data["embedding"] or {}
            dims = e.get("dimensions", cfg.embedding.dimensions)
            cfg.embedding = EmbeddingCfg(
                model=str(e.get("model", cfg.embedding.model)),
                dimensions=int(dims) if dims is not None else None,
                num_retries=int(e.get("num_retries", cfg.embedding.num_retries)),
            )

        if "generation" in data:
            g = data["generation"] or {}
            cfg.generation = GenerationCfg(
                model=str(g.get("model", cfg.generation.model)),
                temperature=float(g.get("temperature", cfg.generation.temperature)),
                conversational_temperature=float(
                    g.get("conversational_temperature", cfg.generation.conversational_temperature)
                ),
                max_tokens=int(g.get("max_tokens", cfg.generation.max_tokens)),
                num_retries=int(g.get("num_retries", cfg.generation.num_retries)),
            )

        if "retrieval" in data:
            r = data["retrieval"] or {}
            patterns = r.get("greeting_patterns", cfg.retrieval.greeting_patterns)
            if not isinstance(patterns, list):
                raise TypeError(
                    f"retrieval.greeting_patterns must be a list, got {type(patterns).__name__}"
                )
            cfg.retrieval = RetrievalCfg(
                top_k=int(r.get("top_k", cfg.retrieval.top_k)),
                similarity_threshold=float(
                    r.get("similarity_threshold", cfg.retrieval.similarity_threshold)
                ),
                history_turns=int(r.get("history_turns", cfg.retrieval.history_turns)),
                greeting_patterns=[str(p) for p in patterns],
                source_preview_chars=int(
                    r.get("source_preview_chars", cfg.retrieval.source_preview_chars)
                ),
            )

        if "chunking" in data:
            c = data["chunking"] or {}
            cfg.chunking = ChunkingCfg(
                target_words=int(c.get("target_words", cfg.chunking.target_words)),
                overlap_segments=int(c.get("overlap_segments", cfg.chunking.overlap_segments)),
                segments_per_window=int(
                    c.get("segments_per_window", cfg.chunking.segments_per_window)
                ),
                min_chunk_chars=int(c.get("min_chunk_chars", cfg.chunking.min_chunk_chars)),
            )
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid config value: {exc}") from exc

    return cfg


def _apply_env_overrides(cfg: VidaskConfig) -> VidaskConfig:
    """Apply VIDASK_* environment variable overrides."""
    if model := os.environ.get("VIDASK_GENERATION_MODEL"):
        cfg.generation.model = model
    if model := os.environ.get("VIDASK_EMBEDDING_MODEL"):
        cfg.embedding.model = model
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> VidaskConfig:
    """Load and return a merged *VidaskConfig*.

    Applies layers in order: global → per-project → env vars.
    CLI flag overrides must be applied by the caller after this function.

    Args:
        project_dir: Directory to search for *vidask.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Raises:
        ConfigError: If global config contains API-key-like fields, or a value
            is out of range.
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

    cfg = _apply_env_overrides(_cfg_from_dict(merged))
    _validate(cfg)
    return cfg

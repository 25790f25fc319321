"""
Configuration management for vaultctx.

Provides default configuration, loading from .vaultctx/config.toml and
environment overrides, plus typed views for each component.
"""

import copy
import logging
import os
from pathlib import Path
from typing import Any, Optional
from pydantic import BaseModel, Field
try:
    import tomllib  # Python 3.11+
except ImportError:
    import tomli as tomllib  # Fallback for older Python versions

logger = logging.getLogger(__name__)

DATA_DIR = ".vaultctx"

DEFAULT_SKIP_DIRS = [
    ".git",
    "node_modules",
    ".obsidian",
    ".logseq",
    ".trash",
    ".smart-env",
    ".claude",
    DATA_DIR,
    "_PRIVATE",
]

DEFAULT_CONFIG = {
    "vault": {
        "skip_dirs": [],            # added to DEFAULT_SKIP_DIRS
        "noise_paths": [],          # path prefixes dropped from retrieval
    },
    "indexer": {
        "suffixes": [".md"],
        "max_file_size": 2097152,   # 2MB
        "chunk_token_threshold": 6000,
        "max_embed_chars": 7500,
        "large_note_warning_bytes": 30000,
    },
    "embedding": {
        "provider": "local",        # local, ollama, openai, openai-compatible, none, auto
        "model": "",                # empty: provider default
        "dimensions": 0,            # 0: provider default
        "base_url": "",
        "api_key": "",
        "timeout": 30.0,
        "fallback_order": ["local", "ollama", "openai", "openai-compatible", "none"],
        "degraded_retry_seconds": 60.0,
    },
    "retrieval": {
        "max_results": 3,
        "max_distance": 1.2,
        "min_composite": 0.45,
        "max_token_budget": 800,
        "min_query_chars": 20,
        "max_snippet_chars": 400,
        "candidate_multiplier": 6,
        "dedupe_paths": True,
        "usage_saturation": 5,
        "weights": {
            "similarity": 0.6,
            "confidence": 0.3,
            "usage": 0.1,
        },
    },
    "performance": {
        "max_workers": min(4, (os.cpu_count() or 1)),
    },
    "watcher": {
        "debounce_seconds": 2.0,
        "poll_interval": 0.2,
    },
    "logging": {
        "level": "INFO",
        "file": "",                 # empty: no file logging
        "json": False,
        "max_size_mb": 10,
        "backups": 5,
        "quiet_loggers": ["httpx", "urllib3", "openai", "sentence_transformers", "watchdog"],
    },
}

# env var -> (section, key, caster)
ENV_OVERRIDES = {
    "VAULTCTX_EMBED_PROVIDER": ("embedding", "provider", str),
    "VAULTCTX_EMBED_MODEL": ("embedding", "model", str),
    "VAULTCTX_EMBED_API_KEY": ("embedding", "api_key", str),
    "VAULTCTX_EMBED_BASE_URL": ("embedding", "base_url", str),
    "VAULTCTX_EMBED_DIMENSIONS": ("embedding", "dimensions", int),
    "VAULTCTX_NOISE_PATHS": ("vault", "noise_paths", lambda v: [p.strip() for p in v.split(",") if p.strip()]),
    "VAULTCTX_SKIP_DIRS": ("vault", "skip_dirs", lambda v: [p.strip() for p in v.split(",") if p.strip()]),
}


class IndexerSettings(BaseModel):
    """Chunking and file selection knobs."""
    suffixes: list[str] = Field(default_factory=lambda: [".md"])
    max_file_size: int = 2097152
    chunk_token_threshold: int = Field(default=6000, gt=0)
    max_embed_chars: int = Field(default=7500, gt=0)
    large_note_warning_bytes: int = 30000


class EmbeddingSettings(BaseModel):
    """Embedding provider selection and connection details."""
    provider: str = "local"
    model: str = ""
    dimensions: int = 0
    base_url: str = ""
    api_key: str = ""
    timeout: float = 30.0
    fallback_order: list[str] = Field(
        default_factory=lambda: ["local", "ollama", "openai", "openai-compatible", "none"]
    )
    degraded_retry_seconds: float = 60.0


class ScoreWeights(BaseModel):
    """Relative weights of the composite score components."""
    similarity: float = Field(default=0.6, ge=0)
    confidence: float = Field(default=0.3, ge=0)
    usage: float = Field(default=0.1, ge=0)


class RetrievalSettings(BaseModel):
    """Thresholds and budgets applied to every query."""
    max_results: int = Field(default=3, ge=0)
    max_distance: float = 1.2
    min_composite: float = 0.45
    max_token_budget: int = Field(default=800, ge=0)
    min_query_chars: int = 20
    max_snippet_chars: int = Field(default=400, gt=0)
    candidate_multiplier: int = Field(default=6, ge=1)
    dedupe_paths: bool = True
    usage_saturation: float = Field(default=5, gt=0)
    noise_paths: list[str] = Field(default_factory=list)
    weights: ScoreWeights = Field(default_factory=ScoreWeights)


class WatcherSettings(BaseModel):
    """Debounce and polling for the watch loop."""
    debounce_seconds: float = 2.0
    poll_interval: float = 0.2


class LoggingSettings(BaseModel):
    """Log level, destination and format."""
    level: str = "INFO"
    file: str = ""
    json_format: bool = Field(default=False, alias="json")
    max_size_mb: int = Field(default=10, gt=0)
    backups: int = Field(default=5, ge=0)
    quiet_loggers: list[str] = Field(default_factory=list)


class Config:
    """
    Configuration manager for vaultctx.

    Loads configuration from .vaultctx/config.toml if it exists, otherwise
    uses defaults. Environment variables override both.
    """

    def __init__(self, vault_root: Optional[Path] = None, env: Optional[dict[str, str]] = None):
        """
        Initialize configuration.

        Args:
            vault_root: Root directory of the vault (defaults to current directory)
            env: Environment mapping for overrides (defaults to os.environ)
        """
        self.vault_root = Path(vault_root) if vault_root else Path.cwd()
        self.data_dir = self.vault_root / DATA_DIR
        self.config_path = self.data_dir / "config.toml"
        self._config = self._load_config()
        self._apply_env(os.environ if env is None else env)

    def _load_config(self) -> dict[str, Any]:
        """Load configuration from file or use defaults."""
        if self.config_path.exists():
            try:
                with open(self.config_path, "rb") as f:
                    user_config = tomllib.load(f)
                logger.info(f"Loaded config from {self.config_path}")
                # Merge with defaults (user config takes precedence)
                return self._merge_configs(DEFAULT_CONFIG, user_config)
            except (OSError, tomllib.TOMLDecodeError) as e:
                logger.warning(f"Failed to load config from {self.config_path}: {e}")
                logger.warning("Using default configuration")
                return copy.deepcopy(DEFAULT_CONFIG)
        else:
            logger.debug("No config file found, using defaults")
            return copy.deepcopy(DEFAULT_CONFIG)

    def _merge_configs(self, default: dict, user: dict) -> dict:
        """
        Recursively merge user config with defaults.

        User values take precedence, but missing keys use defaults.
        """
        merged = copy.deepcopy(default)
        for key, value in user.items():
            if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
                merged[key] = self._merge_configs(merged[key], value)
            else:
                merged[key] = value
        return merged

    def _apply_env(self, env) -> None:
        for var, (section, key, cast) in ENV_OVERRIDES.items():
            raw = env.get(var)
            if not raw:
                continue
            try:
                self.set(section, key, value=cast(raw))
                logger.debug(f"Config override from {var}")
            except ValueError:
                logger.warning(f"Ignoring invalid value for {var}: {raw!r}")

        # The openai provider also honours the SDK's own variable
        if not self.get("embedding", "api_key") and env.get("OPENAI_API_KEY"):
            if self.get("embedding", "provider") in ("openai", "auto"):
                self.set("embedding", "api_key", value=env["OPENAI_API_KEY"])

    def get(self, *keys: str, default: Any = None) -> Any:
        """
        Get a configuration value by nested keys.

        Examples:
            config.get("indexer", "max_file_size")
            config.get("embedding", "provider")

        Args:
            *keys: Nested keys to traverse
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        value = self._config
        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default
        return value

    def set(self, *keys: str, value: Any) -> None:
        """
        Set a configuration value by nested keys.

        Args:
            *keys: Nested keys to traverse
            value: Value to set
        """
        if not keys:
            return

        current = self._config
        for key in keys[:-1]:
            if key not in current:
                current[key] = {}
            current = current[key]

        current[keys[-1]] = value

    @property
    def skip_dirs(self) -> frozenset[str]:
        """Directory names excluded from scanning and watching at any depth."""
        extra = self.get("vault", "skip_dirs", default=[]) or []
        return frozenset(DEFAULT_SKIP_DIRS) | frozenset(extra)

    @property
    def db_path(self) -> Path:
        """Location of the LanceDB database."""
        return self.data_dir / "index.lance"

    @property
    def log_file(self) -> Optional[Path]:
        name = self.get("logging", "file", default="")
        if not name:
            return None
        path = Path(name)
        return path if path.is_absolute() else self.data_dir / path

    @property
    def indexer(self) -> IndexerSettings:
        """Typed indexer configuration."""
        return IndexerSettings(**self.get("indexer", default={}))

    @property
    def embedding(self) -> EmbeddingSettings:
        """Typed embedding configuration."""
        return EmbeddingSettings(**self.get("embedding", default={}))

    @property
    def retrieval(self) -> RetrievalSettings:
        """Typed retrieval configuration (noise paths come from the vault section)."""
        section = dict(self.get("retrieval", default={}))
        section["noise_paths"] = self.get("vault", "noise_paths", default=[]) or []
        return RetrievalSettings(**section)

    @property
    def watcher(self) -> WatcherSettings:
        return WatcherSettings(**self.get("watcher", default={}))

    @property
    def log_settings(self) -> LoggingSettings:
        return LoggingSettings(**self.get("logging", default={}))

    @property
    def max_workers(self) -> int:
        return int(self.get("performance", "max_workers", default=1) or 1)

    def __repr__(self) -> str:
        """String representation."""
        return f"Config(vault_root={self.vault_root})"

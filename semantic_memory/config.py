"""Configuration for semantic-memory, read from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from pathlib import Path

from .errors import ConfigError

DEFAULT_STORE_DESCRIPTION = "Store a memory with semantic embeddings for later retrieval"
DEFAULT_FIND_DESCRIPTION = "Find memories using semantic similarity search"


@dataclass(frozen=True, slots=True)
class Config:
    """Store configuration with sensible defaults."""

    data_path: Path = Path.home() / ".semantic-memory"
    table_name: str = "memories"
    ollama_model: str = "mxbai-embed-large"
    ollama_host: str = "http://localhost:11434"
    embedding_dim: int = 1024
    default_collection: str = "default"
    decay_half_life_days: float = 90.0
    request_timeout: float = 30.0
    batch_concurrency: int = 5
    fts_weight: float = 0.3  # Weight for FTS in hybrid fusion (vector gets 1 - this)
    default_limit: int = 10
    max_limit: int = 50
    tool_store_description: str = DEFAULT_STORE_DESCRIPTION
    tool_find_description: str = DEFAULT_FIND_DESCRIPTION

    @property
    def db_path(self) -> Path:
        return self.data_path / "lancedb"

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> Config:
        """Build a Config from environment variables, falling back to defaults.

        Raises ConfigError when a value cannot be parsed or is out of range.
        """
        env = os.environ if environ is None else environ
        defaults = {f.name: f.default for f in fields(cls)}

        def number(name: str, default, convert):
            raw = env.get(name)
            if raw is None or raw.strip() == "":
                return default
            try:
                return convert(raw)
            except ValueError:
                raise ConfigError(f"{name} must be a number, got {raw!r}") from None

        config = cls(
            data_path=Path(env.get("SEMANTIC_MEMORY_PATH") or defaults["data_path"]).expanduser(),
            ollama_model=env.get("OLLAMA_MODEL") or defaults["ollama_model"],
            ollama_host=(env.get("OLLAMA_HOST") or defaults["ollama_host"]).rstrip("/"),
            embedding_dim=number("EMBEDDING_DIM", defaults["embedding_dim"], int),
            default_collection=env.get("COLLECTION_NAME") or defaults["default_collection"],
            decay_half_life_days=number(
                "MEMORY_DECAY_HALF_LIFE_DAYS", defaults["decay_half_life_days"], float
            ),
            request_timeout=number("OLLAMA_TIMEOUT", defaults["request_timeout"], float),
            batch_concurrency=number("EMBED_CONCURRENCY", defaults["batch_concurrency"], int),
            tool_store_description=env.get("TOOL_STORE_DESCRIPTION") or DEFAULT_STORE_DESCRIPTION,
            tool_find_description=env.get("TOOL_FIND_DESCRIPTION") or DEFAULT_FIND_DESCRIPTION,
        )
        config.validate_or_raise()
        return config

    def validate(self) -> list[ConfigError]:
        """Return every problem with this configuration (empty when valid)."""
        errors = []
        if self.embedding_dim <= 0:
            errors.append(ConfigError(f"embedding_dim must be positive, got {self.embedding_dim}"))
        if self.decay_half_life_days <= 0:
            errors.append(
                ConfigError(
                    f"decay_half_life_days must be positive, got {self.decay_half_life_days}"
                )
            )
        if self.request_timeout <= 0:
            errors.append(ConfigError(f"request_timeout must be positive, got {self.request_timeout}"))
        if self.batch_concurrency < 1:
            errors.append(
                ConfigError(f"batch_concurrency must be at least 1, got {self.batch_concurrency}")
            )
        if not self.ollama_model.strip():
            errors.append(ConfigError("ollama_model is required"))
        if not self.ollama_host.strip():
            errors.append(ConfigError("ollama_host is required"))
        if not self.default_collection.strip():
            errors.append(ConfigError("default_collection is required"))
        if not 0.0 <= self.fts_weight <= 1.0:
            errors.append(ConfigError(f"fts_weight must be within [0, 1], got {self.fts_weight}"))
        if self.default_limit <= 0 or self.default_limit > self.max_limit:
            errors.append(
                ConfigError(
                    f"default_limit must be within [1, {self.max_limit}], got {self.default_limit}"
                )
            )
        return errors

    def validate_or_raise(self) -> None:
        errors = self.validate()
        if errors:
            raise errors[0]

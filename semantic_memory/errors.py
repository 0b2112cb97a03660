"""Error taxonomy for semantic-memory.

Operations return these instead of raising them. Each error keeps a
human-readable ``reason`` and a ``transient`` flag so callers can tell
"retry later" apart from "fix input" and "fix configuration".
"""

from __future__ import annotations


class MemoryStoreError(Exception):
    """Base class for every error surfaced by the memory store."""

    kind = "MemoryStoreError"

    def __init__(self, reason: str, *, transient: bool = False) -> None:
        super().__init__(reason)
        self.reason = reason
        self.transient = transient

    def __str__(self) -> str:
        return f"{self.kind}: {self.reason}"

    def __repr__(self) -> str:
        return f"{type(self).__name__}(reason={self.reason!r}, transient={self.transient})"


class DatabaseError(MemoryStoreError):
    """Initialization, schema, query or record validation failure."""

    kind = "DatabaseError"


class DimensionMismatchError(DatabaseError):
    """Embedding length does not match the configured dimensionality."""

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(f"Embedding dimension mismatch: expected {expected}, got {actual}")
        self.expected = expected
        self.actual = actual


class OllamaError(MemoryStoreError):
    """Connection failure, non-success response, malformed response or missing model."""

    kind = "OllamaError"


class MemoryNotFoundError(MemoryStoreError):
    kind = "MemoryNotFoundError"

    def __init__(self, memory_id: str) -> None:
        super().__init__(f"Memory {memory_id} not found")
        self.memory_id = memory_id


class ConfigError(MemoryStoreError):
    kind = "ConfigError"

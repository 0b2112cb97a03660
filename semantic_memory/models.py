"""Shared data models for semantic-memory."""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

import pyarrow as pa

from .utils import ensure_utc, parse_iso, to_iso, utcnow

MatchType = Literal["vector", "fts", "hybrid"]

# Columns returned for a memory when the vector is not needed
MEMORY_COLUMNS = ["id", "content", "metadata", "collection", "created_at", "last_validated_at"]


def memory_schema(embedding_dim: int) -> pa.Schema:
    """Arrow schema for the memories table.

    Content and embedding share one row so they are always committed
    together. IMPORTANT: Any change to this schema requires migration of
    existing data.
    """
    return pa.schema(
        [
            pa.field("id", pa.string(), nullable=False),
            pa.field("content", pa.string(), nullable=False),  # Indexed for FTS
            pa.field("metadata", pa.string(), nullable=False),  # JSON object as string
            pa.field("collection", pa.string(), nullable=False),
            pa.field("created_at", pa.string(), nullable=False),
            pa.field("last_validated_at", pa.string(), nullable=True),
            pa.field("vector", pa.list_(pa.float32(), embedding_dim), nullable=False),
        ]
    )


def new_memory_id() -> str:
    return uuid.uuid4().hex


@dataclass(slots=True)
class Memory:
    id: str
    content: str
    collection: str
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)
    last_validated_at: datetime | None = None

    @property
    def tags(self) -> list[str]:
        tags = self.metadata.get("tags")
        return [str(t) for t in tags] if isinstance(tags, list) else []

    @property
    def reference_time(self) -> datetime:
        """Anchor for decay: last validation if any, else creation."""
        return self.last_validated_at or self.created_at

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> Memory:
        metadata = json.loads(row["metadata"]) if row.get("metadata") else {}
        return cls(
            id=row["id"],
            content=row["content"],
            metadata=metadata,
            collection=row["collection"],
            created_at=parse_iso(row["created_at"]),
            last_validated_at=parse_iso(row.get("last_validated_at")),
        )

    def to_row(self, embedding: list[float]) -> dict[str, Any]:
        return {
            "id": self.id,
            "content": self.content,
            "metadata": json.dumps(self.metadata),
            "collection": self.collection,
            "created_at": to_iso(self.created_at),
            "last_validated_at": to_iso(self.last_validated_at) if self.last_validated_at else None,
            "vector": embedding,
        }

    def to_dict(self) -> dict[str, Any]:
        """JSON-friendly representation."""
        return {
            "id": self.id,
            "content": self.content,
            "metadata": self.metadata,
            "collection": self.collection,
            "created_at": to_iso(self.created_at),
            "last_validated_at": (
                to_iso(self.last_validated_at) if self.last_validated_at else None
            ),
        }

    def __post_init__(self) -> None:
        self.created_at = ensure_utc(self.created_at)
        if self.last_validated_at is not None:
            self.last_validated_at = ensure_utc(self.last_validated_at)


@dataclass(frozen=True, slots=True)
class SearchResult:
    """A ranked match: raw match score, its decay, and the decayed score."""

    memory: Memory
    raw_score: float
    age_days: float
    decay_factor: float
    score: float
    match_type: MatchType

    @property
    def is_stale(self) -> bool:
        return self.decay_factor < 0.5

    def to_dict(self) -> dict[str, Any]:
        return {
            "memory": self.memory.to_dict(),
            "raw_score": self.raw_score,
            "age_days": self.age_days,
            "decay_factor": self.decay_factor,
            "score": self.score,
            "match_type": self.match_type,
        }


@dataclass(frozen=True, slots=True)
class StoreStats:
    memory_count: int
    embedding_count: int

    @property
    def consistent(self) -> bool:
        """Every memory has exactly one embedding."""
        return self.memory_count == self.embedding_count

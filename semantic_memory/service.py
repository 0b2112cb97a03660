"""Memory Service: the caller-facing composition of store, embedder and ranking."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Literal

from .config import Config
from .embeddings import OllamaClient
from .errors import DatabaseError, MemoryNotFoundError, MemoryStoreError, OllamaError
from .models import Memory, SearchResult, StoreStats, new_memory_id
from .ranking import RankingEngine
from .reinforcement import ReinforcementOperator
from .store import RecordStore
from .utils import utcnow

logger = logging.getLogger(__name__)

SearchMode = Literal["vector", "fts", "hybrid"]


@dataclass(frozen=True, slots=True)
class StatsReport:
    stats: StoreStats
    data_path: str
    size_kb: float = 0.0
    has_fts_index: bool = False


class MemoryService:
    """Text in, memories and ranked results out.

    All collaborators are passed in; nothing is looked up globally.
    """

    def __init__(
        self,
        config: Config,
        store: RecordStore,
        embedder: OllamaClient,
        engine: RankingEngine,
        reinforcer: ReinforcementOperator,
    ):
        self.config = config
        self.records = store
        self.embedder = embedder
        self.engine = engine
        self.reinforcer = reinforcer

    @classmethod
    def from_config(cls, config: Config) -> MemoryService:
        """Wire up the default collaborators for a configuration."""
        store = RecordStore.from_config(config)
        return cls(
            config=config,
            store=store,
            embedder=OllamaClient.from_config(config),
            engine=RankingEngine(
                store,
                half_life_days=config.decay_half_life_days,
                fts_weight=config.fts_weight,
            ),
            reinforcer=ReinforcementOperator(store),
        )

    def _build_memory(
        self,
        content: str,
        collection: str | None,
        tags: list[str] | None,
        metadata: dict[str, Any] | None,
        memory_id: str | None,
        created_at: datetime | None,
    ) -> Memory:
        merged = dict(metadata or {})
        clean_tags = [t.strip() for t in tags or [] if t.strip()]
        if clean_tags:
            merged["tags"] = clean_tags
        return Memory(
            id=memory_id or new_memory_id(),
            content=content,
            metadata=merged,
            collection=collection or self.config.default_collection,
            created_at=created_at or utcnow(),
        )

    async def store(
        self,
        content: str,
        collection: str | None = None,
        tags: list[str] | None = None,
        metadata: dict[str, Any] | None = None,
        memory_id: str | None = None,
        created_at: datetime | None = None,
    ) -> tuple[Memory | None, MemoryStoreError | None]:
        """Embed content and store it as a memory."""
        if not content or not content.strip():
            return None, DatabaseError("Memory content is required")
        memory = self._build_memory(content, collection, tags, metadata, memory_id, created_at)

        embedding, error = await self.embedder.embed(content)
        if error:
            return None, error
        error = self.records.store(memory, embedding)
        if error:
            return None, error
        return memory, None

    async def store_many(
        self,
        contents: list[str],
        collection: str | None = None,
        tags: list[str] | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> tuple[list[Memory], MemoryStoreError | None]:
        """Embed a batch of texts concurrently, then store each one.

        Nothing is stored when embedding any text fails. Memories stored
        before a storage error are returned alongside it.
        """
        if any(not c or not c.strip() for c in contents):
            return [], DatabaseError("Memory content is required")
        embeddings, error = await self.embedder.embed_batch(
            contents, concurrency=self.config.batch_concurrency
        )
        if error:
            return [], error

        stored = []
        for content, embedding in zip(contents, embeddings):
            memory = self._build_memory(content, collection, tags, metadata, None, None)
            error = self.records.store(memory, embedding)
            if error:
                return stored, error
            stored.append(memory)
        return stored, None

    async def find(
        self,
        query: str,
        limit: int | None = None,
        collection: str | None = None,
        mode: SearchMode = "vector",
        threshold: float = 0.3,
    ) -> tuple[list[SearchResult], MemoryStoreError | None]:
        if not query or not query.strip():
            return [], DatabaseError("Query is required")
        limit = self.config.default_limit if limit is None else limit
        if limit > self.config.max_limit:
            return [], DatabaseError(f"limit cannot exceed {self.config.max_limit}, got {limit}")

        if mode == "fts":
            return self.engine.fts_search(query, limit=limit, collection=collection)

        embedding, error = await self.embedder.embed(query)
        if error:
            return [], error
        if mode == "hybrid":
            return self.engine.hybrid_search(
                query, embedding, limit=limit, threshold=threshold, collection=collection
            )
        return self.engine.search(embedding, limit=limit, threshold=threshold, collection=collection)

    def get(self, memory_id: str) -> tuple[Memory | None, DatabaseError | None]:
        return self.records.get(memory_id)

    def list(self, collection: str | None = None) -> tuple[list[Memory], DatabaseError | None]:
        return self.records.list(collection)

    def delete(self, memory_id: str) -> MemoryStoreError | None:
        """Delete a memory the caller expects to exist."""
        memory, error = self.records.get(memory_id)
        if error:
            return error
        if memory is None:
            return MemoryNotFoundError(memory_id)
        return self.records.delete(memory_id)

    def validate(self, memory_id: str) -> MemoryStoreError | None:
        return self.reinforcer.validate(memory_id)

    def stats(self) -> tuple[StatsReport | None, DatabaseError | None]:
        stats, error = self.records.get_stats()
        if error:
            return None, error
        info = self.records.table_info()
        return (
            StatsReport(
                stats=stats,
                data_path=str(self.config.data_path),
                size_kb=info["size_kb"],
                has_fts_index=info["has_fts_index"],
            ),
            None,
        )

    async def check(self) -> OllamaError | None:
        return await self.embedder.check_health()

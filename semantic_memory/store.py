"""Record Store: durable memories paired 1:1 with their embeddings (LanceDB).

A memory and its embedding live in the same LanceDB row, and every write
of that pair is a single ``merge_insert`` commit. Readers therefore see
either the previous table version or the new one, never a memory without
its embedding or the other way round.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Any

import lancedb
import numpy as np
import pyarrow as pa

from .config import Config
from .errors import DatabaseError, DimensionMismatchError, MemoryNotFoundError, MemoryStoreError
from .models import MEMORY_COLUMNS, Memory, StoreStats, memory_schema
from .utils import escape_filter_value, to_iso, utcnow

logger = logging.getLogger(__name__)

Candidate = tuple[Memory, float]


class RecordStore:
    """LanceDB-backed memory store.

    Writes (store, delete, mark_validated, FTS index refresh) are
    serialized by a per-store lock. Reads take no lock and see a
    consistent table version.
    """

    def __init__(self, db_path: Path, embedding_dim: int = 1024, table_name: str = "memories"):
        self.db_path = Path(db_path)
        self.embedding_dim = embedding_dim
        self.table_name = table_name
        self._schema = memory_schema(embedding_dim)
        self._write_lock = threading.Lock()
        self._fts_version: int | None = None
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._db = lancedb.connect(str(self.db_path))
            self._table = self._db.create_table(table_name, schema=self._schema, exist_ok=True)
        except Exception as e:
            raise DatabaseError(f"Failed to open database at {self.db_path}: {e}") from e

        stored_dim = self._table.schema.field("vector").type.list_size
        if stored_dim != embedding_dim:
            raise DatabaseError(
                f"Table '{table_name}' stores {stored_dim}-dim vectors but "
                f"{embedding_dim} were configured"
            )

    @classmethod
    def from_config(cls, config: Config) -> RecordStore:
        return cls(config.db_path, embedding_dim=config.embedding_dim, table_name=config.table_name)

    # -------------------------------------------------------------------------
    # Validation helpers
    # -------------------------------------------------------------------------

    def check_embedding(self, embedding: list[float]) -> tuple[list[float] | None, DatabaseError | None]:
        """Validate an embedding against the configured dimensionality."""
        try:
            vector = np.asarray(embedding, dtype=np.float32)
        except (TypeError, ValueError) as e:
            return None, DatabaseError(f"Embedding is not a numeric vector: {e}")
        if vector.ndim != 1 or vector.shape[0] != self.embedding_dim:
            actual = vector.shape[0] if vector.ndim == 1 else vector.size
            return None, DimensionMismatchError(self.embedding_dim, actual)
        if not np.all(np.isfinite(vector)):
            return None, DatabaseError("Embedding contains non-finite values")
        if not np.any(vector):
            return None, DatabaseError("Embedding has zero norm")
        return vector.tolist(), None

    @staticmethod
    def _id_filter(memory_id: str) -> str:
        return f"id = '{escape_filter_value(memory_id)}'"

    @staticmethod
    def _collection_filter(collection: str | None) -> str | None:
        if not collection:
            return None
        return f"collection = '{escape_filter_value(collection)}'"

    # -------------------------------------------------------------------------
    # Write path
    # -------------------------------------------------------------------------

    def store(self, memory: Memory, embedding: list[float]) -> DatabaseError | None:
        """Insert or update a memory together with its embedding.

        On conflict by id the content, metadata, collection and embedding
        are replaced; created_at and last_validated_at are kept.
        """
        vector, error = self.check_embedding(embedding)
        if error:
            return error
        if not memory.content or not memory.content.strip():
            return DatabaseError("Memory content is required")
        if not memory.id:
            return DatabaseError("Memory id is required")

        with self._write_lock:
            try:
                existing = (
                    self._table.search()
                    .where(self._id_filter(memory.id))
                    .select(["created_at", "last_validated_at"])
                    .limit(1)
                    .to_list()
                )
                row = memory.to_row(vector)
                if existing:
                    row["created_at"] = existing[0]["created_at"]
                    row["last_validated_at"] = existing[0].get("last_validated_at")

                data = pa.Table.from_pylist([row], schema=self._schema)
                (
                    self._table.merge_insert("id")
                    .when_matched_update_all()
                    .when_not_matched_insert_all()
                    .execute(data)
                )
            except Exception as e:
                return DatabaseError(f"Failed to store memory {memory.id}: {e}")
        return None

    def delete(self, memory_id: str) -> DatabaseError | None:
        """Delete a memory and its embedding. Deleting a missing id is a no-op."""
        with self._write_lock:
            try:
                self._table.delete(self._id_filter(memory_id))
            except Exception as e:
                return DatabaseError(f"Failed to delete memory {memory_id}: {e}")
        return None

    def mark_validated(
        self, memory_id: str, at: datetime | None = None
    ) -> MemoryStoreError | None:
        """Set last_validated_at, leaving every other field untouched."""
        timestamp = to_iso(at or utcnow())
        with self._write_lock:
            try:
                if self._table.count_rows(self._id_filter(memory_id)) == 0:
                    return MemoryNotFoundError(memory_id)
                self._table.update(
                    where=self._id_filter(memory_id),
                    values={"last_validated_at": timestamp},
                )
            except Exception as e:
                return DatabaseError(f"Failed to validate memory {memory_id}: {e}")
        return None

    # -------------------------------------------------------------------------
    # Read path
    # -------------------------------------------------------------------------

    def get(self, memory_id: str) -> tuple[Memory | None, DatabaseError | None]:
        try:
            rows = (
                self._table.search()
                .where(self._id_filter(memory_id))
                .select(MEMORY_COLUMNS)
                .limit(1)
                .to_list()
            )
        except Exception as e:
            return None, DatabaseError(f"Failed to get memory {memory_id}: {e}")
        return (Memory.from_row(rows[0]) if rows else None), None

    def list(self, collection: str | None = None) -> tuple[list[Memory], DatabaseError | None]:
        """All memories (optionally in one collection), newest first."""
        filter_expr = self._collection_filter(collection)
        try:
            # Plain (non-vector) scans return every row when no limit is set
            query = self._table.search().select(MEMORY_COLUMNS).limit(None)
            if filter_expr:
                query = query.where(filter_expr)
            rows = query.to_list()
        except Exception as e:
            return [], DatabaseError(f"Failed to list memories: {e}")

        memories = [Memory.from_row(row) for row in rows]
        memories.sort(key=lambda m: m.created_at, reverse=True)
        return memories, None

    def get_stats(self) -> tuple[StoreStats | None, DatabaseError | None]:
        try:
            stats = StoreStats(
                memory_count=self._table.count_rows(),
                embedding_count=self._table.count_rows("vector IS NOT NULL"),
            )
        except Exception as e:
            return None, DatabaseError(f"Failed to read statistics: {e}")
        if not stats.consistent:
            logger.warning(
                "Integrity warning: %d memories but %d embeddings",
                stats.memory_count,
                stats.embedding_count,
            )
        return stats, None

    # -------------------------------------------------------------------------
    # Candidate scans for the ranking engine
    # -------------------------------------------------------------------------

    def vector_candidates(
        self, query_vector: list[float], collection: str | None = None
    ) -> tuple[list[Candidate], DatabaseError | None]:
        """Every stored memory with its cosine similarity to query_vector.

        No storage-side limit or threshold: decay re-ranks afterwards, so
        the caller needs the full candidate set.
        """
        vector, error = self.check_embedding(query_vector)
        if error:
            return [], error

        filter_expr = self._collection_filter(collection)
        try:
            total = self._table.count_rows(filter_expr)
            if total == 0:
                return [], None
            search = self._table.search(vector, vector_column_name="vector").distance_type("cosine")
            if filter_expr:
                search = search.where(filter_expr, prefilter=True)
            rows = search.select(MEMORY_COLUMNS).limit(total).to_list()
        except Exception as e:
            return [], DatabaseError(f"Vector search failed: {e}")
        return [(Memory.from_row(row), 1.0 - float(row["_distance"])) for row in rows], None

    def lexical_candidates(
        self, query: str, collection: str | None = None
    ) -> tuple[list[Candidate], DatabaseError | None]:
        """Every memory whose content matches query, with its BM25 rank."""
        filter_expr = self._collection_filter(collection)
        try:
            total = self._table.count_rows(filter_expr)
            if total == 0:
                return [], None
            self._refresh_fts_index()
            search = self._table.search(query, query_type="fts")
            if filter_expr:
                search = search.where(filter_expr, prefilter=True)
            rows = search.select(MEMORY_COLUMNS).limit(total).to_list()
        except Exception as e:
            return [], DatabaseError(f"Full-text search failed: {e}")
        return [(Memory.from_row(row), float(row["_score"])) for row in rows], None

    def _refresh_fts_index(self) -> None:
        """(Re)build the BM25 index on content when the table changed since the last build."""
        if self._fts_version == self._table.version:
            return
        with self._write_lock:
            if self._fts_version == self._table.version:  # Double-check after acquiring lock
                return
            self._table.create_fts_index(
                "content",
                replace=True,
                language="English",
                stem=True,
                remove_stop_words=True,
            )
            self._fts_version = self._table.version
            logger.debug("FTS index (BM25) rebuilt at table version %s", self._fts_version)

    def table_info(self) -> dict[str, Any]:
        """On-disk size and whether the BM25 index exists, for stats reporting."""
        has_fts_index = False
        try:
            indices = self._table.list_indices()
            has_fts_index = any("fts" in str(idx).lower() for idx in indices)
        except Exception as e:
            logger.debug("Could not list indices: %s", e)
        size_kb = 0.0
        if self.db_path.exists():
            size_kb = sum(f.stat().st_size for f in self.db_path.rglob("*") if f.is_file()) / 1024
        return {"has_fts_index": has_fts_index, "size_kb": size_kb, "version": self._table.version}

#!/usr/bin/env python3
"""
Semantic Memory MCP Server - decayed hybrid retrieval over LanceDB

Provides persistent agent memory using:
- FastMCP for the tool surface (stdio transport)
- LanceDB for storage, cosine vector search and BM25 full-text search
- Ollama for local embeddings (mxbai-embed-large, 1024-dim)
- Exponential half-life decay so stale memories rank below fresh ones,
  with validate() to reset a memory's decay clock
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys

from mcp.server.fastmcp import FastMCP

from .config import Config
from .errors import MemoryStoreError
from .models import Memory, SearchResult
from .service import MemoryService, SearchMode
from .utils import preview

logger = logging.getLogger(__name__)

PREVIEW_WIDTH = 60
LIST_PREVIEW_WIDTH = 80
VALID_MODES = ("vector", "fts", "hybrid")


def format_error(error: MemoryStoreError) -> str:
    return f"Error: {error.kind}: {error.reason}"


def format_results(
    results: list[SearchResult], query: str, half_life_days: float, expand: bool = False
) -> str:
    if not results:
        return f"No results found for '{query}'"

    lines = [f"Results for '{query}' (decay half-life: {half_life_days:g} days):\n"]
    for i, r in enumerate(results, 1):
        age = round(r.age_days)
        content = r.memory.content if expand else preview(r.memory.content, PREVIEW_WIDTH)
        lines.append(
            f"{i}. [score: {r.score:.2f}, age: {age}d, decay: {round(r.decay_factor * 100)}%, "
            f"{r.match_type}] {content}"
        )
        lines.append(f"   Collection: {r.memory.collection} | ID: {r.memory.id}")
        lines.append(f"   Raw: {r.raw_score:.3f} → Final: {r.score:.3f}")
        if r.is_stale:
            lines.append(f"   Stale ({age} days) - consider validating or removing")
        lines.append("")
    return "\n".join(lines)


def format_memory(memory: Memory) -> str:
    lines = [
        f"ID: {memory.id}",
        f"Collection: {memory.collection}",
        f"Created: {memory.created_at.isoformat()}",
    ]
    if memory.last_validated_at:
        lines.append(f"Validated: {memory.last_validated_at.isoformat()}")
    lines.append(f"Metadata: {json.dumps(memory.metadata)}")
    lines.append(f"\nContent:\n{memory.content}")
    return "\n".join(lines)


def format_list(memories: list[Memory], collection: str | None) -> str:
    if not memories:
        return f'No memories in collection "{collection}"' if collection else "No memories stored"
    lines = [f"Memories: {len(memories)}\n"]
    for m in memories:
        tag_str = f" [{', '.join(m.tags)}]" if m.tags else ""
        lines.append(f"• {m.id} ({m.collection}){tag_str}")
        lines.append(f"  {preview(m.content, LIST_PREVIEW_WIDTH)}")
    return "\n".join(lines)


class MemoryTools:
    """MCP tool implementations; each returns human-readable text."""

    def __init__(self, service: MemoryService):
        self.service = service

    async def memory_store(
        self,
        content: str,
        collection: str | None = None,
        tags: list[str] | None = None,
        metadata: dict | None = None,
    ) -> str:
        """Store a memory with its embedding.

        Args:
            content: Text to remember
            collection: Collection name (default from configuration)
            tags: Optional tags, saved as metadata["tags"]
            metadata: Optional JSON metadata object
        """
        memory, error = await self.service.store(
            content, collection=collection, tags=tags, metadata=metadata
        )
        if error:
            return format_error(error)
        parts = ["Stored memory", f"  ID: {memory.id}", f"  Collection: {memory.collection}"]
        if memory.tags:
            parts.append(f"  Tags: {', '.join(memory.tags)}")
        return "\n".join(parts)

    async def memory_find(
        self,
        query: str,
        limit: int = 10,
        collection: str | None = None,
        mode: str = "vector",
        expand: bool = False,
    ) -> str:
        """Search memories, ranked by match score weighted by recency.

        Args:
            query: Search text
            limit: Max results (default 10)
            collection: Optional collection filter
            mode: 'vector' (semantic), 'fts' (full-text only) or 'hybrid'
            expand: Return full content instead of a truncated preview
        """
        if mode not in VALID_MODES:
            return f"Error: Invalid mode '{mode}'. Valid: {list(VALID_MODES)}"
        search_mode: SearchMode = mode  # type: ignore[assignment]
        results, error = await self.service.find(
            query, limit=limit, collection=collection, mode=search_mode
        )
        if error:
            return format_error(error)
        return format_results(
            results, query, self.service.engine.half_life_days, expand=expand
        )

    async def memory_list(self, collection: str | None = None) -> str:
        """List stored memories, newest first.

        Args:
            collection: Optional collection filter
        """
        memories, error = self.service.list(collection)
        if error:
            return format_error(error)
        return format_list(memories, collection)

    async def memory_get(self, memory_id: str) -> str:
        """Get a single memory by ID.

        Args:
            memory_id: Full memory ID
        """
        memory, error = self.service.get(memory_id)
        if error:
            return format_error(error)
        if memory is None:
            return f"Not found: {memory_id}"
        return format_memory(memory)

    async def memory_delete(self, memory_id: str) -> str:
        """Delete a memory and its embedding.

        Args:
            memory_id: Full memory ID
        """
        error = self.service.delete(memory_id)
        if error:
            return format_error(error)
        return f"Deleted: {memory_id}"

    async def memory_validate(self, memory_id: str) -> str:
        """Confirm a memory is still accurate, resetting its decay timer.

        Args:
            memory_id: Full memory ID
        """
        error = self.service.validate(memory_id)
        if error:
            return format_error(error)
        return f"Validated: {memory_id}\n  Decay timer reset to now"

    async def memory_stats(self) -> str:
        """Get memory store statistics."""
        report, error = self.service.stats()
        if error:
            return format_error(error)
        lines = [
            "Semantic Memory Stats",
            "────────────────────",
            f"Memories:   {report.stats.memory_count}",
            f"Embeddings: {report.stats.embedding_count}",
            f"Location:   {report.data_path}",
            f"Database:   {report.size_kb:.1f} KB",
            f"FTS Index:  {'Yes (BM25)' if report.has_fts_index else 'Not built yet'}",
        ]
        if not report.stats.consistent:
            lines.append("WARNING: memory and embedding counts differ - store may be corrupted")
        return "\n".join(lines)

    async def memory_check(self) -> str:
        """Verify Ollama is running and the embedding model is available."""
        error = await self.service.check()
        if error:
            return format_error(error)
        return "Ollama is ready"


def create_server(service: MemoryService) -> FastMCP:
    """Build the FastMCP server with every memory tool registered."""
    config = service.config
    tools = MemoryTools(service)
    mcp = FastMCP(
        "semantic-memory",
        instructions="Local semantic memory: vector + BM25 search with recency decay",
    )
    read_only = {"readOnlyHint": True, "destructiveHint": False, "idempotentHint": True}

    mcp.tool(
        description=config.tool_store_description,
        annotations={"readOnlyHint": False, "destructiveHint": False, "idempotentHint": False},
    )(tools.memory_store)
    mcp.tool(description=config.tool_find_description, annotations=read_only)(tools.memory_find)
    mcp.tool(annotations=read_only)(tools.memory_list)
    mcp.tool(annotations=read_only)(tools.memory_get)
    mcp.tool(
        annotations={"readOnlyHint": False, "destructiveHint": True, "idempotentHint": True}
    )(tools.memory_delete)
    mcp.tool(
        annotations={"readOnlyHint": False, "destructiveHint": False, "idempotentHint": True}
    )(tools.memory_validate)
    mcp.tool(annotations=read_only)(tools.memory_stats)
    mcp.tool(annotations=read_only)(tools.memory_check)
    return mcp


# =============================================================================
# Server Entry Point
# =============================================================================


async def run_server(config: Config) -> None:
    """Run the MCP server over stdio after a best-effort Ollama health check."""
    service = MemoryService.from_config(config)
    error = await service.check()
    if error:
        logger.warning("Ollama health check failed: %s", error.reason)
    logger.info("Server ready (data: %s, model: %s)", config.data_path, config.ollama_model)
    await create_server(service).run_stdio_async()


def main() -> None:
    """Entry point."""
    # stdout carries the MCP protocol, so logs go to stderr
    logging.basicConfig(
        stream=sys.stderr, level=logging.INFO, format="[semantic-memory] %(levelname)s %(message)s"
    )
    try:
        asyncio.run(run_server(Config.from_env()))
    except MemoryStoreError as e:
        # Invalid configuration or an unopenable data directory
        logger.error("%s", e)
        sys.exit(1)


if __name__ == "__main__":
    main()

#!/usr/bin/env python3
"""
Test suite for the Semantic Memory MCP tools (no running Ollama needed).

Run with: pytest test_server.py -v
"""

from importlib.metadata import version

import pytest

from conftest import MODEL, days_ago, make_response, tags_response
from semantic_memory.config import DEFAULT_FIND_DESCRIPTION, Config
from semantic_memory.errors import DatabaseError, MemoryNotFoundError
from semantic_memory.server import (
    MemoryTools,
    create_server,
    format_error,
    format_list,
    format_results,
)


@pytest.fixture
def tools(service):
    return MemoryTools(service)


# =============================================================================
# Core CRUD Tests
# =============================================================================


class TestMemoryStore:
    """Tests for memory_store tool."""

    async def test_store_basic(self, tools):
        result = await tools.memory_store(content="TEST - Basic store", tags=["test", "pytest"])
        assert result.startswith("Stored memory")
        assert "Collection: default" in result
        assert "Tags: test, pytest" in result

    async def test_store_empty_content_fails(self, tools):
        result = await tools.memory_store(content="")
        assert result == "Error: DatabaseError: Memory content is required"

    async def test_store_whitespace_only_fails(self, tools):
        result = await tools.memory_store(content="   \n\t  ")
        assert "Error" in result

    async def test_store_reports_ollama_failure(self, tools, session):
        session.on_post = lambda payload: make_response(500, text="model not loaded")
        tools.service.embedder.backoff_base = 0.0
        result = await tools.memory_store(content="will fail")
        assert result.startswith("Error: OllamaError:")
        assert "model not loaded" in result


class TestMemoryFind:
    """Tests for memory_find tool."""

    async def test_find_semantic(self, tools):
        await tools.memory_store(content="Use asyncio.to_thread for blocking I/O", collection="work")
        result = await tools.memory_find(query="Use asyncio.to_thread for blocking I/O")
        assert result.startswith("Results for 'Use asyncio.to_thread for blocking I/O'")
        assert "decay half-life: 90 days" in result
        assert "Collection: work" in result
        assert "vector]" in result

    async def test_find_no_results(self, tools):
        result = await tools.memory_find(query="nothing stored yet")
        assert result == "No results found for 'nothing stored yet'"

    async def test_find_fts_mode(self, tools):
        await tools.memory_store(content="LanceDB hybrid test")
        result = await tools.memory_find(query="LanceDB", mode="fts")
        assert "fts]" in result

    async def test_find_invalid_mode_fails(self, tools):
        result = await tools.memory_find(query="test", mode="fuzzy")
        assert result.startswith("Error: Invalid mode 'fuzzy'")

    async def test_find_empty_query_fails(self, tools):
        result = await tools.memory_find(query="")
        assert result == "Error: DatabaseError: Query is required"

    async def test_find_expand_shows_full_content(self, tools):
        long_content = "expandable " * 20
        await tools.memory_store(content=long_content)
        short = await tools.memory_find(query="expandable", mode="fts")
        full = await tools.memory_find(query="expandable", mode="fts", expand=True)
        assert long_content.strip() not in short
        assert long_content.strip() in full

    async def test_find_marks_stale_results(self, tools):
        await tools.service.store("Meeting notes from standup", created_at=days_ago(200))
        result = await tools.memory_find(query="Meeting notes from standup")
        assert "Stale (200 days) - consider validating or removing" in result


class TestMemoryGetAndList:
    """Tests for memory_get and memory_list tools."""

    async def test_get_existing(self, tools):
        memory, _ = await tools.service.store("fetch me", metadata={"source": "test"})
        result = await tools.memory_get(memory_id=memory.id)
        assert f"ID: {memory.id}" in result
        assert 'Metadata: {"source": "test"}' in result
        assert result.endswith("Content:\nfetch me")

    async def test_get_missing(self, tools):
        assert await tools.memory_get(memory_id="nope") == "Not found: nope"

    async def test_list_empty(self, tools):
        assert await tools.memory_list() == "No memories stored"
        assert await tools.memory_list(collection="work") == 'No memories in collection "work"'

    async def test_list_shows_tags(self, tools):
        await tools.memory_store(content="tagged", collection="work", tags=["a", "b"])
        result = await tools.memory_list(collection="work")
        assert result.startswith("Memories: 1")
        assert "(work) [a, b]" in result


class TestMemoryDeleteAndValidate:
    """Tests for memory_delete and memory_validate tools."""

    async def test_delete_existing(self, tools):
        memory, _ = await tools.service.store("temporary")
        assert await tools.memory_delete(memory_id=memory.id) == f"Deleted: {memory.id}"
        assert await tools.memory_get(memory_id=memory.id) == f"Not found: {memory.id}"

    async def test_delete_nonexistent(self, tools):
        result = await tools.memory_delete(memory_id="missing")
        assert result == "Error: MemoryNotFoundError: Memory missing not found"

    async def test_validate_resets_decay(self, tools):
        memory, _ = await tools.service.store("old but true", created_at=days_ago(200))
        result = await tools.memory_validate(memory_id=memory.id)
        assert result == f"Validated: {memory.id}\n  Decay timer reset to now"

        found = await tools.memory_find(query="old but true")
        assert "decay: 100%" in found
        assert "Stale" not in found

    async def test_validate_nonexistent(self, tools):
        result = await tools.memory_validate(memory_id="missing")
        assert "MemoryNotFoundError" in result


class TestMemoryStatsAndCheck:
    """Tests for memory_stats and memory_check tools."""

    async def test_stats_structure(self, tools, config):
        await tools.memory_store(content="counted")
        result = await tools.memory_stats()
        assert "Memories:   1" in result
        assert "Embeddings: 1" in result
        assert f"Location:   {config.data_path}" in result
        assert "FTS Index:  Not built yet" in result
        assert "WARNING" not in result

    async def test_check_ready(self, tools):
        assert await tools.memory_check() == "Ollama is ready"

    async def test_check_missing_model(self, tools, session):
        session.on_get = tags_response("llama3:latest")
        result = await tools.memory_check()
        assert f"Run: ollama pull {MODEL}" in result


# =============================================================================
# Formatting
# =============================================================================


class TestFormatting:
    def test_format_error(self):
        expected = "Error: MemoryNotFoundError: Memory abc not found"
        assert format_error(MemoryNotFoundError("abc")) == expected
        assert format_error(DatabaseError("disk full")) == "Error: DatabaseError: disk full"

    def test_format_results_empty(self):
        assert format_results([], "q", 90.0) == "No results found for 'q'"

    def test_format_list_empty(self):
        assert format_list([], None) == "No memories stored"


# =============================================================================
# MCP registration
# =============================================================================


class TestMCPServer:
    """Tests for the FastMCP tool registration."""

    async def test_registers_all_tools(self, service):
        mcp = create_server(service)
        names = {tool.name for tool in await mcp.list_tools()}
        assert names == {
            "memory_store",
            "memory_find",
            "memory_list",
            "memory_get",
            "memory_delete",
            "memory_validate",
            "memory_stats",
            "memory_check",
        }

    async def test_tool_descriptions_are_configurable(self, service, tmp_path):
        service.config = Config(data_path=tmp_path, tool_store_description="Remember a fact")
        tools = {tool.name: tool for tool in await create_server(service).list_tools()}
        assert tools["memory_store"].description == "Remember a fact"
        assert tools["memory_find"].description == DEFAULT_FIND_DESCRIPTION

    async def test_tool_annotations(self, service):
        tools = {tool.name: tool for tool in await create_server(service).list_tools()}
        assert tools["memory_find"].annotations.readOnlyHint is True
        assert tools["memory_delete"].annotations.destructiveHint is True
        assert tools["memory_store"].annotations.readOnlyHint is False

    async def test_call_tool_round_trip(self, service):
        mcp = create_server(service)
        await mcp.call_tool("memory_store", {"content": "via the protocol layer"})
        stats, _ = service.stats()
        assert stats.stats.memory_count == 1

    def test_installed_mcp_provides_fastmcp(self):
        major = int(version("mcp").split(".")[0])
        assert major == 1

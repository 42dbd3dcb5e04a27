"""
Search Index MCP Server

Provides MCP tools for managing aliased Elasticsearch indices, including
zero-downtime rebuilds from the local record store.

TOOLS (7 total):
- create_index(alias) - Create <alias>1 and bind the alias
- delete_index(alias) - Delete the index behind an alias
- index_exists(alias) - Fail-closed existence check
- resolve_alias(alias) - Concrete index currently serving an alias
- rebuild_index(alias, flush_threshold?) - Rebuild and swap atomically
- optimize_index(alias) - Merge segments
- cluster_info() - Cluster and node metadata
"""

from __future__ import annotations

import asyncio
from typing_extensions import TypedDict

from fastmcp import FastMCP

from .config import get_default_alias

mcp = FastMCP("Search Index")


# ========== Response Type Definitions ==========


class OperationResult(TypedDict, total=False):
    """Result of an index admin operation."""

    ok: bool
    kind: str | None
    message: str
    index: str | None
    failed_shards: int


class RebuildSummary(TypedDict, total=False):
    """Result of a rebuild."""

    ok: bool
    kind: str | None
    message: str
    alias: str
    state: str
    old_index: str | None
    new_index: str | None
    indexed: int
    bulk_calls: int
    failed_items: int
    old_index_deleted: bool


class AliasInfo(TypedDict):
    """Concrete index behind an alias."""

    alias: str
    index: str | None


# ========== Helper Functions ==========


def _get_index_manager():
    """Get the IndexManager singleton, lazily imported."""
    from .index import IndexManager

    return IndexManager.get_instance()


def _get_record_store():
    """Get the record store used as the rebuild source, lazily imported."""
    from .store import RecordStore

    return RecordStore()


def _resolve_alias_name(alias: str | None) -> str:
    """Use the default alias from env if none given."""
    if alias is not None:
        return alias
    return get_default_alias() or ""


def _outcome_dict(outcome) -> OperationResult:
    return {
        "ok": outcome.ok,
        "kind": outcome.kind.value if outcome.kind else None,
        "message": outcome.message,
        "index": outcome.index,
        "failed_shards": outcome.failed_shards,
    }


# ========== Tools ==========


@mcp.tool
async def create_index(alias: str | None = None) -> OperationResult:
    """
    Create a new aliased index.

    Allocates the concrete index <alias>1 with the default settings and
    mapping, then binds the alias to it. Fails if the alias already exists
    or the name is blank or contains whitespace.

    Args:
        alias: Alias name (defaults to SEARCH_INDEX_DEFAULT_ALIAS)
    """
    manager = _get_index_manager()
    outcome = await asyncio.to_thread(
        manager.create_index, _resolve_alias_name(alias)
    )
    return _outcome_dict(outcome)


@mcp.tool
async def delete_index(alias: str | None = None) -> OperationResult:
    """
    Delete the concrete index behind an alias.

    Args:
        alias: Alias name (defaults to SEARCH_INDEX_DEFAULT_ALIAS)
    """
    manager = _get_index_manager()
    outcome = await asyncio.to_thread(
        manager.delete_index, _resolve_alias_name(alias)
    )
    return _outcome_dict(outcome)


@mcp.tool
async def index_exists(alias: str | None = None) -> bool:
    """
    Check whether an alias exists.

    Returns False both when it does not exist and when the check fails.
    """
    manager = _get_index_manager()
    return await asyncio.to_thread(
        manager.exists_index, _resolve_alias_name(alias)
    )


@mcp.tool
async def resolve_alias(alias: str | None = None) -> AliasInfo:
    """
    Look up the concrete index currently serving an alias.

    index is None when the alias is unknown or points at more than one
    index.
    """
    name = _resolve_alias_name(alias)
    manager = _get_index_manager()
    index = await asyncio.to_thread(manager.resolve_alias, name)
    return {"alias": name, "index": index}


@mcp.tool
async def rebuild_index(
    alias: str | None = None,
    flush_threshold: int | None = None,
) -> RebuildSummary:
    """
    Rebuild an index from the record store without downtime.

    Reads every record of the alias's collection into a new concrete index,
    then swaps the alias over in one request and deletes the old index.
    The alias keeps serving the old index until the swap.

    Args:
        alias: Alias name (defaults to SEARCH_INDEX_DEFAULT_ALIAS)
        flush_threshold: Actions per bulk write
            (defaults to SEARCH_INDEX_FLUSH_THRESHOLD)
    """
    manager = _get_index_manager()
    store = _get_record_store()
    try:
        result = await asyncio.to_thread(
            manager.rebuild_index,
            _resolve_alias_name(alias),
            store,
            flush_threshold,
        )
    finally:
        store.close()

    return {
        "ok": result.ok,
        "kind": result.kind.value if result.kind else None,
        "message": result.message,
        "alias": result.alias,
        "state": result.state.value,
        "old_index": result.old_index,
        "new_index": result.new_index,
        "indexed": result.indexed,
        "bulk_calls": result.bulk_calls,
        "failed_items": result.failed_items,
        "old_index_deleted": result.old_index_deleted,
    }


@mcp.tool
async def optimize_index(alias: str | None = None) -> OperationResult:
    """
    Merge index segments. Succeeds only if no shard failed.

    Args:
        alias: Alias name (defaults to SEARCH_INDEX_DEFAULT_ALIAS)
    """
    manager = _get_index_manager()
    outcome = await asyncio.to_thread(
        manager.optimize_index, _resolve_alias_name(alias)
    )
    return _outcome_dict(outcome)


@mcp.tool
async def cluster_info() -> dict[str, str]:
    """
    Cluster name plus per-node name, address, roles and version.

    Returns an empty dict if the cluster cannot be reached.
    """
    manager = _get_index_manager()
    return await asyncio.to_thread(manager.cluster_metadata)

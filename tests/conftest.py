"""Shared pytest fixtures for search-index-mcp tests."""

from __future__ import annotations

import itertools
from pathlib import Path
from typing import Any

import pytest

from search_index_mcp.cluster import AliasAction, BulkAction, BulkReport
from search_index_mcp.errors import ClusterError, SourceError
from search_index_mcp.index.leases import AliasLeases
from search_index_mcp.store import Record, RecordStore


class FakeCluster:
    """In-memory ClusterClient.

    Mirrors the engine behaviour the index subsystem relies on:
    - bulk writes auto-create missing indices
    - deleting an index drops every alias binding to it
    - alias edits in one mutate_aliases call apply all-or-nothing
    """

    def __init__(self) -> None:
        self.indices: dict[str, dict[str, dict[str, Any]]] = {}
        self.index_settings: dict[str, dict[str, Any]] = {}
        self.index_mappings: dict[str, dict[str, Any]] = {}
        self.aliases: dict[str, set[str]] = {}
        self.calls: list[str] = []
        self.bulk_sizes: list[int] = []
        self.alias_requests: list[list[AliasAction]] = []
        self.rejected_ids: set[str] = set()
        self.failed_shards = 0
        self.closed = False
        self._failures: dict[str, tuple[int, Exception]] = {}
        self._counts: dict[str, int] = {}

    # ── test helpers ──

    def fail(self, op: str, after: int = 0, error: Exception | None = None):
        """Make op raise once it has succeeded `after` times."""
        self._failures[op] = (after, error or ClusterError(f"{op}: refused"))

    def heal(self, op: str) -> None:
        self._failures.pop(op, None)

    def bind(self, index: str, alias: str) -> None:
        self.indices.setdefault(index, {})
        self.aliases.setdefault(alias, set()).add(index)

    def docs(self, index: str) -> dict[str, dict[str, Any]]:
        return self.indices[index]

    def _enter(self, op: str) -> None:
        self.calls.append(op)
        count = self._counts.get(op, 0)
        self._counts[op] = count + 1
        if op in self._failures:
            after, error = self._failures[op]
            if count >= after:
                raise error

    def _concrete(self, name: str) -> str:
        targets = self.aliases.get(name)
        if targets:
            if len(targets) > 1:
                raise ClusterError(f"alias {name} has more than one index", 400)
            return next(iter(targets))
        return name

    # ── ClusterClient ──

    def index_exists(self, name: str) -> bool:
        self._enter("index_exists")
        return name in self.indices or bool(self.aliases.get(name))

    def create_index(self, name, settings, mappings) -> None:
        self._enter("create_index")
        if name in self.indices or self.aliases.get(name):
            raise ClusterError(f"resource_already_exists: {name}", 400)
        self.indices[name] = {}
        self.index_settings[name] = settings
        self.index_mappings[name] = mappings

    def delete_index(self, name: str) -> None:
        self._enter("delete_index")
        if name not in self.indices:
            raise ClusterError(f"index_not_found: {name}", 404)
        del self.indices[name]
        for alias in list(self.aliases):
            self.aliases[alias].discard(name)
            if not self.aliases[alias]:
                del self.aliases[alias]

    def get_alias_targets(self, alias: str) -> set[str]:
        self._enter("get_alias_targets")
        return set(self.aliases.get(alias, set()))

    def mutate_aliases(self, actions: list[AliasAction]) -> None:
        self._enter("mutate_aliases")
        for a in actions:
            if a.index not in self.indices:
                raise ClusterError(f"index_not_found: {a.index}", 404)
            if a.op == "remove" and a.index not in self.aliases.get(
                a.alias, set()
            ):
                raise ClusterError(f"aliases_not_found: {a.alias}", 404)
        self.alias_requests.append(list(actions))
        for a in actions:
            if a.op == "add":
                self.aliases.setdefault(a.alias, set()).add(a.index)
            else:
                self.aliases[a.alias].discard(a.index)
                if not self.aliases[a.alias]:
                    del self.aliases[a.alias]

    def bulk_write(self, actions: list[BulkAction]) -> BulkReport:
        self._enter("bulk_write")
        self.bulk_sizes.append(len(actions))
        accepted = failed = 0
        for a in actions:
            if a.doc_id in self.rejected_ids:
                failed += 1
                continue
            index = self._concrete(a.index)
            self.indices.setdefault(index, {})[a.doc_id] = {
                "type": a.doc_type,
                "body": a.body,
            }
            accepted += 1
        return BulkReport(accepted=accepted, failed=failed)

    def optimize(self, name: str) -> int:
        self._enter("optimize")
        return self.failed_shards

    def cluster_info(self) -> dict[str, Any]:
        self._enter("cluster_info")
        return {
            "cluster_name": "test-cluster",
            "nodes": {
                "n1": {
                    "name": "node-a",
                    "transport_address": "10.0.0.1:9300",
                    "roles": ["data", "master"],
                    "version": "8.13.0",
                },
                "n2": {
                    "name": "node-b",
                    "transport_address": "10.0.0.2:9300",
                    "roles": [],
                    "version": "8.13.0",
                },
            },
        }

    def close(self) -> None:
        self.closed = True


class ListSource:
    """RecordSource over an in-memory list, paged by id."""

    def __init__(
        self,
        records: list[Record],
        page_size: int = 30,
        fail_on_page: int | None = None,
    ):
        self.records = sorted(records, key=lambda r: r.id)
        self.page_size = page_size
        self.fail_on_page = fail_on_page
        self.cursors: list[str | None] = []
        self.closed = False

    def read_page(self, collection: str, cursor: str | None) -> list[Record]:
        self.cursors.append(cursor)
        failing = self.fail_on_page is not None
        if failing and len(self.cursors) > self.fail_on_page:
            raise SourceError("record store unreachable")
        remaining = [
            r for r in self.records if cursor is None or r.id > cursor
        ]
        return remaining[: self.page_size]

    def close(self) -> None:
        self.closed = True


def make_records(n: int, doc_type: str = "user") -> list[Record]:
    return [
        Record(
            id=f"rec-{i:05d}",
            type=doc_type if i % 3 else "tag",
            fields={"name": f"object {i}", "votes": i},
        )
        for i in range(n)
    ]


@pytest.fixture
def cluster() -> FakeCluster:
    return FakeCluster()


@pytest.fixture
def aliased_cluster(cluster: FakeCluster) -> FakeCluster:
    """Cluster with alias 'app' bound to concrete index 'app1'."""
    cluster.bind("app1", "app")
    cluster.indices["app1"]["stale"] = {"type": "user", "body": {}}
    return cluster


@pytest.fixture
def leases() -> AliasLeases:
    return AliasLeases()


@pytest.fixture
def clock():
    ticks = itertools.count(1_700_000_000_000, 1000)
    return lambda: next(ticks)


@pytest.fixture
def store_path(tmp_path: Path) -> Path:
    """Return a temporary path for a record store file."""
    return tmp_path / "records.db"


@pytest.fixture
def record_store(store_path: Path):
    store = RecordStore(db_path=store_path, page_size=25)
    yield store
    store.close()

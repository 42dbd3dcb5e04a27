"""IndexManager - Central interface for the index lifecycle.

Provides:
- create_index(): Allocate <alias>1 and bind the alias to it
- delete_index(): Drop the concrete index behind an alias
- exists_index(): Fail-closed existence check
- swap_alias(): Atomically repoint an alias from one index to another
- rebuild_index(): Zero-downtime rebuild via BulkReindexer
- optimize_index(): Segment merge pass-through
- cluster_metadata(): Flattened node information

Error Contract:
- No exception crosses this boundary; failures are logged and returned as an
  Outcome (ok flag plus ErrorKind), or False/None for the boolean lookups
- The cluster client is borrowed unless the manager created it itself
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Any

from ..cluster import AliasAction, ElasticsearchCluster
from ..errors import ClusterError
from .aliases import AliasResolver, is_blank
from .results import ErrorKind, Outcome
from .schema import get_default_mapping, get_index_settings, initial_index_name

if TYPE_CHECKING:
    from collections.abc import Callable
    from threading import Event

    from ..cluster import ClusterClient
    from ..store import RecordSource
    from .results import RebuildResult

logger = logging.getLogger(__name__)


def _has_whitespace(name: str) -> bool:
    return any(ch.isspace() for ch in name)


def _is_already_exists(error: ClusterError) -> bool:
    return error.status == 400 and "already_exists" in str(error)


class IndexManager:
    """
    Creates, checks, rebuilds and deletes concrete indices behind aliases.

    Connection settings for the default cluster come from config:
    - SEARCH_INDEX_ES_URL / SEARCH_INDEX_ES_API_KEY / SEARCH_INDEX_ES_TIMEOUT

    Thread Safety:
    - get_instance() uses a class-level lock
    - Concurrent rebuilds of one alias are rejected by AliasLeases
    """

    _instance: IndexManager | None = None
    _instance_lock = threading.Lock()

    def __init__(self, cluster: ClusterClient | None = None):
        """
        Initialize the IndexManager.

        Args:
            cluster: Cluster client to borrow (an ElasticsearchCluster built
                from config is created and owned if None)
        """
        self._owns_cluster = cluster is None
        self._cluster: ClusterClient = cluster or ElasticsearchCluster()
        self._resolver = AliasResolver(self._cluster)

    @classmethod
    def get_instance(cls) -> IndexManager:
        """Get the process-wide IndexManager instance (thread-safe)."""
        with cls._instance_lock:
            if cls._instance is None:
                cls._instance = IndexManager()
            return cls._instance

    @property
    def cluster(self) -> ClusterClient:
        return self._cluster

    @property
    def resolver(self) -> AliasResolver:
        return self._resolver

    def close(self) -> None:
        """Release the cluster connection if this manager owns it."""
        if self._owns_cluster:
            self._cluster.close()

    # ─────────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────────

    def create_index(self, alias: str) -> Outcome:
        """
        Create the first concrete index for an alias and bind the alias.

        Fails without touching the cluster if the alias is blank, contains
        whitespace, or already exists.

        Args:
            alias: Logical index name

        Returns:
            Outcome whose index is the new concrete index name
        """
        if is_blank(alias) or _has_whitespace(alias):
            return Outcome.failure(
                ErrorKind.VALIDATION, f"Invalid index name: {alias!r}"
            )
        if self.exists_index(alias):
            return Outcome.failure(
                ErrorKind.ALREADY_EXISTS, f"Index {alias} already exists"
            )

        name = initial_index_name(alias)
        try:
            self._cluster.create_index(
                name, get_index_settings(), get_default_mapping()
            )
        except ClusterError as e:
            if _is_already_exists(e):
                # Orphan concrete index left without its alias
                logger.warning("Index %s already exists: %s", name, e)
                return Outcome.failure(
                    ErrorKind.ALREADY_EXISTS, f"Index {name} already exists"
                )
            logger.warning(
                "Failed to create index %s: %s", name, e, exc_info=True
            )
            return Outcome.failure(ErrorKind.CONNECTIVITY, str(e))

        try:
            self._cluster.mutate_aliases([AliasAction.add(name, alias)])
        except ClusterError as e:
            logger.warning("Failed to bind alias %s -> %s: %s", alias, name, e)
            self._drop_quietly(name)
            return Outcome.failure(ErrorKind.CONNECTIVITY, str(e))

        logger.info("Created index %s for alias %s", name, alias)
        return Outcome.success(f"Created {name}", index=name)

    def delete_index(self, alias: str) -> Outcome:
        """
        Delete the concrete index behind an alias.

        The engine removes alias bindings to a deleted index itself. A
        concrete index name (not an alias) is deleted directly.
        """
        if is_blank(alias):
            return Outcome.failure(
                ErrorKind.VALIDATION, f"Invalid index name: {alias!r}"
            )
        if not self.exists_index(alias):
            return Outcome.failure(
                ErrorKind.NOT_FOUND, f"No index named {alias}"
            )

        try:
            targets = self._cluster.get_alias_targets(alias)
            if len(targets) > 1:
                logger.warning(
                    "Refusing to delete %s: alias has %d indices",
                    alias,
                    len(targets),
                )
                return Outcome.failure(
                    ErrorKind.AMBIGUOUS_ALIAS,
                    f"Alias {alias} points at {len(targets)} indices",
                )
            target = next(iter(targets)) if targets else alias
            self._cluster.delete_index(target)
        except ClusterError as e:
            logger.warning(
                "Failed to delete index %s: %s", alias, e, exc_info=True
            )
            return Outcome.failure(ErrorKind.CONNECTIVITY, str(e))

        logger.info("Deleted index %s", target)
        return Outcome.success(f"Deleted {target}", index=target)

    def exists_index(self, alias: str) -> bool:
        """
        Check whether an alias (or concrete index) exists.

        Fails closed: a failed check reports False, same as a missing index.
        """
        if is_blank(alias):
            return False
        try:
            return self._cluster.index_exists(alias)
        except ClusterError as e:
            logger.warning("Existence check for %s failed: %s", alias, e)
            return False

    def resolve_alias(self, alias: str) -> str | None:
        """Return the single concrete index behind an alias, or None."""
        return self._resolver.resolve(alias)

    def swap_alias(self, alias: str, old_index: str, new_index: str) -> Outcome:
        """
        Repoint alias from old_index to new_index in one request.

        Both edits go into a single alias-mutation call, so readers see the
        alias on either the old or the new index, never neither or both.
        """
        try:
            self._cluster.mutate_aliases(
                [
                    AliasAction.add(new_index, alias),
                    AliasAction.remove(old_index, alias),
                ]
            )
        except ClusterError as e:
            logger.warning(
                "Alias swap %s: %s -> %s failed: %s",
                alias,
                old_index,
                new_index,
                e,
            )
            return Outcome.failure(ErrorKind.CONNECTIVITY, str(e))

        logger.info(
            "Alias %s now points at %s (was %s)", alias, new_index, old_index
        )
        return Outcome.success(index=new_index)

    def rebuild_index(
        self,
        alias: str,
        source: RecordSource | None,
        flush_threshold: int | None = None,
        cancel_event: Event | None = None,
        progress_callback: Callable[[int, int | None, str], None] | None = None,
    ) -> RebuildResult:
        """
        Rebuild an alias from a record source without downtime.

        Args:
            alias: Alias to rebuild
            source: Record source to read pages from
            flush_threshold: Pending actions per bulk write (config default)
            cancel_event: Set to abort before the alias swap
            progress_callback: Optional callback(current, total, message)

        Returns:
            RebuildResult describing how far the rebuild got
        """
        from .reindex import BulkReindexer

        reindexer = BulkReindexer(
            self._cluster, manager=self, flush_threshold=flush_threshold
        )
        return reindexer.rebuild(
            alias,
            source,
            cancel_event=cancel_event,
            progress_callback=progress_callback,
        )

    # ─────────────────────────────────────────────────────────────────
    # Maintenance
    # ─────────────────────────────────────────────────────────────────

    def optimize_index(self, alias: str) -> Outcome:
        """
        Ask the cluster to merge segments of an index.

        Success means zero failed shards; otherwise the count is reported
        in Outcome.failed_shards.
        """
        if is_blank(alias):
            return Outcome.failure(
                ErrorKind.VALIDATION, f"Invalid index name: {alias!r}"
            )
        try:
            failed = self._cluster.optimize(alias)
        except ClusterError as e:
            logger.warning("Optimize of %s failed: %s", alias, e)
            return Outcome.failure(ErrorKind.CONNECTIVITY, str(e))

        if failed:
            logger.warning("Optimize of %s: %d shards failed", alias, failed)
            outcome = Outcome.failure(
                ErrorKind.CONNECTIVITY, f"{failed} shards failed"
            )
            outcome.failed_shards = failed
            return outcome
        return Outcome.success(f"Optimized {alias}", index=alias)

    def cluster_metadata(self) -> dict[str, str]:
        """
        Flattened cluster and node information.

        Keys: cluster.name, then node.<n>.{id,name,address,data,client,version}
        for each node. Empty if the cluster cannot be reached.
        """
        try:
            info = self._cluster.cluster_info()
        except ClusterError as e:
            logger.warning("Cannot read cluster metadata: %s", e)
            return {}

        md: dict[str, str] = {"cluster.name": str(info.get("cluster_name", ""))}
        nodes: dict[str, Any] = info.get("nodes") or {}
        for n, node_id in enumerate(sorted(nodes)):
            node = nodes[node_id] or {}
            roles = list(node.get("roles") or [])
            prefix = f"node.{n}"
            md[f"{prefix}.id"] = node_id
            md[f"{prefix}.name"] = str(node.get("name", ""))
            md[f"{prefix}.address"] = str(
                node.get("transport_address") or node.get("host", "")
            )
            md[f"{prefix}.data"] = str(
                any(r.startswith("data") for r in roles)
            ).lower()
            md[f"{prefix}.client"] = str(not roles).lower()
            md[f"{prefix}.version"] = str(node.get("version", ""))
        return md

    def _drop_quietly(self, name: str) -> bool:
        """Best-effort delete of an index nobody points at yet."""
        try:
            self._cluster.delete_index(name)
        except ClusterError as e:
            logger.warning("Could not drop orphan index %s: %s", name, e)
            return False
        return True

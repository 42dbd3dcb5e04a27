"""Search cluster access.

Provides:
- ClusterClient: the narrow protocol the index subsystem talks to
- AliasAction / BulkAction / BulkReport: request and response values
- ElasticsearchCluster: ClusterClient backed by the elasticsearch package

The Elasticsearch connection is created lazily on first use and released
with close(). Callers construct one ElasticsearchCluster per process (or per
hosting-service lifetime) and hand it to IndexManager and BulkReindexer,
which borrow it without owning it.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal, Protocol

from elasticsearch import ApiError, Elasticsearch, NotFoundError, TransportError
from elasticsearch.helpers import bulk

from .config import get_es_api_key, get_es_timeout, get_es_url
from .errors import ClusterError

if TYPE_CHECKING:
    from types import TracebackType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AliasAction:
    """One edit inside an atomic alias-mutation request."""

    op: Literal["add", "remove"]
    index: str
    alias: str

    @classmethod
    def add(cls, index: str, alias: str) -> AliasAction:
        return cls("add", index, alias)

    @classmethod
    def remove(cls, index: str, alias: str) -> AliasAction:
        return cls("remove", index, alias)

    def to_dict(self) -> dict[str, dict[str, str]]:
        return {self.op: {"index": self.index, "alias": self.alias}}


@dataclass(frozen=True)
class BulkAction:
    """An upsert of one document, keyed by (index, id).

    body is the full document source, type field included.
    """

    index: str
    doc_type: str
    doc_id: str
    body: dict[str, Any] = field(default_factory=dict)


@dataclass
class BulkReport:
    """Per-item outcome of one bulk write."""

    accepted: int
    failed: int = 0

    @property
    def has_failures(self) -> bool:
        return self.failed > 0


class ClusterClient(Protocol):
    """Operations the index subsystem needs from a search cluster.

    Implementations raise ClusterError for any transport or API failure.
    """

    def index_exists(self, name: str) -> bool: ...

    def create_index(
        self, name: str, settings: dict[str, Any], mappings: dict[str, Any]
    ) -> None: ...

    def delete_index(self, name: str) -> None: ...

    def get_alias_targets(self, alias: str) -> set[str]: ...

    def mutate_aliases(self, actions: list[AliasAction]) -> None: ...

    def bulk_write(self, actions: list[BulkAction]) -> BulkReport: ...

    def optimize(self, name: str) -> int: ...

    def cluster_info(self) -> dict[str, Any]: ...

    def close(self) -> None: ...


class ElasticsearchCluster:
    """
    ClusterClient implementation over the official Elasticsearch client.

    Connection settings come from config unless given explicitly:
    - SEARCH_INDEX_ES_URL: Cluster URL (http://localhost:9200)
    - SEARCH_INDEX_ES_API_KEY: Optional API key
    - SEARCH_INDEX_ES_TIMEOUT: Request timeout in seconds (30)
    """

    def __init__(
        self,
        url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        client: Elasticsearch | None = None,
    ):
        self._url = url or get_es_url()
        self._api_key = api_key if api_key is not None else get_es_api_key()
        self._timeout = timeout if timeout is not None else get_es_timeout()
        self._client = client
        self._client_lock = threading.Lock()

    @property
    def url(self) -> str:
        return self._url

    def _get_client(self) -> Elasticsearch:
        """Get or create the Elasticsearch client (thread-safe)."""
        with self._client_lock:
            if self._client is None:
                logger.info("Connecting to search cluster at %s", self._url)
                kwargs: dict[str, Any] = {"request_timeout": self._timeout}
                if self._api_key:
                    kwargs["api_key"] = self._api_key
                self._client = Elasticsearch(self._url, **kwargs)
            return self._client

    def close(self) -> None:
        """Release the underlying connection pool."""
        with self._client_lock:
            if self._client is not None:
                self._client.close()
                self._client = None

    def __enter__(self) -> ElasticsearchCluster:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    # ─────────────────────────────────────────────────────────────────
    # Index admin
    # ─────────────────────────────────────────────────────────────────

    def index_exists(self, name: str) -> bool:
        try:
            return bool(self._get_client().indices.exists(index=name))
        except (ApiError, TransportError) as e:
            raise ClusterError(f"exists({name}) failed: {e}", _status(e)) from e

    def create_index(
        self, name: str, settings: dict[str, Any], mappings: dict[str, Any]
    ) -> None:
        try:
            self._get_client().indices.create(
                index=name, settings=settings, mappings=mappings
            )
        except (ApiError, TransportError) as e:
            raise ClusterError(f"create({name}) failed: {e}", _status(e)) from e

    def delete_index(self, name: str) -> None:
        try:
            self._get_client().indices.delete(index=name)
        except (ApiError, TransportError) as e:
            raise ClusterError(f"delete({name}) failed: {e}", _status(e)) from e

    # ─────────────────────────────────────────────────────────────────
    # Aliases
    # ─────────────────────────────────────────────────────────────────

    def get_alias_targets(self, alias: str) -> set[str]:
        """Return every concrete index the alias points at (empty if none)."""
        try:
            resp = self._get_client().indices.get_alias(name=alias)
        except NotFoundError:
            return set()
        except (ApiError, TransportError) as e:
            raise ClusterError(
                f"get_alias({alias}) failed: {e}", _status(e)
            ) from e
        return set(resp.keys())

    def mutate_aliases(self, actions: list[AliasAction]) -> None:
        """Apply all alias edits in a single _aliases request."""
        try:
            self._get_client().indices.update_aliases(
                actions=[a.to_dict() for a in actions]
            )
        except (ApiError, TransportError) as e:
            raise ClusterError(f"update_aliases failed: {e}", _status(e)) from e

    # ─────────────────────────────────────────────────────────────────
    # Documents and maintenance
    # ─────────────────────────────────────────────────────────────────

    def bulk_write(self, actions: list[BulkAction]) -> BulkReport:
        """
        Index all actions in one bulk request.

        Item-level failures are counted, not raised. Transport failures
        raise ClusterError.
        """
        if not actions:
            return BulkReport(accepted=0)

        ops = (
            {
                "_op_type": "index",
                "_index": a.index,
                "_id": a.doc_id,
                "_source": a.body,
            }
            for a in actions
        )
        try:
            accepted, errors = bulk(
                self._get_client(),
                ops,
                chunk_size=len(actions),
                raise_on_error=False,
                stats_only=False,
            )
        except (ApiError, TransportError) as e:
            raise ClusterError(f"bulk write failed: {e}", _status(e)) from e

        failed = len(errors) if isinstance(errors, list) else int(errors)
        return BulkReport(accepted=accepted, failed=failed)

    def optimize(self, name: str) -> int:
        """Force-merge segments; returns the number of failed shards."""
        try:
            resp = self._get_client().indices.forcemerge(index=name)
        except (ApiError, TransportError) as e:
            raise ClusterError(
                f"forcemerge({name}) failed: {e}", _status(e)
            ) from e
        return int(resp.get("_shards", {}).get("failed", 0))

    def cluster_info(self) -> dict[str, Any]:
        try:
            return dict(self._get_client().nodes.info())
        except (ApiError, TransportError) as e:
            raise ClusterError(f"nodes.info failed: {e}", _status(e)) from e


def _status(error: Exception) -> int | None:
    """Extract the HTTP status from an API error, if there is one."""
    status = getattr(error, "status_code", None)
    if status is None:
        meta = getattr(error, "meta", None)
        status = getattr(meta, "status", None)
    return status if isinstance(status, int) else None

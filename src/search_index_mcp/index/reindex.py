"""Zero-downtime rebuild of an alias from a record source.

A rebuild copies every record of the alias's collection into a fresh
concrete index, then atomically repoints the alias and drops the old index.
The alias keeps serving the old index until the swap, so readers never see
a partially built index.

Phases (RebuildState):
    START -> VALIDATE -> PAGINATE <-> FLUSH -> SWAP -> CLEANUP -> DONE
with FAILED or CANCELLED reachable from anything before SWAP completes.

Failure before the swap leaves the alias untouched and drops the partially
written target. A failed swap request never drops the target: the request
may have been applied even if the response was lost. Failure to delete the
old index after a successful swap is logged and reported, but the rebuild
still counts as done.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING

from ..cluster import BulkAction
from ..config import get_flush_threshold
from ..errors import ClusterError, SourceError
from .aliases import is_blank
from .leases import AliasLeases
from .manager import IndexManager
from .results import ErrorKind, RebuildResult, RebuildState
from .schema import (
    document_body,
    get_default_mapping,
    get_index_settings,
    rebuild_index_name,
)

if TYPE_CHECKING:
    from collections.abc import Callable
    from threading import Event

    from ..cluster import ClusterClient
    from ..store import Record, RecordSource

logger = logging.getLogger(__name__)


class RebuildCancelled(Exception):
    """Raised inside a rebuild when its cancel event is set."""


def _now_ms() -> int:
    return int(time.time() * 1000)


class BulkReindexer:
    """
    Streams records into a new concrete index and swaps the alias over.

    Args:
        cluster: Cluster client (borrowed)
        manager: IndexManager used for the swap and cleanup (one sharing
            the cluster is created if None)
        flush_threshold: Pending actions that trigger a bulk write
            (SEARCH_INDEX_FLUSH_THRESHOLD, default 100)
        leases: Per-alias exclusion registry (process-wide by default)
        clock: Returns the rebuild timestamp in epoch milliseconds
    """

    def __init__(
        self,
        cluster: ClusterClient,
        manager: IndexManager | None = None,
        flush_threshold: int | None = None,
        leases: AliasLeases | None = None,
        clock: Callable[[], int] | None = None,
    ):
        self._cluster = cluster
        self._manager = manager or IndexManager(cluster)
        self._threshold = max(1, flush_threshold or get_flush_threshold())
        self._leases = leases or AliasLeases.get_instance()
        self._clock = clock or _now_ms

    @property
    def flush_threshold(self) -> int:
        return self._threshold

    def rebuild(
        self,
        alias: str,
        source: RecordSource | None,
        cancel_event: Event | None = None,
        progress_callback: Callable[[int, int | None, str], None] | None = None,
    ) -> RebuildResult:
        """
        Rebuild alias from source.

        Never raises; the returned RebuildResult carries the final state,
        the failure kind if any, and counters for the copy.
        """
        result = RebuildResult(alias=alias, state=RebuildState.START)

        if is_blank(alias):
            return _fail(
                result, ErrorKind.VALIDATION, f"Invalid index name: {alias!r}"
            )
        if source is None:
            return _fail(result, ErrorKind.VALIDATION, "No record source given")

        with self._leases.hold(alias) as acquired:
            if not acquired:
                logger.warning(
                    "Rebuild of %s rejected: already in progress", alias
                )
                return _fail(
                    result,
                    ErrorKind.CONFLICT,
                    f"A rebuild of {alias} is already running",
                )
            return self._run(result, source, cancel_event, progress_callback)

    def _run(
        self,
        result: RebuildResult,
        source: RecordSource,
        cancel_event: Event | None,
        progress_callback: Callable[[int, int | None, str], None] | None,
    ) -> RebuildResult:
        alias = result.alias
        result.state = RebuildState.VALIDATE

        try:
            if not self._cluster.index_exists(alias):
                return _fail(
                    result, ErrorKind.NOT_FOUND, f"No index named {alias}"
                )

            resolution = self._manager.resolver.lookup(alias)
            if not resolution.ok:
                return _fail(
                    result,
                    resolution.kind or ErrorKind.NOT_FOUND,
                    f"Cannot resolve alias {alias} to a single index",
                )
            old_index = resolution.index
            new_index = rebuild_index_name(old_index, self._clock())
            result.old_index = old_index
            result.new_index = new_index

            logger.info("Rebuilding %s: %s -> %s", alias, old_index, new_index)

            # Create the target up front so writes never auto-create it
            # with the engine's default settings and mapping
            self._cluster.create_index(
                new_index, get_index_settings(), get_default_mapping()
            )

            self._copy(
                result, new_index, source, cancel_event, progress_callback
            )

            # Optimistic check: the alias must still point where we started
            current = self._cluster.get_alias_targets(alias)
            if current != {old_index}:
                self._discard_target(result)
                return _fail(
                    result,
                    ErrorKind.CONFLICT,
                    f"Alias {alias} moved during rebuild "
                    f"(now {', '.join(sorted(current)) or 'unbound'})",
                )
        except RebuildCancelled:
            logger.info("Rebuild of %s cancelled before swap", alias)
            self._discard_target(result)
            result.state = RebuildState.CANCELLED
            result.kind = ErrorKind.CANCELLED
            result.message = "Rebuild cancelled; alias unchanged"
            return result
        except (ClusterError, SourceError) as e:
            logger.warning("Rebuild of %s failed: %s", alias, e, exc_info=True)
            self._discard_target(result)
            return _fail(result, ErrorKind.CONNECTIVITY, str(e))
        except Exception as e:
            logger.exception("Rebuild of %s failed unexpectedly", alias)
            self._discard_target(result)
            return _fail(result, ErrorKind.INTERNAL, str(e))

        result.state = RebuildState.SWAP
        swap = self._manager.swap_alias(alias, old_index, new_index)
        if not swap:
            return _fail(
                result, swap.kind or ErrorKind.CONNECTIVITY, swap.message
            )

        result.state = RebuildState.CLEANUP
        cleanup = self._manager.delete_index(old_index)
        result.old_index_deleted = cleanup.ok
        if not cleanup:
            logger.warning(
                "Rebuild of %s done, but old index %s was not deleted: %s",
                alias,
                old_index,
                cleanup.message,
            )

        result.state = RebuildState.DONE
        result.message = (
            f"Rebuilt {alias}: {result.indexed} records in {new_index}"
        )
        logger.info(
            "Rebuild of %s complete: indexed=%d, bulk_calls=%d, "
            "failed_items=%d",
            alias,
            result.indexed,
            result.bulk_calls,
            result.failed_items,
        )
        return result

    # ─────────────────────────────────────────────────────────────────
    # Copy loop
    # ─────────────────────────────────────────────────────────────────

    def _copy(
        self,
        result: RebuildResult,
        new_index: str,
        source: RecordSource,
        cancel_event: Event | None,
        progress_callback: Callable[[int, int | None, str], None] | None,
    ) -> None:
        """Page through the source, flushing every flush_threshold actions."""
        alias = result.alias
        batch: list[BulkAction] = []
        cursor: str | None = None

        page = self._read_page(result, source, cursor, cancel_event)
        while page:
            for record in page:
                batch.append(self._action(new_index, record))
                if len(batch) >= self._threshold:
                    self._flush(result, batch, cancel_event, progress_callback)
                    batch = []

            last_id = page[-1].id
            if last_id == cursor:
                raise SourceError(
                    f"Cursor for {alias} did not advance past {cursor!r}"
                )
            cursor = last_id
            page = self._read_page(result, source, cursor, cancel_event)

        # Anything left after the loop? Index that too
        if batch:
            self._flush(result, batch, cancel_event, progress_callback)

    def _read_page(
        self,
        result: RebuildResult,
        source: RecordSource,
        cursor: str | None,
        cancel_event: Event | None,
    ) -> list[Record]:
        _check_cancelled(cancel_event)
        result.state = RebuildState.PAGINATE
        return source.read_page(result.alias, cursor)

    def _flush(
        self,
        result: RebuildResult,
        batch: list[BulkAction],
        cancel_event: Event | None,
        progress_callback: Callable[[int, int | None, str], None] | None,
    ) -> None:
        _check_cancelled(cancel_event)
        result.state = RebuildState.FLUSH

        report = self._cluster.bulk_write(batch)
        result.bulk_calls += 1
        result.indexed += report.accepted
        result.failed_items += report.failed

        logger.info(
            "Rebuild %s: indexed %d, failed=%d",
            result.alias,
            report.accepted,
            report.failed,
        )
        if report.has_failures:
            logger.warning(
                "Rebuild %s: %d of %d items failed in bulk write %d "
                "(not retried)",
                result.alias,
                report.failed,
                len(batch),
                result.bulk_calls,
            )

        if progress_callback:
            progress_callback(
                result.indexed, None, f"Indexed {result.indexed} records..."
            )

    @staticmethod
    def _action(index: str, record: Record) -> BulkAction:
        return BulkAction(
            index=index,
            doc_type=record.type,
            doc_id=record.id,
            body=document_body(record.type, record.fields),
        )

    def _discard_target(self, result: RebuildResult) -> None:
        """Drop a half-built target so failed runs leave no orphan index."""
        if result.new_index is None:
            return
        try:
            if self._cluster.index_exists(result.new_index):
                self._cluster.delete_index(result.new_index)
                logger.info("Dropped unfinished index %s", result.new_index)
        except ClusterError as e:
            logger.warning(
                "Could not drop unfinished index %s: %s", result.new_index, e
            )


def _check_cancelled(cancel_event: Event | None) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise RebuildCancelled()


def _fail(
    result: RebuildResult, kind: ErrorKind, message: str
) -> RebuildResult:
    result.state = RebuildState.FAILED
    result.kind = kind
    result.message = message
    return result

"""Command-line interface for search-index-mcp.

Provides commands for:
- create / delete / exists / resolve: Alias lifecycle
- rebuild: Zero-downtime rebuild from the record store
- optimize: Merge index segments
- info: Show cluster metadata
- load: Import JSON-lines records into the record store
- serve: Run the MCP server (default)

Usage:
    search-index-mcp                  # Run MCP server (default)
    search-index-mcp create things    # Create index things1 behind alias things
    search-index-mcp rebuild things   # Rebuild things from the record store
    search-index-mcp info             # Show cluster metadata
"""

import json
import logging
import sys
import time
from pathlib import Path
from typing import Annotated

import cyclopts

from .config import get_default_alias, get_es_url, get_store_path

app = cyclopts.App(
    name="search-index-mcp",
    help="Aliased search index management with zero-downtime rebuilds.",
)

VerboseFlag = Annotated[
    bool,
    cyclopts.Parameter(name=["--verbose", "-v"], help="Enable verbose output"),
]


def _format_time(seconds: float) -> str:
    """Format duration for display."""
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes = int(seconds // 60)
    secs = seconds % 60
    return f"{minutes}m {secs:.1f}s"


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _alias_or_default(alias: str | None) -> str:
    name = alias or get_default_alias()
    if not name:
        print(
            "Error: no alias given and SEARCH_INDEX_DEFAULT_ALIAS is not set",
            file=sys.stderr,
        )
        sys.exit(1)
    return name


def _report(outcome, success: str) -> None:
    """Print an Outcome and exit non-zero on failure."""
    if outcome.ok:
        print(f"✓ {success}")
        return
    kind = outcome.kind.value if outcome.kind else "error"
    print(f"✗ {kind}: {outcome.message}", file=sys.stderr)
    sys.exit(1)


def _manager():
    from .index import IndexManager

    return IndexManager()


def _run_serve() -> None:
    """Internal function to run the MCP server."""
    from .index import IndexManager
    from .server import mcp

    manager = IndexManager.get_instance()
    try:
        mcp.run()
    finally:
        manager.close()


@app.command
def serve(verbose: VerboseFlag = False) -> None:
    """
    Run the MCP server.

    This is the default command when no subcommand is specified.
    The cluster connection is opened on first use and closed on exit.
    """
    _configure_logging(verbose)
    _run_serve()


@app.command
def create(alias: str | None = None, verbose: VerboseFlag = False) -> None:
    """
    Create <alias>1 and bind the alias to it.

    Fails if the alias already exists or contains whitespace.
    """
    _configure_logging(verbose)
    name = _alias_or_default(alias)
    manager = _manager()
    try:
        outcome = manager.create_index(name)
    finally:
        manager.close()
    _report(outcome, f"Created {outcome.index} for alias {name}")


@app.command
def delete(alias: str | None = None, verbose: VerboseFlag = False) -> None:
    """Delete the concrete index behind an alias."""
    _configure_logging(verbose)
    name = _alias_or_default(alias)
    manager = _manager()
    try:
        outcome = manager.delete_index(name)
    finally:
        manager.close()
    _report(outcome, f"Deleted {outcome.index}")


@app.command
def exists(alias: str | None = None, verbose: VerboseFlag = False) -> None:
    """
    Check whether an alias exists (exit status 0 if it does).

    A failed check is reported the same as a missing alias.
    """
    _configure_logging(verbose)
    name = _alias_or_default(alias)
    manager = _manager()
    try:
        found = manager.exists_index(name)
    finally:
        manager.close()
    print(f"{name}: {'exists' if found else 'not found'}")
    if not found:
        sys.exit(1)


@app.command
def resolve(alias: str | None = None, verbose: VerboseFlag = False) -> None:
    """Print the concrete index currently serving an alias."""
    _configure_logging(verbose)
    name = _alias_or_default(alias)
    manager = _manager()
    try:
        index = manager.resolve_alias(name)
    finally:
        manager.close()
    if index is None:
        print(f"✗ {name} does not resolve to a single index", file=sys.stderr)
        sys.exit(1)
    print(f"{name} -> {index}")


@app.command
def rebuild(
    alias: str | None = None,
    threshold: Annotated[
        int | None,
        cyclopts.Parameter(
            name=["--threshold", "-t"],
            help="Actions per bulk write "
            "(default: SEARCH_INDEX_FLUSH_THRESHOLD)",
        ),
    ] = None,
    verbose: VerboseFlag = False,
) -> None:
    """
    Rebuild an index from the record store without downtime.

    Records are copied into a new concrete index, then the alias is swapped
    over in one request and the old index is deleted. Press Ctrl-C to cancel
    before the swap; the alias is left untouched.
    """
    import threading

    from .store import RecordStore

    _configure_logging(verbose)
    name = _alias_or_default(alias)

    print(f"Rebuilding {name}...")
    print(f"Cluster: {get_es_url()}")
    print(f"Records: {get_store_path()}")
    print()

    manager = _manager()
    store = RecordStore()
    cancel = threading.Event()
    start = time.time()

    def progress(current: int, total: int | None, message: str) -> None:
        if verbose:
            print(f"\r{message}", end="", flush=True)

    results: list = []

    def run() -> None:
        results.append(
            manager.rebuild_index(
                name,
                store,
                flush_threshold=threshold,
                cancel_event=cancel,
                progress_callback=progress,
            )
        )

    # Rebuild in a worker so Ctrl-C can cancel it cleanly before the swap
    worker = threading.Thread(target=run, name=f"rebuild-{name}", daemon=True)
    try:
        worker.start()
        try:
            while worker.is_alive():
                worker.join(0.2)
        except KeyboardInterrupt:
            cancel.set()
            print("\nCancelling...", file=sys.stderr)
            worker.join()
    finally:
        store.close()
        manager.close()

    elapsed = time.time() - start
    if verbose:
        print()

    result = results[0]
    if not result.ok:
        kind = result.kind.value if result.kind else "error"
        print(f"✗ {kind}: {result.message}", file=sys.stderr)
        sys.exit(1)

    print(
        f"✓ Rebuilt {result.indexed:,} records into {result.new_index} "
        f"in {_format_time(elapsed)}"
    )
    print(f"  Bulk writes:  {result.bulk_calls}")
    if result.failed_items:
        print(f"  ⚠ Failed items: {result.failed_items} (not retried)")
    if not result.old_index_deleted:
        print(f"  ⚠ Old index {result.old_index} was not deleted")


@app.command
def optimize(alias: str | None = None, verbose: VerboseFlag = False) -> None:
    """Merge the segments of an index."""
    _configure_logging(verbose)
    name = _alias_or_default(alias)
    manager = _manager()
    try:
        outcome = manager.optimize_index(name)
    finally:
        manager.close()
    _report(outcome, f"Optimized {name}")


@app.command
def info(verbose: VerboseFlag = False) -> None:
    """Show cluster and node metadata."""
    _configure_logging(verbose)
    manager = _manager()
    try:
        metadata = manager.cluster_metadata()
    finally:
        manager.close()

    if not metadata:
        print(f"✗ Cannot reach cluster at {get_es_url()}", file=sys.stderr)
        sys.exit(1)

    print("Search Cluster")
    print("=" * 40)
    width = max(len(key) for key in metadata)
    for key, value in metadata.items():
        print(f"{key.ljust(width)}  {value}")


@app.command
def load(
    path: Path,
    alias: str | None = None,
    verbose: VerboseFlag = False,
) -> None:
    """
    Import records into the record store from a JSON-lines file.

    Each line is an object with "id", "type" and optional "fields".
    Existing records with the same id are overwritten.
    """
    from .store import Record, RecordStore

    _configure_logging(verbose)
    name = _alias_or_default(alias)

    records: list[Record] = []
    try:
        with path.open(encoding="utf-8") as f:
            for lineno, line in enumerate(f, start=1):
                if not line.strip():
                    continue
                data = json.loads(line)
                if not isinstance(data, dict):
                    raise ValueError("record must be a JSON object")
                fields = data.get("fields") or {}
                if not isinstance(fields, dict):
                    raise ValueError('"fields" must be a JSON object')
                records.append(
                    Record(
                        id=str(data["id"]),
                        type=str(data["type"]),
                        fields=fields,
                    )
                )
    except FileNotFoundError as e:
        print(f"✗ Not found: {e}", file=sys.stderr)
        sys.exit(1)
    except (ValueError, KeyError) as e:
        print(f"✗ Bad record on line {lineno}: {e}", file=sys.stderr)
        sys.exit(1)

    store = RecordStore()
    try:
        count = store.put_many(name, records)
    finally:
        store.close()
    print(f"✓ Loaded {count:,} records into {name}")


@app.default
def default_handler(verbose: VerboseFlag = False) -> None:
    """Run the MCP server (default when no command specified)."""
    _configure_logging(verbose)
    _run_serve()


def main() -> None:
    """Entry point for the CLI."""
    app()

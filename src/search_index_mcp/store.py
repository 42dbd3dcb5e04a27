"""Record store feeding index rebuilds.

The schema uses:
- records: one row per object, keyed by (collection, id), fields as JSON
- schema_version: tracks the schema for migrations

Pages are read in ascending id order. A cursor is the id of the last record
of the previous page, and the next page resumes strictly after it, so
re-reading with the same cursor never yields records already consumed.
"""

from __future__ import annotations

import json
import logging
import os
import sqlite3
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

from .config import get_page_size, get_store_path
from .errors import SourceError

logger = logging.getLogger(__name__)

# Current schema version for migrations
SCHEMA_VERSION = 1

# Default PRAGMAs for all connections
DEFAULT_PRAGMAS = {
    "journal_mode": "WAL",
    "synchronous": "NORMAL",
    "busy_timeout": 5000,
}

# Upsert on the composite key so replays are idempotent
UPSERT_RECORD_SQL = """INSERT OR REPLACE INTO records
    (collection, id, type, fields, updated_at)
    VALUES (?, ?, ?, ?, datetime('now'))"""

READ_FIRST_PAGE_SQL = """SELECT id, type, fields FROM records
    WHERE collection = ?
    ORDER BY id LIMIT ?"""

READ_PAGE_SQL = """SELECT id, type, fields FROM records
    WHERE collection = ? AND id > ?
    ORDER BY id LIMIT ?"""


@dataclass(frozen=True)
class Record:
    """An object to index: id, type name, and field mapping."""

    id: str
    type: str
    fields: dict[str, Any] = field(default_factory=dict)


class RecordSource(Protocol):
    """Supplies ordered pages of records.

    An empty page is the only end-of-data signal. Implementations raise
    SourceError when a page cannot be read.
    """

    def read_page(
        self, collection: str, cursor: str | None
    ) -> list[Record]: ...


def get_schema_sql() -> str:
    """Return the complete schema creation SQL."""
    return """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS records (
    collection TEXT NOT NULL,        -- Alias the record belongs to
    id TEXT NOT NULL,
    type TEXT NOT NULL,
    fields TEXT NOT NULL DEFAULT '{}',  -- JSON object
    updated_at TEXT DEFAULT (datetime('now')),
    PRIMARY KEY(collection, id)
);

CREATE INDEX IF NOT EXISTS idx_records_type
    ON records(collection, type);
"""


def create_connection(db_path: Path | str) -> sqlite3.Connection:
    """
    Create a database connection with standard configuration.

    Args:
        db_path: Path to the SQLite database file (or ":memory:")

    Returns:
        Configured connection with WAL mode, busy timeout, and Row factory
    """
    conn = sqlite3.connect(db_path, check_same_thread=False)
    conn.row_factory = sqlite3.Row

    for pragma, value in DEFAULT_PRAGMAS.items():
        conn.execute(f"PRAGMA {pragma}={value}")

    return conn


def init_database(db_path: Path) -> sqlite3.Connection:
    """
    Initialize the store with schema, creating parent directories if needed.

    Security:
        Sets file permissions to 0600 on new databases; records may carry
        credentials (password, authtoken, salt fields).
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)
    is_new_db = not db_path.exists()

    conn = create_connection(db_path)

    if is_new_db:
        try:
            os.chmod(db_path, 0o600)
            logger.debug("Set secure permissions (0600) on %s", db_path)
        except OSError as e:
            logger.warning(
                "Could not set secure permissions on %s: %s", db_path, e
            )

    cursor = conn.execute(
        "SELECT name FROM sqlite_master "
        "WHERE type='table' AND name='schema_version'"
    )
    if cursor.fetchone() is None:
        logger.info("Creating record store schema (version %d)", SCHEMA_VERSION)
        conn.executescript(get_schema_sql())
        conn.execute(
            "INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,)
        )
        conn.commit()
    else:
        row = conn.execute(
            "SELECT version FROM schema_version LIMIT 1"
        ).fetchone()
        current_version = row[0] if row else 0
        if current_version > SCHEMA_VERSION:
            logger.warning(
                "Record store schema v%d is newer than supported v%d",
                current_version,
                SCHEMA_VERSION,
            )

    return conn


class RecordStore:
    """
    SQLite-backed RecordSource.

    The store lives at ~/.search-index-mcp/records.db by default.
    Use environment variables to customize:
    - SEARCH_INDEX_STORE_PATH: Database location
    - SEARCH_INDEX_PAGE_SIZE: Records per page (100)
    """

    def __init__(
        self, db_path: Path | None = None, page_size: int | None = None
    ):
        self._db_path = db_path or get_store_path()
        self._page_size = page_size or get_page_size()
        self._conn: sqlite3.Connection | None = None
        self._conn_lock = threading.Lock()

    @property
    def db_path(self) -> Path:
        return self._db_path

    @property
    def page_size(self) -> int:
        return self._page_size

    def _get_conn(self) -> sqlite3.Connection:
        """Get or create the database connection (thread-safe)."""
        with self._conn_lock:
            if self._conn is None:
                self._conn = init_database(self._db_path)
            return self._conn

    def close(self) -> None:
        """Close the database connection."""
        with self._conn_lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def read_page(self, collection: str, cursor: str | None) -> list[Record]:
        """
        Read the next page of a collection.

        Args:
            collection: Collection (alias) name
            cursor: Id of the last record already consumed, or None

        Returns:
            Up to page_size records ordered by id; empty at end of data

        Raises:
            SourceError: If the database cannot be read or a row is corrupt
        """
        try:
            conn = self._get_conn()
            if cursor is None:
                rows = conn.execute(
                    READ_FIRST_PAGE_SQL, (collection, self._page_size)
                ).fetchall()
            else:
                rows = conn.execute(
                    READ_PAGE_SQL, (collection, cursor, self._page_size)
                ).fetchall()
            return [
                Record(
                    id=row["id"],
                    type=row["type"],
                    fields=json.loads(row["fields"]),
                )
                for row in rows
            ]
        except (sqlite3.Error, ValueError) as e:
            raise SourceError(
                f"Cannot read page of {collection!r} after {cursor!r}: {e}"
            ) from e

    def put(self, collection: str, record: Record) -> None:
        """Insert or overwrite a single record."""
        self.put_many(collection, [record])

    def put_many(self, collection: str, records: list[Record]) -> int:
        """
        Insert or overwrite records in one transaction.

        Returns:
            Number of records written
        """
        conn = self._get_conn()
        conn.executemany(
            UPSERT_RECORD_SQL,
            [
                (collection, r.id, r.type, json.dumps(r.fields, default=str))
                for r in records
            ],
        )
        conn.commit()
        return len(records)

    def delete(self, collection: str, record_id: str) -> bool:
        """Delete a record; returns True if it existed."""
        conn = self._get_conn()
        cursor = conn.execute(
            "DELETE FROM records WHERE collection = ? AND id = ?",
            (collection, record_id),
        )
        conn.commit()
        return cursor.rowcount > 0

    def count(self, collection: str) -> int:
        """Number of records in a collection."""
        row = (
            self._get_conn()
            .execute(
                "SELECT COUNT(*) FROM records WHERE collection = ?",
                (collection,),
            )
            .fetchone()
        )
        return row[0]

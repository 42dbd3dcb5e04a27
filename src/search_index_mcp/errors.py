"""Exceptions raised by the cluster and record store adapters.

These never cross the public IndexManager / BulkReindexer boundary; they are
caught there, logged, and turned into an Outcome.
"""

from __future__ import annotations


class SearchIndexError(Exception):
    """Base class for adapter failures."""


class ClusterError(SearchIndexError):
    """Raised when a request to the search cluster fails."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class SourceError(SearchIndexError):
    """Raised when the record source cannot supply a page."""

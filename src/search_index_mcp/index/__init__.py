"""Index lifecycle for aliased search indices.

This module provides:
- IndexManager: create, delete, check, optimize and rebuild aliased indices
- AliasResolver: alias to single concrete index lookup
- BulkReindexer: zero-downtime rebuild with an atomic alias swap
- Outcome / RebuildResult: structured results (operations never raise)
"""

from .aliases import AliasResolver, Resolution
from .leases import AliasLeases
from .manager import IndexManager
from .reindex import BulkReindexer
from .results import ErrorKind, Outcome, RebuildResult, RebuildState

__all__ = [
    "AliasLeases",
    "AliasResolver",
    "BulkReindexer",
    "ErrorKind",
    "IndexManager",
    "Outcome",
    "RebuildResult",
    "RebuildState",
    "Resolution",
]

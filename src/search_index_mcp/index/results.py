"""Outcome types returned by index lifecycle operations.

Public operations never raise. They return an Outcome carrying a success
flag, a typed ErrorKind and a human-readable message, so callers can branch
on the failure cause without parsing logs.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ErrorKind(str, Enum):
    """Why an operation did not succeed."""

    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    ALREADY_EXISTS = "already_exists"
    AMBIGUOUS_ALIAS = "ambiguous_alias"
    CONNECTIVITY = "connectivity"
    CONFLICT = "conflict"
    CANCELLED = "cancelled"
    INTERNAL = "internal"


class RebuildState(str, Enum):
    """Phases of a rebuild run."""

    START = "start"
    VALIDATE = "validate"
    PAGINATE = "paginate"
    FLUSH = "flush"
    SWAP = "swap"
    CLEANUP = "cleanup"
    DONE = "done"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class Outcome:
    """Result of an index admin operation."""

    ok: bool
    kind: ErrorKind | None = None
    message: str = ""
    index: str | None = None
    failed_shards: int = 0

    def __bool__(self) -> bool:
        return self.ok

    @classmethod
    def success(cls, message: str = "", index: str | None = None) -> Outcome:
        return cls(ok=True, message=message, index=index)

    @classmethod
    def failure(cls, kind: ErrorKind, message: str) -> Outcome:
        return cls(ok=False, kind=kind, message=message)


@dataclass
class RebuildResult:
    """Result of a BulkReindexer run."""

    alias: str
    state: RebuildState
    kind: ErrorKind | None = None
    message: str = ""
    old_index: str | None = None
    new_index: str | None = None
    indexed: int = 0
    bulk_calls: int = 0
    failed_items: int = 0
    old_index_deleted: bool = False

    @property
    def ok(self) -> bool:
        return self.state == RebuildState.DONE

    def __bool__(self) -> bool:
        return self.ok

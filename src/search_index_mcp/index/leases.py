"""Per-alias exclusion for rebuilds.

Two rebuilds of the same alias would race on the alias swap and on deleting
the "old" index (one could delete the index the other just swapped to).
AliasLeases hands out at most one lease per alias at a time; a second
acquire fails immediately instead of queueing.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator


class AliasLeases:
    """Registry of aliases currently being rebuilt in this process."""

    _instance: AliasLeases | None = None
    _instance_lock = threading.Lock()

    def __init__(self) -> None:
        self._held: set[str] = set()
        self._lock = threading.Lock()

    @classmethod
    def get_instance(cls) -> AliasLeases:
        """Get the process-wide registry (thread-safe)."""
        with cls._instance_lock:
            if cls._instance is None:
                cls._instance = AliasLeases()
            return cls._instance

    def try_acquire(self, alias: str) -> bool:
        """Take the lease for alias; False if someone else holds it."""
        with self._lock:
            if alias in self._held:
                return False
            self._held.add(alias)
            return True

    def release(self, alias: str) -> None:
        with self._lock:
            self._held.discard(alias)

    def is_held(self, alias: str) -> bool:
        with self._lock:
            return alias in self._held

    @contextmanager
    def hold(self, alias: str) -> Iterator[bool]:
        """
        Context manager form of try_acquire/release.

        Yields True when the lease was acquired (and releases it on exit),
        False when another holder has it.
        """
        acquired = self.try_acquire(alias)
        try:
            yield acquired
        finally:
            if acquired:
                self.release(alias)

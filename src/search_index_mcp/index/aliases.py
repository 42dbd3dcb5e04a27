"""Alias to concrete index resolution.

An alias is only usable when it points at exactly one concrete index. Zero
targets means the alias does not exist; more than one is an unsafe state
(e.g. an interrupted manual edit) that callers must not guess their way
out of.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from ..errors import ClusterError
from .results import ErrorKind

if TYPE_CHECKING:
    from ..cluster import ClusterClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Resolution:
    """Outcome of an alias lookup."""

    index: str | None
    kind: ErrorKind | None = None
    targets: frozenset[str] = frozenset()

    @property
    def ok(self) -> bool:
        return self.index is not None


def is_blank(name: str | None) -> bool:
    return name is None or not name.strip()


class AliasResolver:
    """Maps an alias to the single concrete index currently serving it."""

    def __init__(self, cluster: ClusterClient):
        self._cluster = cluster

    def lookup(self, alias: str | None) -> Resolution:
        """
        Resolve an alias, reporting why resolution failed.

        Raises:
            ClusterError: If the alias targets cannot be read
        """
        if is_blank(alias):
            return Resolution(None, ErrorKind.VALIDATION)

        targets = frozenset(self._cluster.get_alias_targets(alias))
        if len(targets) == 1:
            (index,) = targets
            return Resolution(index, targets=targets)
        if not targets:
            return Resolution(None, ErrorKind.NOT_FOUND)

        logger.warning(
            "More than one index for alias %s: %s",
            alias,
            ", ".join(sorted(targets)),
        )
        return Resolution(None, ErrorKind.AMBIGUOUS_ALIAS, targets)

    def resolve(self, alias: str | None) -> str | None:
        """
        Return the concrete index behind an alias.

        Returns None for blank aliases, unknown aliases, ambiguous aliases
        and lookup failures; never raises.
        """
        try:
            return self.lookup(alias).index
        except ClusterError as e:
            logger.warning("Cannot resolve alias %s: %s", alias, e)
            return None

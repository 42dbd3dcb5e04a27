"""Index settings and default field mapping for concrete indices.

Every concrete index created by IndexManager, and every rebuild target
(created before its first bulk write), gets:
- SHARD_SETTINGS: 5 shards, 0 base replicas, replicas auto-expanded to all nodes
- DEFAULT_ANALYSIS: the standard analyzer as the default
- DEFAULT_MAPPING: system fields as exact-match keywords, "latlng" as a
  geo point, everything else mapped dynamically

IMPORTANT: bump MAPPING_VERSION whenever DEFAULT_MAPPING changes. The version
is stored in the mapping's _meta block, so a rebuild is the way to move an
alias onto the new mapping.
"""

from __future__ import annotations

import copy
from typing import Any

# Current mapping version, recorded in every new index's _meta block
MAPPING_VERSION = 1

# Suffix appended to an alias to name its first concrete index
INITIAL_INDEX_SUFFIX = "1"

# Field carrying the record's type name in every indexed document
TYPE_FIELD = "type"

# Field holding geo coordinates
GEO_FIELD = "latlng"

SHARD_SETTINGS: dict[str, Any] = {
    "number_of_shards": 5,
    "number_of_replicas": 0,
    "auto_expand_replicas": "0-all",
}

DEFAULT_ANALYSIS: dict[str, Any] = {
    "analyzer": {
        "default": {"type": "standard"},
    },
}

# System fields matched exactly (never tokenized)
KEYWORD_FIELDS: tuple[str, ...] = (
    "id",
    TYPE_FIELD,
    "tag",
    "key",
    "salt",
    "email",
    "groups",
    "updated",
    "password",
    "parentid",
    "creatorid",
    "classname",
    "authtoken",
    "timestamp",
    "identifier",
    "reset_token",
)

DEFAULT_MAPPING: dict[str, Any] = {
    "_meta": {"mapping_version": MAPPING_VERSION},
    "dynamic": True,
    "properties": {
        GEO_FIELD: {"type": "geo_point"},
        **{name: {"type": "keyword"} for name in KEYWORD_FIELDS},
    },
}


def initial_index_name(alias: str) -> str:
    """Name of the first concrete index behind an alias."""
    return f"{alias}{INITIAL_INDEX_SUFFIX}"


def rebuild_index_name(old_index: str, timestamp_ms: int) -> str:
    """Name of the concrete index that replaces old_index in a rebuild."""
    return f"{old_index}_{timestamp_ms}"


def get_index_settings() -> dict[str, Any]:
    """Return a fresh copy of the settings applied to new indices."""
    settings = copy.deepcopy(SHARD_SETTINGS)
    settings["analysis"] = copy.deepcopy(DEFAULT_ANALYSIS)
    return settings


def get_default_mapping() -> dict[str, Any]:
    """Return a fresh copy of the default field mapping."""
    return copy.deepcopy(DEFAULT_MAPPING)


def document_body(doc_type: str, fields: dict[str, Any]) -> dict[str, Any]:
    """
    Build the indexed document for a record.

    The record's own fields win, except that the type field always carries
    the record's type name so documents can be filtered by category.

    Args:
        doc_type: Record type name
        fields: Record field mapping

    Returns:
        New dict suitable as a bulk action source
    """
    body = dict(fields)
    body[TYPE_FIELD] = doc_type
    return body

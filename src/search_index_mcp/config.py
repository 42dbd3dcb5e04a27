"""Configuration for the search index service."""

import os
from pathlib import Path

# Default record store location
DEFAULT_STORE_PATH = Path.home() / ".search-index-mcp" / "records.db"

DEFAULT_ES_URL = "http://localhost:9200"


def get_es_url() -> str:
    """
    Get the Elasticsearch cluster URL.

    Set SEARCH_INDEX_ES_URL to point at a different cluster.
    Defaults to http://localhost:9200.

    Returns:
        Cluster URL.
    """
    return os.environ.get("SEARCH_INDEX_ES_URL", DEFAULT_ES_URL)


def get_es_api_key() -> str | None:
    """
    Get the API key used to authenticate against the cluster.

    Returns:
        API key or None for unauthenticated clusters.
    """
    return os.environ.get("SEARCH_INDEX_ES_API_KEY") or None


def get_es_timeout() -> float:
    """
    Get the per-request timeout in seconds.

    Set SEARCH_INDEX_ES_TIMEOUT to customize. Defaults to 30 seconds.
    """
    return float(os.environ.get("SEARCH_INDEX_ES_TIMEOUT", "30"))


def get_default_alias() -> str | None:
    """
    Get the default alias from environment variable.

    Set SEARCH_INDEX_DEFAULT_ALIAS so CLI and MCP callers can omit it.

    Returns:
        Alias name or None.
    """
    return os.environ.get("SEARCH_INDEX_DEFAULT_ALIAS") or None


# ========== Rebuild Configuration ==========


def get_flush_threshold() -> int:
    """
    Get the number of pending bulk actions that triggers a flush.

    Set SEARCH_INDEX_FLUSH_THRESHOLD to customize.
    Defaults to 100 actions per bulk request.

    Returns:
        Flush threshold (always at least 1).
    """
    return max(1, int(os.environ.get("SEARCH_INDEX_FLUSH_THRESHOLD", "100")))


def get_page_size() -> int:
    """
    Get the number of records read from the store per page.

    Set SEARCH_INDEX_PAGE_SIZE to customize. Defaults to 100.
    """
    return max(1, int(os.environ.get("SEARCH_INDEX_PAGE_SIZE", "100")))


def get_store_path() -> Path:
    """
    Get the SQLite record store path.

    Set SEARCH_INDEX_STORE_PATH to customize the location.
    Defaults to ~/.search-index-mcp/records.db

    Returns:
        Path to the record store database file.
    """
    env_path = os.environ.get("SEARCH_INDEX_STORE_PATH")
    if env_path:
        return Path(env_path).expanduser()
    return DEFAULT_STORE_PATH

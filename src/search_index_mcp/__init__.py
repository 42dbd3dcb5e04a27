"""Search Index MCP - aliased Elasticsearch index management.

Features:
- Alias indirection: callers use a stable alias, data lives in versioned
  concrete indices (<alias>1, then <index>_<timestamp> per rebuild)
- Zero-downtime rebuilds: stream records into a new index, swap the alias
  in one atomic request, drop the old index
- Structured outcomes: operations return ok/kind/message, never raise

Usage:
    search-index-mcp                  # Run MCP server (default)
    search-index-mcp create things    # Create an aliased index
    search-index-mcp rebuild things   # Rebuild from the record store
    search-index-mcp info             # Show cluster metadata
"""

from .cli import main
from .server import mcp

__all__ = ["main", "mcp"]

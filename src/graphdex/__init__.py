"""
Graphdex — label-scoped full-text search over a property graph.

The ``graphdex`` package builds one full-text index per label (or per
named index) from node properties and answers ranked free-text queries
against one or many indexes, merging and re-ranking the results.

Quick start (programmatic API)::

    from graphdex import Graphdex, InMemoryGraph

    graph = InMemoryGraph.from_json("graph.json")
    client = Graphdex(graph)
    client.add_nodes_index()                          # one index per label
    hits = client.query_by_value("alice", limit=10)   # ranked results

Quick start (CLI)::

    graphdex index --graph graph.json
    graphdex query "alice" --graph graph.json --limit 10
"""

__version__ = "1.0.0"

# Primary public API: the Graphdex facade
from graphdex.client import Graphdex

# Configuration
from graphdex.core.config import (
    CJK_ANALYZER,
    EXACT_ANALYZER,
    STANDARD_ANALYZER,
    AnalyzerConfig,
    GraphdexConfig,
)

# Core data types that callers interact with
from graphdex.core.graph import Document, GraphStore, InMemoryGraph
from graphdex.core.indexer import IndexResult
from graphdex.core.search import ScoredResult
from graphdex.core.store import IndexDescriptor, IndexKind

# Exception hierarchy
from graphdex.exceptions import (
    ConfigConflictError,
    ConfigError,
    DocumentNotFoundError,
    GraphdexError,
    IndexingError,
    IndexNotFoundError,
    SearchError,
    TokenizationError,
)


def health(config: GraphdexConfig | None = None) -> dict:
    """
    Return a small status dict for agents or REST health checks (no index needed).

    When *config* is None, uses :meth:`GraphdexConfig.from_env()` for the snapshot.
    """
    cfg = config or GraphdexConfig.from_env()
    return {
        "version": __version__,
        "default_analyzer": cfg.default_analyzer,
        "fuzzy_encoding": cfg.fuzzy_encoding,
    }


__all__ = [
    "__version__",
    # Facade
    "Graphdex",
    # Config
    "GraphdexConfig",
    "AnalyzerConfig",
    "STANDARD_ANALYZER",
    "CJK_ANALYZER",
    "EXACT_ANALYZER",
    # Data types
    "Document",
    "GraphStore",
    "InMemoryGraph",
    "IndexDescriptor",
    "IndexKind",
    "IndexResult",
    "ScoredResult",
    # Exceptions
    "GraphdexError",
    "ConfigError",
    "ConfigConflictError",
    "DocumentNotFoundError",
    "IndexNotFoundError",
    "IndexingError",
    "SearchError",
    "TokenizationError",
    # Status
    "health",
]

"""
Graphdex Client Facade

Single entry point for programmatic use of Graphdex.  Wraps index
building, querying and index management for one graph behind an
instance-based API with optional async support.

Usage::

    from graphdex import Graphdex, InMemoryGraph

    graph = InMemoryGraph()
    alice = graph.add_node(["Person"], {"name": "Alice", "city": "Paris"})

    client = Graphdex(graph, index_path="./.graphdex/index.db")
    client.add_nodes_index_by_label("Person")

    for hit in client.query_by_label(["Person"], "alice"):
        print(hit.id, hit.score)

    # Exact phrase (quoted): scored by the shortest matching property
    client.query_by_value('"Paris"', limit=5)

    # Async variants (for FastAPI / Django async views)
    hits = await client.aquery_by_value("alice")
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from graphdex.core.config import AnalyzerConfig, GraphdexConfig
from graphdex.core.graph import GraphStore
from graphdex.core.indexer import IndexBuilder, IndexResult
from graphdex.core.query import QueryPlanner
from graphdex.core.search import ResultAggregator, ScoredResult
from graphdex.core.store import IndexDescriptor, IndexKind, IndexStore

logger = logging.getLogger(__name__)


class Graphdex:
    """
    High-level Graphdex client bound to one graph and one index database.

    Each instance carries its own :class:`GraphdexConfig` and never
    touches global state.

    Args:
        graph: Graph-store collaborator providing documents.
        config: Explicit configuration.  When *None*, built from
            environment variables overlaid with keyword overrides.
        index_path: Index database file.  Defaults to
            ``<cwd>/<config.index_dir>/<config.index_db_name>``.
        **kwargs: Forwarded to :class:`GraphdexConfig` when *config* is
            ``None`` (e.g. ``default_analyzer="cjk"``).
    """

    def __init__(
        self,
        graph: GraphStore,
        config: GraphdexConfig | None = None,
        *,
        index_path: str | Path | None = None,
        **kwargs,
    ):
        if config is not None:
            self._config = config
        elif kwargs:
            base = GraphdexConfig.from_env()
            merged = {
                f.name: kwargs.get(f.name, getattr(base, f.name))
                for f in base.__dataclass_fields__.values()
            }
            self._config = GraphdexConfig(**merged)
        else:
            self._config = GraphdexConfig.from_env()
        self._config.validate()

        if index_path is None:
            index_path = self._config.get_index_path(Path.cwd() / self._config.index_dir)
        self.index_path = Path(index_path)
        self.index_path.parent.mkdir(parents=True, exist_ok=True)

        self.graph = graph
        self.store = IndexStore(self.index_path)
        self.builder = IndexBuilder(graph, self.store, self._config)
        self.aggregator = ResultAggregator(
            graph, self.store, QueryPlanner(self._config.fuzzy_encoding), self._config
        )

    # ── Configuration ─────────────────────────────────────────────

    @property
    def config(self) -> GraphdexConfig:
        """The active configuration for this client."""
        return self._config

    def close(self) -> None:
        self.store.close()

    def _analyzer(self, preset: Optional[str]) -> Optional[AnalyzerConfig]:
        return self._config.get_analyzer(preset) if preset else None

    # ── Indexing ──────────────────────────────────────────────────

    def index(self, document_id: int, property_keys: Sequence[str]) -> int:
        """
        Re-index one document under every label it carries.

        Returns the number of postings written.

        Raises:
            DocumentNotFoundError: The id cannot be read from the graph.
        """
        return self.builder.index_document_labels(document_id, property_keys)

    def add_index(self, index_name: str, label_name: str, property_keys: Sequence[str],
                  analyzer: str | None = None) -> IndexResult:
        """Index *property_keys* of every *label_name* document into *index_name*."""
        return self.builder.index_all_by_label(
            label_name, property_keys, index_name=index_name,
            analyzer=self._analyzer(analyzer),
        )

    def add_nodes_index_by_label(self, label: str, analyzer: str | None = None) -> IndexResult:
        """Index every property of every document carrying *label*."""
        return self.builder.index_all_by_label(label, analyzer=self._analyzer(analyzer))

    def add_nodes_index_by_labels(self, labels: Sequence[str],
                                  analyzer: str | None = None) -> IndexResult:
        return self.builder.index_labels(labels, analyzer=self._analyzer(analyzer))

    def add_nodes_index(self, analyzer: str | None = None) -> IndexResult:
        """Index every property of every document, one index per label."""
        return self.builder.index_all_labels(analyzer=self._analyzer(analyzer))

    def add_nodes_index_by_properties(self, properties: Sequence[str],
                                      analyzer: str | None = None) -> IndexResult:
        """Per label, index those of *properties* that the label's first document carries."""
        return self.builder.index_by_properties(properties, analyzer=self._analyzer(analyzer))

    # ── Querying ──────────────────────────────────────────────────

    def search(self, label: str, raw_query: str) -> List[int]:
        """Run a native FTS5 query against the label's index; return document ids."""
        return self.aggregator.search(label, raw_query)

    def query_by_property(self, label: str, property_keys: Sequence[str], value: str,
                          min_score: float | None = None,
                          limit: int | None = None) -> List[ScoredResult]:
        """Query one index over the given fields."""
        return list(self.aggregator.query_by_property(
            label, property_keys, value, min_score, limit,
        ))

    def query_by_label(self, labels: Sequence[str], value: str,
                       min_score: float | None = None,
                       limit: int | None = None) -> List[ScoredResult]:
        """
        Query the indexes of *labels*; results merged and sorted by score.

        *min_score* and *limit* fall back to the configured defaults.
        """
        return self.aggregator.query_by_label(
            labels, value, *self._thresholds(min_score, limit)
        )

    def query_by_value(self, value: str, min_score: float | None = None,
                       limit: int | None = None) -> List[ScoredResult]:
        """Query every node index; results merged and sorted by score."""
        return self.aggregator.query_by_value(value, *self._thresholds(min_score, limit))

    def _thresholds(self, min_score, limit):
        return (
            min_score if min_score is not None else self._config.min_score,
            limit if limit is not None else self._config.default_limit,
        )

    # ── Index management ──────────────────────────────────────────

    def list_indexes(self) -> List[IndexDescriptor]:
        return self.store.describe_all(IndexKind.NODE)

    def index_stats(self, name: str) -> Dict[str, int]:
        return self.store.stats(name)

    def remove_index(self) -> List[IndexDescriptor]:
        """Delete every node index; return the deleted descriptors."""
        removed: List[IndexDescriptor] = []
        for name in self.store.list_names(IndexKind.NODE):
            removed.extend(self.store.delete(name, IndexKind.NODE))
        return removed

    def remove_index_by_label(self, name: str) -> List[IndexDescriptor]:
        """Delete the node index *name*; returns zero or one descriptor."""
        return self.store.delete(name, IndexKind.NODE)

    # ── Async variants ────────────────────────────────────────────
    # These use asyncio.to_thread() to run sync operations off the
    # event loop. They raise the same exceptions as the sync methods.

    async def aquery_by_label(self, labels: Sequence[str], value: str,
                              min_score: float | None = None,
                              limit: int | None = None) -> List[ScoredResult]:
        """Async variant of :meth:`query_by_label`."""
        return await asyncio.to_thread(self.query_by_label, labels, value, min_score, limit)

    async def aquery_by_value(self, value: str, min_score: float | None = None,
                              limit: int | None = None) -> List[ScoredResult]:
        """Async variant of :meth:`query_by_value`."""
        return await asyncio.to_thread(self.query_by_value, value, min_score, limit)

    async def aadd_nodes_index(self, analyzer: str | None = None) -> IndexResult:
        """Async variant of :meth:`add_nodes_index`."""
        return await asyncio.to_thread(self.add_nodes_index, analyzer)

    # ── Health (for agents / status endpoints) ─────────────────────

    def health(self) -> Dict[str, object]:
        """Return a small status dict for agents or REST health checks."""
        from graphdex import __version__

        return {
            "version": __version__,
            "index_path": str(self.index_path),
            "indexes": len(self.store.list_names(IndexKind.NODE)),
            "default_analyzer": self._config.default_analyzer,
        }

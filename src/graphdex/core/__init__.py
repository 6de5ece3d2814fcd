"""
Graphdex Core — configuration, analysis, index storage, building and search.

Re-exports the primary classes for convenience::

    from graphdex.core import IndexStore, IndexBuilder, QueryPlanner
"""

from graphdex.core.analysis import TokenSpan, Tokenizer
from graphdex.core.config import AnalyzerConfig, GraphdexConfig
from graphdex.core.graph import Document, GraphStore, InMemoryGraph, PropertyExtractor
from graphdex.core.indexer import IndexBuilder, IndexResult
from graphdex.core.query import FieldClause, QueryMode, QueryPlanner, StructuredQuery
from graphdex.core.search import ResultAggregator, ResultFormatter, ScoredResult, ScoreEvaluator
from graphdex.core.store import IndexDescriptor, IndexKind, IndexStore, Posting

__all__ = [
    "AnalyzerConfig",
    "GraphdexConfig",
    "TokenSpan",
    "Tokenizer",
    "Document",
    "GraphStore",
    "InMemoryGraph",
    "PropertyExtractor",
    "IndexStore",
    "IndexDescriptor",
    "IndexKind",
    "Posting",
    "IndexBuilder",
    "IndexResult",
    "QueryPlanner",
    "StructuredQuery",
    "FieldClause",
    "QueryMode",
    "ScoreEvaluator",
    "ResultAggregator",
    "ResultFormatter",
    "ScoredResult",
]

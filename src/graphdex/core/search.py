"""
Graphdex Search Engine

Runs planned queries against one or many indexes, scores each hit and
merges the per-index result streams.

Scoring:
- fuzzy queries keep the engine's native BM25 score (positive, not
  normalised across indexes);
- exact-phrase queries score ``1.0 / L`` where ``L`` is the length of the
  shortest property value containing the phrase, so a short field that
  contains the phrase ranks above a long one.  A fuzzy query too short
  for a trigram index falls back to a substring match and is scored the
  same way.

Exact scores lie in ``(0, 1]`` while native scores do not, so results of
the two modes are only roughly comparable when merged.
"""

import itertools
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Iterable, Iterator, List, Mapping, Optional, Sequence

from graphdex.core.config import GraphdexConfig
from graphdex.core.graph import Document, GraphStore, PropertyExtractor
from graphdex.core.query import QueryPlanner, StructuredQuery
from graphdex.core.store import IndexKind, IndexStore, posting_values
from graphdex.exceptions import ConfigError, DocumentNotFoundError, IndexNotFoundError

logger = logging.getLogger(__name__)

# Leading ``field:`` of a native query, as in ``name:Brook*``
FIELD_QUALIFIER = re.compile(r"^\s*([A-Za-z_][\w.-]*)\s*:\s*(\S.*)$", re.DOTALL)


def _check_limit(limit: Optional[int]) -> None:
    if limit is not None and limit < 0:
        raise ConfigError(f"limit must be >= 0, got {limit}")


@dataclass
class ScoredResult:
    """A document and its relevance score."""
    document: Document
    score: float
    index: str = ""
    """Name of the index that produced the hit."""

    @property
    def id(self) -> int:
        return self.document.id

    def to_dict(self) -> dict:
        """Return a JSON-serializable dict for API/agent pipelines."""
        return {
            "id": self.document.id,
            "score": self.score,
            "index": self.index,
            "properties": dict(self.document.properties),
        }


class ScoreEvaluator:
    """Computes the per-hit score for either query mode."""

    @staticmethod
    def exact_score(properties: Mapping[str, Any], literal: str) -> float:
        """``1 / len(shortest value containing literal)``, or 0.0 if none does."""
        lengths = [
            len(text)
            for value in properties.values()
            for text in posting_values(value)
            if literal in text
        ]
        if not lengths:
            return 0.0
        return 1.0 / min(lengths)

    def score(self, query: StructuredQuery, document: Document, native: float) -> float:
        literal = query.scoring_literal
        if literal is None:
            return native
        score = self.exact_score(document.properties, literal)
        if score == 0.0:
            logger.debug(f"Document {document.id} no longer contains {literal!r}")
        return score


class ResultAggregator:
    """
    Executes queries against indexes and merges the results.

    The index is resolved on every call; querying an index that does not
    exist yields no results instead of failing.
    """

    def __init__(self, graph: GraphStore, store: IndexStore,
                 planner: Optional[QueryPlanner] = None,
                 config: Optional[GraphdexConfig] = None):
        self.config = config or GraphdexConfig()
        self.store = store
        self.extractor = PropertyExtractor(graph)
        self.planner = planner or QueryPlanner(self.config.fuzzy_encoding)
        self.evaluator = ScoreEvaluator()

    # ── Single index ──────────────────────────────────────────────

    def query_by_property(self, index_name: str, fields: Sequence[str], value: str,
                          min_score: Optional[float] = None,
                          limit: Optional[int] = None) -> Iterator[ScoredResult]:
        """
        Lazily yield scored hits for *value* over *fields* of one index.

        Hits come in the engine's rank order.  With *min_score* only hits
        scoring strictly above it are kept; *limit* caps the number of
        hits yielded.
        """
        _check_limit(limit)
        results = self._query_index(index_name, fields, value, min_score)
        if limit is not None:
            results = itertools.islice(results, limit)
        return results

    def _query_index(self, index_name: str, fields: Sequence[str], value: str,
                     min_score: Optional[float]) -> Iterator[ScoredResult]:
        try:
            descriptor = self.store.describe(index_name)
        except IndexNotFoundError:
            logger.debug(f"Skipping index query since index does not exist: '{index_name}'")
            return

        query = self.planner.plan(value, fields, descriptor.config)
        hits = self.store.match(index_name, query.execution_clauses())
        if hits is None:
            logger.debug(f"Index '{index_name}' disappeared before it could be queried")
            return

        for doc_id, native in hits:
            try:
                document = self.extractor.extract(doc_id)
            except DocumentNotFoundError:
                logger.warning(f"Index '{index_name}' holds stale postings for document {doc_id}")
                continue
            score = self.evaluator.score(query, document, native)
            if min_score is not None and not score > min_score:
                continue
            yield ScoredResult(document, score, index_name)

    # ── Many indexes ──────────────────────────────────────────────

    def query_by_label(self, labels: Iterable[str], value: str,
                       min_score: Optional[float] = None,
                       limit: Optional[int] = None) -> List[ScoredResult]:
        """
        Query the index of each label and merge the results.

        The fields searched for a label are discovered from the label's
        documents (see :attr:`GraphdexConfig.field_discovery`).  The merged
        list is sorted by score, best first (stable for ties), filtered by
        *min_score* (strictly greater) and truncated to *limit*.
        """
        _check_limit(limit)
        merged: List[ScoredResult] = []
        for label in labels:
            fields = self.discover_fields(label)
            if not fields:
                logger.debug(f"No fields to search for label '{label}'")
                continue
            merged.extend(self.query_by_property(label, fields, value))

        merged.sort(key=lambda r: r.score, reverse=True)
        if min_score is not None:
            merged = [r for r in merged if r.score > min_score]
        if limit is not None:
            merged = merged[:limit]
        return merged

    def query_by_value(self, value: str, min_score: Optional[float] = None,
                       limit: Optional[int] = None) -> List[ScoredResult]:
        """Like :meth:`query_by_label` over every existing node index."""
        return self.query_by_label(
            self.store.list_names(IndexKind.NODE), value, min_score, limit
        )

    def search(self, index_name: str, raw_query: str) -> List[int]:
        """
        Run *raw_query* as a native FTS5 query over the fields of an index.

        A leading ``field:`` qualifier (``name:Brook*``) restricts the rest
        of the query to that property; otherwise every field is searched.
        Returns document ids in rank order; an unknown index yields ``[]``.

        Raises:
            SearchError: The engine rejected the query syntax.
        """
        qualified = FIELD_QUALIFIER.match(raw_query)
        if qualified:
            clause = (qualified.group(1), qualified.group(2).strip(), None)
        else:
            clause = (None, raw_query, None)
        hits = self.store.match(index_name, [clause])
        if hits is None:
            logger.debug(f"Skipping index query since index does not exist: '{index_name}'")
            return []
        return [doc_id for doc_id, _ in hits]

    def discover_fields(self, label: str) -> List[str]:
        """
        Property fields to search for *label*: sampled from its documents,
        or, when the label has none, the fields already posted in its index.
        """
        union = self.config.field_discovery == "union"
        fields = self.extractor.field_names(label, union=union)
        return fields or self.store.fields(label)


# =============================================================================
# Output formatting
# =============================================================================

class ResultFormatter:
    """Format search results for different output modes."""

    @staticmethod
    def format_console(results: List[ScoredResult], elapsed_time: Optional[float] = None,
                       max_value_chars: int = 60) -> str:
        if not results:
            return "\n  No results found.\n"

        import shutil
        width = min(shutil.get_terminal_size().columns, 78)
        thin = "─" * width

        header = f"  GRAPHDEX — {len(results)} result{'s' if len(results) != 1 else ''}"
        if elapsed_time is not None:
            header += f" in {elapsed_time:.4f} seconds"

        out: List[str] = [f"\n{thin}", header, thin]
        for idx, r in enumerate(results, start=1):
            out.append("")
            out.append(f"  #{idx}  node {r.id}  [{r.index}]")
            out.append(f"    Score  : {r.score:.4f}")
            for key, value in r.document.properties.items():
                text = str(value)
                if len(text) > max_value_chars:
                    text = text[:max_value_chars - 1] + "…"
                out.append(f"    {key:<7}: {text}")
        out.append(f"\n{thin}")
        return "\n".join(out)

    @staticmethod
    def format_json(results: List[ScoredResult]) -> str:
        return json.dumps([r.to_dict() for r in results], indent=2, default=str,
                          ensure_ascii=False, allow_nan=False)

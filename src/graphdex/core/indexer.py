"""
Graphdex Index Builder

Populates label-scoped full-text indexes from a graph snapshot.

For every document the builder fetches the requested properties in one
bulk read, removes whatever the index already holds for that document
and adds one posting per (field, value).  Re-running a build therefore
never leaves duplicate or stale postings behind.

Bulk builds are not transactional across documents: if document N cannot
be read, documents 1..N-1 stay re-indexed and the call fails with
:class:`~graphdex.exceptions.IndexingError`.
"""

import logging
import sqlite3
from dataclasses import asdict, dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence

from tqdm import tqdm

from graphdex.core.config import AnalyzerConfig, GraphdexConfig
from graphdex.core.graph import Document, GraphStore, PropertyExtractor
from graphdex.core.store import IndexStore
from graphdex.exceptions import DocumentNotFoundError, IndexingError

logger = logging.getLogger(__name__)


@dataclass
class IndexResult:
    """Typed result returned by the bulk build operations."""
    indexes: List[str] = field(default_factory=list)
    documents_indexed: int = 0
    postings_added: int = 0
    labels_skipped: List[str] = field(default_factory=list)

    def merge(self, other: "IndexResult") -> "IndexResult":
        for name in other.indexes:
            if name not in self.indexes:
                self.indexes.append(name)
        self.documents_indexed += other.documents_indexed
        self.postings_added += other.postings_added
        self.labels_skipped.extend(other.labels_skipped)
        return self

    def to_dict(self) -> dict:
        """Return a JSON-serializable dict for API/agent pipelines."""
        return asdict(self)


class IndexBuilder:
    """
    Builds and rebuilds indexes from documents of a :class:`GraphStore`.

    Args:
        graph: The graph-store collaborator to read documents from.
        store: Where the indexes live.
        config: Supplies the default analyzer for newly created indexes
            and whether to show progress bars.
    """

    def __init__(self, graph: GraphStore, store: IndexStore,
                 config: Optional[GraphdexConfig] = None):
        self.graph = graph
        self.store = store
        self.config = config or GraphdexConfig()
        self.extractor = PropertyExtractor(graph)

    # ── Single document ───────────────────────────────────────────

    def index_document(self, doc_id: int, fields: Optional[Sequence[str]],
                       target_indexes: Iterable[str],
                       analyzer: Optional[AnalyzerConfig] = None) -> int:
        """
        Re-index one document into each of *target_indexes*.

        Only *fields* are read (all properties when ``None``); fields the
        document does not carry are skipped, so an empty *fields* leaves
        the document with no postings.  Indexes are created on first
        write.  Returns the number of postings added over all indexes.

        Raises:
            DocumentNotFoundError: *doc_id* cannot be read.
        """
        added = 0
        for name in target_indexes:
            self._ensure(name, analyzer)
            document = self.extractor.extract(doc_id, fields)
            added += self.store.replace_document(name, doc_id, document.properties)
            logger.debug(f"  [{name}] doc {doc_id}: {len(document.properties)} field(s)")
        return added

    def index_document_labels(self, doc_id: int, fields: Optional[Sequence[str]]) -> int:
        """Re-index a document under every label it carries (one index per label)."""
        labels = self.graph.get_labels(doc_id)
        return self.index_document(doc_id, fields, labels)

    # ── Bulk builds ───────────────────────────────────────────────

    def index_all_by_label(self, label: str, fields: Optional[Sequence[str]] = None,
                           index_name: Optional[str] = None,
                           analyzer: Optional[AnalyzerConfig] = None) -> IndexResult:
        """
        Re-index every document carrying *label*.

        Args:
            label: Label whose documents are indexed.
            fields: Property names to index.  ``None`` or empty indexes
                every property of each document.
            index_name: Target index (defaults to the label name).
            analyzer: Analyzer for a newly created index; must match the
                existing one if the index already exists.

        Raises:
            IndexingError: A document could not be read or written.
        """
        name = index_name or label
        self._ensure(name, analyzer)
        result = IndexResult(indexes=[name])
        wanted = list(fields) if fields else None

        logger.info(f"Indexing label '{label}' into '{name}' "
                    f"({', '.join(wanted) if wanted else 'all properties'})")

        with tqdm(desc=f"Indexing {label}", unit="doc",
                  disable=not self.config.show_progress) as pbar:
            try:
                for document in self.graph.iterate_by_label(label):
                    result.postings_added += self.store.replace_document(
                        name, document.id, self._select(document, wanted)
                    )
                    result.documents_indexed += 1
                    pbar.update(1)
            except (DocumentNotFoundError, sqlite3.Error) as exc:
                raise IndexingError(
                    f"Indexing '{label}' into '{name}' failed after "
                    f"{result.documents_indexed} document(s): {exc}"
                ) from exc

        logger.info(f"  ✓ {name}  ({result.documents_indexed} documents, "
                    f"{result.postings_added} postings)")
        return result

    def index_labels(self, labels: Iterable[str],
                     analyzer: Optional[AnalyzerConfig] = None) -> IndexResult:
        """Index all properties of every document, one index per label in *labels*."""
        result = IndexResult()
        for label in labels:
            result.merge(self.index_all_by_label(label, analyzer=analyzer))
        return result

    def index_all_labels(self, analyzer: Optional[AnalyzerConfig] = None) -> IndexResult:
        """Index all properties of every document under every label in the graph."""
        return self.index_labels(self.graph.list_labels(), analyzer=analyzer)

    def index_by_properties(self, properties: Sequence[str],
                            analyzer: Optional[AnalyzerConfig] = None) -> IndexResult:
        """
        For every label, index the subset of *properties* that the label's
        first document carries.  Labels whose sample document has none of
        them are skipped.
        """
        wanted = set(properties)
        result = IndexResult()
        for label in self.graph.list_labels():
            keys = [k for k in self.extractor.field_names(label) if k in wanted]
            if not keys:
                logger.debug(f"Skipping label '{label}': none of {sorted(wanted)} present")
                result.labels_skipped.append(label)
                continue
            result.merge(self.index_all_by_label(label, keys, analyzer=analyzer))
        return result

    # ── Helpers ───────────────────────────────────────────────────

    def _ensure(self, name: str, analyzer: Optional[AnalyzerConfig]) -> None:
        self.store.ensure(name, analyzer, default=self.config.get_analyzer())

    @staticmethod
    def _select(document: Document, fields: Optional[List[str]]) -> Dict:
        if fields is None:
            return dict(document.properties)
        return {k: document.properties[k] for k in fields if k in document.properties}

"""
Graph store capability interface and property extraction.

The indexing core never talks to a storage engine directly.  It calls
through :class:`GraphStore`, a narrow capability interface that any
property-graph backend can satisfy, and reads document properties via
:class:`PropertyExtractor`.  :class:`InMemoryGraph` is the bundled
implementation used by the CLI, the MCP server and the tests.
"""

from __future__ import annotations

import itertools
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Protocol, Sequence

from graphdex.exceptions import DocumentNotFoundError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Document:
    """A snapshot of a graph entity: its stable id and the requested properties."""
    id: int
    properties: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {"id": self.id, "properties": dict(self.properties)}


class GraphStore(Protocol):
    """The capabilities the indexing core needs from a property-graph store."""

    def list_labels(self) -> Sequence[str]:
        """Every label carried by at least one document."""

    def iterate_by_label(self, label: str) -> Iterator[Document]:
        """Lazily yield every document carrying *label*, with all properties."""

    def get_properties(self, doc_id: int, keys: Optional[Iterable[str]] = None) -> Dict[str, Any]:
        """Return *keys* present on the document (all properties when *keys* is None).

        Raises :class:`DocumentNotFoundError` for an unknown id.
        """

    def get_labels(self, doc_id: int) -> Sequence[str]:
        """Labels carried by the document. Raises :class:`DocumentNotFoundError`."""


class PropertyExtractor:
    """Reads a subset (or all) of a document's properties in one bulk fetch."""

    def __init__(self, graph: GraphStore):
        self.graph = graph

    def extract(self, doc_id: int, keys: Optional[Sequence[str]] = None) -> Document:
        """
        Snapshot the document *doc_id*.

        Args:
            doc_id: Graph-store id of the document.
            keys: Property names to read.  ``None`` reads every property;
                an empty sequence reads none.  Keys the document does not
                carry are skipped.
        """
        wanted = list(keys) if keys is not None else None
        return Document(doc_id, self.graph.get_properties(doc_id, wanted))

    def first_by_label(self, label: str) -> Optional[Document]:
        """The first document found with *label*, or ``None`` when there is none."""
        return next(iter(self.graph.iterate_by_label(label)), None)

    def field_names(self, label: str, union: bool = False) -> List[str]:
        """
        Property keys to search for *label*.

        By default only the first document of the label is inspected, so
        fields that other documents carry are not discovered.  With
        ``union=True`` the keys of every document are merged in first-seen
        order.
        """
        if not union:
            sample = self.first_by_label(label)
            return list(sample.properties) if sample else []
        keys: Dict[str, None] = {}
        for document in self.graph.iterate_by_label(label):
            keys.update(dict.fromkeys(document.properties))
        return list(keys)


# =============================================================================
# In-memory property graph
# =============================================================================

@dataclass
class _Node:
    labels: List[str]
    properties: Dict[str, Any]


class InMemoryGraph:
    """
    A small dict-backed property graph implementing :class:`GraphStore`.

    Ids are assigned sequentially from 0 unless given explicitly.  Label
    iteration follows insertion order, which makes "first document of a
    label" deterministic.
    """

    def __init__(self):
        self._nodes: Dict[int, _Node] = {}
        self._ids = itertools.count()

    # ── Mutation ──────────────────────────────────────────────────

    def add_node(self, labels: Iterable[str], properties: Optional[Mapping[str, Any]] = None,
                 node_id: Optional[int] = None) -> int:
        """Create a node and return its id."""
        if node_id is None:
            node_id = next(self._ids)
            while node_id in self._nodes:
                node_id = next(self._ids)
        elif node_id in self._nodes:
            raise ValueError(f"Node {node_id} already exists")
        self._nodes[node_id] = _Node(list(dict.fromkeys(labels)), dict(properties or {}))
        return node_id

    def set_property(self, node_id: int, key: str, value: Any) -> None:
        self._node(node_id).properties[key] = value

    def remove_property(self, node_id: int, key: str) -> None:
        self._node(node_id).properties.pop(key, None)

    def add_label(self, node_id: int, label: str) -> None:
        node = self._node(node_id)
        if label not in node.labels:
            node.labels.append(label)

    def delete_node(self, node_id: int) -> None:
        self._node(node_id)
        del self._nodes[node_id]

    # ── GraphStore ────────────────────────────────────────────────

    def list_labels(self) -> List[str]:
        labels: Dict[str, None] = {}
        for node in self._nodes.values():
            labels.update(dict.fromkeys(node.labels))
        return list(labels)

    def iterate_by_label(self, label: str) -> Iterator[Document]:
        # Snapshot ids so callers may mutate the graph while iterating
        for node_id in [i for i, n in self._nodes.items() if label in n.labels]:
            node = self._nodes.get(node_id)
            if node is not None:
                yield Document(node_id, dict(node.properties))

    def get_properties(self, doc_id: int, keys: Optional[Iterable[str]] = None) -> Dict[str, Any]:
        props = self._node(doc_id).properties
        if keys is None:
            return dict(props)
        return {k: props[k] for k in keys if k in props}

    def get_labels(self, doc_id: int) -> List[str]:
        return list(self._node(doc_id).labels)

    def __len__(self) -> int:
        return len(self._nodes)

    def _node(self, node_id: int) -> _Node:
        try:
            return self._nodes[node_id]
        except KeyError:
            raise DocumentNotFoundError(f"No document with id {node_id}") from None

    # ── Snapshots ─────────────────────────────────────────────────

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "InMemoryGraph":
        """Build a graph from ``{"nodes": [{"id", "labels", "properties"}, ...]}``."""
        graph = cls()
        for entry in data.get("nodes", []):
            graph.add_node(
                entry.get("labels", []),
                entry.get("properties", {}),
                node_id=entry.get("id"),
            )
        logger.debug(f"Loaded graph snapshot with {len(graph)} nodes")
        return graph

    @classmethod
    def from_json(cls, path: str | Path) -> "InMemoryGraph":
        """Load a graph snapshot from a JSON file."""
        with open(path, encoding="utf-8") as fh:
            return cls.from_dict(json.load(fh))

    def to_dict(self) -> dict:
        return {
            "nodes": [
                {"id": i, "labels": list(n.labels), "properties": dict(n.properties)}
                for i, n in self._nodes.items()
            ]
        }

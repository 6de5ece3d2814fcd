"""
Graphdex MCP Server

Exposes the Graphdex procedures (index building, label/value queries and
index removal) as tools that AI agents can invoke natively via the Model
Context Protocol.

Start with::

    graphdex --graph graph.json mcp                    # stdio transport
    graphdex --graph graph.json mcp --transport sse    # SSE transport

Or programmatically::

    from graphdex import Graphdex, InMemoryGraph
    from graphdex.mcp.server import create_server

    server = create_server(Graphdex(InMemoryGraph.from_json("graph.json")))
    server.run()
"""

from __future__ import annotations

import json
import logging
from typing import Annotated, Any

# FastMCP uses pydantic for validation, so Field should be available
from pydantic import Field  # type: ignore[import-untyped]

from graphdex.core.search import ResultFormatter

logger = logging.getLogger(__name__)


def _norm_str_list(v: Any) -> list[str] | None:
    """Normalise list arguments so a client sending a bare string still works."""
    if v is None:
        return None
    if isinstance(v, str):
        return [v.strip()] if v.strip() else None
    if isinstance(v, (list, tuple)):
        return [str(x).strip() for x in v if str(x).strip()]
    return None


def create_server(client):
    """
    Build and return a configured FastMCP server bound to *client*.

    All tool invocations share the client's graph, index database and
    configuration.

    Raises ``ImportError`` if ``fastmcp`` is not installed (install via
    ``pip install 'graphdex[mcp]'``).
    """
    from fastmcp import FastMCP  # type: ignore[import-untyped]

    mcp = FastMCP("Graphdex")

    # ==================================================================
    # Tool: query_graph
    # ==================================================================

    @mcp.tool()
    def query_graph(
        value: Annotated[
            str,
            Field(description="Free-text query. Wrap it in double quotes (e.g. '\"Alice Smith\"') for an exact phrase scored by the shortest property that contains it; otherwise it is tokenized and every token must occur in one field.")
        ],
        labels: Annotated[
            list[str] | None,
            Field(default=None, description="Label indexes to query. If omitted, every index is queried.")
        ] = None,
        properties: Annotated[
            list[str] | None,
            Field(default=None, description="Restrict the search to these property fields. Requires exactly one label.")
        ] = None,
        min_score: Annotated[
            float | None,
            Field(default=None, description="Keep only results scoring strictly above this value.")
        ] = None,
        limit: Annotated[
            int | None,
            Field(default=None, description="Maximum number of results (best first).")
        ] = None,
    ) -> str:
        """Search the graph's full-text indexes and return ranked nodes.

        Returns:
            JSON array of ``{id, score, index, properties}`` objects sorted
            by score, best first.
        """
        labels = _norm_str_list(labels)
        properties = _norm_str_list(properties)
        try:
            if properties:
                if not labels or len(labels) != 1:
                    return json.dumps({"error": "properties requires exactly one label", "results": []})
                results = client.query_by_property(labels[0], properties, value,
                                                   min_score=min_score, limit=limit)
            elif labels:
                results = client.query_by_label(labels, value, min_score=min_score, limit=limit)
            else:
                results = client.query_by_value(value, min_score=min_score, limit=limit)
            return ResultFormatter.format_json(results)
        except Exception as e:
            return json.dumps({"error": str(e), "results": []}, allow_nan=False)

    # ==================================================================
    # Tool: search_label
    # ==================================================================

    @mcp.tool()
    def search_label(
        label: Annotated[str, Field(description="Label (index name) to search.")],
        query: Annotated[str, Field(description="Raw FTS5 query, e.g. 'alice OR bob' or 'ali*'.")],
    ) -> str:
        """Run a native full-text query against one label index; returns node ids."""
        return json.dumps({"ids": client.search(label, query)})

    # ==================================================================
    # Tool: index_labels
    # ==================================================================

    @mcp.tool()
    def index_labels(
        labels: Annotated[
            list[str] | None,
            Field(default=None, description="Labels to (re)index. If omitted, every label is indexed.")
        ] = None,
        properties: Annotated[
            list[str] | None,
            Field(default=None, description="Properties to index. If omitted, every property is indexed.")
        ] = None,
        analyzer: Annotated[
            str | None,
            Field(default=None, description="Analyzer preset for new indexes: 'standard', 'cjk' or 'exact'.")
        ] = None,
    ) -> str:
        """Build or rebuild label indexes from the graph.

        Returns:
            JSON summary with the indexes touched and document/posting counts.
        """
        labels = _norm_str_list(labels)
        properties = _norm_str_list(properties)
        if properties and labels:
            result = None
            for label in labels:
                step = client.add_index(label, label, properties, analyzer=analyzer)
                result = step if result is None else result.merge(step)
        elif properties:
            result = client.add_nodes_index_by_properties(properties, analyzer=analyzer)
        elif labels:
            result = client.add_nodes_index_by_labels(labels, analyzer=analyzer)
        else:
            result = client.add_nodes_index(analyzer=analyzer)
        return json.dumps(result.to_dict())

    # ==================================================================
    # Tool: list_indexes
    # ==================================================================

    @mcp.tool()
    def list_indexes() -> str:
        """List every index with its analyzer configuration and size."""
        return json.dumps([
            {**d.to_dict(), "stats": client.index_stats(d.name)}
            for d in client.list_indexes()
        ])

    # ==================================================================
    # Tool: remove_indexes
    # ==================================================================

    @mcp.tool()
    def remove_indexes(
        name: Annotated[
            str | None,
            Field(default=None, description="Index to remove. If omitted, every index is removed.")
        ] = None,
    ) -> str:
        """Remove one index (or all) and return the removed descriptors."""
        removed = client.remove_index_by_label(name) if name else client.remove_index()
        return json.dumps([d.to_dict() for d in removed])

    @mcp.tool()
    def health() -> str:
        """Return version and index status."""
        return json.dumps(client.health())

    return mcp

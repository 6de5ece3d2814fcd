"""
Graphdex CLI

Command-line interface for building label indexes from a graph snapshot
and querying them.

Usage::

    graphdex --graph graph.json index                    # one index per label
    graphdex --graph graph.json index -l Person          # just Person
    graphdex --graph graph.json query "alice" -n 5       # across all indexes
    graphdex --graph graph.json query '"Paris"' -l City  # exact phrase
    graphdex indexes                                     # list indexes
    graphdex remove Person                               # drop one index
    graphdex mcp                                         # start the MCP server
"""

import logging
import time
from pathlib import Path

import click

from graphdex.core.config import ANALYZER_PRESETS, GraphdexConfig
from graphdex.core.graph import InMemoryGraph
from graphdex.core.search import ResultFormatter
from graphdex.exceptions import GraphdexError


# ---------------------------------------------------------------------------
# Logging helpers
# ---------------------------------------------------------------------------

def _configure_logging(config: GraphdexConfig, verbose: bool) -> None:
    """Set up logging for the CLI session."""
    level = logging.DEBUG if verbose else getattr(logging, config.log_level, logging.INFO)
    logging.basicConfig(level=level, format=config.log_format)


def _client(ctx: click.Context):
    """Build the Graphdex client for this invocation."""
    from graphdex.client import Graphdex

    obj = ctx.obj
    if obj.get("client") is None:
        graph_path = obj["graph_path"]
        graph = InMemoryGraph.from_json(graph_path) if graph_path else InMemoryGraph()
        try:
            obj["client"] = Graphdex(graph, obj["config"], index_path=obj["index_path"])
        except GraphdexError as exc:
            raise click.ClickException(str(exc))
    return obj["client"]


# ---------------------------------------------------------------------------
# Top-level group
# ---------------------------------------------------------------------------

@click.group()
@click.version_option(package_name="graphdex")
@click.option("--graph", "graph_path", type=click.Path(exists=True, dir_okay=False),
              envvar="GRAPHDEX_GRAPH", default=None,
              help="Graph snapshot (JSON) to index and read documents from.")
@click.option("--index-db", "index_db", type=click.Path(dir_okay=False), default=None,
              help="Index database (default: ./.graphdex/index.db).")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
@click.pass_context
def cli(ctx: click.Context, graph_path: str | None, index_db: str | None, verbose: bool):
    """Graphdex — label-scoped full-text search over a property graph."""
    ctx.ensure_object(dict)
    config = GraphdexConfig.from_env()
    _configure_logging(config, verbose)
    ctx.obj.update(
        config=config,
        graph_path=graph_path,
        index_path=Path(index_db).resolve() if index_db else None,
        client=None,
    )


# ---------------------------------------------------------------------------
# graphdex index
# ---------------------------------------------------------------------------

@cli.command()
@click.option("-l", "--label", "labels", multiple=True,
              help="Label to index (repeatable). Default: every label.")
@click.option("-p", "--property", "properties", multiple=True,
              help="Property to index (repeatable). Default: every property.")
@click.option("--name", default=None,
              help="Index name (requires exactly one --label and at least one --property).")
@click.option("--analyzer", type=click.Choice(sorted(ANALYZER_PRESETS)), default=None,
              help="Analyzer preset for newly created indexes.")
@click.option("--progress/--no-progress", default=False, help="Show a progress bar.")
@click.pass_context
def index(ctx: click.Context, labels: tuple, properties: tuple, name: str | None,
          analyzer: str | None, progress: bool):
    """Build or rebuild label indexes from the graph snapshot."""
    client = _client(ctx)
    client.config.show_progress = progress
    t0 = time.perf_counter()
    try:
        if name:
            if len(labels) != 1 or not properties:
                raise click.UsageError("--name needs exactly one --label and at least one --property.")
            result = client.add_index(name, labels[0], list(properties), analyzer=analyzer)
        elif properties and not labels:
            result = client.add_nodes_index_by_properties(list(properties), analyzer=analyzer)
        elif properties:
            result = None
            for label in labels:
                step = client.add_index(label, label, list(properties), analyzer=analyzer)
                result = step if result is None else result.merge(step)
        elif labels:
            result = client.add_nodes_index_by_labels(list(labels), analyzer=analyzer)
        else:
            result = client.add_nodes_index(analyzer=analyzer)
    except GraphdexError as exc:
        raise click.ClickException(str(exc))

    elapsed = time.perf_counter() - t0
    click.echo("─" * 50)
    click.echo("  GRAPHDEX — Indexing Complete")
    click.echo("─" * 50)
    click.echo(f"  Indexes          {', '.join(result.indexes) or '-'}")
    click.echo(f"  Documents        {result.documents_indexed:>8,}")
    click.echo(f"  Postings         {result.postings_added:>8,}")
    if result.labels_skipped:
        click.echo(f"  Labels skipped   {', '.join(result.labels_skipped)}")
    click.echo(f"  Completed in {elapsed:.3f} seconds")
    click.echo("─" * 50)


# ---------------------------------------------------------------------------
# graphdex query
# ---------------------------------------------------------------------------

@cli.command()
@click.argument("value")
@click.option("-l", "--label", "labels", multiple=True,
              help="Label index to query (repeatable). Default: every index.")
@click.option("-p", "--property", "properties", multiple=True,
              help="Restrict to these fields (requires exactly one --label).")
@click.option("--min-score", type=float, default=None,
              help="Keep only results scoring strictly above this.")
@click.option("-n", "--limit", type=int, default=None, help="Maximum number of results.")
@click.option("-f", "--format", "fmt", type=click.Choice(["console", "json"]),
              default="console", help="Output format.")
@click.pass_context
def query(ctx: click.Context, value: str, labels: tuple, properties: tuple,
          min_score: float | None, limit: int | None, fmt: str):
    """Query indexes for VALUE (wrap VALUE in double quotes for an exact phrase)."""
    client = _client(ctx)
    t0 = time.perf_counter()
    try:
        if properties:
            if len(labels) != 1:
                raise click.UsageError("--property needs exactly one --label.")
            results = client.query_by_property(labels[0], list(properties), value,
                                               min_score=min_score, limit=limit)
        elif labels:
            results = client.query_by_label(list(labels), value, min_score=min_score, limit=limit)
        else:
            results = client.query_by_value(value, min_score=min_score, limit=limit)
    except GraphdexError as exc:
        raise click.ClickException(str(exc))
    elapsed = time.perf_counter() - t0

    if fmt == "json":
        click.echo(ResultFormatter.format_json(results))
    else:
        click.echo(ResultFormatter.format_console(results, elapsed_time=elapsed))


# ---------------------------------------------------------------------------
# graphdex search
# ---------------------------------------------------------------------------

@cli.command()
@click.argument("label")
@click.argument("raw_query")
@click.pass_context
def search(ctx: click.Context, label: str, raw_query: str):
    """Run RAW_QUERY (FTS5 query syntax) against LABEL's index; print node ids."""
    client = _client(ctx)
    try:
        ids = client.search(label, raw_query)
    except GraphdexError as exc:
        raise click.ClickException(str(exc))
    for doc_id in ids:
        click.echo(doc_id)


# ---------------------------------------------------------------------------
# graphdex indexes
# ---------------------------------------------------------------------------

@cli.command()
@click.pass_context
def indexes(ctx: click.Context):
    """List indexes with their analyzer and size."""
    client = _client(ctx)
    descriptors = client.list_indexes()
    if not descriptors:
        click.echo(f"No indexes in {client.index_path}.")
        return
    click.echo("─" * 60)
    click.echo(f"  GRAPHDEX — {len(descriptors)} index{'es' if len(descriptors) != 1 else ''}")
    click.echo("─" * 60)
    for d in descriptors:
        s = client.index_stats(d.name)
        click.echo(f"  {d.name:<20} {d.config.type:<9} {d.config.analyzer}")
        click.echo(f"  {'':<20} {s['documents']:,} documents, {s['postings']:,} postings, "
                   f"{s['fields']} fields")
    click.echo("─" * 60)


# ---------------------------------------------------------------------------
# graphdex remove
# ---------------------------------------------------------------------------

@cli.command()
@click.argument("name", required=False)
@click.option("--all", "remove_all", is_flag=True, help="Remove every index.")
@click.pass_context
def remove(ctx: click.Context, name: str | None, remove_all: bool):
    """Remove the index NAME, or every index with --all."""
    if bool(name) == remove_all:
        raise click.UsageError("Give either an index NAME or --all.")
    client = _client(ctx)
    removed = client.remove_index() if remove_all else client.remove_index_by_label(name)
    if not removed:
        click.echo(f"No index named '{name}'.")
    for d in removed:
        click.echo(f"  Removed {d.kind.value.lower()} index '{d.name}' ({d.config.analyzer})")


# ---------------------------------------------------------------------------
# graphdex mcp
# ---------------------------------------------------------------------------

@cli.command()
@click.option("--transport", type=click.Choice(["stdio", "sse"]),
              default="stdio", help="MCP transport (default: stdio).")
@click.pass_context
def mcp(ctx: click.Context, transport: str):
    """Start the Graphdex MCP server."""
    try:
        from graphdex.mcp.server import create_server  # noqa: E402
    except ImportError:
        click.echo(
            "Error: MCP dependencies not installed.\n"
            "Install with:  pip install 'graphdex[mcp]'",
            err=True,
        )
        raise SystemExit(1)

    server = create_server(_client(ctx))
    server.run(transport=transport)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    cli()

"""
Graphdex Exception Hierarchy

Structured exceptions for clear error handling across the client, CLI,
and MCP consumers.  Each exception type maps to a specific failure mode
so that callers can handle errors precisely without parsing message
strings.

Usage::

    from graphdex.exceptions import GraphdexError, IndexingError

    try:
        client.add_nodes_index_by_label("Person")
    except IndexingError as exc:
        print(f"Rebuild failed: {exc}")
    except GraphdexError as exc:
        print(f"Graphdex error: {exc}")
"""


class GraphdexError(Exception):
    """Base exception for all Graphdex errors."""


class ConfigError(GraphdexError, ValueError):
    """Configuration is invalid (unknown preset, bad tokenizer options, ...).

    Inherits from ``ValueError`` so callers validating user input can
    catch it alongside other value errors.
    """


class ConfigConflictError(ConfigError):
    """An index already exists with a different analyzer configuration.

    An index's analyzer is fixed at creation; delete and recreate the
    index to change it.
    """


class DocumentNotFoundError(GraphdexError, KeyError):
    """The graph store has no readable document for the requested id."""


class IndexNotFoundError(GraphdexError, LookupError):
    """An explicit lookup named an index that does not exist.

    Queries never raise this: querying a missing index yields no results.
    """


class IndexingError(GraphdexError):
    """Fatal error during a (bulk) indexing call."""


class SearchError(GraphdexError):
    """Error during search execution."""


class TokenizationError(GraphdexError):
    """The analyzer failed to tokenize a piece of text."""

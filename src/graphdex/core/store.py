"""
Graphdex Index Store (SQLite FTS5)

Named full-text indexes kept in one SQLite database.  A catalog table
records each index's name, kind and analyzer configuration; the postings
of each index live in their own FTS5 virtual table created with that
analyzer's tokenizer.

The store caches nothing about indexes: every call resolves the index
through the catalog again, so an index deleted or recreated by another
caller is observed on the next call.
"""

import enum
import hashlib
import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

from graphdex.core.config import AnalyzerConfig
from graphdex.exceptions import ConfigConflictError, IndexNotFoundError, SearchError

logger = logging.getLogger(__name__)

VALUE_SEPARATOR = "\n"


class IndexKind(str, enum.Enum):
    NODE = "NODE"
    RELATIONSHIP = "RELATIONSHIP"


@dataclass(frozen=True)
class IndexDescriptor:
    """Name, kind and analyzer configuration of an index."""
    name: str
    kind: IndexKind
    config: AnalyzerConfig

    @property
    def analyzer_config(self) -> Dict[str, str]:
        return self.config.as_dict()

    def to_dict(self) -> dict:
        return {"type": self.kind.value, "name": self.name, "config": self.analyzer_config}


@dataclass(frozen=True)
class Posting:
    """One indexed (document, field, value) entry."""
    doc_id: int
    field: str
    value: str


@dataclass
class _ResolvedIndex:
    descriptor: IndexDescriptor
    table: str
    created_at: str = ""


def _table_name(name: str, kind: IndexKind) -> str:
    digest = hashlib.sha1(f"{kind.value}:{name}".encode("utf-8")).hexdigest()[:16]
    return f"fts_{digest}"


def _quote(identifier: str) -> str:
    return '"' + identifier.replace('"', '""') + '"'


def phrase(text: str) -> str:
    """Quote *text* as a single FTS5 string (phrase) token."""
    return '"' + text.replace('"', '""') + '"'


def posting_values(value: Any) -> List[str]:
    """Stringify a property value (one string per list element)."""
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value if v is not None]
    if isinstance(value, bool):
        return ["true" if value else "false"]
    return [str(value)]


def posting_text(value: Any) -> Optional[str]:
    """
    The posted text of a property value, or ``None`` when there is nothing
    to post.  List elements share one posting, one element per line, so
    required terms may be spread over several elements of the field.
    """
    texts = posting_values(value)
    return VALUE_SEPARATOR.join(texts) if texts else None


class IndexStore:
    """SQLite-backed catalog and postings for named full-text indexes.

    Uses thread-local connections so that each thread reuses a single
    connection instead of opening/closing one per method call.
    """

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self._local = threading.local()
        self._init_db()

    def _get_connection(self) -> sqlite3.Connection:
        """Return a thread-local SQLite connection, creating it on first use."""
        if not hasattr(self._local, "conn") or self._local.conn is None:
            self._local.conn = sqlite3.connect(self.db_path)
        return self._local.conn

    def close(self) -> None:
        """Close the thread-local connection for the current thread. Idempotent."""
        if hasattr(self._local, "conn") and self._local.conn is not None:
            self._local.conn.close()
            self._local.conn = None

    def _init_db(self):
        """Initialize the catalog schema."""
        conn = self._get_connection()
        conn.execute("""
            CREATE TABLE IF NOT EXISTS fts_indexes (
                name TEXT NOT NULL,
                kind TEXT NOT NULL,
                config TEXT NOT NULL,
                table_name TEXT NOT NULL UNIQUE,
                created_at TIMESTAMP NOT NULL,
                PRIMARY KEY (name, kind)
            )
        """)
        conn.commit()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run a block of writes atomically (commit on success, rollback on error)."""
        conn = self._get_connection()
        with conn:
            yield conn

    # ── Catalog ───────────────────────────────────────────────────

    def _resolve(self, name: str, kind: IndexKind = IndexKind.NODE) -> Optional[_ResolvedIndex]:
        row = self._get_connection().execute(
            "SELECT config, table_name, created_at FROM fts_indexes WHERE name = ? AND kind = ?",
            (name, kind.value),
        ).fetchone()
        if row is None:
            return None
        config = AnalyzerConfig.from_dict(json.loads(row[0]))
        return _ResolvedIndex(IndexDescriptor(name, kind, config), row[1], row[2])

    def exists(self, name: str, kind: IndexKind = IndexKind.NODE) -> bool:
        return self._resolve(name, kind) is not None

    def describe(self, name: str, kind: IndexKind = IndexKind.NODE) -> IndexDescriptor:
        """Return the descriptor of an existing index.

        Raises:
            IndexNotFoundError: No index called *name* exists.
        """
        resolved = self._resolve(name, kind)
        if resolved is None:
            raise IndexNotFoundError(f"No {kind.value.lower()} index named '{name}'")
        return resolved.descriptor

    def ensure(self, name: str, config: Optional[AnalyzerConfig] = None,
               kind: IndexKind = IndexKind.NODE,
               default: Optional[AnalyzerConfig] = None) -> IndexDescriptor:
        """
        Create the index if absent and return its descriptor.

        Idempotent.  When the index exists and *config* is given, it must
        equal the stored configuration.  When *config* is ``None`` an
        existing index keeps its configuration and a new one is created
        with *default*.

        Raises:
            ConfigConflictError: The index exists with a different analyzer.
        """
        resolved = self._resolve(name, kind)
        if resolved is not None:
            if config is not None and config != resolved.descriptor.config:
                raise ConfigConflictError(
                    f"Index '{name}' already exists with analyzer config "
                    f"{resolved.descriptor.analyzer_config}; requested {config.as_dict()}. "
                    "Remove the index before changing its analyzer."
                )
            return resolved.descriptor

        config = config or default
        if config is None:
            raise ValueError("ensure() needs a config (or default) to create a new index")
        table = _table_name(name, kind)
        with self.transaction() as conn:
            conn.execute(
                f"CREATE VIRTUAL TABLE IF NOT EXISTS {_quote(table)} USING fts5("
                f"doc_id UNINDEXED, field UNINDEXED, value, tokenize={config.tokenize_clause})"
            )
            conn.execute(
                "INSERT INTO fts_indexes (name, kind, config, table_name, created_at) "
                "VALUES (?, ?, ?, ?, ?)",
                (name, kind.value, json.dumps(config.as_dict(), sort_keys=True), table,
                 datetime.now().isoformat()),
            )
        logger.info(f"Created {kind.value.lower()} index '{name}' ({config.analyzer})")
        return IndexDescriptor(name, kind, config)

    def list_names(self, kind: IndexKind = IndexKind.NODE) -> List[str]:
        cursor = self._get_connection().execute(
            "SELECT name FROM fts_indexes WHERE kind = ? ORDER BY created_at, name",
            (kind.value,),
        )
        return [row[0] for row in cursor.fetchall()]

    def delete(self, name: str, kind: IndexKind = IndexKind.NODE) -> List[IndexDescriptor]:
        """Drop the index; return its descriptor in a list (empty if it did not exist)."""
        resolved = self._resolve(name, kind)
        if resolved is None:
            logger.debug(f"Nothing to remove, index does not exist: '{name}'")
            return []
        with self.transaction() as conn:
            conn.execute(f"DROP TABLE IF EXISTS {_quote(resolved.table)}")
            conn.execute(
                "DELETE FROM fts_indexes WHERE name = ? AND kind = ?", (name, kind.value)
            )
        logger.info(f"Removed {kind.value.lower()} index '{name}'")
        return [resolved.descriptor]

    # ── Postings ──────────────────────────────────────────────────

    def replace_document(self, name: str, doc_id: int,
                         properties: Mapping[str, Any],
                         kind: IndexKind = IndexKind.NODE) -> int:
        """
        Remove every posting of *doc_id* from the index, then add one
        posting per (field, value) in *properties*.  Both steps run in
        one transaction.  Returns the number of postings added.
        """
        table = self._require_table(name, kind)
        rows = []
        for key, value in properties.items():
            text = posting_text(value)
            if text is not None:
                rows.append((doc_id, key, text))
        with self.transaction() as conn:
            conn.execute(f"DELETE FROM {_quote(table)} WHERE doc_id = ?", (doc_id,))
            conn.executemany(
                f"INSERT INTO {_quote(table)} (doc_id, field, value) VALUES (?, ?, ?)", rows
            )
        return len(rows)

    def remove_document(self, name: str, doc_id: int, kind: IndexKind = IndexKind.NODE) -> None:
        """Remove every posting of *doc_id*; a no-op for unindexed documents."""
        table = self._require_table(name, kind)
        with self.transaction() as conn:
            conn.execute(f"DELETE FROM {_quote(table)} WHERE doc_id = ?", (doc_id,))

    def postings(self, name: str, doc_id: Optional[int] = None,
                 kind: IndexKind = IndexKind.NODE) -> List[Posting]:
        resolved = self._resolve(name, kind)
        if resolved is None:
            return []
        sql = f"SELECT doc_id, field, value FROM {_quote(resolved.table)}"
        params: Tuple = ()
        if doc_id is not None:
            sql += " WHERE doc_id = ?"
            params = (doc_id,)
        cursor = self._get_connection().execute(sql + " ORDER BY rowid", params)
        return [Posting(int(r[0]), r[1], r[2]) for r in cursor.fetchall()]

    def fields(self, name: str, kind: IndexKind = IndexKind.NODE) -> List[str]:
        """Distinct field names posted in the index (empty if it does not exist)."""
        resolved = self._resolve(name, kind)
        if resolved is None:
            return []
        cursor = self._get_connection().execute(
            f"SELECT field FROM {_quote(resolved.table)} GROUP BY field ORDER BY MIN(rowid)"
        )
        return [row[0] for row in cursor.fetchall()]

    def stats(self, name: str, kind: IndexKind = IndexKind.NODE) -> Dict[str, int]:
        """Document, posting and field counts for the index."""
        table = self._require_table(name, kind)
        conn = self._get_connection()
        documents, postings = conn.execute(
            f"SELECT COUNT(DISTINCT doc_id), COUNT(*) FROM {_quote(table)}"
        ).fetchone()
        field_count = conn.execute(
            f"SELECT COUNT(DISTINCT field) FROM {_quote(table)}"
        ).fetchone()[0]
        return {"documents": documents, "postings": postings, "fields": field_count}

    # ── Querying ──────────────────────────────────────────────────

    def match(self, name: str, clauses: Sequence[Tuple[Optional[str], Optional[str], Optional[str]]],
              kind: IndexKind = IndexKind.NODE) -> Optional[List[Tuple[int, float]]]:
        """
        Execute OR-combined clauses and return ``(doc_id, score)`` pairs.

        Each clause is ``(field, match_expression, substring)``: the FTS5
        expression to match against the field's postings (``None`` to skip
        full-text matching), plus an optional literal that the posting
        value must contain.  A ``None`` field matches every field.  The
        native score of a document is the sum of ``-bm25()`` over the
        postings it matched, across all clauses.  Results come back ordered
        by score, best first, then by document id.

        Returns ``None`` when the index does not exist.

        Raises:
            SearchError: The engine rejected a match expression.
        """
        resolved = self._resolve(name, kind)
        if resolved is None:
            return None
        table = _quote(resolved.table)
        conn = self._get_connection()

        # One statement per clause: bm25() is only valid in a plain FTS5 scan
        totals: Dict[int, float] = {}
        for field_name, expression, substring in clauses:
            where: List[str] = []
            params: List[Any] = []
            if expression is not None:
                where.append(f"{table} MATCH ?")
                params.append(expression)
                score = f"-bm25({table})"
            else:
                score = "0.0"
            if field_name is not None:
                where.append("field = ?")
                params.append(field_name)
            if substring is not None:
                where.append("instr(value, ?) > 0")
                params.append(substring)
            sql = f"SELECT doc_id, {score} FROM {table}"
            if where:
                sql += " WHERE " + " AND ".join(where)
            try:
                rows = conn.execute(sql, params).fetchall()
            except sqlite3.OperationalError as exc:
                raise SearchError(f"Query against index '{name}' failed: {exc}") from exc
            for doc_id, value in rows:
                doc_id = int(doc_id)
                totals[doc_id] = totals.get(doc_id, 0.0) + float(value)

        return sorted(totals.items(), key=lambda item: (-item[1], item[0]))

    # ── Helpers ───────────────────────────────────────────────────

    def _require_table(self, name: str, kind: IndexKind) -> str:
        resolved = self._resolve(name, kind)
        if resolved is None:
            raise IndexNotFoundError(f"No {kind.value.lower()} index named '{name}'")
        return resolved.table

    def describe_all(self, kind: IndexKind = IndexKind.NODE) -> List[IndexDescriptor]:
        return [self.describe(n, kind) for n in self.list_names(kind)]

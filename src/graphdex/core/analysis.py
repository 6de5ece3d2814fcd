"""
Tokenizer adapter over the FTS5 analyzers.

Query text has to be analyzed exactly the way the index analyzed the
stored values, otherwise fuzzy terms would never line up with postings.
Rather than re-implementing the tokenizers, :class:`Tokenizer` runs the
text through the same FTS5 tokenizer in a private in-memory database and
reads the produced terms back through an ``fts5vocab`` instance table.
"""

import logging
import sqlite3
import threading
import unicodedata
from dataclasses import dataclass
from typing import List

from graphdex.core.config import STANDARD_ANALYZER, AnalyzerConfig
from graphdex.exceptions import TokenizationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TokenSpan:
    """One analyzed token and the character span it was produced from."""
    term: str
    start_offset: int
    end_offset: int

    @property
    def offset_marker(self) -> str:
        """The token's offsets rendered as ``startOffset=S,endOffset=E``."""
        return f"startOffset={self.start_offset},endOffset={self.end_offset}"


def _fold(text: str) -> str:
    """Lower-case and strip diacritics one character at a time (length preserving)."""
    out = []
    for ch in text:
        base = "".join(
            c for c in unicodedata.normalize("NFKD", ch) if not unicodedata.combining(c)
        ).lower()
        out.append(base if len(base) == 1 else ch.lower())
    return "".join(out)


class Tokenizer:
    """
    Analyzes text with one FTS5 tokenizer configuration.

    Uses thread-local scratch connections, like the index store, so one
    tokenizer can be shared by worker threads.
    """

    def __init__(self, analyzer: AnalyzerConfig = STANDARD_ANALYZER):
        self.analyzer = analyzer
        self._case_sensitive = "case_sensitive 1" in " ".join(analyzer.analyzer.split())
        self._local = threading.local()

    def _get_connection(self) -> sqlite3.Connection:
        """Return this thread's scratch database, creating it on first use."""
        if getattr(self._local, "conn", None) is None:
            conn = sqlite3.connect(":memory:")
            conn.execute(
                "CREATE VIRTUAL TABLE scratch USING fts5("
                f"text, tokenize={self.analyzer.tokenize_clause})"
            )
            conn.execute("CREATE VIRTUAL TABLE scratch_terms USING fts5vocab(scratch, 'instance')")
            self._local.conn = conn
        return self._local.conn

    def close(self) -> None:
        """Close the scratch connection for the current thread. Idempotent."""
        if getattr(self._local, "conn", None) is not None:
            self._local.conn.close()
            self._local.conn = None

    def tokenize(self, text: str) -> List[TokenSpan]:
        """
        Split *text* into tokens, in order of appearance.

        Raises:
            TokenizationError: The analyzer could not process the text.
        """
        try:
            conn = self._get_connection()
            with conn:
                conn.execute("DELETE FROM scratch")
                conn.execute("INSERT INTO scratch (rowid, text) VALUES (1, ?)", (str(text),))
                rows = conn.execute(
                    "SELECT term, offset FROM scratch_terms ORDER BY offset"
                ).fetchall()
        except sqlite3.Error as exc:
            raise TokenizationError(
                f"Analyzer '{self.analyzer.analyzer}' failed on {text!r}: {exc}"
            ) from exc
        return self._locate([term for term, _ in rows], str(text))

    def terms(self, text: str) -> List[str]:
        return [span.term for span in self.tokenize(text)]

    def _locate(self, terms: List[str], text: str) -> List[TokenSpan]:
        """Attach character offsets to *terms* by scanning *text* left to right."""
        haystack = text if self._case_sensitive else _fold(text)
        spans: List[TokenSpan] = []
        cursor = 0
        for term in terms:
            start = haystack.find(term, cursor)
            if start < 0:
                # Stemmed terms (porter) need not occur verbatim
                start = cursor
                end = cursor
            else:
                end = start + len(term)
                cursor = start + 1
            spans.append(TokenSpan(term, start, end))
        return spans

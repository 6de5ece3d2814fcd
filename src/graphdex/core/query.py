"""
Graphdex Query Planner

Turns a raw query string plus a list of property fields into a
structured boolean query.

Two modes exist:

- **exact** — the raw string is wrapped in double quotes.  The quotes are
  stripped and the literal is matched as a phrase, restricted to values
  that contain it verbatim.  Example: ``"\\"Alice\\""`` becomes
  ``name:("Alice") bio:("Alice")``.
- **fuzzy** — anything else.  The string is analyzed with the index's
  tokenizer and re-encoded as whitespace-joined required markers, one per
  token: ``Alice Smith`` becomes ``name:(+alice +smith) bio:(+alice +smith)``.

Clauses are combined with OR: a document matches when any single field
contains all required tokens.
"""

import enum
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from graphdex.core.analysis import TokenSpan, Tokenizer
from graphdex.core.config import FUZZY_ENCODINGS, STANDARD_ANALYZER, AnalyzerConfig
from graphdex.core.store import phrase
from graphdex.exceptions import ConfigError, TokenizationError

logger = logging.getLogger(__name__)

REQUIRED = "+"


class QueryMode(str, enum.Enum):
    EXACT = "exact"
    FUZZY = "fuzzy"


@dataclass(frozen=True)
class FieldClause:
    """``field:(value)`` — one per requested property field."""
    field: str
    value: str
    terms: Tuple[str, ...] = ()
    """Required terms (fuzzy) or the literal's tokens (exact)."""
    literal: Optional[str] = None
    """The unquoted phrase for exact clauses; ``None`` for fuzzy ones."""
    substring: Optional[str] = None
    """Text a fuzzy clause without terms matches verbatim instead."""

    def to_query_string(self) -> str:
        if self.literal is not None:
            return f'{self.field}:("{self.literal}")'
        return f"{self.field}:({self.value})"

    def match_expression(self) -> Optional[str]:
        """The FTS5 expression for this clause, or ``None`` when there is nothing to match."""
        if not self.terms:
            return None
        if self.literal is not None:
            return phrase(self.literal)
        return " AND ".join(phrase(term) for term in self.terms)


@dataclass(frozen=True)
class StructuredQuery:
    """An OR-combination of :class:`FieldClause` objects."""
    mode: QueryMode
    raw: str
    clauses: Tuple[FieldClause, ...] = ()
    literal: Optional[str] = None
    operator: str = "OR"

    @property
    def is_exact(self) -> bool:
        return self.mode is QueryMode.EXACT

    @property
    def scoring_literal(self) -> Optional[str]:
        """
        The text hits are scored by containment of: the exact literal, or
        the substring of a fuzzy query that fell back to one.  ``None``
        keeps the engine's native score.
        """
        if self.is_exact:
            return self.literal or ""
        for clause in self.clauses:
            if clause.substring:
                return clause.substring
        return None

    def to_query_string(self) -> str:
        return " ".join(clause.to_query_string() for clause in self.clauses)

    def execution_clauses(self) -> List[Tuple[Optional[str], Optional[str], Optional[str]]]:
        """
        ``(field, match_expression, substring)`` triples for the index store.

        Fuzzy clauses without terms or substring, and exact clauses with
        an empty literal, cannot match anything and are dropped.  An exact
        literal that yields no tokens is matched as a plain substring.
        """
        triples = []
        for clause in self.clauses:
            if clause.literal is not None:
                if clause.literal:
                    triples.append((clause.field, clause.match_expression(), clause.literal))
            elif clause.terms:
                triples.append((clause.field, clause.match_expression(), None))
            elif clause.substring:
                triples.append((clause.field, None, clause.substring))
        return triples


def is_exact_phrase(raw: str) -> bool:
    """True when *raw* is wrapped in double quotes."""
    return len(raw) >= 2 and raw.startswith('"') and raw.endswith('"')


class QueryPlanner:
    """
    Builds :class:`StructuredQuery` objects.

    Args:
        fuzzy_encoding: ``"terms"`` encodes each fuzzy token by its term;
            ``"offsets"`` encodes it by its offset marker
            (``startOffset=S,endOffset=E``), reproducing the legacy query
            shape.  Offset markers generally match nothing.
    """

    def __init__(self, fuzzy_encoding: str = "terms"):
        if fuzzy_encoding not in FUZZY_ENCODINGS:
            raise ConfigError(
                f"Unknown fuzzy encoding '{fuzzy_encoding}'. "
                f"Supported: {', '.join(FUZZY_ENCODINGS)}."
            )
        self.fuzzy_encoding = fuzzy_encoding
        self._tokenizers: Dict[AnalyzerConfig, Tokenizer] = {}

    def tokenizer_for(self, analyzer: AnalyzerConfig) -> Tokenizer:
        if analyzer not in self._tokenizers:
            self._tokenizers[analyzer] = Tokenizer(analyzer)
        return self._tokenizers[analyzer]

    def plan(self, raw: str, fields: Sequence[str],
             analyzer: AnalyzerConfig = STANDARD_ANALYZER) -> StructuredQuery:
        """Build the query for *raw* over *fields*, analyzed with *analyzer*."""
        value = raw.strip()
        tokenizer = self.tokenizer_for(analyzer)

        if is_exact_phrase(value):
            literal = value[1:-1]
            terms = tuple(span.term for span in self._analyze(tokenizer, literal))
            clauses = tuple(
                FieldClause(f, f'"{literal}"', terms, literal) for f in fields
            )
            query = StructuredQuery(QueryMode.EXACT, raw, clauses, literal)
        else:
            markers = self._encode(self._analyze(tokenizer, value))
            if markers or not self._matches_short_values(analyzer):
                encoded = " ".join(REQUIRED + m for m in markers)
                clauses = tuple(FieldClause(f, encoded, tuple(markers)) for f in fields)
            else:
                # Too short for a single trigram, e.g. two-character CJK words
                clauses = tuple(FieldClause(f, value, substring=value) for f in fields)
            query = StructuredQuery(QueryMode.FUZZY, raw, clauses)

        logger.debug(f"Planned {query.mode.value} query: {query.to_query_string()}")
        return query

    def _encode(self, spans: List[TokenSpan]) -> List[str]:
        if self.fuzzy_encoding == "offsets":
            return [span.offset_marker for span in spans]
        return [span.term for span in spans]

    @staticmethod
    def _matches_short_values(analyzer: AnalyzerConfig) -> bool:
        """Whether a token-less fuzzy value should fall back to a substring scan."""
        return analyzer.tokenizer == "trigram"

    @staticmethod
    def _analyze(tokenizer: Tokenizer, text: str) -> List[TokenSpan]:
        """Tokenize *text*; an analyzer failure degrades to no tokens."""
        try:
            return tokenizer.tokenize(text)
        except TokenizationError as exc:
            logger.warning(f"Tokenization failed, querying with an empty value: {exc}")
            return []

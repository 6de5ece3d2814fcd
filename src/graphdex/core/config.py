"""
Graphdex Configuration Module

Analyzer presets and instance-based configuration for the label-scoped
full-text indexing system.

Analyzer configurations are immutable value objects: an index is bound
to exactly one of them when it is created and keeps it until the index
is deleted.  Nothing here is global mutable state; a
:class:`GraphdexConfig` is built once and passed down the call stack.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Mapping, Optional

from graphdex.exceptions import ConfigError

# =============================================================================
# Analyzer Configuration
# =============================================================================

PROVIDER = "sqlite-fts5"

INDEX_TYPES = frozenset(("fulltext", "exact"))

# First word of an FTS5 ``tokenize=`` argument; the analyzer string is interpolated
# into DDL so only built-in tokenizers are accepted.
FTS5_TOKENIZERS = frozenset(("unicode61", "ascii", "porter", "trigram"))


@dataclass(frozen=True)
class AnalyzerConfig:
    """
    The analyzer configuration an index is bound to.

    Mirrors the recognised configuration keys ``provider``, ``type`` and
    ``analyzer``.  ``analyzer`` is an FTS5 tokenizer specification such
    as ``"unicode61 remove_diacritics 2"`` or ``"trigram"``.
    """

    type: str = "fulltext"
    analyzer: str = "unicode61 remove_diacritics 2"
    provider: str = PROVIDER

    def __post_init__(self):
        if self.provider != PROVIDER:
            raise ConfigError(
                f"Unsupported index provider '{self.provider}'. Supported: {PROVIDER}."
            )
        if self.type not in INDEX_TYPES:
            raise ConfigError(
                f"Unknown index type '{self.type}'. "
                f"Supported: {', '.join(sorted(INDEX_TYPES))}."
            )
        words = self.analyzer.split()
        if not words or words[0] not in FTS5_TOKENIZERS:
            raise ConfigError(
                f"Unknown analyzer '{self.analyzer}'. "
                f"Must start with one of: {', '.join(sorted(FTS5_TOKENIZERS))}."
            )
        for word in words[1:]:
            if not word.replace("_", "").isalnum():
                raise ConfigError(f"Invalid analyzer option '{word}' in '{self.analyzer}'.")

    @property
    def tokenizer(self) -> str:
        """The FTS5 tokenizer name, without options."""
        return self.analyzer.split()[0]

    @property
    def tokenize_clause(self) -> str:
        """The analyzer as a quoted FTS5 ``tokenize`` argument."""
        return "'" + self.analyzer + "'"

    def as_dict(self) -> Dict[str, str]:
        return {"provider": self.provider, "type": self.type, "analyzer": self.analyzer}

    @classmethod
    def from_dict(cls, data: Mapping[str, str]) -> "AnalyzerConfig":
        """Rebuild a config from its stored mapping. Unknown keys are rejected."""
        unknown = set(data) - {"provider", "type", "analyzer"}
        if unknown:
            raise ConfigError(f"Unrecognised analyzer config keys: {', '.join(sorted(unknown))}")
        return cls(
            type=data.get("type", "fulltext"),
            analyzer=data.get("analyzer", "unicode61 remove_diacritics 2"),
            provider=data.get("provider", PROVIDER),
        )


STANDARD_ANALYZER = AnalyzerConfig(type="fulltext", analyzer="unicode61 remove_diacritics 2")
CJK_ANALYZER = AnalyzerConfig(type="fulltext", analyzer="trigram")
EXACT_ANALYZER = AnalyzerConfig(type="exact", analyzer="trigram case_sensitive 1")

ANALYZER_PRESETS: Mapping[str, AnalyzerConfig] = {
    "standard": STANDARD_ANALYZER,
    "cjk": CJK_ANALYZER,
    "exact": EXACT_ANALYZER,
}


# =============================================================================
# Instance-Based Configuration
# =============================================================================

FUZZY_ENCODINGS = ("terms", "offsets")
FIELD_DISCOVERY_MODES = ("sample", "union")


def _env_optional(name: str, cast):
    raw = os.getenv(name, "").strip()
    return cast(raw) if raw else None


@dataclass
class GraphdexConfig:
    """
    Instance-based configuration for Graphdex.

    Create from environment variables::

        config = GraphdexConfig.from_env()

    Or with explicit values::

        config = GraphdexConfig(default_analyzer="cjk", field_discovery="union")
    """

    # ── Index storage ─────────────────────────────────────────────
    index_dir: str = ".graphdex"
    index_db_name: str = "index.db"

    # ── Analysis ──────────────────────────────────────────────────
    default_analyzer: str = "standard"
    fuzzy_encoding: str = "terms"
    """``"terms"`` queries token terms; ``"offsets"`` reproduces the legacy offset markers."""

    # ── Querying ──────────────────────────────────────────────────
    field_discovery: str = "sample"
    """``"sample"`` reads field names from one document per label, ``"union"`` from all."""
    default_limit: Optional[int] = None
    min_score: Optional[float] = None

    # ── Output / Logging ──────────────────────────────────────────
    show_progress: bool = False
    log_level: str = "INFO"
    log_format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    analyzer_presets: Mapping[str, AnalyzerConfig] = field(
        default_factory=lambda: dict(ANALYZER_PRESETS)
    )

    # ── Factory ───────────────────────────────────────────────────

    @classmethod
    def from_env(cls) -> "GraphdexConfig":
        """Build a config snapshot from current environment variables."""
        progress_raw = os.getenv("GRAPHDEX_SHOW_PROGRESS", "").lower()
        return cls(
            index_dir=os.getenv("GRAPHDEX_INDEX_DIR", ".graphdex"),
            default_analyzer=os.getenv("GRAPHDEX_ANALYZER", "standard").lower(),
            fuzzy_encoding=os.getenv("GRAPHDEX_FUZZY_ENCODING", "terms").lower(),
            field_discovery=os.getenv("GRAPHDEX_FIELD_DISCOVERY", "sample").lower(),
            default_limit=_env_optional("GRAPHDEX_LIMIT", int),
            min_score=_env_optional("GRAPHDEX_MIN_SCORE", float),
            show_progress=progress_raw in ("1", "true", "yes", "on"),
            log_level=os.getenv("GRAPHDEX_LOG_LEVEL", "INFO").upper(),
        )

    # ── Validation & Accessors ────────────────────────────────────

    def validate(self) -> bool:
        """Raise :class:`~graphdex.exceptions.ConfigError` if any setting is invalid."""
        if self.default_analyzer not in self.analyzer_presets:
            raise ConfigError(
                f"Unknown analyzer preset '{self.default_analyzer}'. "
                f"Supported: {', '.join(self.analyzer_presets)}.\n"
                "  Set via: export GRAPHDEX_ANALYZER=standard"
            )
        if self.fuzzy_encoding not in FUZZY_ENCODINGS:
            raise ConfigError(
                f"Unknown fuzzy encoding '{self.fuzzy_encoding}'. "
                f"Supported: {', '.join(FUZZY_ENCODINGS)}."
            )
        if self.field_discovery not in FIELD_DISCOVERY_MODES:
            raise ConfigError(
                f"Unknown field discovery mode '{self.field_discovery}'. "
                f"Supported: {', '.join(FIELD_DISCOVERY_MODES)}."
            )
        if self.default_limit is not None and self.default_limit < 0:
            raise ConfigError("default_limit must be >= 0")
        return True

    def get_analyzer(self, preset: Optional[str] = None) -> AnalyzerConfig:
        """Return the analyzer for *preset*, or the configured default."""
        name = (preset or self.default_analyzer).lower()
        if name not in self.analyzer_presets:
            raise ConfigError(
                f"Unknown analyzer preset '{name}'. "
                f"Supported: {', '.join(self.analyzer_presets)}."
            )
        return self.analyzer_presets[name]

    def get_index_path(self, base_dir: Path) -> Path:
        """Get the path to the index database."""
        return base_dir / self.index_db_name

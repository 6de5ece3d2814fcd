"""
Shared fixtures for the Graphdex test suite.
"""

import json
import sys
import warnings
from pathlib import Path

import pytest

# Filter deprecation warnings from pytest-asyncio; we cannot fix the library.
warnings.filterwarnings(
    "ignore",
    category=DeprecationWarning,
    module="pytest_asyncio",
)

# Ensure the src/ directory is on the import path so that
# graphdex.core.store / graphdex.core.search / etc. can be imported.
SRC_ROOT = Path(__file__).resolve().parent.parent / "src"
sys.path.insert(0, str(SRC_ROOT))

from graphdex.core.config import GraphdexConfig  # noqa: E402
from graphdex.core.graph import InMemoryGraph  # noqa: E402
from graphdex.core.store import IndexStore  # noqa: E402


# =============================================================================
# Fixtures: a small people/companies graph
# =============================================================================

SAMPLE_NODES = [
    {"id": 0, "labels": ["Person"],
     "properties": {"name": "Alice Smith", "city": "Paris", "bio": "Alice writes graph databases"}},
    {"id": 1, "labels": ["Person"],
     "properties": {"name": "Bob Jones", "city": "London", "bio": "Bob likes Paris in spring"}},
    {"id": 2, "labels": ["Person", "Employee"],
     "properties": {"name": "Carol Alice", "city": "Berlin"}},
    {"id": 3, "labels": ["Company"],
     "properties": {"name": "Acme Paris", "industry": "Graph databases"}},
    {"id": 4, "labels": ["Company"],
     "properties": {"name": "Globex", "industry": "Energy", "tags": ["alpha", "beta"]}},
]


@pytest.fixture
def graph() -> InMemoryGraph:
    """Five nodes across the Person, Employee and Company labels."""
    return InMemoryGraph.from_dict({"nodes": SAMPLE_NODES})


@pytest.fixture
def index_path(tmp_path: Path) -> Path:
    return tmp_path / ".graphdex" / "index.db"


@pytest.fixture
def store(tmp_path: Path):
    """An empty index store; the connection is closed on teardown."""
    s = IndexStore(tmp_path / "index.db")
    yield s
    s.close()


@pytest.fixture
def config() -> GraphdexConfig:
    """GraphdexConfig with test defaults (no thresholds, no progress bars)."""
    return GraphdexConfig(
        index_dir=".graphdex",
        index_db_name="index.db",
        default_analyzer="standard",
        show_progress=False,
    )


@pytest.fixture
def client(graph, config, index_path):
    """Graphdex client over the sample graph with an empty index database."""
    from graphdex.client import Graphdex

    c = Graphdex(graph, config, index_path=index_path)
    yield c
    c.close()


@pytest.fixture
def graph_file(tmp_path: Path) -> Path:
    """The sample graph written as a JSON snapshot, for CLI tests."""
    path = tmp_path / "graph.json"
    path.write_text(json.dumps({"nodes": SAMPLE_NODES}), encoding="utf-8")
    return path

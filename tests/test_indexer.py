"""
Tests for graphdex.core.indexer — building and rebuilding label indexes.
"""

import pytest

from graphdex.core.config import CJK_ANALYZER, GraphdexConfig
from graphdex.core.graph import Document, InMemoryGraph
from graphdex.core.indexer import IndexBuilder, IndexResult
from graphdex.exceptions import ConfigConflictError, DocumentNotFoundError, IndexingError


@pytest.fixture
def builder(graph, store, config):
    return IndexBuilder(graph, store, config)


def _posting_counts(store, name):
    counts = {}
    for p in store.postings(name):
        counts[p.doc_id] = counts.get(p.doc_id, 0) + 1
    return counts


# =============================================================================
# Single documents
# =============================================================================

class TestIndexDocument:

    def test_indexes_requested_fields_only(self, builder, store):
        added = builder.index_document(0, ["name", "missing"], ["Person"])
        assert added == 1
        assert [(p.field, p.value) for p in store.postings("Person", 0)] == [("name", "Alice Smith")]

    def test_empty_fields_remove_existing_postings(self, builder, store):
        builder.index_document(0, None, ["Person"])
        assert {p.field for p in store.postings("Person", 0)} == {"name", "city", "bio"}
        assert builder.index_document(0, [], ["Person"]) == 0
        assert store.postings("Person", 0) == []

    def test_none_fields_index_everything(self, builder, store):
        builder.index_document(1, None, ["Person"])
        assert {p.field for p in store.postings("Person", 1)} == {"name", "city", "bio"}

    def test_index_created_with_default_analyzer(self, builder, store, config):
        builder.index_document(0, ["name"], ["Fresh"])
        assert store.describe("Fresh").config == config.get_analyzer()

    def test_reindex_is_idempotent(self, builder, store):
        builder.index_document(0, ["name", "city"], ["Person"])
        before = store.postings("Person", 0)
        builder.index_document(0, ["name", "city"], ["Person"])
        assert store.postings("Person", 0) == before

    def test_stale_value_removed(self, builder, graph, store):
        builder.index_document(0, ["name", "city"], ["Person"])
        graph.set_property(0, "city", "Lyon")
        builder.index_document(0, ["name", "city"], ["Person"])
        values = [p.value for p in store.postings("Person", 0)]
        assert "Paris" not in values
        assert "Lyon" in values

    def test_removed_property_drops_postings(self, builder, graph, store):
        builder.index_document(0, ["name", "city"], ["Person"])
        graph.remove_property(0, "city")
        builder.index_document(0, ["name", "city"], ["Person"])
        assert [p.field for p in store.postings("Person", 0)] == ["name"]

    def test_unknown_document_raises(self, builder):
        with pytest.raises(DocumentNotFoundError):
            builder.index_document(99, ["name"], ["Person"])

    def test_index_document_labels(self, builder, store):
        added = builder.index_document_labels(2, ["name"])
        assert added == 2
        assert store.postings("Person", 2)
        assert store.postings("Employee", 2)


# =============================================================================
# Bulk builds
# =============================================================================

class TestIndexAllByLabel:

    def test_indexes_every_document_of_label(self, builder, store):
        result = builder.index_all_by_label("Person")
        assert result.indexes == ["Person"]
        assert result.documents_indexed == 3
        assert result.postings_added == 8
        assert set(_posting_counts(store, "Person")) == {0, 1, 2}

    def test_rebuild_yields_identical_posting_counts(self, builder, store):
        builder.index_all_by_label("Person", ["name", "city"])
        first = _posting_counts(store, "Person")
        builder.index_all_by_label("Person", ["name", "city"])
        assert _posting_counts(store, "Person") == first

    def test_named_index_with_fields(self, builder, store):
        result = builder.index_all_by_label("Company", ["industry"], index_name="industries")
        assert result.indexes == ["industries"]
        assert {p.field for p in store.postings("industries")} == {"industry"}
        assert not store.exists("Company")

    def test_list_values_share_one_posting(self, builder, store):
        builder.index_all_by_label("Company", ["tags"])
        assert [p.value for p in store.postings("Company", 4)] == ["alpha\nbeta"]

    def test_analyzer_applies_to_new_index(self, builder, store):
        builder.index_all_by_label("Person", analyzer=CJK_ANALYZER)
        assert store.describe("Person").config == CJK_ANALYZER

    def test_analyzer_conflict(self, builder):
        builder.index_all_by_label("Person")
        with pytest.raises(ConfigConflictError):
            builder.index_all_by_label("Person", analyzer=CJK_ANALYZER)

    def test_unknown_label_creates_empty_index(self, builder, store):
        result = builder.index_all_by_label("Ghost")
        assert result.documents_indexed == 0
        assert store.exists("Ghost")

    def test_unreadable_document_raises_indexing_error(self, store, config):
        class FlakyGraph(InMemoryGraph):
            def iterate_by_label(self, label):
                yield Document(0, {"name": "Alice"})
                raise DocumentNotFoundError("gone")

        builder = IndexBuilder(FlakyGraph(), store, config)
        with pytest.raises(IndexingError, match="after 1 document"):
            builder.index_all_by_label("Person")
        # Documents before the failure stay indexed
        assert _posting_counts(store, "Person") == {0: 1}

    def test_progress_bar_enabled(self, graph, store):
        builder = IndexBuilder(graph, store, GraphdexConfig(show_progress=True))
        assert builder.index_all_by_label("Person").documents_indexed == 3


class TestMultiLabelBuilds:

    def test_index_labels(self, builder, store):
        result = builder.index_labels(["Person", "Company"])
        assert result.indexes == ["Person", "Company"]
        assert result.documents_indexed == 5

    def test_index_all_labels(self, builder, store):
        result = builder.index_all_labels()
        assert sorted(result.indexes) == ["Company", "Employee", "Person"]
        assert store.stats("Employee")["documents"] == 1

    def test_index_by_properties_uses_sample_document(self, builder, store):
        result = builder.index_by_properties(["industry", "city"])
        assert sorted(result.indexes) == ["Company", "Employee", "Person"]
        assert store.fields("Company") == ["industry"]
        assert store.fields("Person") == ["city"]
        assert result.labels_skipped == []

    def test_index_by_properties_skips_labels_without_any(self, builder, store):
        result = builder.index_by_properties(["industry"])
        assert result.indexes == ["Company"]
        assert sorted(result.labels_skipped) == ["Employee", "Person"]
        assert not store.exists("Person")


class TestIndexResult:

    def test_merge_and_to_dict(self):
        a = IndexResult(["A"], 2, 5)
        b = IndexResult(["A", "B"], 1, 1, ["C"])
        assert a.merge(b).to_dict() == {
            "indexes": ["A", "B"],
            "documents_indexed": 3,
            "postings_added": 6,
            "labels_skipped": ["C"],
        }

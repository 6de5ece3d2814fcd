"""
Tests for graphdex.core.search — scoring, per-index queries and merging.
"""

import json
import logging

import pytest

from graphdex.core.config import CJK_ANALYZER, GraphdexConfig
from graphdex.core.graph import Document
from graphdex.core.indexer import IndexBuilder
from graphdex.core.search import ResultAggregator, ResultFormatter, ScoredResult, ScoreEvaluator
from graphdex.exceptions import SearchError


@pytest.fixture
def builder(graph, store, config):
    return IndexBuilder(graph, store, config)


@pytest.fixture
def aggregator(graph, store, config, builder):
    """Aggregator over the sample graph with Person and Company indexed."""
    builder.index_labels(["Person", "Company"])
    return ResultAggregator(graph, store, config=config)


def _ids(results):
    return [r.id for r in results]


# =============================================================================
# Scoring
# =============================================================================

class TestScoreEvaluator:

    def test_exact_score_uses_shortest_containing_value(self):
        props = {"name": "Paris", "bio": "Bob likes Paris in spring"}
        assert ScoreEvaluator.exact_score(props, "Paris") == pytest.approx(1 / 5)

    def test_exact_score_is_zero_without_containing_value(self):
        assert ScoreEvaluator.exact_score({"name": "Lyon"}, "Paris") == 0.0

    def test_exact_score_considers_list_elements(self):
        assert ScoreEvaluator.exact_score({"tags": ["alpha", "al"]}, "al") == pytest.approx(0.5)

    def test_exact_score_is_case_sensitive(self):
        assert ScoreEvaluator.exact_score({"name": "Paris"}, "paris") == 0.0


# =============================================================================
# Single index
# =============================================================================

class TestQueryByProperty:

    def test_fuzzy_round_trip(self, aggregator):
        results = list(aggregator.query_by_property("Person", ["name"], "alice"))
        assert sorted(_ids(results)) == [0, 2]
        assert all(r.score > 0 for r in results)
        assert all(r.index == "Person" for r in results)

    def test_fuzzy_requires_all_tokens_in_one_field(self, aggregator):
        results = list(aggregator.query_by_property("Person", ["name", "bio"], "alice smith"))
        assert _ids(results) == [0]

    def test_fuzzy_ignores_case_and_punctuation(self, aggregator):
        results = list(aggregator.query_by_property("Person", ["name"], "ALICE,"))
        assert sorted(_ids(results)) == [0, 2]

    def test_exact_scores_by_shortest_value(self, aggregator):
        results = list(aggregator.query_by_property("Person", ["name", "city", "bio"], '"Paris"'))
        by_id = {r.id: r.score for r in results}
        assert by_id == {0: pytest.approx(1 / 5), 1: pytest.approx(1 / 25)}

    def test_exact_is_a_verbatim_substring(self, aggregator):
        assert list(aggregator.query_by_property("Person", ["city"], '"paris"')) == []
        assert _ids(aggregator.query_by_property("Person", ["name"], '"Alice Smith"')) == [0]

    def test_exact_and_fuzzy_differ(self, aggregator):
        fuzzy = _ids(aggregator.query_by_property("Person", ["name"], "Smith Alice"))
        exact = _ids(aggregator.query_by_property("Person", ["name"], '"Smith Alice"'))
        assert fuzzy == [0]
        assert exact == []

    def test_only_requested_fields_are_searched(self, aggregator):
        assert list(aggregator.query_by_property("Person", ["city"], "alice")) == []

    def test_missing_index_yields_nothing(self, aggregator):
        assert list(aggregator.query_by_property("Nope", ["name"], "alice")) == []

    def test_is_lazy_and_limited(self, aggregator):
        results = aggregator.query_by_property("Person", ["name", "bio"], "alice", limit=1)
        assert not isinstance(results, list)
        assert len(list(results)) == 1

    def test_min_score_is_strict(self, aggregator):
        results = list(aggregator.query_by_property("Person", ["city", "bio"], '"Paris"',
                                                    min_score=0.2))
        assert results == []
        results = list(aggregator.query_by_property("Person", ["city", "bio"], '"Paris"',
                                                    min_score=0.1))
        assert _ids(results) == [0]

    def test_deleted_document_is_skipped(self, aggregator, graph, caplog):
        graph.delete_node(1)
        with caplog.at_level(logging.WARNING, logger="graphdex.core.search"):
            results = list(aggregator.query_by_property("Person", ["bio"], "paris"))
        assert results == []
        assert "stale postings" in caplog.text

    def test_property_change_after_indexing_scores_zero(self, aggregator, graph):
        graph.set_property(0, "city", "Lyon")
        results = list(aggregator.query_by_property("Person", ["city"], '"Paris"'))
        assert [(r.id, r.score) for r in results] == [(0, 0.0)]

    def test_short_cjk_word_matches_as_substring(self, graph, store, config):
        node = graph.add_node(["City"], {"name": "北京大学"})
        graph.add_node(["City"], {"name": "上海"})
        IndexBuilder(graph, store, config).index_all_by_label("City", analyzer=CJK_ANALYZER)
        agg = ResultAggregator(graph, store, config=config)
        fuzzy = [(r.id, r.score) for r in agg.query_by_property("City", ["name"], "北京")]
        exact = [(r.id, r.score) for r in agg.query_by_property("City", ["name"], '"北京"')]
        assert fuzzy == [(node, pytest.approx(0.25))]
        assert exact == fuzzy

    def test_fuzzy_terms_may_span_list_elements(self, graph, store, config):
        fruit = graph.add_node(["Fruit"], {"tags": ["red apple", "green pear"]})
        graph.add_node(["Fruit"], {"tags": ["red apple"]})
        IndexBuilder(graph, store, config).index_all_by_label("Fruit")
        agg = ResultAggregator(graph, store, config=config)
        assert _ids(agg.query_by_property("Fruit", ["tags"], "apple pear")) == [fruit]
        exact = list(agg.query_by_property("Fruit", ["tags"], '"green pear"'))
        assert [(r.id, r.score) for r in exact] == [(fruit, pytest.approx(1 / 10))]



# =============================================================================
# Many indexes
# =============================================================================

class TestQueryByLabel:

    def test_merges_and_sorts_across_labels(self, aggregator):
        results = aggregator.query_by_label(["Person", "Company"], '"Paris"')
        assert _ids(results) == [0, 3, 1]
        assert [r.index for r in results] == ["Person", "Company", "Person"]

    def test_limit_applies_after_merge(self, aggregator):
        results = aggregator.query_by_label(["Company", "Person"], '"Paris"', limit=1)
        assert _ids(results) == [0]

    def test_limit_one_keeps_best_of_two_labels(self, graph, store, config):
        short = graph.add_node(["City"], {"name": "Rome"})
        long = graph.add_node(["Town"], {"name": "Rome in Georgia"})
        IndexBuilder(graph, store, config).index_labels(["City", "Town"])
        agg = ResultAggregator(graph, store, config=config)
        for labels in (["City", "Town"], ["Town", "City"]):
            results = agg.query_by_label(labels, '"Rome"', min_score=0.0, limit=1)
            assert _ids(results) == [short]
        assert long in _ids(agg.query_by_label(["City", "Town"], '"Rome"'))

    def test_fuzzy_merge_of_single_property_labels(self, graph, store, config):
        short = graph.add_node(["City"], {"name": "Rome"})
        long = graph.add_node(["Town"], {"name": "Rome in Georgia"})
        IndexBuilder(graph, store, config).index_labels(["City", "Town"])
        agg = ResultAggregator(graph, store, config=config)
        results = agg.query_by_label(["City", "Town"], "rome")
        assert sorted(_ids(results)) == sorted([short, long])
        assert all(r.score > 0 for r in results)
        assert [r.score for r in results] == sorted((r.score for r in results), reverse=True)
        assert _ids(agg.query_by_label(["City", "Town"], "rome", limit=1)) == _ids(results)[:1]

    def test_min_score_applies_after_merge(self, aggregator):

        results = aggregator.query_by_label(["Person", "Company"], '"Paris"', min_score=0.1)
        assert _ids(results) == [0]

    def test_missing_label_contributes_nothing(self, aggregator):
        results = aggregator.query_by_label(["Ghost", "Company"], "globex")
        assert _ids(results) == [4]

    def test_ties_keep_label_order(self, graph, store, config):
        a = graph.add_node(["A"], {"name": "same"})
        b = graph.add_node(["B"], {"name": "same"})
        builder = IndexBuilder(graph, store, config)
        builder.index_labels(["A", "B"])
        agg = ResultAggregator(graph, store, config=config)
        assert _ids(agg.query_by_label(["A", "B"], '"same"')) == [a, b]
        assert _ids(agg.query_by_label(["B", "A"], '"same"')) == [b, a]

    def test_query_by_value_covers_every_index(self, aggregator):
        results = aggregator.query_by_value("databases")
        assert sorted(_ids(results)) == [0, 3]

    def test_sample_discovery_misses_later_fields(self, graph, store, config):
        graph.add_node(["Person"], {"nickname": "Zed"})
        IndexBuilder(graph, store, config).index_all_by_label("Person")
        agg = ResultAggregator(graph, store, config=config)
        assert agg.query_by_label(["Person"], "zed") == []

    def test_union_discovery_finds_later_fields(self, graph, store):
        config = GraphdexConfig(field_discovery="union")
        zed = graph.add_node(["Person"], {"nickname": "Zed"})
        IndexBuilder(graph, store, config).index_all_by_label("Person")
        agg = ResultAggregator(graph, store, config=config)
        assert _ids(agg.query_by_label(["Person"], "zed")) == [zed]

    def test_label_without_documents_uses_indexed_fields(self, graph, store, config, builder):
        builder.index_document(0, ["name"], ["Archive"])
        agg = ResultAggregator(graph, store, config=config)
        assert agg.discover_fields("Archive") == ["name"]
        assert _ids(agg.query_by_label(["Archive"], "alice")) == [0]


class TestNativeSearch:

    def test_search_returns_ids(self, aggregator):
        assert sorted(aggregator.search("Person", "alice OR bob")) == [0, 1, 2]

    def test_search_prefix(self, aggregator):
        assert aggregator.search("Company", "glob*") == [4]

    def test_search_missing_index(self, aggregator):
        assert aggregator.search("Nope", "alice") == []

    def test_search_syntax_error(self, aggregator):
        with pytest.raises(SearchError):
            aggregator.search("Person", "alice AND")

    def test_search_single_term(self, aggregator):
        assert aggregator.search("Company", "energy") == [4]

    def test_search_field_qualifier(self, aggregator):
        assert sorted(aggregator.search("Person", "name:alice")) == [0, 2]
        assert aggregator.search("Person", "city:alice") == []
        assert aggregator.search("Company", "name: glob*") == [4]

    def test_search_unknown_field_is_empty(self, aggregator):
        assert aggregator.search("Person", "nickname:alice") == []



# =============================================================================
# Formatting
# =============================================================================

class TestResultFormatter:

    def _results(self):
        return [ScoredResult(Document(3, {"name": "Acme Paris"}), 0.1, "Company")]

    def test_console_output(self):
        out = ResultFormatter.format_console(self._results(), elapsed_time=0.5)
        assert "1 result in" in out
        assert "node 3" in out
        assert "Acme Paris" in out

    def test_console_no_results(self):
        assert "No results found" in ResultFormatter.format_console([])

    def test_json_output(self):
        data = json.loads(ResultFormatter.format_json(self._results()))
        assert data == [{"id": 3, "score": 0.1, "index": "Company",
                         "properties": {"name": "Acme Paris"}}]

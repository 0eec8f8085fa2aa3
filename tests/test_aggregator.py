"""
Tests for result aggregation and transition detection
"""
from datetime import timedelta

import pytest

from feed_query_service.aggregator import ResultAggregator, sort_items
from feed_query_service.domain.models import (
    CombinedMode,
    ContentItem,
    DataSource,
    FilterSet,
    LoadMoreStrategy,
    PaginationMode,
    ResultSet,
    SortBy,
    TimeRange,
)
from feed_query_service.filters import FilterEvaluator

from .conftest import NOW, make_post, make_posts


def as_items(payloads):
    return tuple(ContentItem.from_dict(p) for p in payloads)


@pytest.fixture
def aggregator():
    return ResultAggregator(evaluator=FilterEvaluator(clock=lambda: NOW))


def synth_matches():
    """Ten search matches, four of them from the last week"""
    recent = [make_post(f"r{i}", age=timedelta(days=i + 1)) for i in range(4)]
    old = [make_post(f"o{i}", age=timedelta(days=30 + i)) for i in range(6)]
    return as_items(recent + old)


def test_none_mode_counts_candidates(aggregator):
    candidates = as_items(make_posts(12))
    result = aggregator.combine(CombinedMode.NONE, FilterSet(), candidates=candidates)

    assert result.total_results == 12
    assert result.result_count.search_matches == 0
    assert result.result_count.filter_matches == 0
    assert result.pagination_mode == PaginationMode.CLIENT
    assert result.load_more_strategy == LoadMoreStrategy.CLIENT_PAGINATE


def test_search_only_uses_provider_total(aggregator):
    page = as_items(make_posts(20))
    result = aggregator.combine(
        CombinedMode.SEARCH_ONLY,
        FilterSet(),
        search_result=ResultSet(items=page, match_count=45, next_cursor="20"),
        query="synth",
        pagination_mode=PaginationMode.SERVER,
    )

    assert result.total_results == 45
    assert result.result_count.search_matches == 45
    assert result.next_cursor == "20"
    assert result.load_more_strategy == LoadMoreStrategy.SERVER_FETCH


def test_filter_only_counts_filter_matches(aggregator):
    candidates = as_items([
        make_post("a", post_type="audio"),
        make_post("b", post_type="text"),
        make_post("c", post_type="audio"),
    ])
    filters = FilterSet(activity_types=frozenset({"audio"}))

    result = aggregator.combine(CombinedMode.FILTER_ONLY, filters, candidates=candidates)

    assert result.total_results == result.result_count.filter_matches == 2
    assert [i.id for i in result.items] == ["a", "c"]


def test_search_and_filter_narrows_search_matches(aggregator):
    matches = synth_matches()
    result = aggregator.combine(
        CombinedMode.SEARCH_AND_FILTER,
        FilterSet(time_range=TimeRange.WEEK),
        search_result=ResultSet(items=matches, match_count=10),
        query="synth",
    )

    counts = result.result_count
    assert counts.search_matches == 10
    assert counts.combined_matches == 4
    assert result.total_results == 4
    assert counts.combined_matches <= min(counts.search_matches, counts.filter_matches)


@pytest.mark.parametrize("following_ids", [set(), {1}, {1, 2, 3}])
def test_combined_matches_never_exceed_either_count(aggregator, following_ids):
    payloads = [make_post(f"x{i}", author_id=i % 4) for i in range(16)]
    result = aggregator.combine(
        CombinedMode.SEARCH_AND_FILTER,
        FilterSet(following=True),
        search_result=ResultSet(items=as_items(payloads), match_count=16),
        following_ids=following_ids,
        query="x",
    )
    counts = result.result_count
    assert counts.combined_matches <= min(counts.search_matches, counts.filter_matches)
    assert result.total_results == counts.combined_matches


def test_search_mode_requires_search_result(aggregator):
    with pytest.raises(ValueError):
        aggregator.combine(CombinedMode.SEARCH_ONLY, FilterSet(), query="synth")


def test_performance_metrics_are_non_negative(aggregator):
    result = aggregator.combine(
        CombinedMode.FILTER_ONLY,
        FilterSet(time_range=TimeRange.WEEK),
        candidates=as_items(make_posts(5)),
        search_time=3.5,
    )
    metrics = result.performance_metrics
    assert metrics.search_time == 3.5
    assert metrics.filter_time >= 0
    assert metrics.combination_time >= 0
    assert metrics.total_time >= metrics.filter_time


def test_timings_use_injected_timer():
    ticks = iter([0.0, 0.010, 0.015, 0.020, 0.030, 0.050])
    aggregator = ResultAggregator(
        evaluator=FilterEvaluator(clock=lambda: NOW),
        timer=lambda: next(ticks),
    )
    result = aggregator.combine(
        CombinedMode.FILTER_ONLY,
        FilterSet(following=True),
        candidates=(),
    )
    metrics = result.performance_metrics
    assert metrics.filter_time == pytest.approx(5.0)
    assert metrics.combination_time == pytest.approx(10.0)
    assert metrics.total_time == pytest.approx(50.0)


class TestSorting:

    def test_newest_first_by_default(self):
        items = as_items([
            make_post("old", age=timedelta(days=3)),
            make_post("new", age=timedelta(hours=1)),
        ])
        assert [i.id for i in sort_items(items, SortBy.NEWEST)] == ["new", "old"]
        assert [i.id for i in sort_items(items, SortBy.OLDEST)] == ["old", "new"]

    def test_popular_breaks_ties_by_recency(self):
        items = as_items([
            make_post("a", like_count=5, age=timedelta(days=2)),
            make_post("b", like_count=9),
            make_post("c", like_count=5, age=timedelta(hours=1)),
        ])
        assert [i.id for i in sort_items(items, SortBy.POPULAR)] == ["b", "c", "a"]

    def test_server_pages_keep_provider_order(self, aggregator):
        page = as_items([
            make_post("old", age=timedelta(days=3)),
            make_post("new", age=timedelta(hours=1)),
        ])
        result = aggregator.combine(
            CombinedMode.SEARCH_ONLY,
            FilterSet(),
            search_result=ResultSet(items=page, match_count=2),
            query="q",
            pagination_mode=PaginationMode.SERVER,
        )
        assert [i.id for i in result.items] == ["old", "new"]


class TestTransitions:

    def test_first_operation_requires_reset(self, aggregator):
        result = aggregator.combine(CombinedMode.NONE, FilterSet())
        transition = result.state_transition
        assert transition.from_mode == CombinedMode.NONE
        assert transition.to_mode == CombinedMode.NONE
        assert transition.requires_pagination_reset is True

    def test_identical_inputs_do_not_reset(self, aggregator):
        filters = FilterSet(time_range=TimeRange.WEEK)
        aggregator.remember(aggregator.combine(CombinedMode.FILTER_ONLY, filters))

        again = aggregator.combine(CombinedMode.FILTER_ONLY, filters)

        assert again.state_transition.requires_pagination_reset is False
        assert again.state_transition.requires_cache_invalidation is False

    def test_changed_facet_resets_even_with_same_mode(self, aggregator):
        aggregator.remember(
            aggregator.combine(CombinedMode.FILTER_ONLY, FilterSet(time_range=TimeRange.WEEK))
        )
        result = aggregator.combine(CombinedMode.FILTER_ONLY, FilterSet(time_range=TimeRange.MONTH))

        transition = result.state_transition
        assert transition.from_mode == transition.to_mode == CombinedMode.FILTER_ONLY
        assert transition.requires_pagination_reset is True

    def test_changed_pagination_mode_resets(self, aggregator):
        aggregator.remember(aggregator.combine(CombinedMode.NONE, FilterSet()))
        transition = aggregator.detect_transition(
            CombinedMode.NONE, "", FilterSet(), PaginationMode.SERVER
        )
        assert transition.requires_pagination_reset is True

    def test_uncommitted_results_do_not_move_the_baseline(self, aggregator):
        aggregator.remember(aggregator.combine(CombinedMode.NONE, FilterSet()))
        aggregator.combine(CombinedMode.FILTER_ONLY, FilterSet(following=True))

        assert aggregator.last_mode == CombinedMode.NONE

    def test_entering_search_invalidates_cache(self, aggregator):
        aggregator.remember(aggregator.combine(CombinedMode.NONE, FilterSet()))
        transition = aggregator.detect_transition(
            CombinedMode.SEARCH_ONLY, "synth", FilterSet(), PaginationMode.SERVER
        )
        assert transition.requires_cache_invalidation is True
        assert transition.affected_data_sources == (DataSource.SEARCH, DataSource.SERVER)

    def test_affected_sources_for_search_and_filter(self, aggregator):
        transition = aggregator.detect_transition(
            CombinedMode.SEARCH_AND_FILTER,
            "synth",
            FilterSet(following=True),
            PaginationMode.CLIENT,
        )
        assert DataSource.SEARCH in transition.affected_data_sources
        assert DataSource.FILTER in transition.affected_data_sources

    def test_clear_forgets_previous_mode(self, aggregator):
        aggregator.remember(aggregator.combine(CombinedMode.FILTER_ONLY, FilterSet(following=True)))
        aggregator.clear()

        assert aggregator.last_mode == CombinedMode.NONE
        assert aggregator.history() == []

    def test_instances_do_not_share_state(self):
        first = ResultAggregator()
        second = ResultAggregator()
        first.remember(first.combine(CombinedMode.FILTER_ONLY, FilterSet(following=True)))

        assert second.last_mode == CombinedMode.NONE


def test_history_is_bounded():
    aggregator = ResultAggregator(history_size=3)
    for i in range(5):
        aggregator.remember(aggregator.combine(CombinedMode.NONE, FilterSet(), request_id=i))

    assert [r.request_id for r in aggregator.history()] == [2, 3, 4]

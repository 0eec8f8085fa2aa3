"""
Result aggregation for combined search and filter operations
"""
from collections import deque
from datetime import datetime
from typing import Optional, List, Tuple, Any, Sequence, AbstractSet, Callable
import logging
import time

from .config import settings
from .domain.models import (
    CombinedMode,
    CombinedOperationResult,
    ContentItem,
    DataSource,
    FilterSet,
    LoadMoreStrategy,
    PaginationMode,
    PerformanceMetrics,
    ResultCount,
    ResultSet,
    SortBy,
    StateTransition,
    normalize_query,
    result_key,
)
from .filters import FilterEvaluator

logger = logging.getLogger(__name__)


def sort_items(items: Sequence[ContentItem], sort_by: SortBy) -> Tuple[ContentItem, ...]:
    """Order items for display; sorting is stable"""
    if sort_by == SortBy.OLDEST:
        return tuple(sorted(items, key=lambda i: i.created_at))
    if sort_by == SortBy.POPULAR:
        newest_first = sorted(items, key=lambda i: i.created_at, reverse=True)
        return tuple(sorted(newest_first, key=lambda i: i.like_count, reverse=True))
    return tuple(sorted(items, key=lambda i: i.created_at, reverse=True))


def _elapsed_ms(start: float, end: float) -> float:
    return max(0.0, (end - start) * 1000.0)


class ResultAggregator:
    """
    Merges search and filter outputs into one CombinedOperationResult

    Retains the most recently applied mode, result key and pagination mode so
    consecutive operations can be compared. The retained state belongs to
    the instance and only changes through remember() and clear().
    """

    def __init__(
        self,
        evaluator: Optional[FilterEvaluator] = None,
        timer: Optional[Callable[[], float]] = None,
        history_size: Optional[int] = None
    ):
        self.evaluator = evaluator or FilterEvaluator()
        self.timer = timer or time.perf_counter
        self._last_mode = CombinedMode.NONE
        self._last_key: Optional[Tuple[Any, ...]] = None
        self._last_query = ""
        self._last_pagination_mode: Optional[PaginationMode] = None
        self._history = deque(maxlen=history_size or settings.OPERATION_HISTORY_SIZE)

    @property
    def last_mode(self) -> CombinedMode:
        return self._last_mode

    def detect_transition(
        self,
        mode: CombinedMode,
        query: str,
        filters: FilterSet,
        pagination_mode: PaginationMode
    ) -> StateTransition:
        """Compare a prospective operation against the last applied one"""
        from_mode = self._last_mode
        key = result_key(mode, query, filters)
        query_changed = normalize_query(query).lower() != self._last_query

        requires_reset = (
            from_mode != mode
            or key != self._last_key
            or pagination_mode != self._last_pagination_mode
        )
        requires_cache_invalidation = (
            query_changed
            or (from_mode == CombinedMode.SEARCH_ONLY) != (mode == CombinedMode.SEARCH_ONLY)
        )

        sources: List[DataSource] = []
        if mode.uses_search:
            sources.append(DataSource.SEARCH)
        if mode.uses_filter:
            sources.append(DataSource.FILTER)
        if CombinedMode.NONE in (from_mode, mode):
            sources.append(DataSource.SERVER)

        return StateTransition(
            from_mode=from_mode,
            to_mode=mode,
            requires_pagination_reset=requires_reset,
            requires_cache_invalidation=requires_cache_invalidation,
            affected_data_sources=tuple(sources),
        )

    def combine(
        self,
        mode: CombinedMode,
        filters: FilterSet,
        candidates: Sequence[ContentItem] = (),
        search_result: Optional[ResultSet] = None,
        following_ids: AbstractSet[int] = frozenset(),
        query: str = "",
        pagination_mode: PaginationMode = PaginationMode.CLIENT,
        started_at: Optional[float] = None,
        search_time: float = 0.0,
        now: Optional[datetime] = None,
        request_id: int = 0
    ) -> CombinedOperationResult:
        """
        Narrow, order and count the inputs of one combine operation

        In search-and-filter mode the search matches are narrowed by the
        facet filters, so combined_matches is the size of the intersection.

        Args:
            mode: Mode resolved for (query, filters)
            filters: Active facets
            candidates: Candidate pool (none and filter-only modes)
            search_result: Search matches (search modes)
            following_ids: Authors followed by the caller
            query: Raw query text
            pagination_mode: Pagination strategy chosen for this operation
            started_at: Timer reading when the operation began
            search_time: Milliseconds spent fetching search matches
            now: Reference time for time range facets
            request_id: Sequence number of the originating request
        """
        started_at = self.timer() if started_at is None else started_at
        transition = self.detect_transition(mode, query, filters, pagination_mode)
        logger.info(f"Combined operation: {transition.from_mode.value} -> {transition.to_mode.value}")

        if mode.uses_search and search_result is None:
            raise ValueError(f"Mode {mode.value} requires a search result")

        search_matches = 0
        filter_matches = 0
        filter_time = 0.0
        next_cursor = None

        if mode == CombinedMode.SEARCH_ONLY:
            items = search_result.items
            search_matches = search_result.match_count
            next_cursor = search_result.next_cursor
        elif mode == CombinedMode.FILTER_ONLY:
            filter_start = self.timer()
            filtered = self.evaluator.filter(candidates, filters, following_ids, now)
            filter_time = _elapsed_ms(filter_start, self.timer())
            items = filtered.items
            filter_matches = filtered.match_count
        elif mode == CombinedMode.SEARCH_AND_FILTER:
            search_matches = search_result.match_count
            filter_start = self.timer()
            filtered = self.evaluator.filter(search_result.items, filters, following_ids, now)
            filter_time = _elapsed_ms(filter_start, self.timer())
            items = filtered.items
            filter_matches = filtered.match_count
        else:
            items = tuple(candidates)

        combination_start = self.timer()
        if pagination_mode == PaginationMode.CLIENT:
            items = sort_items(items, filters.sort_by)
        combination_time = _elapsed_ms(combination_start, self.timer())

        if mode == CombinedMode.SEARCH_ONLY:
            combined_matches = search_matches
        else:
            combined_matches = len(items)

        counts = ResultCount(
            search_matches=search_matches,
            filter_matches=filter_matches,
            combined_matches=combined_matches,
        )

        if pagination_mode == PaginationMode.SERVER:
            strategy = LoadMoreStrategy.SERVER_FETCH
        else:
            strategy = LoadMoreStrategy.CLIENT_PAGINATE

        return CombinedOperationResult(
            applied_mode=mode,
            total_results=counts.for_mode(mode, len(items)),
            result_count=counts,
            performance_metrics=PerformanceMetrics(
                search_time=search_time,
                filter_time=filter_time,
                combination_time=combination_time,
                total_time=_elapsed_ms(started_at, self.timer()),
            ),
            state_transition=transition,
            pagination_mode=pagination_mode,
            load_more_strategy=strategy,
            items=tuple(items),
            query=normalize_query(query),
            filters=filters,
            next_cursor=next_cursor,
            request_id=request_id,
        )

    def remember(self, result: CombinedOperationResult):
        """Record an applied result as the baseline for the next transition"""
        self._last_mode = result.applied_mode
        self._last_key = result.result_key
        self._last_query = result.query.lower()
        self._last_pagination_mode = result.pagination_mode
        self._history.append(result)

    def history(self) -> List[CombinedOperationResult]:
        """Most recent applied results, oldest first"""
        return list(self._history)

    def clear(self):
        """Forget the previous operation"""
        self._last_mode = CombinedMode.NONE
        self._last_key = None
        self._last_query = ""
        self._last_pagination_mode = None
        self._history.clear()

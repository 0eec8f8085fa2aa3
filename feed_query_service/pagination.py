"""
Pagination coordinator - owns the published result/page pair of one feed view
"""
from dataclasses import replace
from datetime import datetime, timezone
from typing import Optional, Dict, Any, Tuple, Union, Callable, AbstractSet
import asyncio
import logging
import time

from .config import settings
from .aggregator import ResultAggregator
from .mode_resolver import resolve, choose_pagination_mode, parse_filters
from .search import SearchProviderAdapter
from .domain.models import (
    CombinedMode,
    CombinedOperationResult,
    ContentItem,
    CoordinatorSnapshot,
    CoordinatorState,
    FilterSet,
    PaginationMode,
    PaginationState,
    StateTransition,
)
from .domain.repositories import IContentSource, IFollowingProvider
from .domain.exceptions import FeedQueryError, SearchUnavailable, FilterUnavailable

logger = logging.getLogger(__name__)

FilterInput = Union[FilterSet, Dict[str, Any], None]


class PaginationCoordinator:
    """
    Combined search/filter/pagination coordinator

    submit() and load_more() are the only ways to change what readers see.
    Every request carries a sequence number; a response is applied only if
    no newer submit (or clear) was issued while it was in flight.
    """

    def __init__(
        self,
        source: IContentSource,
        following_provider: Optional[IFollowingProvider] = None,
        aggregator: Optional[ResultAggregator] = None,
        search_adapter: Optional[SearchProviderAdapter] = None,
        page_size: Optional[int] = None,
        timeout: Optional[float] = None,
        debounce: Optional[float] = None,
        max_candidates: Optional[int] = None,
        max_search_matches: Optional[int] = None,
        clock: Optional[Callable[[], datetime]] = None,
        timer: Optional[Callable[[], float]] = None
    ):
        self.source = source
        self.following_provider = following_provider
        self.timer = timer or time.perf_counter
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.aggregator = aggregator or ResultAggregator(timer=self.timer)
        self.search_adapter = search_adapter or SearchProviderAdapter(source)
        self.page_size = page_size or settings.DEFAULT_PAGE_SIZE
        self.timeout = timeout if timeout is not None else settings.COMBINE_TIMEOUT_SECONDS
        self.debounce = debounce if debounce is not None else settings.DEBOUNCE_SECONDS
        self.max_candidates = max_candidates or settings.MAX_CLIENT_CANDIDATES
        self.max_search_matches = max_search_matches or settings.MAX_SEARCH_MATCHES

        self._state = CoordinatorState.IDLE
        self._result: Optional[CombinedOperationResult] = None
        self._pagination: Optional[PaginationState] = None
        self._error: Optional[FeedQueryError] = None
        self._request_seq = 0
        self._page_cursors: Dict[int, Optional[str]] = {1: None}
        self._last_inputs: Optional[Tuple[str, FilterSet]] = None
        self._debounce_task: Optional[asyncio.Task] = None

    @property
    def state(self) -> CoordinatorState:
        return self._state

    @property
    def snapshot(self) -> CoordinatorSnapshot:
        """Immutable view of the current state for readers"""
        return CoordinatorSnapshot(
            state=self._state,
            result=self._result,
            pagination=self._pagination,
            error=self._error,
            request_id=self._request_seq,
        )

    def history(self):
        return self.aggregator.history()

    async def submit(self, query: Optional[str], filters: FilterInput = None) -> CoordinatorSnapshot:
        """
        Run a combine operation for new query/filter inputs

        Raises:
            SearchUnavailable: search provider failed or timed out
            FilterUnavailable: candidate or following data failed or timed out
        """
        query = query or ""
        if not isinstance(filters, FilterSet):
            filters = parse_filters(filters)

        mode = resolve(query, filters)
        pagination_mode = choose_pagination_mode(mode)
        transition = self.aggregator.detect_transition(mode, query, filters, pagination_mode)

        self._request_seq += 1
        request_id = self._request_seq
        self._last_inputs = (query, filters)
        self._set_state(CoordinatorState.LOADING)

        page_cursor = None
        if (
            pagination_mode == PaginationMode.SERVER
            and not transition.requires_pagination_reset
            and self._pagination is not None
        ):
            # Identical resubmission: refresh the page the reader is on
            page_cursor = self._page_cursors.get(self._pagination.current_page)

        try:
            result = await self._combine(
                request_id, query, filters, mode, pagination_mode, page_cursor
            )
        except FeedQueryError as e:
            return self._fail(request_id, e)

        if request_id != self._request_seq:
            logger.debug(f"Dropping stale combine result {request_id} (latest {self._request_seq})")
            return self.snapshot

        self._apply(result)
        return self.snapshot

    async def load_more(self) -> CoordinatorSnapshot:
        """
        Advance to the next page

        A no-op unless a result is loaded and more posts are available.
        """
        pagination = self._pagination
        result = self._result
        if (
            self._state != CoordinatorState.LOADED
            or pagination is None
            or result is None
            or not pagination.has_more_posts
        ):
            logger.debug(f"Load more ignored in state {self._state.value}")
            return self.snapshot

        request_id = self._request_seq
        next_page = pagination.current_page + 1
        self._set_state(CoordinatorState.LOADING_MORE)

        if pagination.pagination_mode == PaginationMode.CLIENT:
            self._pagination = self._client_page(result, next_page)
            self._set_state(CoordinatorState.LOADED)
            return self.snapshot

        cursor = self._page_cursors.get(next_page)
        if cursor is None:
            logger.debug(f"No provider cursor for page {next_page}")
            self._pagination = replace(pagination, has_more_posts=False)
            self._set_state(CoordinatorState.LOADED)
            return self.snapshot

        try:
            page = await self._within(
                self.search_adapter.search(result.query, cursor),
                self._deadline(),
                SearchUnavailable,
                "Search page fetch",
            )
        except FeedQueryError as e:
            return self._fail(request_id, e)

        if request_id != self._request_seq:
            logger.debug(f"Dropping stale load more for request {request_id}")
            return self.snapshot

        # The provider total may have moved since page 1
        counts = replace(
            result.result_count,
            search_matches=page.match_count,
            combined_matches=page.match_count,
        )
        transition = StateTransition(
            from_mode=result.applied_mode,
            to_mode=result.applied_mode,
            requires_pagination_reset=False,
        )

        if not page.items:
            # Past the end: stay on the current page
            self._result = replace(
                result,
                total_results=page.match_count,
                result_count=counts,
                next_cursor=None,
                state_transition=transition,
            )
            self._pagination = replace(pagination, has_more_posts=False)
            self._set_state(CoordinatorState.LOADED)
            return self.snapshot

        self._result = replace(
            result,
            items=page.items,
            total_results=page.match_count,
            result_count=counts,
            next_cursor=page.next_cursor,
            state_transition=transition,
        )
        self._page_cursors[next_page + 1] = page.next_cursor
        self._pagination = self._server_page(self._result, next_page)
        self._set_state(CoordinatorState.LOADED)
        return self.snapshot

    async def retry(self) -> CoordinatorSnapshot:
        """Re-run the last inputs after a failure"""
        if self._state != CoordinatorState.ERROR or self._last_inputs is None:
            return self.snapshot
        query, filters = self._last_inputs
        return await self.submit(query, filters)

    def submit_debounced(self, query: Optional[str], filters: FilterInput = None) -> asyncio.Task:
        """
        Schedule a submit after the debounce window

        Calls arriving within the window replace the pending one, so a burst
        of keystrokes or filter toggles issues a single request. A failure is
        logged and kept on the snapshot, the returned task still raises it.
        """
        if self._debounce_task is not None and not self._debounce_task.done():
            self._debounce_task.cancel()
        task = asyncio.get_running_loop().create_task(self._debounced_submit(query, filters))
        task.add_done_callback(self._log_debounced_failure)
        self._debounce_task = task
        return task

    def clear(self):
        """Drop all results and invalidate in-flight requests"""
        if self._debounce_task is not None and not self._debounce_task.done():
            self._debounce_task.cancel()
        self._debounce_task = None
        self._request_seq += 1
        self.aggregator.clear()
        self._result = None
        self._pagination = None
        self._error = None
        self._last_inputs = None
        self._page_cursors = {1: None}
        self._set_state(CoordinatorState.IDLE)

    async def _debounced_submit(self, query: Optional[str], filters: FilterInput) -> CoordinatorSnapshot:
        await asyncio.sleep(self.debounce)
        # Past the window; a newer call must not cancel the request itself
        self._debounce_task = None
        return await self.submit(query, filters)

    @staticmethod
    def _log_debounced_failure(task: asyncio.Task):
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.warning(f"Debounced submit failed: {error}")

    async def _combine(
        self,
        request_id: int,
        query: str,
        filters: FilterSet,
        mode: CombinedMode,
        pagination_mode: PaginationMode,
        page_cursor: Optional[str]
    ) -> CombinedOperationResult:
        started_at = self.timer()
        deadline = self._deadline()
        candidates: Tuple[ContentItem, ...] = ()
        search_result = None
        search_time = 0.0

        if mode.uses_search:
            if mode == CombinedMode.SEARCH_ONLY:
                fetch = self.search_adapter.search(query, page_cursor)
            else:
                fetch = self.search_adapter.search_all(query, self.max_search_matches)
            search_result = await self._within(fetch, deadline, SearchUnavailable, "Search")
            search_time = max(0.0, (self.timer() - started_at) * 1000.0)
        else:
            candidates = await self._within(
                self._fetch_candidates(filters), deadline, FilterUnavailable, "Candidate fetch"
            )

        following_ids: AbstractSet[int] = frozenset()
        if filters.following:
            following_ids = await self._within(
                self._fetch_following(), deadline, FilterUnavailable, "Following lookup"
            )

        return self.aggregator.combine(
            mode,
            filters,
            candidates=candidates,
            search_result=search_result,
            following_ids=following_ids,
            query=query,
            pagination_mode=pagination_mode,
            started_at=started_at,
            search_time=search_time,
            now=self.clock(),
            request_id=request_id,
        )

    async def _fetch_candidates(self, filters: FilterSet) -> Tuple[ContentItem, ...]:
        try:
            raw_items = await self.source.fetch_candidates(filters)
            items = tuple(ContentItem.from_dict(raw) for raw in raw_items or [])
        except FeedQueryError:
            raise
        except Exception as e:
            logger.error(f"Candidate fetch failed: {e}")
            raise FilterUnavailable(f"Feed data is unavailable: {e}") from e
        return items[:self.max_candidates]

    async def _fetch_following(self) -> AbstractSet[int]:
        if self.following_provider is None:
            logger.warning("Following filter requested without a following provider")
            return frozenset()
        try:
            return frozenset(await self.following_provider.get_following_ids())
        except FeedQueryError:
            raise
        except Exception as e:
            logger.error(f"Following lookup failed: {e}")
            raise FilterUnavailable(f"Following list is unavailable: {e}") from e

    def _deadline(self) -> float:
        return asyncio.get_running_loop().time() + self.timeout

    async def _within(self, awaitable, deadline: float, error_cls, what: str):
        remaining = max(0.0, deadline - asyncio.get_running_loop().time())
        try:
            return await asyncio.wait_for(awaitable, remaining)
        except asyncio.TimeoutError:
            logger.error(f"{what} timed out after {self.timeout}s")
            raise error_cls(f"{what} timed out")

    def _apply(self, result: CombinedOperationResult):
        reset = result.state_transition.requires_pagination_reset or self._pagination is None
        page = 1 if reset else self._pagination.current_page

        if result.pagination_mode == PaginationMode.SERVER:
            if reset:
                self._page_cursors = {1: None}
            self._page_cursors[page + 1] = result.next_cursor
            pagination = self._server_page(result, page)
        else:
            self._page_cursors = {1: None}
            pagination = self._client_page(result, page)

        self.aggregator.remember(result)
        self._result = result
        self._pagination = pagination
        self._error = None
        self._set_state(CoordinatorState.LOADED)
        logger.info(
            f"Applied request {result.request_id}: mode={result.applied_mode.value} "
            f"total={result.total_results} page={page} reset={reset}"
        )

    def _client_page(self, result: CombinedOperationResult, page: int) -> PaginationState:
        visible = page * self.page_size
        return PaginationState(
            current_page=page,
            paginated_posts=result.items[:visible],
            has_more_posts=result.total_results > visible,
            pagination_mode=PaginationMode.CLIENT,
            page_size=self.page_size,
        )

    def _server_page(self, result: CombinedOperationResult, page: int) -> PaginationState:
        return PaginationState(
            current_page=page,
            paginated_posts=result.items[:self.page_size],
            has_more_posts=result.next_cursor is not None and bool(result.items),
            pagination_mode=PaginationMode.SERVER,
            page_size=self.page_size,
        )

    def _fail(self, request_id: int, error: FeedQueryError) -> CoordinatorSnapshot:
        if request_id != self._request_seq:
            logger.debug(f"Dropping stale failure for request {request_id}: {error.message}")
            return self.snapshot
        self._error = error
        self._set_state(CoordinatorState.ERROR)
        raise error

    def _set_state(self, state: CoordinatorState):
        if state != self._state:
            logger.debug(f"Coordinator state {self._state.value} -> {state.value}")
        self._state = state

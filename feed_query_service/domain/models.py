"""
Domain models - Core business entities
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Tuple, FrozenSet, Dict, Any


class CombinedMode(str, Enum):
    """Which inputs drive the current view"""
    NONE = "none"
    SEARCH_ONLY = "search-only"
    FILTER_ONLY = "filter-only"
    SEARCH_AND_FILTER = "search-and-filter"

    @property
    def uses_search(self) -> bool:
        return self in (CombinedMode.SEARCH_ONLY, CombinedMode.SEARCH_AND_FILTER)

    @property
    def uses_filter(self) -> bool:
        return self in (CombinedMode.FILTER_ONLY, CombinedMode.SEARCH_AND_FILTER)


class TimeRange(str, Enum):
    """Time range facet"""
    ALL = "all"
    TODAY = "today"
    WEEK = "week"
    MONTH = "month"


class SortBy(str, Enum):
    """Ordering applied to client-buffered results"""
    NEWEST = "newest"
    OLDEST = "oldest"
    POPULAR = "popular"


class PaginationMode(str, Enum):
    """Where page slicing happens"""
    CLIENT = "client"
    SERVER = "server"


class LoadMoreStrategy(str, Enum):
    """How the next page is obtained"""
    CLIENT_PAGINATE = "client-paginate"
    SERVER_FETCH = "server-fetch"


class DataSource(str, Enum):
    """Data sources touched by a state transition"""
    SEARCH = "search"
    FILTER = "filter"
    SERVER = "server"


class CoordinatorState(str, Enum):
    """Pagination coordinator lifecycle states"""
    IDLE = "idle"
    LOADING = "loading"
    LOADED = "loaded"
    LOADING_MORE = "loading-more"
    ERROR = "error"


@dataclass(frozen=True)
class FilterSet:
    """Facet filters for a feed view. Unset facets never constrain results."""
    following: bool = False
    activity_types: FrozenSet[str] = frozenset()
    time_range: TimeRange = TimeRange.ALL
    sort_by: SortBy = SortBy.NEWEST

    def is_active(self) -> bool:
        """Check if any facet narrows the candidate set"""
        return (
            self.following
            or bool(self.activity_types)
            or self.time_range != TimeRange.ALL
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "following": self.following,
            "activity_types": sorted(self.activity_types),
            "time_range": self.time_range.value,
            "sort_by": self.sort_by.value,
        }


@dataclass(frozen=True)
class ContentItem:
    """A post, track or playlist entry in a feed"""
    id: str
    author_id: int
    item_type: str
    created_at: datetime
    like_count: int = 0
    title: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ContentItem":
        """Build an item from a post/discovery service payload"""
        created_at = data.get("created_at")
        if isinstance(created_at, str):
            created_at = datetime.fromisoformat(created_at.replace("Z", "+00:00"))
        if not isinstance(created_at, datetime):
            raise ValueError(f"Item {data.get('id')} has no usable created_at")
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)

        author_id = data.get("author_id", data.get("user_id"))
        if author_id is None:
            raise ValueError(f"Item {data.get('id')} has no author")

        return cls(
            id=str(data["id"]),
            author_id=int(author_id),
            item_type=str(data.get("post_type") or data.get("type") or "text").lower(),
            created_at=created_at,
            like_count=int(data.get("like_count") or 0),
            title=data.get("title") or data.get("caption"),
            payload=dict(data),
        )


@dataclass(frozen=True)
class ResultSet:
    """Ordered items plus the number of matches they were drawn from"""
    items: Tuple[ContentItem, ...]
    match_count: int
    next_cursor: Optional[str] = None


@dataclass(frozen=True)
class ResultCount:
    """Per-source match counts of a combine operation"""
    search_matches: int = 0
    filter_matches: int = 0
    combined_matches: int = 0

    def for_mode(self, mode: CombinedMode, candidate_count: int) -> int:
        """Count that corresponds to the given mode"""
        if mode == CombinedMode.SEARCH_ONLY:
            return self.search_matches
        if mode == CombinedMode.FILTER_ONLY:
            return self.filter_matches
        if mode == CombinedMode.SEARCH_AND_FILTER:
            return self.combined_matches
        return candidate_count


@dataclass(frozen=True)
class PerformanceMetrics:
    """Wall-clock timings in milliseconds"""
    search_time: float = 0.0
    filter_time: float = 0.0
    combination_time: float = 0.0
    total_time: float = 0.0


@dataclass(frozen=True)
class StateTransition:
    """Change between two consecutive combine operations"""
    from_mode: CombinedMode
    to_mode: CombinedMode
    requires_pagination_reset: bool
    requires_cache_invalidation: bool = False
    affected_data_sources: Tuple[DataSource, ...] = ()


@dataclass(frozen=True)
class CombinedOperationResult:
    """Output of one combine operation. Replaced wholesale, never patched."""
    applied_mode: CombinedMode
    total_results: int
    result_count: ResultCount
    performance_metrics: PerformanceMetrics
    state_transition: StateTransition
    pagination_mode: PaginationMode
    load_more_strategy: LoadMoreStrategy
    items: Tuple[ContentItem, ...]
    query: str
    filters: FilterSet
    next_cursor: Optional[str] = None
    request_id: int = 0

    @property
    def result_key(self) -> Tuple[Any, ...]:
        return result_key(self.applied_mode, self.query, self.filters)


@dataclass(frozen=True)
class PaginationState:
    """Current page view over a combined result"""
    current_page: int
    paginated_posts: Tuple[ContentItem, ...]
    has_more_posts: bool
    pagination_mode: PaginationMode
    page_size: int


@dataclass(frozen=True)
class CoordinatorSnapshot:
    """Everything a reader may observe about a coordinator at one instant"""
    state: CoordinatorState
    result: Optional[CombinedOperationResult] = None
    pagination: Optional[PaginationState] = None
    error: Optional[Exception] = None
    request_id: int = 0


def normalize_query(query: Optional[str]) -> str:
    """Collapse surrounding whitespace; None and blank mean no search"""
    return (query or "").strip()


def result_key(mode: CombinedMode, query: str, filters: FilterSet) -> Tuple[Any, ...]:
    """Identity of an ordered result set"""
    return (
        mode,
        normalize_query(query).lower(),
        filters.following,
        filters.activity_types,
        filters.time_range,
        filters.sort_by,
    )

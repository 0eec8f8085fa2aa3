"""
Pydantic schemas for Feed Query Service
"""
from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import datetime

from .domain.models import (
    CombinedOperationResult,
    ContentItem,
    CoordinatorSnapshot,
    PaginationState,
)


# User schema (from auth service)
class User(BaseModel):
    """User model from auth service"""
    id: int
    username: str
    email: Optional[str] = None


# Request schemas
class FilterOptions(BaseModel):
    """
    Facet filters

    Values are validated by the domain layer so that unknown values are
    ignored rather than rejected.
    """
    following: bool = False
    activity_types: List[str] = Field(default_factory=list)
    time_range: Optional[str] = "all"
    sort_by: Optional[str] = "newest"


class FeedQueryRequest(BaseModel):
    """Combined search/filter submission"""
    query: str = Field("", max_length=200)
    filters: FilterOptions = Field(default_factory=FilterOptions)


# Response schemas
class ContentItemResponse(BaseModel):
    """Feed item in a combined result"""
    id: str
    author_id: int
    item_type: str
    created_at: datetime
    like_count: int = 0
    title: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_domain(cls, item: ContentItem) -> "ContentItemResponse":
        return cls(
            id=item.id,
            author_id=item.author_id,
            item_type=item.item_type,
            created_at=item.created_at,
            like_count=item.like_count,
            title=item.title,
            data=item.payload,
        )


class ResultCountResponse(BaseModel):
    search_matches: int
    filter_matches: int
    combined_matches: int


class PerformanceMetricsResponse(BaseModel):
    """Timings in milliseconds"""
    search_time: float
    filter_time: float
    combination_time: float
    total_time: float


class StateTransitionResponse(BaseModel):
    from_mode: str
    to_mode: str
    requires_pagination_reset: bool
    requires_cache_invalidation: bool
    affected_data_sources: List[str]


class CombinedOperationResponse(BaseModel):
    """Summary of a combine operation"""
    request_id: int
    applied_mode: str
    query: str
    filters: Dict[str, Any]
    total_results: int
    result_count: ResultCountResponse
    performance_metrics: PerformanceMetricsResponse
    state_transition: StateTransitionResponse
    pagination_mode: str
    load_more_strategy: str

    @classmethod
    def from_domain(cls, result: CombinedOperationResult) -> "CombinedOperationResponse":
        transition = result.state_transition
        return cls(
            request_id=result.request_id,
            applied_mode=result.applied_mode.value,
            query=result.query,
            filters=result.filters.to_dict(),
            total_results=result.total_results,
            result_count=ResultCountResponse(
                search_matches=result.result_count.search_matches,
                filter_matches=result.result_count.filter_matches,
                combined_matches=result.result_count.combined_matches,
            ),
            performance_metrics=PerformanceMetricsResponse(
                search_time=result.performance_metrics.search_time,
                filter_time=result.performance_metrics.filter_time,
                combination_time=result.performance_metrics.combination_time,
                total_time=result.performance_metrics.total_time,
            ),
            state_transition=StateTransitionResponse(
                from_mode=transition.from_mode.value,
                to_mode=transition.to_mode.value,
                requires_pagination_reset=transition.requires_pagination_reset,
                requires_cache_invalidation=transition.requires_cache_invalidation,
                affected_data_sources=[s.value for s in transition.affected_data_sources],
            ),
            pagination_mode=result.pagination_mode.value,
            load_more_strategy=result.load_more_strategy.value,
        )


class PaginationStateResponse(BaseModel):
    current_page: int
    page_size: int
    paginated_posts: List[ContentItemResponse]
    has_more_posts: bool
    pagination_mode: str

    @classmethod
    def from_domain(cls, pagination: PaginationState) -> "PaginationStateResponse":
        return cls(
            current_page=pagination.current_page,
            page_size=pagination.page_size,
            paginated_posts=[
                ContentItemResponse.from_domain(item) for item in pagination.paginated_posts
            ],
            has_more_posts=pagination.has_more_posts,
            pagination_mode=pagination.pagination_mode.value,
        )


class ErrorDetail(BaseModel):
    code: str
    message: str


class FeedQueryResponse(BaseModel):
    """Coordinator snapshot"""
    state: str
    result: Optional[CombinedOperationResponse] = None
    pagination: Optional[PaginationStateResponse] = None
    error: Optional[ErrorDetail] = None

    @classmethod
    def from_snapshot(cls, snapshot: CoordinatorSnapshot) -> "FeedQueryResponse":
        error = None
        if snapshot.error is not None:
            error = ErrorDetail(
                code=getattr(snapshot.error, "code", "error"),
                message=getattr(snapshot.error, "message", str(snapshot.error)),
            )
        return cls(
            state=snapshot.state.value,
            result=CombinedOperationResponse.from_domain(snapshot.result) if snapshot.result else None,
            pagination=PaginationStateResponse.from_domain(snapshot.pagination) if snapshot.pagination else None,
            error=error,
        )


class HistoryResponse(BaseModel):
    """Recent combine operations, oldest first"""
    operations: List[CombinedOperationResponse]


# Message responses
class MessageResponse(BaseModel):
    """Generic message response"""
    message: str

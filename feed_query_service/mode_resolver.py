"""
Mode resolution for combined search and filter views
"""
from typing import Optional, Dict, Any, Iterable
import logging

from .domain.models import (
    CombinedMode,
    FilterSet,
    PaginationMode,
    SortBy,
    TimeRange,
    normalize_query,
)
from .domain.exceptions import InvalidFilterValue

logger = logging.getLogger(__name__)


def resolve(query: Optional[str], filters: FilterSet) -> CombinedMode:
    """
    Classify the current query/filter state

    Must be called before any fetch is issued so the fetch strategy
    matches the mode.
    """
    has_query = bool(normalize_query(query))
    has_filters = filters.is_active()

    if has_query and has_filters:
        return CombinedMode.SEARCH_AND_FILTER
    if has_query:
        return CombinedMode.SEARCH_ONLY
    if has_filters:
        return CombinedMode.FILTER_ONLY
    return CombinedMode.NONE


def choose_pagination_mode(mode: CombinedMode) -> PaginationMode:
    """
    Global search is paged by the discovery service; every other mode works
    over a bounded candidate pool that is cheap to hold in memory.
    """
    if mode == CombinedMode.SEARCH_ONLY:
        return PaginationMode.SERVER
    return PaginationMode.CLIENT


def parse_time_range(value: Any) -> TimeRange:
    if value is None or value == "":
        return TimeRange.ALL
    try:
        return TimeRange(str(value).lower())
    except ValueError:
        raise InvalidFilterValue("time_range", value)


def parse_sort_by(value: Any) -> SortBy:
    if value is None or value == "":
        return SortBy.NEWEST
    # The search bar calls newest "recent"
    if str(value).lower() == "recent":
        return SortBy.NEWEST
    try:
        return SortBy(str(value).lower())
    except ValueError:
        raise InvalidFilterValue("sort_by", value)


def _normalize_types(values: Optional[Iterable[Any]]) -> frozenset:
    if not values:
        return frozenset()
    if isinstance(values, str):
        values = [values]
    return frozenset(
        str(v).strip().lower() for v in values if v is not None and str(v).strip()
    )


def parse_filters(raw: Optional[Dict[str, Any]]) -> FilterSet:
    """
    Build a FilterSet from raw request input

    Unrecognized facet values are ignored (treated as unset) instead of
    failing the whole operation.
    """
    raw = raw or {}

    try:
        time_range = parse_time_range(raw.get("time_range"))
    except InvalidFilterValue as e:
        logger.warning(f"Ignoring filter: {e.message}")
        time_range = TimeRange.ALL

    try:
        sort_by = parse_sort_by(raw.get("sort_by"))
    except InvalidFilterValue as e:
        logger.warning(f"Ignoring filter: {e.message}")
        sort_by = SortBy.NEWEST

    return FilterSet(
        following=bool(raw.get("following", False)),
        activity_types=_normalize_types(raw.get("activity_types")),
        time_range=time_range,
        sort_by=sort_by,
    )

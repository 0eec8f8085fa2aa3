"""
Facet filter evaluation
"""
from datetime import datetime, timedelta, timezone
from typing import Optional, Iterable, Callable, AbstractSet

from .domain.models import ContentItem, FilterSet, ResultSet, TimeRange

WEEK = timedelta(days=7)
MONTH = timedelta(days=30)


def window_start(time_range: TimeRange, now: datetime) -> Optional[datetime]:
    """Lower bound of a time range window, None when unbounded"""
    if time_range == TimeRange.TODAY:
        return now.replace(hour=0, minute=0, second=0, microsecond=0)
    if time_range == TimeRange.WEEK:
        return now - WEEK
    if time_range == TimeRange.MONTH:
        return now - MONTH
    return None


class FilterEvaluator:
    """Applies facet predicates conjunctively, keeping candidate order"""

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def filter(
        self,
        candidates: Iterable[ContentItem],
        filters: FilterSet,
        following_ids: AbstractSet[int] = frozenset(),
        now: Optional[datetime] = None
    ) -> ResultSet:
        """
        Keep the items that satisfy every active facet

        Args:
            candidates: Items to narrow, in display order
            filters: Facets to apply
            following_ids: Authors followed by the caller
            now: Upper bound of the time window (defaults to the clock)

        Returns:
            ResultSet of surviving items and their count
        """
        now = now or self.clock()
        start = window_start(filters.time_range, now)

        items = tuple(
            item for item in candidates
            if self._matches(item, filters, following_ids, start, now)
        )
        return ResultSet(items=items, match_count=len(items))

    def _matches(
        self,
        item: ContentItem,
        filters: FilterSet,
        following_ids: AbstractSet[int],
        start: Optional[datetime],
        now: datetime
    ) -> bool:
        if filters.following and item.author_id not in following_ids:
            return False
        if filters.activity_types and item.item_type not in filters.activity_types:
            return False
        if start is not None and not (start <= item.created_at <= now):
            return False
        return True

"""
Search provider adapter - normalizes discovery service responses
"""
from typing import Optional, List, Dict, Any, Union
import logging

from .domain.models import ContentItem, ResultSet
from .domain.repositories import IContentSource
from .domain.exceptions import SearchUnavailable

logger = logging.getLogger(__name__)

ITEM_KEYS = ("posts", "items", "results")
COUNT_KEYS = ("total", "match_count", "count")


def normalize_response(response: Union[List[Dict[str, Any]], Dict[str, Any], None]) -> ResultSet:
    """
    Convert a provider response into a ResultSet

    Accepts a bare list of items or a dict carrying the items under one of
    ``posts``/``items``/``results`` and the total under one of
    ``total``/``match_count``/``count``.
    """
    if response is None:
        raise ValueError("Empty search response")

    next_cursor = None
    count = None
    if isinstance(response, list):
        raw_items = response
    elif isinstance(response, dict):
        raw_items = next((response[k] for k in ITEM_KEYS if k in response), [])
        count = next(
            (response[k] for k in COUNT_KEYS if response.get(k) is not None),
            None
        )
        next_cursor = response.get("next_cursor")
    else:
        raise ValueError(f"Unexpected search response type {type(response).__name__}")

    items = tuple(ContentItem.from_dict(raw) for raw in raw_items)
    match_count = int(count) if count is not None else len(items)
    # A provider total can never be below what it actually returned
    match_count = max(match_count, len(items))

    return ResultSet(
        items=items,
        match_count=match_count,
        next_cursor=str(next_cursor) if next_cursor else None,
    )


class SearchProviderAdapter:
    """Wraps the text search provider behind a uniform result shape"""

    def __init__(self, source: IContentSource):
        self.source = source

    async def search(self, query: str, cursor: Optional[str] = None) -> ResultSet:
        """Fetch one page of search matches"""
        try:
            response = await self.source.fetch_search_matches(query, cursor)
            return normalize_response(response)
        except SearchUnavailable:
            raise
        except Exception as e:
            logger.error(f"Search provider failed for query '{query}': {e}")
            raise SearchUnavailable(f"Search is unavailable: {e}") from e

    async def search_all(self, query: str, limit: int) -> ResultSet:
        """
        Drain provider pages until exhausted or ``limit`` items are held

        Returns:
            ResultSet whose match_count is the provider total
        """
        items: List[ContentItem] = []
        seen = set()
        match_count = 0
        cursor = None

        while True:
            page = await self.search(query, cursor)
            match_count = max(match_count, page.match_count)

            for item in page.items:
                if item.id not in seen:
                    seen.add(item.id)
                    items.append(item)

            if len(items) >= limit:
                items = items[:limit]
                break
            if not page.next_cursor or page.next_cursor == cursor or not page.items:
                break
            cursor = page.next_cursor

        logger.debug(f"Collected {len(items)} of {match_count} matches for '{query}'")
        return ResultSet(
            items=tuple(items),
            match_count=max(len(items), min(match_count, limit)),
        )

"""
PyTest configuration and fixtures for Feed Query Service tests

Provides:
- In-memory content source and following provider (no network)
- A fixed clock so time range facets are deterministic
- Helpers to build post payloads as the post service returns them

Usage:
    pytest tests/ -v
"""
import asyncio
from datetime import datetime, timedelta, timezone
from typing import Optional, List, Dict, Any, Set, Tuple

import pytest

from feed_query_service.domain.repositories import IContentSource, IFollowingProvider
from feed_query_service.pagination import PaginationCoordinator


NOW = datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc)


def make_post(
    post_id,
    author_id: int = 1,
    post_type: str = "text",
    age: timedelta = timedelta(hours=1),
    like_count: int = 0,
) -> Dict[str, Any]:
    """Post payload shaped like the post service response"""
    return {
        "id": str(post_id),
        "user_id": author_id,
        "post_type": post_type,
        "created_at": (NOW - age).isoformat(),
        "like_count": like_count,
        "caption": f"post {post_id}",
    }


def make_posts(count: int, prefix: str = "p", **kwargs) -> List[Dict[str, Any]]:
    # Each post one minute older than the previous, so newest-first keeps list order
    return [
        make_post(f"{prefix}{i}", age=timedelta(minutes=i + 1), **kwargs)
        for i in range(count)
    ]


class FakeContentSource(IContentSource):
    """
    In-memory stand-in for the post and discovery services

    Search results are paged by offset cursors. A gate registered for
    (query, cursor) holds that request until the gate is set.
    """

    def __init__(
        self,
        candidates: Optional[List[Dict[str, Any]]] = None,
        search_results: Optional[Dict[str, List[Dict[str, Any]]]] = None,
        page_size: int = 20,
    ):
        self.candidates = candidates or []
        self.search_results = search_results or {}
        self.page_size = page_size
        self.candidate_calls = 0
        self.search_calls: List[Tuple[str, Optional[str]]] = []
        self.gates: Dict[Tuple[str, Optional[str]], asyncio.Event] = {}
        self.candidate_gate: Optional[asyncio.Event] = None
        self.search_error: Optional[Exception] = None
        self.candidate_error: Optional[Exception] = None

    async def fetch_candidates(self, filters) -> List[Dict[str, Any]]:
        self.candidate_calls += 1
        if self.candidate_gate is not None:
            await self.candidate_gate.wait()
        if self.candidate_error is not None:
            raise self.candidate_error
        return list(self.candidates)

    async def fetch_search_matches(self, query: str, cursor: Optional[str] = None):
        self.search_calls.append((query, cursor))
        gate = self.gates.get((query, cursor))
        if gate is not None:
            await gate.wait()
        if self.search_error is not None:
            raise self.search_error

        matches = self.search_results.get(query, [])
        start = int(cursor or 0)
        end = start + self.page_size
        return {
            "posts": matches[start:end],
            "total": len(matches),
            "next_cursor": str(end) if end < len(matches) else None,
        }


class FakeFollowingProvider(IFollowingProvider):
    def __init__(self, following_ids: Set[int]):
        self.following_ids = set(following_ids)
        self.calls = 0
        self.error: Optional[Exception] = None

    async def get_following_ids(self) -> Set[int]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return set(self.following_ids)


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def source():
    return FakeContentSource()


@pytest.fixture
def following():
    return FakeFollowingProvider({1, 2})


@pytest.fixture
def coordinator(source, following, clock):
    return PaginationCoordinator(
        source,
        following_provider=following,
        page_size=20,
        timeout=1.0,
        debounce=0.01,
        clock=clock,
    )

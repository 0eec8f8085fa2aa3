"""
Feed Query Service - Per-user coordinator sessions
"""
from collections import OrderedDict
from typing import Optional, List, Dict, Any, Set
import logging

from .cache import RedisCache, cache
from .service_client import ServiceClient, service_client
from .config import settings
from .pagination import PaginationCoordinator
from .domain.models import (
    CombinedOperationResult,
    CoordinatorSnapshot,
    CoordinatorState,
    FilterSet,
)
from .domain.repositories import IContentSource, IFollowingProvider

logger = logging.getLogger(__name__)


class SessionDataSource(IContentSource, IFollowingProvider):
    """Content and following data for one user, bound to their latest token"""

    def __init__(
        self,
        user_id: int,
        service_client: ServiceClient,
        cache: RedisCache,
        token: Optional[str] = None,
        page_size: int = settings.DEFAULT_PAGE_SIZE
    ):
        self.user_id = user_id
        self.service_client = service_client
        self.cache = cache
        self.token = token
        self.page_size = page_size

    async def fetch_candidates(self, filters: FilterSet) -> List[Dict[str, Any]]:
        return await self.service_client.list_posts(
            filters,
            self.token,
            limit=settings.MAX_CLIENT_CANDIDATES
        )

    async def fetch_search_matches(self, query: str, cursor: Optional[str] = None) -> Any:
        return await self.service_client.search_posts(
            query,
            cursor,
            self.token,
            page_size=self.page_size
        )

    async def get_following_ids(self) -> Set[int]:
        """Following set from cache, falling back to the graph service"""
        cached = await self.cache.get_following(self.user_id)
        if cached is not None:
            logger.debug(f"Cache hit for user {self.user_id}'s following set")
            return cached

        following_ids = set(
            await self.service_client.get_following_ids(self.user_id, self.token)
        )
        await self.cache.set_following(self.user_id, following_ids)
        return following_ids


class FeedSession:
    """A user's coordinator and the data source feeding it"""

    def __init__(self, source: SessionDataSource, coordinator: PaginationCoordinator):
        self.source = source
        self.coordinator = coordinator


class FeedQueryService:
    """Keeps one coordinator per user so pagination survives across requests"""

    def __init__(
        self,
        service_client: ServiceClient,
        cache: RedisCache,
        max_sessions: int = settings.MAX_SESSIONS
    ):
        self.service_client = service_client
        self.cache = cache
        self.max_sessions = max_sessions
        self._sessions: "OrderedDict[int, FeedSession]" = OrderedDict()

    def get_session(
        self,
        user_id: int,
        token: Optional[str] = None,
        page_size: Optional[int] = None
    ) -> FeedSession:
        """Get or create the user's session, refreshing its token"""
        session = self._sessions.get(user_id)
        page_size = page_size or settings.DEFAULT_PAGE_SIZE

        if session is not None and session.coordinator.page_size != page_size:
            # Page size is part of the cursor contract; start over
            logger.info(f"Page size changed for user {user_id}, resetting session")
            session.coordinator.clear()
            session = None

        if session is None:
            source = SessionDataSource(
                user_id,
                self.service_client,
                self.cache,
                token=token,
                page_size=page_size
            )
            coordinator = PaginationCoordinator(
                source,
                following_provider=source,
                page_size=page_size
            )
            session = FeedSession(source, coordinator)
            self._sessions[user_id] = session
            self._evict()
        elif token:
            session.source.token = token

        self._sessions.move_to_end(user_id)
        return session

    def _evict(self):
        while len(self._sessions) > self.max_sessions:
            user_id, session = self._sessions.popitem(last=False)
            session.coordinator.clear()
            logger.info(f"Evicted feed session for user {user_id}")

    async def submit(
        self,
        user_id: int,
        query: Optional[str],
        filters: Optional[Dict[str, Any]],
        token: Optional[str] = None,
        page_size: Optional[int] = None
    ) -> CoordinatorSnapshot:
        session = self.get_session(user_id, token, page_size)
        return await session.coordinator.submit(query, filters)

    async def load_more(self, user_id: int, token: Optional[str] = None) -> CoordinatorSnapshot:
        session = self._sessions.get(user_id)
        if session is None:
            return CoordinatorSnapshot(state=CoordinatorState.IDLE)
        if token:
            session.source.token = token
        return await session.coordinator.load_more()

    async def retry(self, user_id: int, token: Optional[str] = None) -> CoordinatorSnapshot:
        session = self._sessions.get(user_id)
        if session is None:
            return CoordinatorSnapshot(state=CoordinatorState.IDLE)
        if token:
            session.source.token = token
        return await session.coordinator.retry()

    def snapshot(self, user_id: int) -> CoordinatorSnapshot:
        session = self._sessions.get(user_id)
        if session is None:
            return CoordinatorSnapshot(state=CoordinatorState.IDLE)
        return session.coordinator.snapshot

    def history(self, user_id: int) -> List[CombinedOperationResult]:
        session = self._sessions.get(user_id)
        if session is None:
            return []
        return session.coordinator.history()

    def clear(self, user_id: int) -> bool:
        """Reset a user's view; returns False when there was nothing to clear"""
        session = self._sessions.get(user_id)
        if session is None:
            return False
        session.coordinator.clear()
        return True


# Global service instance; sessions live for the life of the process
feed_query_service = FeedQueryService(service_client, cache)


async def get_feed_query_service() -> FeedQueryService:
    """Dependency for getting the feed query service"""
    return feed_query_service

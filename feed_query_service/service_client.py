"""
Service mesh client for inter-service communication
"""
import httpx
from typing import Optional, List, Dict, Any
import logging

from .config import settings
from .domain.models import FilterSet

logger = logging.getLogger(__name__)

# Largest page the post service accepts
POST_PAGE_SIZE = 100


class ServiceClient:
    """HTTP client for the post, discovery and graph services"""

    def __init__(self):
        self.timeout = httpx.Timeout(10.0, connect=5.0)
        self.client: Optional[httpx.AsyncClient] = None

    async def start(self):
        """Initialize HTTP client"""
        self.client = httpx.AsyncClient(timeout=self.timeout)
        logger.info("Service client initialized")

    async def stop(self):
        """Close HTTP client"""
        if self.client:
            await self.client.aclose()
            logger.info("Service client closed")

    def _headers(self, token: Optional[str]) -> Dict[str, str]:
        if token:
            return {"Authorization": f"Bearer {token}"}
        return {}

    async def _make_request(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        **kwargs
    ) -> Any:
        """
        Make HTTP request to a service

        Failures are logged and re-raised; callers map them to domain errors.
        """
        if not self.client:
            raise RuntimeError("Service client not initialized")

        try:
            response = await self.client.request(
                method,
                url,
                headers=headers,
                **kwargs
            )
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"HTTP error {e.response.status_code} for {url}: {e}")
            raise
        except httpx.HTTPError as e:
            logger.error(f"Request failed for {url}: {e}")
            raise

    # Graph Service API
    async def get_following_ids(
        self,
        user_id: int,
        token: Optional[str]
    ) -> List[int]:
        """Get list of user IDs that the user is following"""
        url = f"{settings.GRAPH_SERVICE_URL}/api/v1/graph/following/{user_id}"
        headers = self._headers(token)

        all_following_ids = []
        page = 1
        has_more = True

        while has_more:
            response = await self._make_request(
                "GET",
                url,
                headers=headers,
                params={"page": page, "page_size": 100}
            )

            if not response:
                break

            following_list = response.get("following", [])
            all_following_ids.extend([f["user_id"] for f in following_list])

            has_more = response.get("has_more", False) and bool(following_list)
            page += 1

        logger.info(f"Fetched {len(all_following_ids)} following IDs for user {user_id}")
        return all_following_ids

    # Post Service API
    async def list_posts(
        self,
        filters: FilterSet,
        token: Optional[str] = None,
        limit: int = 100
    ) -> List[Dict[str, Any]]:
        """
        List recent posts, up to limit

        The post service caps page_size at 100, so larger pools are
        fetched page by page. Facets are evaluated locally.
        """
        url = f"{settings.POST_SERVICE_URL}/api/v1/posts"
        headers = self._headers(token)

        # Fixed size keeps page offsets aligned
        page_size = min(POST_PAGE_SIZE, limit)
        all_posts: List[Dict[str, Any]] = []
        page = 1
        has_more = True

        while has_more and len(all_posts) < limit:
            response = await self._make_request(
                "GET",
                url,
                headers=headers,
                params={"page": page, "page_size": page_size}
            )

            if not response:
                break
            if isinstance(response, list):
                # Unpaged response: everything in one go
                all_posts.extend(response)
                break

            posts = response.get("posts", [])
            all_posts.extend(posts)

            has_more = response.get("has_more", False) and bool(posts)
            page += 1

        logger.info(f"Fetched {len(all_posts)} candidate posts in {page - 1} page(s)")
        return all_posts[:limit]

    # Discovery Service API
    async def search_posts(
        self,
        query: str,
        cursor: Optional[str] = None,
        token: Optional[str] = None,
        page_size: int = 20
    ) -> Any:
        """Search posts by text; returns the raw discovery service page"""
        url = f"{settings.DISCOVERY_SERVICE_URL}/api/v1/discover/search/posts"
        params: Dict[str, Any] = {"q": query, "page_size": page_size}
        if cursor:
            params["cursor"] = cursor

        return await self._make_request(
            "GET",
            url,
            headers=self._headers(token),
            params=params
        )


# Global service client instance
service_client = ServiceClient()

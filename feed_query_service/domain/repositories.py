"""
Collaborator interfaces - Define contracts for content and social graph access
"""
from abc import ABC, abstractmethod
from typing import Optional, List, Dict, Any, Set, Union

from .models import FilterSet


class IContentSource(ABC):
    """Content item data source"""

    @abstractmethod
    async def fetch_candidates(self, filters: FilterSet) -> List[Dict[str, Any]]:
        """Fetch the bounded candidate pool for a feed"""
        pass

    @abstractmethod
    async def fetch_search_matches(
        self,
        query: str,
        cursor: Optional[str] = None
    ) -> Union[List[Dict[str, Any]], Dict[str, Any]]:
        """Fetch one page of text search matches"""
        pass


class IFollowingProvider(ABC):
    """Following set of the authenticated user"""

    @abstractmethod
    async def get_following_ids(self) -> Set[int]:
        """Get IDs of authors the user follows"""
        pass

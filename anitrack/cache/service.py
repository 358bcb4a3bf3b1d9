"""
Cache helpers for anime and user data.

Each helper owns a key scheme and a TTL; the values themselves come from
fetchers supplied by the caller, so these classes never talk to an API or
database directly.
"""

import json
import logging
import re
from typing import Any, Awaitable, Callable, Dict, Optional

from anitrack.utils.ttl_cache import CacheManager

logger = logging.getLogger(__name__)

Fetcher = Callable[[], Awaitable[Any]]

TRENDING_TTL_SECONDS = 10 * 60
ANIME_DETAILS_TTL_SECONDS = 30 * 60
SEARCH_TTL_SECONDS = 5 * 60
PROFILE_TTL_SECONDS = 15 * 60
USER_ANIME_TTL_SECONDS = 2 * 60


class AnimeCacheService:
    """Trending lists, anime details and search results."""

    def __init__(self, cache: CacheManager):
        self.cache = cache

    @staticmethod
    def trending_key(limit: int) -> str:
        return f"trending_anime_{limit}"

    @staticmethod
    def anime_key(anime_id: int) -> str:
        return f"anime_{anime_id}"

    @staticmethod
    def search_key(query: str, filters: Optional[Dict[str, Any]]) -> str:
        return f"search_{query}_{json.dumps(filters or {}, sort_keys=True, default=str)}"

    async def get_trending(self, fetcher: Fetcher, limit: int = 10) -> Any:
        return await self.cache.get_or_set(
            self.trending_key(limit), fetcher, ttl=TRENDING_TTL_SECONDS
        )

    async def get_anime_details(self, anime_id: int, fetcher: Fetcher) -> Any:
        return await self.cache.get_or_set(
            self.anime_key(anime_id), fetcher, ttl=ANIME_DETAILS_TTL_SECONDS
        )

    async def get_search_results(
        self, query: str, filters: Optional[Dict[str, Any]], fetcher: Fetcher
    ) -> Any:
        return await self.cache.get_or_set(
            self.search_key(query, filters), fetcher, ttl=SEARCH_TTL_SECONDS
        )

    def invalidate_anime(self, anime_id: int) -> int:
        """
        Drop an anime's details and every cached search.

        Search results may include the changed anime under any query, so all
        of them go.

        Returns:
            Number of entries removed
        """
        removed = int(self.cache.delete(self.anime_key(anime_id)))
        removed += self.cache.invalidate_pattern(r"^search_")
        logger.info(f"Invalidated anime {anime_id}: {removed} cache entries removed")
        return removed


class UserCacheService:
    """Per-user profile and anime list caching."""

    def __init__(self, cache: CacheManager):
        self.cache = cache

    @staticmethod
    def profile_key(user_id: str) -> str:
        return f"profile_{user_id}"

    @staticmethod
    def user_anime_key(user_id: str) -> str:
        return f"user_anime_{user_id}"

    async def get_profile(self, user_id: str, fetcher: Fetcher) -> Any:
        return await self.cache.get_or_set(
            self.profile_key(user_id), fetcher, ttl=PROFILE_TTL_SECONDS
        )

    async def get_user_anime(self, user_id: str, fetcher: Fetcher) -> Any:
        return await self.cache.get_or_set(
            self.user_anime_key(user_id), fetcher, ttl=USER_ANIME_TTL_SECONDS
        )

    def invalidate_user(self, user_id: str) -> int:
        """Drop every entry whose key ends with ``_<user_id>``."""
        # Anchored so user "12" leaves "profile_123" alone
        removed = self.cache.invalidate_pattern(rf"_{re.escape(str(user_id))}$")
        logger.info(f"Invalidated user {user_id}: {removed} cache entries removed")
        return removed

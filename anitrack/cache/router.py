"""
Cache admin API routes.

Inspection and manual invalidation of the process cache.
"""

import logging
import re

from fastapi import APIRouter, Depends, HTTPException, Request, status

from anitrack.cache.schemas import (
    DeleteKeyResponse,
    InvalidatePatternRequest,
    InvalidatePatternResponse,
)
from anitrack.middleware.rate_limit import RateLimit
from anitrack.utils.rate_limiter import RATE_LIMIT_CONFIGS
from anitrack.utils.ttl_cache import CacheManager, CacheStats

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/cache",
    tags=["cache"],
    dependencies=[Depends(RateLimit(RATE_LIMIT_CONFIGS["admin"]))],
)


def get_cache(request: Request) -> CacheManager:
    return request.app.state.cache


@router.get("/stats", response_model=CacheStats)
async def get_cache_stats(cache: CacheManager = Depends(get_cache)):
    return cache.get_stats()


@router.post("/invalidate", response_model=InvalidatePatternResponse)
async def invalidate_cache_pattern(
    body: InvalidatePatternRequest,
    cache: CacheManager = Depends(get_cache),
):
    """Delete every cache key matching the given regular expression."""
    try:
        removed = cache.invalidate_pattern(body.pattern)
    except re.error as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Invalid pattern: {e}",
        )

    logger.info(f"Cache invalidation via API: pattern={body.pattern!r}, removed={removed}")
    return InvalidatePatternResponse(pattern=body.pattern, removed=removed)


@router.delete("/{key}", response_model=DeleteKeyResponse)
async def delete_cache_key(key: str, cache: CacheManager = Depends(get_cache)):
    return DeleteKeyResponse(key=key, deleted=cache.delete(key))

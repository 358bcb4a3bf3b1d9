"""
Route-level rate limiting for FastAPI.

Usage:
    @router.get("/search", dependencies=[Depends(RateLimit(RATE_LIMIT_CONFIGS["search"]))])
    async def search(...): ...

The limiter lives on ``app.state.rate_limiter``; a DistributedRateLimiter on
``app.state.distributed_rate_limiter`` takes precedence when configured.
"""

import math
import time

from fastapi import Request, Response
from fastapi.responses import JSONResponse

from anitrack.utils.rate_limiter import (
    RateLimitConfig,
    RateLimitExceeded,
    RateLimitResult,
    client_ip,
    format_rate_limit_error,
)


def _apply_headers(response: Response, result: RateLimitResult):
    response.headers["X-RateLimit-Limit"] = str(result.limit)
    response.headers["X-RateLimit-Remaining"] = str(result.remaining)
    response.headers["X-RateLimit-Reset"] = str(math.ceil(result.reset_time))


class RateLimit:
    """FastAPI dependency that counts the request against *config*."""

    def __init__(self, config: RateLimitConfig):
        self.config = config

    async def __call__(self, request: Request, response: Response) -> RateLimitResult:
        key_generator = self.config.key_generator or client_ip
        # Key on the route template so path parameters share one budget
        route = request.scope.get("route")
        path = getattr(route, "path", None) or request.url.path
        key = f"{path}:{key_generator(request)}"

        distributed = getattr(request.app.state, "distributed_rate_limiter", None)
        if distributed is not None:
            result = await distributed.check(key, self.config)
        else:
            result = request.app.state.rate_limiter.check(key, self.config)

        _apply_headers(response, result)

        if not result.allowed:
            raise RateLimitExceeded(key, result)

        return result


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    result = exc.result
    retry_after = max(0, math.ceil(result.reset_time - time.time()))

    response = JSONResponse(
        status_code=429,
        content={
            "error": "Too Many Requests",
            "message": format_rate_limit_error(result.reset_time),
            "retry_after": retry_after,
        },
        headers={"Retry-After": str(retry_after)},
    )
    _apply_headers(response, result)
    return response

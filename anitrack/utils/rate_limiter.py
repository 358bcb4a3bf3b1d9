"""
In-memory rate limiting.

RateLimiter is a fixed-window counter per key: the first request opens a
window of ``window_seconds``, requests beyond ``max_requests`` inside that
window are denied until it closes. Expired windows are swept periodically.
SlidingWindowRateLimiter keeps per-key request timestamps instead, and
DistributedRateLimiter shares counters across processes through Redis.
"""

import asyncio
import logging
import math
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from fastapi import Request
from pydantic import BaseModel
from redis.asyncio import Redis

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitConfig:
    """How many requests a key may make per window."""

    window_seconds: float
    max_requests: int
    key_generator: Optional[Callable[[Request], str]] = None
    on_limit_reached: Optional[Callable[[str], None]] = None


class RateLimitResult(BaseModel):
    """Outcome of a single rate limit check."""

    allowed: bool
    remaining: int
    reset_time: float  # epoch seconds when the current window closes
    limit: int


class RateLimitExceeded(Exception):
    """Raised when a request is denied by a rate limit."""

    def __init__(self, key: str, result: RateLimitResult):
        self.key = key
        self.result = result
        super().__init__(f"Rate limit exceeded for key: {key}")


@dataclass
class _Window:
    count: int
    reset_time: float


def client_ip(request: Request) -> str:
    return request.client.host if request.client else "anonymous"


def user_or_ip(request: Request) -> str:
    """Key by authenticated user id when one is set on the request, else by IP."""
    user_id = getattr(request.state, "user_id", None)
    return str(user_id) if user_id else client_ip(request)


# Predefined rate limit configurations
RATE_LIMIT_CONFIGS: Dict[str, RateLimitConfig] = {
    # General API requests
    "api": RateLimitConfig(window_seconds=15 * 60, max_requests=100, key_generator=client_ip),
    # Authentication endpoints
    "auth": RateLimitConfig(window_seconds=15 * 60, max_requests=5, key_generator=client_ip),
    # Search endpoints
    "search": RateLimitConfig(window_seconds=60, max_requests=30, key_generator=client_ip),
    # User-specific actions
    "user_actions": RateLimitConfig(window_seconds=60, max_requests=20, key_generator=user_or_ip),
    # Admin actions
    "admin": RateLimitConfig(window_seconds=60, max_requests=50, key_generator=user_or_ip),
    # File uploads
    "upload": RateLimitConfig(window_seconds=60 * 60, max_requests=10, key_generator=user_or_ip),
    # Password reset
    "password_reset": RateLimitConfig(window_seconds=60 * 60, max_requests=3, key_generator=client_ip),
}


class RateLimiter:
    """Fixed-window rate limiter keyed by string."""

    def __init__(self, sweep_interval: float = 60.0):
        self.sweep_interval = sweep_interval
        self._store: Dict[str, _Window] = {}
        self.running = False
        self.sweep_task: Optional[asyncio.Task] = None

    async def start(self):
        if self.running:
            logger.warning("Rate limiter sweeper is already running")
            return

        self.running = True
        self.sweep_task = asyncio.create_task(self._run_sweeper())
        logger.info("Rate limiter sweeper started")

    async def stop(self):
        if not self.running:
            return

        self.running = False
        if self.sweep_task:
            self.sweep_task.cancel()
            try:
                await self.sweep_task
            except asyncio.CancelledError:
                pass
            self.sweep_task = None

        logger.info("Rate limiter sweeper stopped")

    async def destroy(self):
        await self.stop()
        self.clear()

    async def _run_sweeper(self):
        while self.running:
            try:
                await asyncio.sleep(self.sweep_interval)
                self.cleanup()
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("Rate limiter sweep failed")

    def cleanup(self) -> int:
        """Drop every key whose window has closed."""
        now = time.time()
        expired = [key for key, window in self._store.items() if now > window.reset_time]
        for key in expired:
            del self._store[key]

        if expired:
            logger.debug(f"Rate limiter cleanup: removed {len(expired)} expired entries")

        return len(expired)

    def check(self, key: str, config: RateLimitConfig) -> RateLimitResult:
        """
        Count a request for *key* and decide whether it may proceed.

        Args:
            key: Identity being limited (IP, user id, ...)
            config: Window length and request budget

        Returns:
            RateLimitResult with the decision, remaining budget and window end
        """
        now = time.time()
        window = self._store.get(key)

        # No entry or window has closed: open a new one
        if window is None or now > window.reset_time:
            window = _Window(count=1, reset_time=now + config.window_seconds)
            self._store[key] = window
            return RateLimitResult(
                allowed=True,
                remaining=config.max_requests - 1,
                reset_time=window.reset_time,
                limit=config.max_requests,
            )

        if window.count >= config.max_requests:
            if config.on_limit_reached:
                config.on_limit_reached(key)
            logger.warning(
                f"Rate limit exceeded for key: {key} "
                f"(count={window.count}, max={config.max_requests}, reset={window.reset_time})"
            )
            return RateLimitResult(
                allowed=False,
                remaining=0,
                reset_time=window.reset_time,
                limit=config.max_requests,
            )

        window.count += 1
        return RateLimitResult(
            allowed=True,
            remaining=config.max_requests - window.count,
            reset_time=window.reset_time,
            limit=config.max_requests,
        )

    def reset(self, key: str):
        self._store.pop(key, None)

    def clear(self):
        self._store.clear()

    def get_stats(self) -> Dict[str, object]:
        return {
            "total_keys": len(self._store),
            "entries": [
                {"key": key, "count": window.count, "reset_time": window.reset_time}
                for key, window in self._store.items()
            ],
        }


class SlidingWindowRateLimiter:
    """Per-key log of request timestamps; a request counts for exactly one window length."""

    def __init__(self):
        self._requests: Dict[str, List[float]] = {}

    def check(self, key: str, max_requests: int, window_seconds: float) -> bool:
        now = time.time()
        window_start = now - window_seconds

        requests = [ts for ts in self._requests.get(key, []) if ts > window_start]
        if len(requests) >= max_requests:
            self._requests[key] = requests
            return False

        requests.append(now)
        self._requests[key] = requests
        return True

    def reset(self, key: str):
        self._requests.pop(key, None)

    def cleanup(self, max_age: float = 60 * 60):
        now = time.time()
        for key in list(self._requests):
            valid = [ts for ts in self._requests[key] if now - ts < max_age]
            if valid:
                self._requests[key] = valid
            else:
                del self._requests[key]


def get_rate_limit_key(kind: str, identifier: str) -> str:
    """Build a namespaced limiter key, e.g. ``user:42``."""
    if kind not in ("ip", "user", "session"):
        raise ValueError(f"Unknown rate limit key kind: {kind}")
    return f"{kind}:{identifier}"


def format_rate_limit_error(reset_time: float) -> str:
    seconds = math.ceil(reset_time - time.time())
    minutes = seconds // 60

    if minutes > 0:
        return f"Rate limit exceeded. Try again in {minutes} minute{'s' if minutes != 1 else ''}."
    return f"Rate limit exceeded. Try again in {seconds} second{'s' if seconds != 1 else ''}."


class AnimeApiLimiter:
    """Budgets for the anime lookup endpoints, keyed by user or anonymous IP."""

    DETAILS = RateLimitConfig(window_seconds=60, max_requests=60)
    RECOMMENDATIONS = RateLimitConfig(window_seconds=5 * 60, max_requests=10)

    def __init__(self, limiter: RateLimiter):
        self.limiter = limiter

    @staticmethod
    def _key(user_id: Optional[str]) -> str:
        if user_id:
            return get_rate_limit_key("user", user_id)
        return get_rate_limit_key("ip", "anonymous")

    def search(self, user_id: Optional[str] = None) -> RateLimitResult:
        return self.limiter.check(self._key(user_id), RATE_LIMIT_CONFIGS["search"])

    def details(self, user_id: Optional[str] = None) -> RateLimitResult:
        return self.limiter.check(self._key(user_id), self.DETAILS)

    def recommendations(self, user_id: Optional[str] = None) -> RateLimitResult:
        # Lower limit for expensive operations
        return self.limiter.check(self._key(user_id), self.RECOMMENDATIONS)


class DistributedRateLimiter:
    """
    Fixed-window limiter whose counters live in Redis.

    Windows are aligned to multiples of ``window_seconds`` since the epoch, so
    every process agrees on where a window starts. Without a Redis client the
    in-memory *fallback* limiter is used; if Redis fails the request is allowed.
    """

    def __init__(self, redis: Optional[Redis] = None, fallback: Optional[RateLimiter] = None):
        self.redis = redis
        self.fallback = fallback or RateLimiter()

    async def check(self, key: str, config: RateLimitConfig) -> RateLimitResult:
        if self.redis is None:
            return self.fallback.check(key, config)

        now = time.time()
        window_index = int(now // config.window_seconds)
        redis_key = f"rate_limit:{key}:{window_index}"

        try:
            current = await self.redis.incr(redis_key)
            if current == 1:
                await self.redis.expire(redis_key, math.ceil(config.window_seconds))

            return RateLimitResult(
                allowed=current <= config.max_requests,
                remaining=max(0, config.max_requests - current),
                reset_time=(window_index + 1) * config.window_seconds,
                limit=config.max_requests,
            )
        except Exception as e:
            logger.error(f"Distributed rate limiter error for key {key}: {e}")
            return RateLimitResult(
                allowed=True,
                remaining=config.max_requests,
                reset_time=now + config.window_seconds,
                limit=config.max_requests,
            )

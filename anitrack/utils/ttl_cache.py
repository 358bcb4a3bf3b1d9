"""
In-process TTL cache with periodic sweeping and oldest-write eviction.

Uses time.monotonic for clock. Expired entries are removed lazily on access
and proactively by a background sweep task; the sweep is also where the store
is trimmed back to ``max_size``. Eviction is by write time, not by access
recency: reads never refresh an entry's timestamp.
"""

import asyncio
import copy
import functools
import json
import logging
import re
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from pydantic import BaseModel

_MISSING = object()
"""Sentinel for distinguishing 'key not found' from a cached ``None`` value."""


@dataclass
class CacheEntry:
    """One stored value and the monotonic time it was written."""

    key: str
    data: Any
    timestamp: float
    ttl: float

    def is_expired(self, now: float) -> bool:
        return now - self.timestamp > self.ttl


class CacheStats(BaseModel):
    """Current size and configuration of a cache."""

    size: int
    max_size: int
    default_ttl: float


class CacheManager:
    """Key-value store with per-entry TTL, bounded size and pattern invalidation."""

    def __init__(
        self,
        default_ttl: float = 300.0,
        max_size: int = 1000,
        sweep_interval: float = 60.0,
        single_flight: bool = False,
        logger: Optional[logging.Logger] = None,
    ):
        self.default_ttl = default_ttl
        self.max_size = max_size
        self.sweep_interval = sweep_interval
        self.single_flight = single_flight
        self._log = logger if logger is not None else logging.getLogger(__name__)
        self._store: Dict[str, CacheEntry] = {}
        self._inflight: Dict[str, "asyncio.Future[Any]"] = {}
        self.running = False
        self.sweep_task: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self):
        """Start the background sweep loop."""
        if self.running:
            self._log.warning("Cache sweeper is already running")
            return

        self.running = True
        self.sweep_task = asyncio.create_task(self._run_sweeper())
        self._log.info(f"Cache sweeper started (interval={self.sweep_interval}s)")

    async def stop(self):
        """Cancel the sweep loop and wait for it to exit."""
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

        self._log.info("Cache sweeper stopped")

    async def destroy(self):
        """Stop sweeping and drop every entry."""
        await self.stop()
        self.clear()

    async def __aenter__(self) -> "CacheManager":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.destroy()

    async def _run_sweeper(self):
        while self.running:
            try:
                await asyncio.sleep(self.sweep_interval)
                self.sweep()
            except asyncio.CancelledError:
                break
            except Exception:
                self._log.exception("Cache sweep failed")

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def set(
        self,
        key: str,
        data: Any,
        ttl: Optional[float] = None,
        serialize: bool = False,
    ) -> None:
        """
        Store *data* under *key*, replacing any previous entry.

        Args:
            key: Cache key
            data: Value to store (by reference unless ``serialize`` is set)
            ttl: Seconds until the entry goes stale; defaults to ``default_ttl``
            serialize: Deep-copy *data* so later mutation by the caller
                cannot change the cached copy

        The store may grow past ``max_size`` here; the next sweep trims it.
        """
        ttl = self.default_ttl if ttl is None else ttl
        self._store[key] = CacheEntry(
            key=key,
            data=copy.deepcopy(data) if serialize else data,
            timestamp=time.monotonic(),
            ttl=ttl,
        )
        self._log.debug(f"Cache set: {key} (ttl={ttl}s, size={len(self._store)})")

    def get(self, key: str, default: Any = None) -> Any:
        """Return value for *key* if present and not expired, else *default*."""
        entry = self._store.get(key)
        if entry is None:
            self._log.debug(f"Cache miss: {key}")
            return default

        if entry.is_expired(time.monotonic()):
            self._store.pop(key, None)
            self._log.debug(f"Cache expired: {key}")
            return default

        self._log.debug(f"Cache hit: {key}")
        return entry.data

    def has(self, key: str) -> bool:
        """Return True if *key* holds a live entry; drops it if expired."""
        entry = self._store.get(key)
        if entry is None:
            return False

        if entry.is_expired(time.monotonic()):
            self._store.pop(key, None)
            return False

        return True

    def delete(self, key: str) -> bool:
        """Remove *key*; return whether an entry was removed."""
        if self._store.pop(key, None) is None:
            return False
        self._log.debug(f"Cache delete: {key}")
        return True

    def clear(self) -> None:
        """Remove all entries."""
        size = len(self._store)
        self._store.clear()
        self._log.info(f"Cache cleared: {size} entries removed")

    async def get_or_set(
        self,
        key: str,
        fetcher: Callable[[], Awaitable[Any]],
        ttl: Optional[float] = None,
        serialize: bool = False,
    ) -> Any:
        """
        Return the cached value for *key*, computing and storing it on a miss.

        On a miss ``fetcher()`` is awaited and its result stored with the
        given ``ttl``/``serialize`` options. If the fetcher raises, the error
        is logged and re-raised unchanged and nothing is stored.

        Without ``single_flight`` concurrent misses on the same key each call
        the fetcher and the last write wins. With it, they share one fetch.
        """
        cached = self.get(key, _MISSING)
        if cached is not _MISSING:
            return cached

        if not self.single_flight:
            return await self._fetch_and_store(key, fetcher, ttl, serialize)

        pending = self._inflight.get(key)
        if pending is None:
            pending = asyncio.ensure_future(
                self._fetch_and_store(key, fetcher, ttl, serialize)
            )
            self._inflight[key] = pending
            pending.add_done_callback(functools.partial(self._release_inflight, key))
        else:
            self._log.debug(f"Cache fetch already in flight: {key}")

        # Shielded so one cancelled waiter does not cancel the shared fetch
        return await asyncio.shield(pending)

    async def _fetch_and_store(
        self,
        key: str,
        fetcher: Callable[[], Awaitable[Any]],
        ttl: Optional[float],
        serialize: bool,
    ) -> Any:
        try:
            data = await fetcher()
        except Exception as e:
            self._log.error(f"Cache fetcher error for key {key}: {e}")
            raise

        self.set(key, data, ttl=ttl, serialize=serialize)
        return data

    def _release_inflight(self, key: str, future: "asyncio.Future[Any]"):
        if self._inflight.get(key) is future:
            del self._inflight[key]
        # Mark the exception retrieved; waiters already received it
        if not future.cancelled():
            future.exception()

    def invalidate_pattern(self, pattern: Union[str, re.Pattern]) -> int:
        """
        Delete every key matching *pattern* (searched, not anchored).

        Args:
            pattern: Regex source or compiled pattern, e.g. ``"^search_"``

        Returns:
            Number of entries removed

        Raises:
            re.error: If *pattern* is not a valid regular expression
        """
        regex = re.compile(pattern) if isinstance(pattern, str) else pattern

        matched = [key for key in self._store if regex.search(key)]
        for key in matched:
            del self._store[key]

        if matched:
            self._log.info(
                f'Cache invalidated by pattern "{regex.pattern}": {len(matched)} entries'
            )

        return len(matched)

    def get_stats(self) -> CacheStats:
        return CacheStats(
            size=len(self._store),
            max_size=self.max_size,
            default_ttl=self.default_ttl,
        )

    def sweep(self) -> int:
        """
        Remove expired entries, then evict the oldest writes above ``max_size``.

        Returns:
            Total number of entries removed
        """
        now = time.monotonic()

        expired = [key for key, entry in self._store.items() if entry.is_expired(now)]
        for key in expired:
            del self._store[key]

        if expired:
            self._log.debug(f"Cache cleanup: removed {len(expired)} expired entries")

        overflow = len(self._store) - self.max_size
        if overflow > 0:
            oldest = sorted(self._store.values(), key=lambda entry: entry.timestamp)
            for entry in oldest[:overflow]:
                del self._store[entry.key]
            self._log.debug(f"Cache cleanup: removed {overflow} oldest entries")
        else:
            overflow = 0

        return len(expired) + overflow

    # ------------------------------------------------------------------
    # Dunder helpers
    # ------------------------------------------------------------------

    def __contains__(self, key: str) -> bool:
        return self.has(key)

    def __len__(self) -> int:
        return len(self._store)

    def __repr__(self) -> str:
        return (
            f"CacheManager(default_ttl={self.default_ttl}, max_size={self.max_size}, "
            f"size={len(self._store)})"
        )


def _make_key(prefix: str, args: tuple, kwargs: dict) -> str:
    payload = json.dumps([list(args), kwargs], sort_keys=True, default=str)
    return f"{prefix}_{payload}"


def cached(
    cache: CacheManager,
    ttl: Optional[float] = None,
    serialize: bool = False,
    key_prefix: Optional[str] = None,
):
    """
    Memoize an async function in *cache*.

    The key is the function's qualified name (or *key_prefix*) followed by
    its JSON-encoded arguments; arguments that are not JSON-serializable are
    encoded with ``str()``.

    Example:
        @cached(cache, ttl=600)
        async def fetch_trending(limit: int):
            ...
    """

    def decorator(func: Callable[..., Awaitable[Any]]):
        prefix = key_prefix or func.__qualname__

        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            key = _make_key(prefix, args, kwargs)
            return await cache.get_or_set(
                key, lambda: func(*args, **kwargs), ttl=ttl, serialize=serialize
            )

        return wrapper

    return decorator

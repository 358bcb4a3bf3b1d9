"""Unit tests for the rate limiters."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from anitrack.utils.rate_limiter import (
    RATE_LIMIT_CONFIGS,
    AnimeApiLimiter,
    DistributedRateLimiter,
    RateLimitConfig,
    RateLimiter,
    SlidingWindowRateLimiter,
    format_rate_limit_error,
    get_rate_limit_key,
    user_or_ip,
)


@pytest.fixture
def limiter():
    return RateLimiter(sweep_interval=60)


@pytest.fixture
def config():
    return RateLimitConfig(window_seconds=60, max_requests=3)


class TestRateLimiter:
    def test_first_request_opens_window(self, limiter: RateLimiter, config: RateLimitConfig):
        with patch("anitrack.utils.rate_limiter.time") as mock_time:
            mock_time.time.return_value = 1000.0
            result = limiter.check("ip:1", config)

        assert result.allowed is True
        assert result.remaining == 2
        assert result.reset_time == 1060.0
        assert result.limit == 3

    def test_denies_after_max_requests(self, limiter: RateLimiter, config: RateLimitConfig):
        with patch("anitrack.utils.rate_limiter.time") as mock_time:
            mock_time.time.return_value = 1000.0
            results = [limiter.check("ip:1", config) for _ in range(4)]

        assert [r.allowed for r in results] == [True, True, True, False]
        assert [r.remaining for r in results] == [2, 1, 0, 0]
        assert results[-1].reset_time == 1060.0

    def test_window_reopens_after_reset_time(self, limiter: RateLimiter, config: RateLimitConfig):
        with patch("anitrack.utils.rate_limiter.time") as mock_time:
            mock_time.time.return_value = 1000.0
            for _ in range(4):
                limiter.check("ip:1", config)

            # Still inside the window at exactly reset_time
            mock_time.time.return_value = 1060.0
            assert limiter.check("ip:1", config).allowed is False

            mock_time.time.return_value = 1060.5
            result = limiter.check("ip:1", config)

        assert result.allowed is True
        assert result.remaining == 2

    def test_keys_are_independent(self, limiter: RateLimiter):
        config = RateLimitConfig(window_seconds=60, max_requests=1)
        assert limiter.check("a", config).allowed is True
        assert limiter.check("a", config).allowed is False
        assert limiter.check("b", config).allowed is True

    def test_on_limit_reached_called_with_key(self, limiter: RateLimiter):
        callback = MagicMock()
        config = RateLimitConfig(window_seconds=60, max_requests=1, on_limit_reached=callback)

        limiter.check("user:7", config)
        callback.assert_not_called()

        limiter.check("user:7", config)
        callback.assert_called_once_with("user:7")

    def test_reset_clears_key(self, limiter: RateLimiter):
        config = RateLimitConfig(window_seconds=60, max_requests=1)
        limiter.check("a", config)
        limiter.reset("a")
        assert limiter.check("a", config).allowed is True

    def test_cleanup_removes_closed_windows(self, limiter: RateLimiter):
        with patch("anitrack.utils.rate_limiter.time") as mock_time:
            mock_time.time.return_value = 1000.0
            limiter.check("short", RateLimitConfig(window_seconds=10, max_requests=5))
            limiter.check("long", RateLimitConfig(window_seconds=600, max_requests=5))

            mock_time.time.return_value = 1011.0
            assert limiter.cleanup() == 1

        stats = limiter.get_stats()
        assert stats["total_keys"] == 1
        assert stats["entries"][0]["key"] == "long"
        assert stats["entries"][0]["count"] == 1

    @pytest.mark.asyncio
    async def test_sweep_loop_lifecycle(self):
        limiter = RateLimiter(sweep_interval=0.01)
        limiter.check("a", RateLimitConfig(window_seconds=0, max_requests=5))

        await limiter.start()
        await asyncio.sleep(0.05)
        assert limiter.get_stats()["total_keys"] == 0

        await limiter.destroy()
        assert limiter.running is False


class TestSlidingWindowRateLimiter:
    def test_old_requests_fall_out_of_window(self):
        limiter = SlidingWindowRateLimiter()

        with patch("anitrack.utils.rate_limiter.time") as mock_time:
            mock_time.time.return_value = 1000.0
            assert limiter.check("k", max_requests=2, window_seconds=10) is True
            mock_time.time.return_value = 1005.0
            assert limiter.check("k", max_requests=2, window_seconds=10) is True
            assert limiter.check("k", max_requests=2, window_seconds=10) is False

            # The request at 1000 has left the window, the one at 1005 has not
            mock_time.time.return_value = 1010.5
            assert limiter.check("k", max_requests=2, window_seconds=10) is True
            assert limiter.check("k", max_requests=2, window_seconds=10) is False

    def test_denied_requests_are_not_recorded(self):
        limiter = SlidingWindowRateLimiter()

        with patch("anitrack.utils.rate_limiter.time") as mock_time:
            mock_time.time.return_value = 1000.0
            limiter.check("k", max_requests=1, window_seconds=10)
            mock_time.time.return_value = 1009.0
            assert limiter.check("k", max_requests=1, window_seconds=10) is False

            mock_time.time.return_value = 1010.5
            assert limiter.check("k", max_requests=1, window_seconds=10) is True

    def test_cleanup_drops_stale_keys(self):
        limiter = SlidingWindowRateLimiter()

        with patch("anitrack.utils.rate_limiter.time") as mock_time:
            mock_time.time.return_value = 1000.0
            limiter.check("old", max_requests=5, window_seconds=60)
            mock_time.time.return_value = 5000.0
            limiter.check("new", max_requests=5, window_seconds=60)

            limiter.cleanup()

        assert "old" not in limiter._requests
        assert "new" in limiter._requests


class TestHelpers:
    def test_get_rate_limit_key(self):
        assert get_rate_limit_key("ip", "1.2.3.4") == "ip:1.2.3.4"
        assert get_rate_limit_key("user", "42") == "user:42"

    def test_get_rate_limit_key_rejects_unknown_kind(self):
        with pytest.raises(ValueError):
            get_rate_limit_key("device", "x")

    @pytest.mark.parametrize(
        "seconds_left, expected",
        [
            (1, "Try again in 1 second."),
            (45, "Try again in 45 seconds."),
            (60, "Try again in 1 minute."),
            (150, "Try again in 2 minutes."),
        ],
    )
    def test_format_rate_limit_error(self, seconds_left, expected):
        with patch("anitrack.utils.rate_limiter.time") as mock_time:
            mock_time.time.return_value = 1000.0
            message = format_rate_limit_error(1000.0 + seconds_left)

        assert message == f"Rate limit exceeded. {expected}"

    def test_presets(self):
        assert RATE_LIMIT_CONFIGS["auth"].max_requests == 5
        assert RATE_LIMIT_CONFIGS["auth"].window_seconds == 900
        assert RATE_LIMIT_CONFIGS["password_reset"].max_requests == 3
        assert RATE_LIMIT_CONFIGS["search"].window_seconds == 60

    def test_user_or_ip_prefers_user_id(self):
        request = MagicMock()
        request.state.user_id = "u-1"
        assert user_or_ip(request) == "u-1"

        request.state.user_id = None
        request.client.host = "10.0.0.1"
        assert user_or_ip(request) == "10.0.0.1"


class TestAnimeApiLimiter:
    def test_recommendations_budget_is_per_user(self):
        limiter = AnimeApiLimiter(RateLimiter())

        results = [limiter.recommendations("u-1") for _ in range(11)]
        assert results[9].allowed is True
        assert results[10].allowed is False
        assert limiter.recommendations("u-2").allowed is True

    def test_anonymous_callers_share_a_key(self):
        rate_limiter = RateLimiter()
        limiter = AnimeApiLimiter(rate_limiter)

        limiter.details()
        limiter.details()

        stats = rate_limiter.get_stats()
        assert stats["entries"] == [
            {"key": "ip:anonymous", "count": 2, "reset_time": stats["entries"][0]["reset_time"]}
        ]


class TestDistributedRateLimiter:
    @pytest.mark.asyncio
    async def test_uses_fallback_without_redis(self, config: RateLimitConfig):
        fallback = RateLimiter()
        limiter = DistributedRateLimiter(redis=None, fallback=fallback)

        result = await limiter.check("a", config)

        assert result.allowed is True
        assert fallback.get_stats()["total_keys"] == 1

    @pytest.mark.asyncio
    async def test_first_hit_sets_expiry(self, config: RateLimitConfig):
        redis = AsyncMock()
        redis.incr.return_value = 1
        limiter = DistributedRateLimiter(redis=redis)

        with patch("anitrack.utils.rate_limiter.time") as mock_time:
            mock_time.time.return_value = 1000.0
            result = await limiter.check("a", config)

        redis.incr.assert_awaited_once_with("rate_limit:a:16")
        redis.expire.assert_awaited_once_with("rate_limit:a:16", 60)
        assert result.allowed is True
        assert result.remaining == 2
        assert result.reset_time == 1020.0

    @pytest.mark.asyncio
    async def test_denies_over_limit(self, config: RateLimitConfig):
        redis = AsyncMock()
        redis.incr.return_value = 4
        limiter = DistributedRateLimiter(redis=redis)

        result = await limiter.check("a", config)

        redis.expire.assert_not_awaited()
        assert result.allowed is False
        assert result.remaining == 0

    @pytest.mark.asyncio
    async def test_fails_open_on_redis_error(self, config: RateLimitConfig):
        redis = AsyncMock()
        redis.incr.side_effect = ConnectionError("redis down")
        limiter = DistributedRateLimiter(redis=redis)

        result = await limiter.check("a", config)

        assert result.allowed is True
        assert result.remaining == 3

"""
Unit tests for rate limiting.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from redis.exceptions import RedisError

from reflectify.core import rate_limit
from reflectify.core.rate_limit import RateLimitExceeded, check_rate_limit


@pytest.fixture(autouse=True)
def clear_memory_store():
    rate_limit._memory_store.clear()
    yield
    rate_limit._memory_store.clear()


class TestCheckRateLimit:
    """Sliding window limit for admin actions."""

    @pytest.mark.asyncio
    async def test_memory_limit_when_redis_not_initialized(self):
        with patch.object(rate_limit.redis_module, "redis_client", None):
            results = [await check_rate_limit("admin:test", 2, 60) for _ in range(3)]

        assert results == [True, True, False]

    @pytest.mark.asyncio
    async def test_redis_limit(self, fake_redis):
        with patch.object(rate_limit.redis_module, "redis_client", fake_redis):
            results = [await check_rate_limit("admin:redis", 1, 60) for _ in range(2)]

        assert results == [True, False]

    @pytest.mark.asyncio
    async def test_falls_back_to_memory_on_redis_error(self):
        client = MagicMock()
        client.pipeline.return_value.execute = AsyncMock(side_effect=RedisError("down"))

        with patch.object(rate_limit.redis_module, "redis_client", client):
            results = [await check_rate_limit("admin:flaky", 1, 60) for _ in range(2)]

        assert results == [True, False]
        assert "admin:flaky" in rate_limit._memory_store


class TestRateLimitExceeded:
    def test_carries_retry_after(self):
        error = RateLimitExceeded(limit=10, window_seconds=60)

        assert error.status_code == 429
        assert error.detail["error"] == "RATE_LIMIT_EXCEEDED"
        assert error.headers == {"Retry-After": "60"}

"""Unit tests for Redis service."""

import pytest
from unittest.mock import AsyncMock, patch

from src.services.redis_service import RedisService


@pytest.fixture
def redis_service():
    """Create Redis service instance for testing."""
    return RedisService()


@pytest.fixture
def mock_redis_client():
    """Create mock Redis client."""
    return AsyncMock()


class TestRateLimiting:
    """Tests for per-IP fixed-window throttling."""

    @pytest.mark.asyncio
    async def test_check_rate_limit_allows_under_limit(self, redis_service, mock_redis_client):
        with patch("src.services.redis_service.get_redis", return_value=mock_redis_client):
            mock_redis_client.get.return_value = "5"

            allowed, remaining = await redis_service.check_rate_limit("otp:203.0.113.7", limit=10)

            assert allowed is True
            assert remaining == 4
            mock_redis_client.incr.assert_awaited_once_with("rate_limit:otp:203.0.113.7")

    @pytest.mark.asyncio
    async def test_check_rate_limit_blocks_over_limit(self, redis_service, mock_redis_client):
        with patch("src.services.redis_service.get_redis", return_value=mock_redis_client):
            mock_redis_client.get.return_value = "10"

            allowed, remaining = await redis_service.check_rate_limit("otp:203.0.113.7", limit=10)

            assert allowed is False
            assert remaining == 0
            mock_redis_client.incr.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_first_request_starts_window(self, redis_service, mock_redis_client):
        with patch("src.services.redis_service.get_redis", return_value=mock_redis_client):
            mock_redis_client.get.return_value = None

            allowed, remaining = await redis_service.check_rate_limit("otp:203.0.113.7", limit=10)

            assert allowed is True
            assert remaining == 9
            mock_redis_client.setex.assert_awaited_once_with("rate_limit:otp:203.0.113.7", 60, "1")

    @pytest.mark.asyncio
    async def test_default_limit_comes_from_settings(self, redis_service, mock_redis_client):
        with patch("src.services.redis_service.get_redis", return_value=mock_redis_client):
            mock_redis_client.get.return_value = str(redis_service.settings.otp_ip_rate_limit)

            allowed, _ = await redis_service.check_rate_limit("otp:203.0.113.7")

            assert allowed is False

    @pytest.mark.asyncio
    async def test_redis_unavailable_graceful_degradation(self, redis_service):
        with patch("src.services.redis_service.get_redis", return_value=None):
            allowed, remaining = await redis_service.check_rate_limit("otp:203.0.113.7")

            assert allowed is True
            assert remaining == -1

    @pytest.mark.asyncio
    async def test_redis_error_allows_request(self, redis_service, mock_redis_client):
        with patch("src.services.redis_service.get_redis", return_value=mock_redis_client):
            mock_redis_client.get.side_effect = ConnectionError("reset by peer")

            allowed, remaining = await redis_service.check_rate_limit("otp:203.0.113.7")

            assert allowed is True
            assert remaining == -1

# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Tests for the session blocklist and role cache on Redis.
"""

import pytest
from unittest.mock import MagicMock, patch

from registry_api.services.redis import RedisService


@pytest.fixture
def client():
    redis = MagicMock()
    redis.ping.return_value = "PONG"
    redis.setex.return_value = "OK"
    return redis


@pytest.fixture
def redis_service(client):
    with patch("registry_api.services.redis.Redis", return_value=client):
        yield RedisService("https://cache.example.upstash.io", "token")


class TestRedisService:
    """Test blocklist and cache operations."""

    def test_block_session(self, redis_service, client):
        assert redis_service.block_session("s1", 604800)
        client.setex.assert_called_once_with("session:revoked:s1", 604800, "1")

    def test_is_session_blocked(self, redis_service, client):
        client.exists.return_value = 1
        assert redis_service.is_session_blocked("s1")
        client.exists.assert_called_once_with("session:revoked:s1")

    def test_role_cache(self, redis_service, client):
        client.get.return_value = "admin"

        assert redis_service.cache_user_role("u1", "admin", 60)
        assert redis_service.get_cached_role("u1") == "admin"

        client.setex.assert_called_once_with("user:role:u1", 60, "admin")
        client.get.assert_called_once_with("user:role:u1")

    def test_invalidate_role(self, redis_service, client):
        client.delete.return_value = 1
        assert redis_service.invalidate_user_role("u1")
        client.delete.assert_called_once_with("user:role:u1")

    def test_errors_read_as_misses(self, redis_service, client):
        client.get.side_effect = ConnectionError("timeout")
        client.exists.side_effect = ConnectionError("timeout")

        assert redis_service.get_cached_role("u1") is None
        assert not redis_service.is_session_blocked("s1")

    def test_failed_ping_disables_client(self, client):
        client.ping.return_value = "NOPE"
        with patch("registry_api.services.redis.Redis", return_value=client):
            service = RedisService("https://cache.example.upstash.io", "token")

        assert not service.is_available()
        assert not service.block_session("s1", 60)
        assert service.health_check()["status"] == "unavailable"

    def test_unconfigured(self, monkeypatch):
        monkeypatch.delenv("REDIS_URL", raising=False)
        service = RedisService()

        assert service.client is None
        assert not service.is_session_blocked("s1")

    def test_health_check(self, redis_service, client):
        client.get.return_value = "test"
        assert redis_service.health_check()["status"] == "healthy"

        client.get.return_value = None
        assert redis_service.health_check()["status"] == "degraded"

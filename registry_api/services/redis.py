# SPDX-License-Identifier: Apache-2.0

"""
Redis service for the session blocklist and the role cache.

Uses the Upstash HTTP client. Every operation fails gracefully: when Redis is
unreachable, reads report a miss and writes report failure, and callers fall
back to the record store.
"""

import os
import time
from typing import Optional, Dict, Any
from upstash_redis import Redis
from opentelemetry import trace
import logging

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)

SESSION_BLOCK_PREFIX = "session:revoked:"
ROLE_CACHE_PREFIX = "user:role:"
DEFAULT_ROLE_TTL = 900


class RedisConnectionError(Exception):
    """Raised when Redis connection fails."""
    pass


class RedisService:
    """
    Redis service with Upstash HTTP client.

    Holds revoked session IDs until their tokens would have expired, and
    caches each user's role so the access gate does not hit MongoDB on every
    request.
    """

    def __init__(self, redis_url: Optional[str] = None, redis_token: Optional[str] = None):
        """
        Initialize the Redis service.

        Args:
            redis_url: Upstash Redis HTTP URL
            redis_token: Upstash Redis authentication token
        """
        self.redis_url = redis_url or os.getenv("REDIS_URL")
        self.redis_token = redis_token or os.getenv("REDIS_TOKEN")

        if not self.redis_url:
            logger.warning("No REDIS_URL configured, Redis operations will be disabled")
            self.client = None
            return

        try:
            if self.redis_token:
                self.client = Redis(url=self.redis_url, token=self.redis_token)
            else:
                self.client = Redis.from_env()

            self._test_connection()
            logger.info("Redis service initialized successfully")

        except Exception as e:
            logger.error(f"Failed to initialize Redis service: {str(e)}")
            self.client = None

    def _test_connection(self) -> None:
        if not self.client:
            return

        try:
            result = self.client.ping()
            if result != "PONG":
                raise RedisConnectionError("Redis ping failed")
        except Exception as e:
            logger.error(f"Redis connection test failed: {str(e)}")
            raise RedisConnectionError(f"Redis connection failed: {str(e)}")

    def is_available(self) -> bool:
        """Check if Redis service is available."""
        return self.client is not None

    def _handle_redis_error(self, operation: str, error: Exception) -> None:
        logger.error(f"Redis {operation} failed: {str(error)}")

    def set_with_ttl(self, key: str, value: str, ttl_seconds: int) -> bool:
        """
        Set a key-value pair with TTL.

        Args:
            key: Redis key
            value: Value to store
            ttl_seconds: Time to live in seconds

        Returns:
            True if successful, False otherwise
        """
        if not self.is_available():
            return False

        with tracer.start_as_current_span("redis.set_with_ttl") as span:
            span.set_attributes({
                "redis.operation": "set_with_ttl",
                "redis.key": key,
                "redis.ttl": ttl_seconds
            })

            try:
                result = self.client.setex(key, ttl_seconds, value)
                span.set_attribute("redis.result", "success")
                return result == "OK"

            except Exception as e:
                span.set_attribute("redis.result", "error")
                self._handle_redis_error("SET", e)
                return False

    def get(self, key: str) -> Optional[str]:
        """Get value by key, None on miss or error."""
        if not self.is_available():
            return None

        with tracer.start_as_current_span("redis.get") as span:
            span.set_attributes({"redis.operation": "get", "redis.key": key})

            try:
                result = self.client.get(key)
                span.set_attribute("redis.result", "hit" if result else "miss")
                return result

            except Exception as e:
                span.set_attribute("redis.result", "error")
                self._handle_redis_error("GET", e)
                return None

    def delete(self, key: str) -> bool:
        """Delete a key. True when something was removed."""
        if not self.is_available():
            return False

        try:
            return self.client.delete(key) > 0
        except Exception as e:
            self._handle_redis_error("DELETE", e)
            return False

    def exists(self, key: str) -> bool:
        if not self.is_available():
            return False

        try:
            return self.client.exists(key) > 0
        except Exception as e:
            self._handle_redis_error("EXISTS", e)
            return False

    # Session blocklist

    def block_session(self, session_id: str, ttl_seconds: int) -> bool:
        """
        Revoke a session until its longest-lived token expires.

        Args:
            session_id: ``sid`` claim shared by the session's tokens
            ttl_seconds: Lifetime of the session's refresh token

        Returns:
            True if the session was recorded as revoked
        """
        if not self.is_available():
            logger.error("Redis unavailable - cannot revoke session")
            return False

        with tracer.start_as_current_span("redis.block_session") as span:
            span.set_attributes({
                "redis.operation": "block_session",
                "auth.session_id": session_id,
                "redis.ttl": ttl_seconds
            })

            result = self.set_with_ttl(f"{SESSION_BLOCK_PREFIX}{session_id}", "1", ttl_seconds)
            span.set_attribute("auth.session_block_result", "success" if result else "failed")

            if result:
                logger.info(f"Session revoked: {session_id} (TTL: {ttl_seconds}s)")
            else:
                logger.error(f"Failed to revoke session: {session_id}")
            return result

    def is_session_blocked(self, session_id: str) -> bool:
        """Check whether a session was revoked."""
        if not self.is_available():
            logger.warning("Redis unavailable for session blocklist check - allowing session")
            return False

        with tracer.start_as_current_span("redis.is_session_blocked") as span:
            span.set_attribute("auth.session_id", session_id)
            result = self.exists(f"{SESSION_BLOCK_PREFIX}{session_id}")
            span.set_attribute("auth.session_blocked", result)
            return result

    # Role cache

    def cache_user_role(self, user_id: str, role: str, ttl_seconds: int = DEFAULT_ROLE_TTL) -> bool:
        """Cache the role of a user."""
        return self.set_with_ttl(f"{ROLE_CACHE_PREFIX}{user_id}", role, ttl_seconds)

    def get_cached_role(self, user_id: str) -> Optional[str]:
        """Return the cached role or None on a miss."""
        role = self.get(f"{ROLE_CACHE_PREFIX}{user_id}")
        if role:
            logger.debug(f"Role cache hit: {user_id} -> {role}")
        return role

    def invalidate_user_role(self, user_id: str) -> bool:
        """Drop the cached role after an assignment changes."""
        return self.delete(f"{ROLE_CACHE_PREFIX}{user_id}")

    # Health Check Methods

    def health_check(self) -> Dict[str, Any]:
        """
        Perform Redis health check.

        Returns:
            Health check results
        """
        if not self.is_available():
            return {
                "status": "unavailable",
                "message": "Redis client not initialized",
                "timestamp": time.time()
            }

        try:
            start_time = time.time()
            test_key = f"health:check:{int(start_time)}"
            self.set_with_ttl(test_key, "test", 10)
            value = self.get(test_key)
            self.delete(test_key)

            response_time = (time.time() - start_time) * 1000

            if value == "test":
                return {
                    "status": "healthy",
                    "response_time_ms": round(response_time, 2),
                    "timestamp": time.time()
                }
            return {
                "status": "degraded",
                "message": "Redis operations not working correctly",
                "response_time_ms": round(response_time, 2),
                "timestamp": time.time()
            }

        except Exception as e:
            return {
                "status": "unhealthy",
                "message": str(e),
                "timestamp": time.time()
            }

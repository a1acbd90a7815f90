# SPDX-License-Identifier: Apache-2.0

"""
Redis service for the token blocklist and short-lived verification codes.

This module provides Redis operations using the standard redis-py client.
Values are JSON serialized; every key written here carries a TTL.
"""

import os
import json
import time
from typing import Optional, List, Dict, Any, Union
import redis
from opentelemetry import trace
import logging

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)


class RedisConnectionError(Exception):
    """Raised when Redis connection fails."""
    pass


class RedisService:
    """
    Redis service with the standard redis-py client.

    Read and write helpers log and return a neutral value on failure; callers
    that need Redis check ``is_available`` first.
    """

    def __init__(self, redis_url: Optional[str] = None):
        """
        Initialize the Redis service.

        Args:
            redis_url: Redis connection URL (redis://host:port)
        """
        self.redis_url = redis_url or os.getenv("REDIS_URL", "redis://localhost:6379")

        try:
            self.client = redis.from_url(self.redis_url, decode_responses=True)
            self._test_connection()
            logger.info(f"Redis service initialized successfully at {self.redis_url}")

        except (RedisConnectionError, redis.RedisError, ValueError) as e:
            logger.error(f"Failed to initialize Redis service: {str(e)}")
            self.client = None

    def _test_connection(self) -> None:
        """Test Redis connection."""
        if not self.client:
            return

        try:
            if not self.client.ping():
                raise RedisConnectionError("Redis ping failed")
        except redis.RedisError as e:
            logger.error(f"Redis connection test failed: {str(e)}")
            raise RedisConnectionError(f"Redis connection failed: {str(e)}")

    def is_available(self) -> bool:
        """Check if Redis service is available."""
        return self.client is not None

    def set(self, key: str, value: Union[str, Dict, List], ttl: Optional[int] = None) -> bool:
        """
        Set a key-value pair in Redis.

        Args:
            key: Redis key
            value: Value to store (will be JSON serialized if not string)
            ttl: Time to live in seconds

        Returns:
            True if successful, False otherwise
        """
        if not self.client:
            logger.warning("Redis client not available, skipping set operation")
            return False

        with tracer.start_as_current_span("redis.set") as span:
            span.set_attributes({
                "redis.key": key,
                "redis.ttl": ttl or 0
            })

            try:
                if isinstance(value, (dict, list)):
                    value = json.dumps(value)

                if ttl:
                    result = self.client.setex(key, ttl, value)
                else:
                    result = self.client.set(key, value)

                span.set_attribute("redis.result", "success")
                return bool(result)

            except redis.RedisError as e:
                span.set_attribute("redis.result", "error")
                logger.error(f"Redis set failed for key {key}: {str(e)}")
                return False

    def get(self, key: str) -> Optional[Any]:
        """
        Get a value from Redis, decoding JSON when possible.

        Returns:
            Value if found, None otherwise
        """
        if not self.client:
            logger.warning("Redis client not available, skipping get operation")
            return None

        with tracer.start_as_current_span("redis.get") as span:
            span.set_attribute("redis.key", key)

            try:
                value = self.client.get(key)
            except redis.RedisError as e:
                span.set_attribute("redis.result", "error")
                logger.error(f"Redis get failed for key {key}: {str(e)}")
                return None

            if value is None:
                span.set_attribute("redis.result", "not_found")
                return None

            try:
                return json.loads(value)
            except (json.JSONDecodeError, TypeError):
                return value

    def delete(self, key: str) -> bool:
        """Delete a key from Redis."""
        if not self.client:
            logger.warning("Redis client not available, skipping delete operation")
            return False

        with tracer.start_as_current_span("redis.delete") as span:
            span.set_attribute("redis.key", key)

            try:
                result = self.client.delete(key)
                span.set_attribute("redis.result", "success")
                return bool(result)

            except redis.RedisError as e:
                span.set_attribute("redis.result", "error")
                logger.error(f"Redis delete failed for key {key}: {str(e)}")
                return False

    def exists(self, key: str) -> bool:
        """Check if a key exists in Redis."""
        if not self.client:
            return False

        try:
            return bool(self.client.exists(key))
        except redis.RedisError as e:
            logger.error(f"Redis exists check failed for key {key}: {str(e)}")
            return False

    def ttl(self, key: str) -> int:
        """Remaining time to live in seconds; 0 when the key is missing or has no expiry."""
        if not self.client:
            return 0

        try:
            remaining = self.client.ttl(key)
        except redis.RedisError as e:
            logger.error(f"Redis ttl failed for key {key}: {str(e)}")
            return 0
        return remaining if remaining and remaining > 0 else 0

    # JWT Token Blocklist Methods

    def add_to_blocklist(self, jti: str, exp: int) -> bool:
        """
        Add a JWT token to the blocklist until it expires.

        Args:
            jti: JWT ID (unique token identifier)
            exp: Token expiration timestamp
        """
        ttl = max(0, exp - int(time.time()))
        if ttl <= 0:
            return True  # Token already expired

        key = f"blocklist:jwt:{jti}"
        return self.set(key, "blocked", ttl)

    def is_token_blocked(self, jti: str) -> bool:
        """Check if a JWT token is in the blocklist."""
        key = f"blocklist:jwt:{jti}"
        return self.exists(key)

    def health_check(self) -> Dict[str, Any]:
        """Ping Redis and report the round trip time."""
        if not self.is_available():
            return {
                "status": "unavailable",
                "message": "Redis client not initialized",
                "timestamp": time.time()
            }

        try:
            start_time = time.time()
            self.client.ping()
            response_time = (time.time() - start_time) * 1000

            return {
                "status": "healthy",
                "response_time_ms": round(response_time, 2),
                "timestamp": time.time()
            }
        except redis.RedisError as e:
            logger.error(f"Redis health check failed: {str(e)}")
            return {
                "status": "unhealthy",
                "error": str(e),
                "timestamp": time.time()
            }


def create_redis_service() -> RedisService:
    """
    Factory function to create Redis service instance.

    Returns:
        RedisService instance
    """
    return RedisService()

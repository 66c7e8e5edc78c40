"""
Redis-backed key-value store for job records and repository metadata.

Every operation is best-effort: a Redis or serialization error is logged and
reported as a miss (None / False / empty) instead of being raised. Values are
stored as JSON strings.
"""

import json
import logging
from typing import Any, Dict, List, Optional

import redis

logger = logging.getLogger(__name__)

_STORE_ERRORS = (redis.RedisError, ValueError, TypeError)


class CacheService:
    """
    Thin JSON layer over Redis strings, hashes and sets.

    Used for:
    - The job table (hash keyed by job id)
    - Repository metadata records (one string key per repository)
    - The set of ingested repository ids
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        password: Optional[str] = None,
        db: int = 0,
        client: Optional[redis.Redis] = None,
    ):
        """
        Initialize the store.

        Args:
            host: Redis host
            port: Redis port
            password: Optional password
            db: Database number
            client: Pre-built client (tests)
        """
        self.client = client or redis.Redis(
            host=host,
            port=port,
            password=password,
            db=db,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
            retry_on_timeout=True,
        )
        logger.info(f"💾 Cache service initialized (redis://{host}:{port}/{db})")

    def get(self, key: str) -> Optional[Any]:
        try:
            value = self.client.get(key)
            return json.loads(value) if value else None
        except _STORE_ERRORS as e:
            logger.error(f"❌ Cache get error for {key}: {e}")
            return None

    def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> bool:
        try:
            serialized = json.dumps(value)
            if ttl_seconds:
                self.client.setex(key, ttl_seconds, serialized)
            else:
                self.client.set(key, serialized)
            return True
        except _STORE_ERRORS as e:
            logger.error(f"❌ Cache set error for {key}: {e}")
            return False

    def delete(self, key: str) -> bool:
        try:
            self.client.delete(key)
            return True
        except _STORE_ERRORS as e:
            logger.error(f"❌ Cache delete error for {key}: {e}")
            return False

    def delete_pattern(self, pattern: str) -> int:
        """Delete every key matching a glob pattern. Returns the number deleted."""
        try:
            keys = list(self.client.scan_iter(match=pattern))
            if keys:
                self.client.delete(*keys)
            return len(keys)
        except _STORE_ERRORS as e:
            logger.error(f"❌ Cache delete pattern error for {pattern}: {e}")
            return 0

    def exists(self, key: str) -> bool:
        try:
            return self.client.exists(key) == 1
        except _STORE_ERRORS as e:
            logger.error(f"❌ Cache exists error for {key}: {e}")
            return False

    def increment(self, key: str) -> int:
        try:
            return int(self.client.incr(key))
        except _STORE_ERRORS as e:
            logger.error(f"❌ Cache increment error for {key}: {e}")
            return 0

    def set_hash(self, key: str, field: str, value: Any) -> bool:
        try:
            self.client.hset(key, field, json.dumps(value))
            return True
        except _STORE_ERRORS as e:
            logger.error(f"❌ Cache set_hash error for {key}/{field}: {e}")
            return False

    def get_hash(self, key: str, field: str) -> Optional[Any]:
        try:
            value = self.client.hget(key, field)
            return json.loads(value) if value else None
        except _STORE_ERRORS as e:
            logger.error(f"❌ Cache get_hash error for {key}/{field}: {e}")
            return None

    def get_all_hash(self, key: str) -> Dict[str, Any]:
        try:
            raw = self.client.hgetall(key)
            return {field: json.loads(value) for field, value in raw.items()}
        except _STORE_ERRORS as e:
            logger.error(f"❌ Cache get_all_hash error for {key}: {e}")
            return {}

    def add_to_set(self, key: str, *members: str) -> bool:
        if not members:
            return True
        try:
            self.client.sadd(key, *members)
            return True
        except _STORE_ERRORS as e:
            logger.error(f"❌ Cache add_to_set error for {key}: {e}")
            return False

    def remove_from_set(self, key: str, *members: str) -> bool:
        if not members:
            return True
        try:
            self.client.srem(key, *members)
            return True
        except _STORE_ERRORS as e:
            logger.error(f"❌ Cache remove_from_set error for {key}: {e}")
            return False

    def get_set(self, key: str) -> List[str]:
        try:
            return sorted(self.client.smembers(key))
        except _STORE_ERRORS as e:
            logger.error(f"❌ Cache get_set error for {key}: {e}")
            return []

    def is_in_set(self, key: str, member: str) -> bool:
        try:
            return bool(self.client.sismember(key, member))
        except _STORE_ERRORS as e:
            logger.error(f"❌ Cache is_in_set error for {key}: {e}")
            return False

    def is_healthy(self) -> bool:
        try:
            return bool(self.client.ping())
        except redis.RedisError as e:
            logger.warning(f"⚠️ Redis health check failed: {e}")
            return False

    def close(self) -> None:
        try:
            self.client.close()
        except redis.RedisError as e:
            logger.warning(f"⚠️ Failed to close Redis connection: {e}")

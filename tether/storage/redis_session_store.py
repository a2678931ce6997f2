"""
Redis-based session storage for Tether

Shares session records between relay processes. Writes go through
WATCH/MULTI/EXEC so that two processes can never both append to the same
record from the same starting version.
"""

import asyncio
import json
import logging
from typing import Optional

import redis.asyncio as redis
from redis.exceptions import RedisError, WatchError

from tether.exceptions import ConcurrencyError, StorageError
from tether.sessions.session_state import SessionRecord

from .session_store import SessionStore

logger = logging.getLogger('tether.storage.redis')


class RedisSessionStore(SessionStore):
    """
    Redis-backed session record store.

    Expiry is decided by the relay from ``last_activity``; the Redis key TTL
    (``retention_seconds``) only reclaims storage long after that.
    """

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379/0",
        key_prefix: str = "tether:session:",
        retention_seconds: int = 86400,
        max_connections: int = 50
    ):
        """
        Initialize Redis session store.

        Args:
            redis_url: Redis connection URL
            key_prefix: Prefix for session keys in Redis
            retention_seconds: Key TTL refreshed on every write (0 disables)
            max_connections: Size of the Redis connection pool
        """
        self.redis_url = redis_url
        self.key_prefix = key_prefix
        self.retention_seconds = retention_seconds
        self.max_connections = max_connections

        self.redis_client: Optional[redis.Redis] = None
        self._connected = False
        self._init_lock = asyncio.Lock()

        logger.info(f"RedisSessionStore initialized with prefix {key_prefix!r}")

    async def connect(self):
        """Establish Redis connection"""
        async with self._init_lock:
            if self._connected:
                return

            try:
                self.redis_client = redis.from_url(
                    self.redis_url,
                    encoding="utf-8",
                    decode_responses=True,
                    max_connections=self.max_connections
                )
                await self.redis_client.ping()
                self._connected = True
                logger.info("Redis session store connected successfully")
            except RedisError as e:
                logger.error(f"Failed to connect to Redis: {e}")
                raise StorageError('redis', 'connect', message=f"Failed to connect to Redis: {e}") from e

    async def close(self):
        """Close Redis connection"""
        if self.redis_client is not None:
            await self.redis_client.aclose()
        self.redis_client = None
        self._connected = False
        logger.info("Redis session store disconnected")

    def _get_session_key(self, session_id: str) -> str:
        """Generate Redis key for session"""
        return f"{self.key_prefix}{session_id}"

    @property
    def _expiry(self) -> Optional[int]:
        return self.retention_seconds or None

    async def load(self, session_id: str) -> Optional[SessionRecord]:
        if not self._connected:
            await self.connect()

        try:
            payload = await self.redis_client.get(self._get_session_key(session_id))
        except RedisError as e:
            logger.error(f"Failed to load session {session_id}: {e}")
            raise StorageError('redis', 'load', resource_id=session_id) from e

        if payload is None:
            return None
        return self.deserialize(payload)

    async def create(self, session_id: str, record: SessionRecord) -> bool:
        if not self._connected:
            await self.connect()

        try:
            created = await self.redis_client.set(
                self._get_session_key(session_id),
                self.serialize(record),
                nx=True,
                ex=self._expiry
            )
        except RedisError as e:
            logger.error(f"Failed to create session {session_id}: {e}")
            raise StorageError('redis', 'create', resource_id=session_id) from e

        return bool(created)

    async def save(self, session_id: str, record: SessionRecord, expected_version: int) -> None:
        if not self._connected:
            await self.connect()

        key = self._get_session_key(session_id)
        try:
            async with self.redis_client.pipeline(transaction=True) as pipe:
                await pipe.watch(key)
                current = await pipe.get(key)
                current_version = json.loads(current).get('version') if current is not None else None
                if current_version != expected_version:
                    raise ConcurrencyError(
                        resource_id=session_id,
                        operation='save',
                        expected_version=expected_version,
                        actual_version=current_version
                    )

                pipe.multi()
                pipe.set(key, self.serialize(record), ex=self._expiry)
                await pipe.execute()
        except WatchError as e:
            raise ConcurrencyError(
                resource_id=session_id,
                operation='save',
                expected_version=expected_version
            ) from e
        except RedisError as e:
            logger.error(f"Failed to save session {session_id}: {e}")
            raise StorageError('redis', 'save', resource_id=session_id) from e

        logger.debug(f"Stored session {session_id} at version {record.version}")

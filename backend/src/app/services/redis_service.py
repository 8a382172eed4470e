"""Redis service for sweep locks and auction event fan-out."""

import json
import uuid
from typing import Any

from redis.asyncio import Redis

AUCTION_EVENTS_CHANNEL = "auction_events"


class RedisService:
    """Service class for Redis operations used by the auction core.

    Nothing here is required for correctness: locks only avoid duplicate
    sweep work and events only feed live viewers.
    """

    # Lua script for safe lock release (only delete own lock)
    RELEASE_LOCK_SCRIPT = """
    if redis.call("GET", KEYS[1]) == ARGV[1] then
        return redis.call("DEL", KEYS[1])
    else
        return 0
    end
    """

    def __init__(self, redis: Redis):
        """Initialize Redis service with a Redis client.

        Args:
            redis: Async Redis client instance
        """
        self.redis = redis
        self._release_lock_script = None

    async def _get_release_lock_script(self):
        """Get or register the release lock Lua script."""
        if self._release_lock_script is None:
            self._release_lock_script = self.redis.register_script(self.RELEASE_LOCK_SCRIPT)
        return self._release_lock_script

    # ==================== Distributed Lock Operations ====================

    async def acquire_lock(
        self, name: str, owner_id: str | None = None, ttl: int = 30
    ) -> tuple[bool, str]:
        """Acquire a named distributed lock.

        Key pattern: lock:{name}
        Uses SET NX EX for atomic lock acquisition.

        Args:
            name: Lock name, e.g. "auction_sweep"
            owner_id: Unique identifier for lock owner (auto-generated if None)
            ttl: Lock timeout in seconds, bounds how long a crashed holder blocks others

        Returns:
            Tuple of (success, owner_id)
        """
        key = f"lock:{name}"
        if owner_id is None:
            owner_id = str(uuid.uuid4())

        acquired = await self.redis.set(key, owner_id, nx=True, ex=ttl)
        return (acquired is not None, owner_id)

    async def release_lock(self, name: str, owner_id: str) -> bool:
        """Release a distributed lock (only if owner matches).

        Args:
            name: Lock name passed to acquire_lock
            owner_id: The owner_id returned from acquire_lock

        Returns:
            True if lock was released, False if not owner or not locked
        """
        key = f"lock:{name}"
        script = await self._get_release_lock_script()
        result = await script(keys=[key], args=[owner_id])
        return int(result) == 1

    # ==================== Event Operations ====================

    async def publish_event(
        self, event: dict[str, Any], channel: str = AUCTION_EVENTS_CHANNEL
    ) -> int:
        """Publish a JSON event for other API instances.

        Returns:
            Number of subscribers that received the message
        """
        return await self.redis.publish(channel, json.dumps(event, default=str))

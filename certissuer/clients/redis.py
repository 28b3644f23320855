"""
CertIssuer — Redis Client

Async Redis backing the persisted document collections. Each collection is a
single hash keyed by document id, with the record stored as JSON.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import orjson
import structlog
from redis.asyncio import Redis

if TYPE_CHECKING:
    from certissuer.config import RedisConfig

logger = structlog.get_logger("certissuer.clients.redis")


class RedisClient:
    """
    Async Redis client with key prefixing for multi-instance support.
    """

    def __init__(self, config: RedisConfig) -> None:
        self._config = config
        self._client: Redis | None = None

    async def connect(self) -> None:
        """Establish Redis connection."""
        self._client = Redis.from_url(
            self._config.full_url,
            decode_responses=True,
        )
        # Verify connectivity
        await self._client.ping()
        logger.info("redis_connected", prefix=self._config.prefix)

    async def close(self) -> None:
        """Close the connection."""
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.info("redis_disconnected")

    @property
    def client(self) -> Redis:
        if self._client is None:
            raise RuntimeError("Redis client not connected. Call connect() first.")
        return self._client

    def _key(self, key: str) -> str:
        """Prefix a key with the instance prefix."""
        return f"{self._config.prefix}:{key}"

    async def health_check(self) -> dict[str, Any]:
        """Check connectivity."""
        try:
            await self.client.ping()
            return {"status": "connected"}
        except Exception as e:
            logger.error("redis_health_check_failed", error=str(e))
            return {"status": "disconnected", "error": str(e)}

    # ─── Hash Operations (Document Collections) ───────────────────

    async def hset(self, key: str, field: str, value: Any) -> None:
        """Set a hash field."""
        raw = orjson.dumps(value).decode()
        await self.client.hset(self._key(key), field, raw)

    async def hget(self, key: str, field: str) -> Any | None:
        """Get a hash field."""
        raw = await self.client.hget(self._key(key), field)
        if raw is None:
            return None
        return orjson.loads(raw)

    async def hgetall(self, key: str) -> dict[str, Any]:
        """Get all hash fields."""
        raw = await self.client.hgetall(self._key(key))
        return {k: orjson.loads(v) for k, v in raw.items()}

    async def hdel(self, key: str, field: str) -> int:
        """Delete a hash field. Returns the number of fields removed."""
        return int(await self.client.hdel(self._key(key), field))

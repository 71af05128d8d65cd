import redis.asyncio as redis
import structlog

from gateway_service.config import settings


logger = structlog.get_logger()


class RedisClient:
    """Async Redis client wrapper."""

    def __init__(self, url: str | None = None) -> None:
        self._url = url or settings.redis_url
        self._client: redis.Redis | None = None

    @property
    def client(self) -> redis.Redis:
        """Get the Redis client. Raises if not connected."""
        if self._client is None:
            raise RuntimeError("Redis client not connected. Call connect() first.")
        return self._client

    async def connect(self) -> None:
        self._client = redis.from_url(self._url, decode_responses=True)
        await self._client.ping()
        logger.info("redis_connected", url=self._url.split("@")[-1])

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.info("redis_disconnected")

    async def health_check(self) -> bool:
        if self._client is None:
            return False
        try:
            await self._client.ping()
        except redis.RedisError:
            return False
        return True

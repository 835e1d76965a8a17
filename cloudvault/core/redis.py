import redis.asyncio as redis
from typing import Optional

from cloudvault.core.config import settings


class RedisClient:
    def __init__(self, url: Optional[str] = None):
        self.url = url or settings.REDIS_URL
        self.redis: Optional[redis.Redis] = None

    async def connect(self):
        """Connect to Redis"""
        self.redis = redis.from_url(
            self.url,
            encoding="utf-8",
            decode_responses=True
        )

    async def disconnect(self):
        """Disconnect from Redis"""
        if self.redis:
            await self.redis.aclose()
            self.redis = None

    async def ping(self) -> bool:
        """Check the broker connection used by the job queue"""
        if not self.redis:
            return False
        return bool(await self.redis.ping())


# Global Redis client instance
redis_client = RedisClient()

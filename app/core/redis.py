import redis.asyncio as redis
from app.core.config import settings

class RedisClient:
    """Setting overrides kept in Redis."""

    def __init__(self):
        self.redis = redis.from_url(settings.REDIS_URL, encoding="utf-8", decode_responses=True)

    async def set_setting(self, key: str, value: str):
        await self.redis.set(f"setting:{key}", value)

    async def get_setting(self, key: str) -> str | None:
        return await self.redis.get(f"setting:{key}")

    async def close(self):
        await self.redis.close()

redis_client = RedisClient()

from redis.exceptions import RedisError

from app.core.config import settings
from app.core.logger import logger
from app.core.redis import redis_client
from app.schemas.settings import PublicSettings, SettingsUpdate

JOIN_WINDOW_KEY = "consultation.joinWindowMinutes"
TIME_FORMAT_KEY = "display.timeFormat"

class SettingsService:
    """
    Deployment-wide settings: Redis overrides on top of configured defaults.
    An unreachable store falls back to the defaults.
    """

    def __init__(self, store=redis_client):
        self.store = store

    async def _get(self, key: str) -> str | None:
        try:
            return await self.store.get_setting(key)
        except RedisError as exc:
            logger.warning(f"Settings store unavailable, using default for {key}: {exc}")
            return None

    async def get_join_window_minutes(self) -> int:
        raw = await self._get(JOIN_WINDOW_KEY)
        if raw is None:
            return settings.JOIN_WINDOW_MINUTES
        try:
            value = int(raw)
        except ValueError:
            logger.warning(f"Ignoring invalid {JOIN_WINDOW_KEY}={raw!r}")
            return settings.JOIN_WINDOW_MINUTES
        return min(120, max(0, value))

    async def get_time_format(self) -> str:
        raw = await self._get(TIME_FORMAT_KEY)
        return "24h" if raw == "24h" else ("12h" if raw == "12h" else settings.TIME_FORMAT)

    async def get_public_settings(self) -> PublicSettings:
        return PublicSettings(
            join_window_minutes=await self.get_join_window_minutes(),
            time_format=await self.get_time_format()
        )

    async def update(self, data: SettingsUpdate) -> PublicSettings:
        if data.join_window_minutes is not None:
            await self.store.set_setting(JOIN_WINDOW_KEY, str(data.join_window_minutes))
        if data.time_format is not None:
            await self.store.set_setting(TIME_FORMAT_KEY, data.time_format)
        logger.info(f"Settings updated | {data.model_dump(exclude_none=True)}")
        return await self.get_public_settings()

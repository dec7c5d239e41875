# move_inventory/infra/cache/redis_cache.py
import json
import os
from typing import Any, Optional

import redis.asyncio as aioredis

DEFAULT_TTL = int(os.getenv("FLOW_TTL_SECONDS", "3600"))


class RedisCache:
    """
    Thin JSON layer over redis.asyncio.

        get_json/set_json, ping
        from_env()  -> construct from REDIS_URL
    """
    def __init__(self, client: Optional[aioredis.Redis] = None):
        self.r = client or aioredis.from_url(
            os.getenv("REDIS_URL", "redis://localhost:6379/0"),
            encoding="utf-8",
            decode_responses=True,
        )

    @classmethod
    def from_env(cls):
        url = os.getenv("REDIS_URL", "redis://localhost:6379/0")
        return cls(aioredis.from_url(url, encoding="utf-8", decode_responses=True))

    async def get_json(self, key: str) -> Optional[Any]:
        raw = await self.r.get(key)
        return json.loads(raw) if raw else None

    async def set_json(self, key: str, value: Any, ttl: int = DEFAULT_TTL):
        await self.r.set(key, json.dumps(value, ensure_ascii=False, default=str), ex=ttl)

    async def ping(self) -> bool:
        return bool(await self.r.ping())

# move_inventory/services/session_state.py
from typing import Any, Dict, Optional

from move_inventory.domain.ports import FlowSessionPort
from move_inventory.infra.cache.redis_cache import RedisCache


class FlowSessionStore(FlowSessionPort):
    """Resolution flow sessions kept in redis between HTTP calls."""

    def __init__(self, store: RedisCache, ttl: int = 3600):
        self.rs = store
        self.ttl = ttl

    @staticmethod
    def _key(flow_id: str) -> str:
        return f"flow:{flow_id}"

    async def load(self, flow_id: str) -> Optional[Dict[str, Any]]:
        return await self.rs.get_json(self._key(flow_id))

    async def save(self, flow_id: str, data: Dict[str, Any]) -> None:
        await self.rs.set_json(self._key(flow_id), data, ttl=self.ttl)

"""Redis pub/sub broadcaster for vehicle snapshots and incremental updates."""

import asyncio
import logging

import orjson
import redis.asyncio as aioredis

from transit_map.config import settings
from transit_map.schemas.vehicle import VehicleSnapshot, VehicleUpdate

logger = logging.getLogger(__name__)

CHANNEL = "transit:vehicles"
STATE_KEY = "transit:state"


class Broadcaster:
    """Publishes vehicle updates to Redis and fans them out to WebSocket subscribers."""

    def __init__(self) -> None:
        self._redis: aioredis.Redis | None = None
        self._subscribers: set[asyncio.Queue] = set()
        self._latest_snapshot: bytes | None = None

    async def connect(self) -> None:
        self._redis = aioredis.from_url(settings.redis_url, decode_responses=False)

    async def close(self) -> None:
        if self._redis:
            await self._redis.aclose()

    async def publish(self, update: VehicleUpdate, snapshot: VehicleSnapshot) -> None:
        """Store the full snapshot for new connections and push the update to listeners."""
        payload = orjson.dumps(update.model_dump(mode="json"))
        self._latest_snapshot = orjson.dumps(snapshot.model_dump(mode="json"))

        if self._redis:
            try:
                await self._redis.set(STATE_KEY, self._latest_snapshot)
                await self._redis.publish(CHANNEL, payload)
            except Exception:
                logger.exception("Failed to publish to Redis")

        dead = set()
        for q in self._subscribers:
            try:
                q.put_nowait(payload)
            except asyncio.QueueFull:
                dead.add(q)
        self._subscribers -= dead

    async def get_current_state(self) -> bytes | None:
        """Latest full snapshot, from Redis when available, else the in-process copy."""
        if self._redis:
            try:
                data = await self._redis.get(STATE_KEY)
                if data:
                    return data
            except Exception:
                logger.exception("Failed to get state from Redis")
        return self._latest_snapshot

    def subscribe(self) -> asyncio.Queue:
        q: asyncio.Queue = asyncio.Queue(maxsize=10)
        self._subscribers.add(q)
        return q

    def unsubscribe(self, q: asyncio.Queue) -> None:
        self._subscribers.discard(q)

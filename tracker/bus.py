"""
Event bus for the tracker, backed by Redis.
"""
import json
from typing import Final
import redis.asyncio as redis
from tracker.events import TrackerEvent

CHANNEL_VISIT_UPDATES: Final[str] = "visit_updates"


class EventBus:
    def __init__(self, redis_client: redis.Redis):
        self.redis_client = redis_client

    async def publish(self, event: TrackerEvent) -> None:
        await self.redis_client.publish(CHANNEL_VISIT_UPDATES, json.dumps(event))

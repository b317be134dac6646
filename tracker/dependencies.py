"""Dependency injection for FastAPI endpoints.

Endpoints receive shared resources (Redis, the GeoIP reader, the location
store, the database flag) through these dependencies instead of touching
``tracker.state``.

Usage in controllers:
    from tracker.dependencies import OptionalRedis

    @router.get("/example")
    async def example(redis: OptionalRedis):
        ...
"""

from typing import Annotated

import geoip2.database
import redis.asyncio as redis
from fastapi import Depends

from tracker import state
from tracker.config import get_settings
from tracker.ports import LocationStore


def get_optional_redis() -> redis.Redis | None:
    """Get the Redis client, or None if not connected."""
    return state.redis_client


def get_geoip_reader() -> geoip2.database.Reader | None:
    """Get the GeoIP reader, or None if no database file was found."""
    return state.geoip_reader


def get_db_enabled() -> bool:
    return state.db_enabled


def get_location_store() -> LocationStore | None:
    return state.location_store


def get_online_timeout() -> int:
    """Minutes after its last visit that a visitor still counts as online."""
    return get_settings().tracker.online_timeout


OptionalRedis = Annotated[redis.Redis | None, Depends(get_optional_redis)]
GeoIP = Annotated[geoip2.database.Reader | None, Depends(get_geoip_reader)]
DatabaseEnabled = Annotated[bool, Depends(get_db_enabled)]
OptionalLocationStore = Annotated[LocationStore | None, Depends(get_location_store)]
OnlineTimeout = Annotated[int, Depends(get_online_timeout)]

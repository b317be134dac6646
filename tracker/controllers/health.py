from fastapi import APIRouter
from typing import Any, Dict

from tracker.db.migrations import get_current_version, get_migration_history
from tracker.dependencies import DatabaseEnabled, GeoIP, OptionalRedis
from tracker.errors import ServiceUnavailableError

router = APIRouter()


@router.get("/health", name="health")
async def health(redis: OptionalRedis, geoip: GeoIP, db_enabled: DatabaseEnabled) -> Dict[str, str]:
    redis_status = "disconnected"
    if redis:
        try:
            await redis.ping()
            redis_status = "healthy"
        except Exception:
            redis_status = "unhealthy"

    return {
        "status": "ok",
        "redis": redis_status,
        "database": "enabled" if db_enabled else "disabled",
        "geoip": "loaded" if geoip else "missing",
    }


@router.get("/health/schema", name="health.schema")
async def schema(db_enabled: DatabaseEnabled) -> Dict[str, Any]:
    """Schema version of the visits database and the migrations applied."""
    if not db_enabled:
        raise ServiceUnavailableError(detail="Visits database is disabled")
    return {
        "current_version": await get_current_version(),
        "migrations": await get_migration_history(),
    }

import logging
from datetime import UTC, datetime, timedelta

import psycopg
from fastapi import APIRouter, Query

from tracker.db import visits as visits_db
from tracker.dependencies import DatabaseEnabled, OnlineTimeout, OptionalLocationStore, OptionalRedis
from tracker.errors import BadRequestError, DatabaseError, NotFoundError, ServiceUnavailableError
from tracker.models.visits import LastVisitResponse, VisitsResponse
from tracker.producers.visit_producer import fetch_recent_visits

router = APIRouter(tags=["visits"])

_logger = logging.getLogger(__name__)


def _parse_before(before: str | None) -> datetime | None:
    if not before:
        return None
    try:
        parsed = datetime.fromisoformat(before.replace("Z", "+00:00"))
    except ValueError:
        raise BadRequestError(detail="before must be an ISO8601 timestamp", before=before)
    # Naive timestamps are taken as UTC
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


@router.get("/visits", response_model=VisitsResponse, name="visits.index")
async def get_visits(
    redis: OptionalRedis,
    db_enabled: DatabaseEnabled,
    online_timeout: OnlineTimeout,
    ip_address: str | None = Query(None, description="Only visits from this address"),
    before: str | None = Query(None, description="Only visits before this ISO8601 time"),
    online: bool = Query(False, description="Only visits within the online timeout"),
    limit: int = Query(100, ge=1, le=1000, description="Maximum number of visits to return"),
) -> dict:
    before_ts = _parse_before(before)
    since = datetime.now(UTC) - timedelta(minutes=online_timeout) if online else None

    if db_enabled:
        try:
            visits = await visits_db.fetch_visits(
                ip_address=ip_address, before=before_ts, since=since, limit=limit
            )
        except psycopg.Error as e:
            _logger.exception("Failed to fetch visits")
            raise DatabaseError(detail=f"Failed to fetch visits: {e}")
    elif redis is not None:
        visits = await fetch_recent_visits(
            redis, limit, ip_address=ip_address, before=before_ts, since=since
        )
    else:
        raise ServiceUnavailableError(detail="No visit store available")

    _logger.debug("visits.fetch limit=%d online=%s count=%d", limit, online, len(visits))
    return {"count": len(visits), "recent_visits": visits}


@router.get("/visits/last/{ip_address}", response_model=LastVisitResponse, name="visits.last")
async def get_last_visit(
    ip_address: str,
    redis: OptionalRedis,
    db_enabled: DatabaseEnabled,
    location_store: OptionalLocationStore,
) -> dict:
    """Most recent visit from ``ip_address``, with its stored location."""
    if db_enabled:
        try:
            entry = await visits_db.fetch_last_visit(ip_address)
        except psycopg.Error as e:
            _logger.exception("Failed to fetch last visit")
            raise DatabaseError(detail=f"Failed to fetch last visit: {e}")
    elif redis is not None:
        found = await fetch_recent_visits(redis, 1, ip_address=ip_address)
        entry = found[0] if found else None
    else:
        raise ServiceUnavailableError(detail="No visit store available")

    if entry is None:
        raise NotFoundError(detail="No visit recorded for this address", ip_address=ip_address)

    location = None
    geo_location_id = entry["visit"].get("geo_location_id")
    if geo_location_id is not None and location_store is not None:
        location = await location_store.get(geo_location_id)
    return {**entry, "location": location}

"""Runs the tracking pipeline for one request and hands the visit to a recorder."""

from datetime import datetime, timezone
import json
import logging
from typing import Any

import redis.asyncio as redis

from tracker.bus import EventBus
from tracker.geoip import enrich
from tracker.models.visits import AgentInfo, RequestContext, TrackingConfig, VisitRecord
from tracker.ports import AgentClassifier, GeoDatabase, LocationStore, VisitRecorder
from tracker.referrer import resolve_referrer
from tracker.trackability import first_failed_check

logger = logging.getLogger(__name__)

VISIT_LOG_KEY = "visit_log"


def build_visit_record(
    ctx: RequestContext,
    agent: AgentInfo,
    geo_location_id: int | None,
    site_root_url: str,
) -> VisitRecord:
    return VisitRecord(
        session_id=ctx.session_id,
        ip_address=ctx.client_ip,
        access_type=ctx.method,
        geo_location_id=geo_location_id,
        request_uri=ctx.path,
        query=ctx.query_string,
        referrer_uri=resolve_referrer(ctx.headers, site_root_url),
        user_agent=ctx.user_agent,
        headers=ctx.headers,
        browser=agent.browser_name,
        platform=agent.platform,
        device=agent.device,
        device_kind=agent.device_kind,
    )


async def track_request(
    ctx: RequestContext,
    *,
    config: TrackingConfig,
    classifier: AgentClassifier,
    geoip_reader: GeoDatabase | None,
    location_store: LocationStore,
    recorder: VisitRecorder,
    event_bus: EventBus | None = None,
) -> VisitRecord | None:
    """Record ``ctx`` as a visit if it is trackable.

    Returns the persisted record, or None when the request was skipped.
    """
    agent = classifier.classify(ctx.user_agent, ctx.headers)
    failed = first_failed_check(ctx, agent, config)
    if failed is not None:
        logger.debug("tracker.skip check=%s ip=%s path=%s route=%s",
                      failed, ctx.client_ip, ctx.path, ctx.route_name)
        return None

    geo_location_id = None
    if geoip_reader is not None:
        geo_location_id = await enrich(ctx.client_ip, geoip_reader, location_store)

    record = build_visit_record(ctx, agent, geo_location_id, config.site_root_url)
    await recorder.persist(record)
    logger.debug("tracker.visit ip=%s path=%s geo_location_id=%s",
                 record.ip_address, record.request_uri, geo_location_id)

    if event_bus:
        await event_bus.publish({
            "type": "visit",
            "visit": record.model_dump(),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        })
    return record


class RedisVisitRecorder:
    """Keeps the most recent visits in a capped Redis list."""

    def __init__(self, redis_client: redis.Redis, max_entries: int = 1000):
        self.redis_client = redis_client
        self.max_entries = max_entries

    async def persist(self, record: VisitRecord) -> None:
        entry = {
            "visit": record.model_dump(),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        await self.redis_client.lpush(VISIT_LOG_KEY, json.dumps(entry))
        await self.redis_client.ltrim(VISIT_LOG_KEY, 0, self.max_entries - 1)


class CompositeVisitRecorder:
    """Persists each visit with every configured recorder, in order."""

    def __init__(self, recorders: list[VisitRecorder]):
        self.recorders = recorders

    async def persist(self, record: VisitRecord) -> None:
        for recorder in self.recorders:
            await recorder.persist(record)


async def fetch_recent_visits(
    redis_client: redis.Redis,
    limit: int = 100,
    *,
    ip_address: str | None = None,
    before: datetime | None = None,
    since: datetime | None = None,
) -> list[dict[str, Any]]:
    """Read visits from the Redis log, newest first.

    Filters mirror ``tracker.db.visits.fetch_visits``. Filtering scans the
    whole log, which is capped.
    """
    if ip_address is None and before is None and since is None:
        entries = await redis_client.lrange(VISIT_LOG_KEY, 0, limit - 1)
        return [json.loads(e) for e in entries]

    visits: list[dict[str, Any]] = []
    for raw in await redis_client.lrange(VISIT_LOG_KEY, 0, -1):
        entry = json.loads(raw)
        if ip_address is not None and entry["visit"]["ip_address"] != ip_address:
            continue
        timestamp = datetime.fromisoformat(entry["timestamp"])
        if before is not None and timestamp >= before:
            continue
        if since is not None and timestamp < since:
            # Entries are newest first, so nothing further can match.
            break
        visits.append(entry)
        if len(visits) >= limit:
            break
    return visits

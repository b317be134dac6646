"""Lifespan management for the tracker application.

Opens the shared resources the tracking middleware needs on startup
(Redis, the GeoIP reader, the visits database) and closes them on shutdown.
"""

import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

import geoip2.database
import redis.asyncio as redis
from fastapi import FastAPI
from redis.asyncio import BlockingConnectionPool as RedisConnectionPool

from tracker import state
from tracker.agents import UserAgentClassifier
from tracker.bus import EventBus
from tracker.config import TrackerSettings, get_settings
from tracker.db import core as db
from tracker.db.locations import PostgresLocationStore
from tracker.db.visits import PostgresVisitRecorder
from tracker.matching import is_valid_ip_range
from tracker.models.visits import TrackingConfig
from tracker.ports import AgentClassifier, LocationStore, VisitRecorder
from tracker.producers.visit_producer import CompositeVisitRecorder, RedisVisitRecorder
from tracker.store import InMemoryLocationStore

logger = logging.getLogger(__name__)


@dataclass
class LifespanResources:
    """Container for resources initialized during lifespan."""

    redis_client: redis.Redis | None = None
    event_bus: EventBus | None = None
    geoip_reader: geoip2.database.Reader | None = None
    db_enabled: bool = False
    tracking_config: TrackingConfig | None = None
    agent_classifier: AgentClassifier | None = None
    location_store: LocationStore | None = None
    visit_recorder: VisitRecorder | None = None


async def init_redis() -> redis.Redis:
    """Initialize Redis connection with connection pool."""
    settings = get_settings()

    redis_pool = RedisConnectionPool(
        host=settings.redis.host,
        port=settings.redis.port,
        password=settings.redis.password if settings.redis.password else None,
        max_connections=settings.redis.max_connections,
        timeout=settings.redis.pool_timeout_sec,
        health_check_interval=settings.redis.health_check_interval,
        socket_timeout=settings.redis.socket_timeout,
        socket_connect_timeout=settings.redis.socket_connect_timeout,
        retry_on_timeout=settings.redis.retry_on_timeout,
    )

    candidate_client = redis.Redis(connection_pool=redis_pool, decode_responses=True)
    if hasattr(candidate_client, "__await__"):
        return await candidate_client
    return candidate_client


def init_geoip() -> geoip2.database.Reader | None:
    """Open the GeoIP reader if the database file exists."""
    geoip_db_path = get_settings().geoip.db_path

    if os.path.exists(geoip_db_path):
        return geoip2.database.Reader(geoip_db_path)
    logger.warning("GeoIP database not found at %s, visits will have no location", geoip_db_path)
    return None


async def init_database() -> bool:
    """Open the visits database pool if enabled.

    Returns:
        True if the database is available.
    """
    if not get_settings().features.visits_db:
        return False
    try:
        await db.init_pool()
        return True
    except Exception as e:
        logger.warning("Failed to initialize visits database: %s", e)
    return False


def warn_invalid_ip_ranges(settings: TrackerSettings) -> list[str]:
    """Log excluded IP ranges that can never match."""
    invalid = [r for r in settings.excluded_ip_ranges if not is_valid_ip_range(r)]
    for range_spec in invalid:
        logger.warning("Ignoring invalid excluded IP range %r", range_spec)
    return invalid


def build_visit_recorder(
    redis_client: redis.Redis | None,
    db_enabled: bool,
) -> VisitRecorder:
    settings = get_settings()
    recorders: list[VisitRecorder] = []
    if db_enabled:
        recorders.append(PostgresVisitRecorder())
    if redis_client is not None and settings.features.redis_visit_log:
        recorders.append(RedisVisitRecorder(redis_client, settings.redis.visit_log_size))
    return CompositeVisitRecorder(recorders)


async def setup_resources(
    enable_geoip: bool = True,
    enable_db: bool = True,
) -> LifespanResources:
    """Set up all shared resources and publish them on ``tracker.state``."""
    settings = get_settings()
    resources = LifespanResources()

    resources.redis_client = await init_redis()
    resources.event_bus = EventBus(resources.redis_client)

    if enable_geoip:
        resources.geoip_reader = init_geoip()

    if enable_db:
        resources.db_enabled = await init_database()

    warn_invalid_ip_ranges(settings.tracker)
    resources.tracking_config = settings.tracker.to_tracking_config()
    resources.agent_classifier = UserAgentClassifier()
    resources.location_store = (
        PostgresLocationStore() if resources.db_enabled else InMemoryLocationStore()
    )
    resources.visit_recorder = build_visit_recorder(resources.redis_client, resources.db_enabled)

    state.redis_client = resources.redis_client
    state.event_bus = resources.event_bus
    state.geoip_reader = resources.geoip_reader
    state.db_enabled = resources.db_enabled
    state.tracking_config = resources.tracking_config
    state.agent_classifier = resources.agent_classifier
    state.location_store = resources.location_store
    state.visit_recorder = resources.visit_recorder

    return resources


async def cleanup_resources(resources: LifespanResources) -> None:
    """Clean up all resources on shutdown."""
    if resources.db_enabled:
        try:
            await db.close_pool()
        except Exception as e:
            logger.warning("Failed to close visits database pool: %s", e)

    if resources.redis_client:
        aclose = getattr(resources.redis_client, "aclose", None)
        if callable(aclose):
            await aclose()
        else:
            close = getattr(resources.redis_client, "close", None)
            if callable(close):
                close()

    if resources.geoip_reader:
        resources.geoip_reader.close()

    state.redis_client = None
    state.event_bus = None
    state.geoip_reader = None
    state.db_enabled = False
    state.tracking_config = None
    state.agent_classifier = None
    state.location_store = None
    state.visit_recorder = None


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    resources = await setup_resources()
    try:
        yield
    finally:
        await cleanup_resources(resources)

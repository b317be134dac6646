from typing import Optional
import redis.asyncio as redis
import geoip2.database
from tracker.bus import EventBus
from tracker.models.visits import TrackingConfig
from tracker.ports import AgentClassifier, LocationStore, VisitRecorder

# Global runtime state initialized in main.lifespan
redis_client: Optional[redis.Redis] = None
event_bus: Optional[EventBus] = None
geoip_reader: Optional[geoip2.database.Reader] = None
db_enabled: bool = False

# Tracking pipeline collaborators
tracking_config: Optional[TrackingConfig] = None
agent_classifier: Optional[AgentClassifier] = None
location_store: Optional[LocationStore] = None
visit_recorder: Optional[VisitRecorder] = None

import logging

logging.basicConfig(
    level=logging.INFO,
    format="[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s",
)

from fastapi import FastAPI
from prometheus_fastapi_instrumentator import Instrumentator

from tracker.config import get_settings
from tracker.controllers.health import router as health_router
from tracker.controllers.visits import router as visits_router
from tracker.errors import register_exception_handlers
from tracker.lifespan import lifespan
from tracker.middleware import VisitTrackingMiddleware

settings = get_settings()

if settings.debug.tracker:
    logging.getLogger("tracker").setLevel(logging.DEBUG)
if settings.debug.request:
    logging.getLogger("tracker.http").setLevel(logging.DEBUG)

app = FastAPI(title="Visit Tracker", version="1.0.0", lifespan=lifespan)

app.add_middleware(VisitTrackingMiddleware, trust_forwarded=settings.tracker.trust_forwarded)
register_exception_handlers(app)

app.include_router(health_router)
app.include_router(visits_router)

Instrumentator().instrument(app).expose(app, endpoint="/metrics", include_in_schema=False)

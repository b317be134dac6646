import logging
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from tracker import state
from tracker.models.visits import RequestContext
from tracker.producers.visit_producer import track_request

SESSION_COOKIE = "tracker_session"


def client_ip_from(request: Request, trust_forwarded: bool = True) -> str:
    """Client address of ``request``.

    With ``trust_forwarded`` the first x-forwarded-for entry wins. Any client
    can set that header, so only enable it behind a proxy that overwrites it.
    """
    peer = request.client.host if request.client else ""
    if not trust_forwarded:
        return peer
    client_ip = request.headers.get("x-forwarded-for", peer)
    if "," in client_ip:
        client_ip = client_ip.split(",")[0].strip()
    return client_ip


def normalize_path(url_path: str) -> str:
    """"/blog/post/" -> "blog/post"; the root path stays "/"."""
    return url_path.strip("/") or "/"


def route_name_from(request: Request) -> str | None:
    # Only set once the router has matched the request.
    route = request.scope.get("route")
    return getattr(route, "name", None) or None


def collect_headers(request: Request) -> dict[str, list[str]]:
    headers: dict[str, list[str]] = {}
    for name, value in request.headers.items():
        headers.setdefault(name.lower(), []).append(value)
    return headers


def build_request_context(
    request: Request,
    session_id: str,
    trust_forwarded: bool = True,
) -> RequestContext:
    return RequestContext(
        client_ip=client_ip_from(request, trust_forwarded),
        method=request.method,
        path=normalize_path(request.url.path),
        query_string=request.url.query or None,
        route_name=route_name_from(request),
        user_agent=request.headers.get("user-agent", ""),
        headers=collect_headers(request),
        session_id=session_id,
    )


class VisitTrackingMiddleware(BaseHTTPMiddleware):
    """Records a visit for every trackable request after it has been routed."""

    def __init__(self, app, logger_name: str = "tracker.http", trust_forwarded: bool = True):
        super().__init__(app)
        self._trust_forwarded = trust_forwarded
        self._logger = logging.getLogger(logger_name)

    async def dispatch(self, request: Request, call_next) -> Response:
        response: Response = await call_next(request)

        session_id = request.cookies.get(SESSION_COOKIE)
        new_session = not session_id
        if new_session:
            session_id = uuid.uuid4().hex

        if state.tracking_config is not None:
            ctx = build_request_context(request, session_id, self._trust_forwarded)
            try:
                await track_request(
                    ctx,
                    config=state.tracking_config,
                    classifier=state.agent_classifier,
                    geoip_reader=state.geoip_reader,
                    location_store=state.location_store,
                    recorder=state.visit_recorder,
                    event_bus=state.event_bus,
                )
            except Exception as e:
                self._logger.exception("tracker.error method=%s path=%s client=%s err=%r",
                                       ctx.method, ctx.path, ctx.client_ip, e)

        if new_session:
            response.set_cookie(SESSION_COOKIE, session_id, httponly=True, samesite="lax")
        return response

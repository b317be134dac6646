"""Value types shared by the tracking pipeline and the visits API."""

from dataclasses import dataclass, field

from pydantic import BaseModel, ConfigDict


@dataclass(frozen=True)
class TrackingConfig:
    """Tracking rules, frozen once per process from TrackerSettings."""

    tracking_enabled: bool = True
    excluded_ip_ranges: tuple[str, ...] = ()
    track_robots: bool = False
    excluded_route_patterns: tuple[str, ...] = ()
    excluded_path_patterns: tuple[str, ...] = ()
    site_root_url: str = ""


@dataclass(frozen=True)
class RequestContext:
    """Everything the tracker needs to know about one request.

    Header names are lower-case; each maps to all of its values.
    """

    client_ip: str
    method: str
    path: str
    user_agent: str = ""
    session_id: str = ""
    query_string: str | None = None
    route_name: str | None = None
    headers: dict[str, list[str]] = field(default_factory=dict)


@dataclass(frozen=True)
class AgentInfo:
    """Classification of a user agent."""

    is_robot: bool = False
    browser_name: str = ""
    platform: str = ""
    device: str = ""
    device_kind: str = "other"


class GeoLocation(BaseModel):
    """A point resolved from the GeoIP database.

    Locations are identified by their exact (latitude, longitude) pair.
    """

    model_config = ConfigDict(frozen=True)

    latitude: float
    longitude: float
    region_code: str | None = None
    city: str | None = None
    postal_code: str | None = None
    country_iso_code_2: str | None = None

    @property
    def coordinates(self) -> tuple[float, float]:
        return (self.latitude, self.longitude)


class VisitRecord(BaseModel):
    """A single tracked visit, handed to a VisitRecorder for persistence."""

    model_config = ConfigDict(frozen=True)

    session_id: str
    ip_address: str
    access_type: str
    geo_location_id: int | None = None
    request_uri: str
    query: str | None = None
    referrer_uri: str | None = None
    user_agent: str
    headers: dict[str, list[str]]
    browser: str
    platform: str = ""
    device: str = ""
    device_kind: str = "other"


class RecentVisit(BaseModel):
    """A visit as returned by the /visits endpoint."""

    visit: VisitRecord
    timestamp: str


class VisitsResponse(BaseModel):
    """Response model for the /visits endpoint."""

    count: int
    recent_visits: list[RecentVisit]


class LastVisitResponse(BaseModel):
    """Most recent visit of one address, with its resolved location."""

    visit: VisitRecord
    timestamp: str
    location: GeoLocation | None = None

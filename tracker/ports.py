"""Interfaces of the collaborators the tracking pipeline depends on.

Concrete implementations live in ``tracker.agents``, ``tracker.store``,
``tracker.db`` and ``tracker.producers``; tests substitute fakes.
"""

from collections.abc import Mapping
from typing import Any, Protocol

from tracker.models.visits import AgentInfo, GeoLocation, VisitRecord


class GeoDatabase(Protocol):
    """Read-only city database, e.g. ``geoip2.database.Reader``.

    ``city`` raises ``geoip2.errors.AddressNotFoundError`` for unknown
    addresses and ``maxminddb.errors.InvalidDatabaseError`` for a corrupt
    database file.
    """

    def city(self, ip_address: str) -> Any: ...


class AgentClassifier(Protocol):
    def classify(self, user_agent: str, headers: Mapping[str, Any]) -> AgentInfo: ...


class LocationStore(Protocol):
    """Stores GeoLocations, at most one per exact (latitude, longitude) pair."""

    async def find_by_coordinates(self, latitude: float, longitude: float) -> int | None: ...

    async def insert(self, location: GeoLocation) -> int:
        """Insert ``location`` and return its id.

        Raises DuplicateLocationError if its coordinates are already stored.
        """
        ...

    async def get(self, location_id: int) -> GeoLocation | None: ...

class VisitRecorder(Protocol):
    async def persist(self, record: VisitRecord) -> None: ...

"""In-process location store, used when the visits database is disabled."""

from tracker.errors import DuplicateLocationError
from tracker.models.visits import GeoLocation


class InMemoryLocationStore:
    def __init__(self) -> None:
        self._ids: dict[tuple[float, float], int] = {}
        self._locations: dict[int, GeoLocation] = {}

    async def find_by_coordinates(self, latitude: float, longitude: float) -> int | None:
        return self._ids.get((latitude, longitude))

    async def insert(self, location: GeoLocation) -> int:
        key = location.coordinates
        if key in self._ids:
            raise DuplicateLocationError(latitude=key[0], longitude=key[1])
        location_id = len(self._locations) + 1
        self._ids[key] = location_id
        self._locations[location_id] = location
        return location_id

    async def get(self, location_id: int) -> GeoLocation | None:
        return self._locations.get(location_id)

    def __len__(self) -> int:
        return len(self._locations)

"""GeoIP enrichment of tracked visits.

Client addresses are resolved against a local MaxMind City database and the
resulting location is stored once per exact coordinate pair.
"""

import logging
from typing import Any

import geoip2.errors
from maxminddb.errors import InvalidDatabaseError

from tracker.errors import DuplicateLocationError, LocationStoreError
from tracker.models.visits import GeoLocation
from tracker.ports import GeoDatabase, LocationStore

logger = logging.getLogger(__name__)


def extract_location(response: Any) -> GeoLocation | None:
    """Build a GeoLocation from a ``geoip2.models.City`` response.

    Returns None when the response carries no coordinates.
    """
    latitude = response.location.latitude
    longitude = response.location.longitude
    if latitude is None or longitude is None:
        return None
    return GeoLocation(
        latitude=latitude,
        longitude=longitude,
        region_code=response.subdivisions.most_specific.iso_code,
        city=response.city.name,
        postal_code=response.postal.code,
        country_iso_code_2=response.country.iso_code,
    )


def lookup_location(reader: GeoDatabase, ip: str) -> GeoLocation | None:
    try:
        response = reader.city(ip)
    except geoip2.errors.AddressNotFoundError:
        logger.debug("geoip.lookup not_found ip=%s", ip)
        return None
    except InvalidDatabaseError as e:
        logger.debug("geoip.lookup invalid_database ip=%s err=%s", ip, e)
        return None
    return extract_location(response)


async def find_or_create_location(store: LocationStore, location: GeoLocation) -> int:
    """Return the id of the stored location with the same coordinates.

    The location is inserted when absent. A concurrent insert of the same
    pair surfaces as DuplicateLocationError and is resolved by re-reading.
    """
    latitude, longitude = location.coordinates
    existing = await store.find_by_coordinates(latitude, longitude)
    if existing is not None:
        return existing

    try:
        return await store.insert(location)
    except DuplicateLocationError:
        logger.debug("geoip.location insert_race lat=%s lon=%s", latitude, longitude)

    existing = await store.find_by_coordinates(latitude, longitude)
    if existing is None:
        raise LocationStoreError(
            "Location reported as duplicate but could not be re-read",
            latitude=latitude,
            longitude=longitude,
        )
    return existing


async def enrich(ip: str, reader: GeoDatabase, store: LocationStore) -> int | None:
    """Resolve ``ip`` to a stored location id, or None if it has no location."""
    location = lookup_location(reader, ip)
    if location is None:
        return None
    return await find_or_create_location(store, location)

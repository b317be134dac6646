"""PostgreSQL location store keyed by exact coordinates."""

from psycopg import errors as pg_errors

from tracker.db.core import get_connection
from tracker.errors import DuplicateLocationError
from tracker.models.visits import GeoLocation


class PostgresLocationStore:
    """Relies on the UNIQUE (latitude, longitude) constraint of geo_locations."""

    async def find_by_coordinates(self, latitude: float, longitude: float) -> int | None:
        async with get_connection() as conn:
            cur = await conn.execute(
                "SELECT id FROM geo_locations WHERE latitude = %s AND longitude = %s",
                (latitude, longitude),
            )
            row = await cur.fetchone()
            return row[0] if row else None

    async def insert(self, location: GeoLocation) -> int:
        async with get_connection() as conn:
            try:
                cur = await conn.execute(
                    """
                    INSERT INTO geo_locations
                        (latitude, longitude, region_code, city, postal_code, country_iso_code_2)
                    VALUES (%s, %s, %s, %s, %s, %s)
                    RETURNING id
                    """,
                    (
                        location.latitude,
                        location.longitude,
                        location.region_code,
                        location.city,
                        location.postal_code,
                        location.country_iso_code_2,
                    ),
                )
            except pg_errors.UniqueViolation as e:
                raise DuplicateLocationError(
                    latitude=location.latitude,
                    longitude=location.longitude,
                ) from e
            row = await cur.fetchone()
            return row[0]

    async def get(self, location_id: int) -> GeoLocation | None:
        async with get_connection() as conn:
            cur = await conn.execute(
                """
                SELECT latitude, longitude, region_code, city, postal_code, country_iso_code_2
                FROM geo_locations WHERE id = %s
                """,
                (location_id,),
            )
            row = await cur.fetchone()
            if row is None:
                return None
            latitude, longitude, region_code, city, postal_code, country = row
            return GeoLocation(
                latitude=latitude,
                longitude=longitude,
                region_code=region_code,
                city=city,
                postal_code=postal_code,
                country_iso_code_2=country,
            )

"""Tests for GeoIP enrichment and coordinate deduplication."""

import asyncio

import geoip2.errors
import pytest
from maxminddb.errors import InvalidDatabaseError

from conftest import FakeReader, make_city
from tracker.errors import DuplicateLocationError, LocationStoreError
from tracker.geoip import enrich, extract_location, find_or_create_location
from tracker.models.visits import GeoLocation
from tracker.store import InMemoryLocationStore


class RacingLocationStore(InMemoryLocationStore):
    """Yields between lookup and return so concurrent callers all miss."""

    def __init__(self):
        super().__init__()
        self.insert_attempts = 0

    async def find_by_coordinates(self, latitude, longitude):
        found = await super().find_by_coordinates(latitude, longitude)
        await asyncio.sleep(0)
        return found

    async def insert(self, location):
        self.insert_attempts += 1
        return await super().insert(location)


class TestExtractLocation:

    def test_extracts_all_fields(self):
        location = extract_location(make_city())
        assert location == GeoLocation(
            latitude=52.52,
            longitude=13.405,
            region_code="BE",
            city="Berlin",
            postal_code="10117",
            country_iso_code_2="DE",
        )

    def test_optional_fields_may_be_missing(self):
        location = extract_location(make_city(city=None, region=None, postal=None, country=None))
        assert location.coordinates == (52.52, 13.405)
        assert location.city is None
        assert location.country_iso_code_2 is None

    def test_no_coordinates_means_no_location(self):
        assert extract_location(make_city(latitude=None, longitude=None)) is None


class TestEnrich:

    @pytest.mark.asyncio
    async def test_creates_location_on_first_sighting(self):
        store = InMemoryLocationStore()
        location_id = await enrich("203.0.113.7", FakeReader(), store)
        assert location_id == 1
        assert (await store.get(1)).city == "Berlin"

    @pytest.mark.asyncio
    async def test_reuses_location_with_same_coordinates(self):
        store = InMemoryLocationStore()
        first = await enrich("203.0.113.7", FakeReader(), store)
        second = await enrich("203.0.113.8", FakeReader(make_city(city="Mitte")), store)
        assert first == second
        assert len(store) == 1

    @pytest.mark.asyncio
    async def test_different_coordinates_create_new_location(self):
        store = InMemoryLocationStore()
        first = await enrich("203.0.113.7", FakeReader(), store)
        second = await enrich("198.51.100.1", FakeReader(make_city(latitude=48.137, longitude=11.575)), store)
        assert first != second
        assert len(store) == 2

    @pytest.mark.asyncio
    async def test_coordinates_compared_exactly(self):
        store = InMemoryLocationStore()
        await enrich("203.0.113.7", FakeReader(make_city(latitude=52.52)), store)
        await enrich("203.0.113.8", FakeReader(make_city(latitude=52.5200001)), store)
        assert len(store) == 2

    @pytest.mark.asyncio
    async def test_address_not_found_yields_no_location(self):
        store = InMemoryLocationStore()
        reader = FakeReader(error=geoip2.errors.AddressNotFoundError("not in database"))
        assert await enrich("10.0.0.1", reader, store) is None
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_corrupt_database_yields_no_location(self):
        reader = FakeReader(error=InvalidDatabaseError("bad metadata"))
        assert await enrich("203.0.113.7", reader, InMemoryLocationStore()) is None

    @pytest.mark.asyncio
    async def test_other_errors_propagate(self):
        reader = FakeReader(error=OSError("read failed"))
        with pytest.raises(OSError):
            await enrich("203.0.113.7", reader, InMemoryLocationStore())

    @pytest.mark.asyncio
    async def test_missing_coordinates_skip_store(self):
        store = InMemoryLocationStore()
        reader = FakeReader(make_city(latitude=None, longitude=None))
        assert await enrich("203.0.113.7", reader, store) is None
        assert len(store) == 0


class TestFindOrCreateLocation:

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_record(self):
        store = RacingLocationStore()
        reader = FakeReader()

        results = await asyncio.gather(*(enrich("203.0.113.7", reader, store) for _ in range(10)))

        assert len(store) == 1
        assert set(results) == {1}
        assert store.insert_attempts == 10

    @pytest.mark.asyncio
    async def test_duplicate_insert_refetches(self):
        location = GeoLocation(latitude=1.5, longitude=2.5)

        class LostRaceStore:
            def __init__(self):
                self.lookups = 0

            async def find_by_coordinates(self, latitude, longitude):
                self.lookups += 1
                return None if self.lookups == 1 else 42

            async def insert(self, location):
                raise DuplicateLocationError(latitude=1.5, longitude=2.5)

        store = LostRaceStore()
        assert await find_or_create_location(store, location) == 42
        assert store.lookups == 2

    @pytest.mark.asyncio
    async def test_duplicate_without_existing_record_raises(self):
        class BrokenStore:
            async def find_by_coordinates(self, latitude, longitude):
                return None

            async def insert(self, location):
                raise DuplicateLocationError()

        with pytest.raises(LocationStoreError) as exc_info:
            await find_or_create_location(BrokenStore(), GeoLocation(latitude=1.0, longitude=2.0))
        assert exc_info.value.context == {"latitude": 1.0, "longitude": 2.0}

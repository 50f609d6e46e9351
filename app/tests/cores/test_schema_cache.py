# python -m pytest app/tests/cores/test_schema_cache.py -v

"""Tests for the read-through schema/index cache."""

import asyncio

import pytest

from app.core.errors import NotFoundError
from app.core.schema_cache import SchemaCacheGateway, indexes_cache_key, schema_cache_key
from app.tests.fakes import FakeMetadataStore, simple_schema, users_indexes, users_schema


def _gateway(store, cache):
    return SchemaCacheGateway(store, cache, db_name="testdb", ttl_seconds=60)


def test_cache_keys_include_database_and_table():
    assert schema_cache_key("testdb", "users") == "table_schema:testdb:users"
    assert indexes_cache_key("testdb", "users") == "table_indexes:testdb:users"


@pytest.mark.asyncio
async def test_schema_round_trips_through_cache(users_store, cache):
    gateway = _gateway(users_store, cache)

    fresh, first_hit = await gateway.resolve_schema("users")
    cached, second_hit = await gateway.resolve_schema("users")

    assert (first_hit, second_hit) == (False, True)
    assert cached == fresh == users_schema()
    assert users_store.count("describe_table") == 1


@pytest.mark.asyncio
async def test_indexes_round_trip_through_cache(users_store, cache):
    gateway = _gateway(users_store, cache)

    await gateway.resolve_indexes("users")
    cached, hit = await gateway.resolve_indexes("users")

    assert hit
    assert cached == users_indexes()
    assert users_store.count("list_indexes") == 1


@pytest.mark.asyncio
async def test_empty_index_list_is_cached(cache):
    store = FakeMetadataStore(schemas={"logs": simple_schema("logs")})
    gateway = _gateway(store, cache)

    await gateway.resolve_indexes("logs")
    indexes, hit = await gateway.resolve_indexes("logs")

    assert indexes == [] and hit


@pytest.mark.asyncio
async def test_fan_out_with_one_cached_table_fetches_only_the_others(cache):
    store = FakeMetadataStore(schemas={name: simple_schema(name) for name in ("t1", "t2", "t3")})
    gateway = _gateway(store, cache)
    await gateway.resolve_schema("t1")
    await gateway.resolve_indexes("t1")
    store.calls.clear()

    resolved = await gateway.resolve_tables(["t1", "t2", "t3"])

    assert resolved.all_hit is False
    assert [schema.table_name for schema in resolved.schemas] == ["t1", "t2", "t3"]
    assert store.count("describe_table") == 2
    assert store.count("list_indexes") == 2
    assert ("describe_table", "t1") not in store.calls


@pytest.mark.asyncio
async def test_fan_out_reports_hit_when_everything_is_cached(users_store, cache):
    gateway = _gateway(users_store, cache)
    await gateway.resolve_tables(["users"])

    resolved = await gateway.resolve_tables(["users"])

    assert resolved.all_hit is True
    assert resolved.indexes == users_indexes()


@pytest.mark.asyncio
async def test_missing_table_fails_the_whole_fan_out(users_store, cache):
    gateway = _gateway(users_store, cache)

    with pytest.raises(NotFoundError):
        await gateway.resolve_tables(["users", "ghosts"])


@pytest.mark.asyncio
async def test_undecodable_entry_is_treated_as_a_miss(users_store, cache):
    await cache.set_with_ttl(schema_cache_key("testdb", "users"), b"not json", 60)
    gateway = _gateway(users_store, cache)

    schema, hit = await gateway.resolve_schema("users")

    assert not hit
    assert schema == users_schema()


@pytest.mark.asyncio
async def test_invalidate_drops_both_entries(users_store, cache):
    gateway = _gateway(users_store, cache)
    await gateway.resolve_tables(["users"])

    await gateway.invalidate("users")

    assert await cache.get(schema_cache_key("testdb", "users")) is None
    assert await cache.get(indexes_cache_key("testdb", "users")) is None
    _, hit = await gateway.resolve_schema("users")
    assert not hit


class GatedMetadataStore(FakeMetadataStore):
    """Holds every lookup until ``expected`` lookups are in flight at once."""

    def __init__(self, expected, **kwargs):
        super().__init__(**kwargs)
        self.expected = expected
        self.in_flight = 0
        self.peak = 0
        self.all_started = asyncio.Event()

    async def _hold(self):
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        if self.in_flight >= self.expected:
            self.all_started.set()
        # A sequential fan-out never reaches ``expected`` and times out here.
        await asyncio.wait_for(self.all_started.wait(), timeout=1.0)
        self.in_flight -= 1

    async def describe_table(self, table_name):
        await self._hold()
        return await super().describe_table(table_name)

    async def list_indexes(self, table_name):
        await self._hold()
        return await super().list_indexes(table_name)


@pytest.mark.asyncio
async def test_table_lookups_run_concurrently(cache):
    names = ["t1", "t2", "t3"]
    store = GatedMetadataStore(
        expected=2 * len(names),
        schemas={name: simple_schema(name) for name in names},
    )
    gateway = _gateway(store, cache)

    resolved = await gateway.resolve_tables(names)

    assert store.peak == 6
    assert [schema.table_name for schema in resolved.schemas] == names
    assert resolved.all_hit is False

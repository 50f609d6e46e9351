"""
Read-through cache in front of the MetadataStore.

Keys:
- table_schema:<db>:<table>   -> TableSchema JSON
- table_indexes:<db>:<table>  -> JSON list of IndexDescriptor

Every lookup reports whether it was served from the cache, so the caller can
fold the per-lookup results into one "all hit" flag.
"""
import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple, TypeVar

from pydantic import TypeAdapter, ValidationError

from app.core.metadata_store import MetadataStore
from app.core.models import IndexDescriptor, TableSchema
from app.core.result_cache import ResultCache
from app.smart_logger import SmartLogger

T = TypeVar("T")

_INDEX_LIST = TypeAdapter(List[IndexDescriptor])


def schema_cache_key(db_name: str, table_name: str) -> str:
    return f"table_schema:{db_name}:{table_name}"


def indexes_cache_key(db_name: str, table_name: str) -> str:
    return f"table_indexes:{db_name}:{table_name}"


@dataclass(frozen=True)
class ResolvedTables:
    schemas: List[TableSchema]
    indexes: List[IndexDescriptor]
    all_hit: bool


class SchemaCacheGateway:
    def __init__(self, store: MetadataStore, cache: ResultCache, *, db_name: str, ttl_seconds: int = 3600):
        self.store = store
        self.cache = cache
        self.db_name = db_name
        self.ttl_seconds = ttl_seconds

    async def resolve_schema(self, table_name: str) -> Tuple[TableSchema, bool]:
        return await self._read_through(
            schema_cache_key(self.db_name, table_name),
            decode=lambda raw: TableSchema.model_validate_json(raw),
            encode=lambda value: value.model_dump_json(by_alias=True),
            fetch=lambda: self.store.describe_table(table_name),
        )

    async def resolve_indexes(self, table_name: str) -> Tuple[List[IndexDescriptor], bool]:
        return await self._read_through(
            indexes_cache_key(self.db_name, table_name),
            decode=_INDEX_LIST.validate_json,
            encode=lambda value: _INDEX_LIST.dump_json(value, by_alias=True),
            fetch=lambda: self.store.list_indexes(table_name),
        )

    async def resolve_tables(self, table_names: Sequence[str]) -> ResolvedTables:
        """
        Resolve schema and indexes of every table concurrently.
        Any failing lookup fails the whole call; no partial result is returned.
        """
        schema_results, index_results = await asyncio.gather(
            asyncio.gather(*(self.resolve_schema(name) for name in table_names)),
            asyncio.gather(*(self.resolve_indexes(name) for name in table_names)),
        )

        all_hit = True
        for _, hit in (*schema_results, *index_results):
            all_hit = all_hit and hit

        indexes: List[IndexDescriptor] = []
        for table_indexes, _ in index_results:
            indexes.extend(table_indexes)

        return ResolvedTables(
            schemas=[schema for schema, _ in schema_results],
            indexes=indexes,
            all_hit=all_hit,
        )

    async def invalidate(self, table_name: str) -> None:
        await asyncio.gather(
            self.cache.delete(schema_cache_key(self.db_name, table_name)),
            self.cache.delete(indexes_cache_key(self.db_name, table_name)),
        )
        SmartLogger.log(
            "INFO",
            "optimizer.schema_cache.invalidated",
            category="optimizer.schema_cache",
            params={"db": self.db_name, "table": table_name},
        )

    async def _read_through(
        self,
        key: str,
        *,
        decode: Callable[[bytes], T],
        encode: Callable[[T], object],
        fetch: Callable[[], Awaitable[T]],
    ) -> Tuple[T, bool]:
        cached = await self._read_cached(key, decode)
        if cached is not None:
            SmartLogger.log(
                "DEBUG",
                "optimizer.schema_cache.hit",
                category="optimizer.schema_cache",
                params={"key": key},
            )
            return cached, True

        value = await fetch()
        try:
            await self.cache.set_with_ttl(key, encode(value), self.ttl_seconds)
        except Exception as exc:
            SmartLogger.log(
                "WARNING",
                "optimizer.schema_cache.write_failed",
                category="optimizer.schema_cache",
                params={"key": key, "exception": repr(exc)},
            )
        SmartLogger.log(
            "DEBUG",
            "optimizer.schema_cache.miss",
            category="optimizer.schema_cache",
            params={"key": key},
        )
        return value, False

    async def _read_cached(self, key: str, decode: Callable[[bytes], T]) -> Optional[T]:
        try:
            raw = await self.cache.get(key)
        except Exception as exc:
            SmartLogger.log(
                "WARNING",
                "optimizer.schema_cache.read_failed",
                category="optimizer.schema_cache",
                params={"key": key, "exception": repr(exc)},
            )
            return None
        if raw is None:
            return None
        try:
            return decode(raw)
        except ValidationError:
            SmartLogger.log(
                "WARNING",
                "optimizer.schema_cache.undecodable_entry",
                category="optimizer.schema_cache",
                params={"key": key},
            )
            return None

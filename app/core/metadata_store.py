"""Read-only metadata access to the target MySQL database."""
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import aiomysql

from app.core.errors import ExecutionError, NotFoundError
from app.core.interfaces import TextClassifier
from app.core.models import ColumnDescriptor, ExplainRow, IndexDescriptor, TableSchema
from app.smart_logger import SmartLogger

# MySQL server error codes
ER_NO_SUCH_TABLE = 1146
ER_BAD_TABLE_ERROR = 1051


class MetadataStore(ABC):
    """Typed read operations against the relational database."""

    @abstractmethod
    async def describe_table(self, table_name: str) -> TableSchema:
        """Return the table's DDL and columns. Raises NotFoundError if absent."""

    @abstractmethod
    async def list_indexes(self, table_name: str) -> List[IndexDescriptor]:
        """Return one descriptor per (index, column) pair."""

    @abstractmethod
    async def explain(self, statement: str) -> List[ExplainRow]:
        """Run EXPLAIN for the statement. Raises ExecutionError when rejected."""

    @abstractmethod
    async def ping(self) -> bool:
        """Return True when the database answers; raise otherwise."""


def quote_identifier(identifier: str) -> str:
    """Backtick-quote a (possibly schema-qualified) MySQL identifier."""
    parts = [part.strip().strip("`") for part in str(identifier or "").split(".")]
    parts = [part for part in parts if part]
    if not parts:
        raise NotFoundError("Empty table name")
    return ".".join("`" + part.replace("`", "``") + "`" for part in parts)


def _error_code(exc: Exception) -> Optional[int]:
    if exc.args and isinstance(exc.args[0], int):
        return exc.args[0]
    return None


def _as_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (bytes, bytearray)):
        return value.decode("utf-8", errors="replace")
    return str(value)


class MySQLMetadataStore(MetadataStore):
    """MetadataStore backed by an aiomysql connection pool."""

    def __init__(self, pool: aiomysql.Pool):
        self.pool = pool

    async def _fetch_all(self, sql: str) -> List[Dict[str, Any]]:
        async with self.pool.acquire() as conn:
            async with conn.cursor(aiomysql.DictCursor) as cursor:
                await cursor.execute(sql)
                rows = await cursor.fetchall()
        return list(rows or [])

    async def describe_table(self, table_name: str) -> TableSchema:
        quoted = quote_identifier(table_name)
        try:
            create_rows = await self._fetch_all(f"SHOW CREATE TABLE {quoted}")
            column_rows = await self._fetch_all(f"SHOW COLUMNS FROM {quoted}")
        except aiomysql.MySQLError as exc:
            if _error_code(exc) in (ER_NO_SUCH_TABLE, ER_BAD_TABLE_ERROR):
                raise NotFoundError(f"Table {table_name} not found") from exc
            raise ExecutionError(f"Failed to describe table {table_name}: {exc}") from exc

        if not create_rows:
            raise NotFoundError(f"Table {table_name} not found")

        create_row = create_rows[0]
        create_statement = create_row.get("Create Table") or create_row.get("Create View") or ""

        columns = [
            ColumnDescriptor(
                name=row["Field"],
                type=_as_text(row["Type"]) or "",
                nullable=row.get("Null") == "YES",
                key_role=row.get("Key") or "",
                default_value=_as_text(row.get("Default")),
                extra=row.get("Extra") or "",
            )
            for row in column_rows
        ]

        SmartLogger.log(
            "DEBUG",
            "optimizer.metadata.describe_table",
            category="optimizer.metadata",
            params={"table": table_name, "columns": len(columns)},
        )
        return TableSchema(
            table_name=table_name,
            create_statement=create_statement,
            columns=columns,
        )

    async def list_indexes(self, table_name: str) -> List[IndexDescriptor]:
        quoted = quote_identifier(table_name)
        try:
            rows = await self._fetch_all(f"SHOW INDEX FROM {quoted}")
        except aiomysql.MySQLError as exc:
            if _error_code(exc) in (ER_NO_SUCH_TABLE, ER_BAD_TABLE_ERROR):
                raise NotFoundError(f"Table {table_name} not found") from exc
            raise ExecutionError(f"Failed to list indexes for {table_name}: {exc}") from exc

        indexes = [
            IndexDescriptor(
                table_name=row.get("Table") or table_name,
                index_name=row["Key_name"],
                column_name=row.get("Column_name"),
                index_type=row.get("Index_type") or "",
                cardinality=int(row.get("Cardinality") or 0),
                non_unique=int(row.get("Non_unique") or 0),
            )
            for row in rows
        ]

        SmartLogger.log(
            "DEBUG",
            "optimizer.metadata.list_indexes",
            category="optimizer.metadata",
            params={"table": table_name, "indexes": len(indexes)},
        )
        return indexes

    async def explain(self, statement: str) -> List[ExplainRow]:
        explain_sql = f"EXPLAIN {statement.strip().rstrip(';')}"
        try:
            rows = await self._fetch_all(explain_sql)
        except aiomysql.MySQLError as exc:
            raise ExecutionError(f"Failed to execute EXPLAIN: {exc}") from exc

        return [
            ExplainRow(
                id=int(row.get("id") or 0),
                select_type=row.get("select_type") or "",
                table=row.get("table") or "",
                access_type=row.get("type") or "",
                possible_keys=_as_text(row.get("possible_keys")),
                key=_as_text(row.get("key")),
                key_length=_as_text(row.get("key_len")),
                ref=_as_text(row.get("ref")),
                estimated_rows=int(row.get("rows") or 0),
                filtered_percent=float(row["filtered"]) if row.get("filtered") is not None else 100.0,
                extra=row.get("Extra") or "",
            )
            for row in rows
        ]

    async def ping(self) -> bool:
        async with self.pool.acquire() as conn:
            await conn.ping(reconnect=False)
        return True


class GuardedMetadataStore(MetadataStore):
    """
    Wraps a MetadataStore so that every database statement issued on behalf of
    the caller first passes the safety gate. Raises SecurityError when the
    gate rejects the statement.
    """

    def __init__(self, store: MetadataStore, gate: TextClassifier):
        self.store = store
        self.gate = gate

    async def describe_table(self, table_name: str) -> TableSchema:
        await self.gate.enforce(f"SHOW CREATE TABLE {table_name}")
        return await self.store.describe_table(table_name)

    async def list_indexes(self, table_name: str) -> List[IndexDescriptor]:
        await self.gate.enforce(f"SHOW INDEX FROM {table_name}")
        return await self.store.list_indexes(table_name)

    async def explain(self, statement: str) -> List[ExplainRow]:
        await self.gate.enforce(f"EXPLAIN {statement}")
        return await self.store.explain(statement)

    async def ping(self) -> bool:
        return await self.store.ping()

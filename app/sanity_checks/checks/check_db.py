from __future__ import annotations

import asyncio
import time
from typing import Any

import aiomysql

from app.config import settings
from app.sanity_checks.result import SanityCheckResult


async def check_database(pool: aiomysql.Pool, *, timeout_seconds: float = 10.0) -> SanityCheckResult:
    """
    MySQL connection + basic metadata queries.

    Fail-fast conditions:
    - the server does not answer within ``timeout_seconds``
    - the configured database is not selected on the connection
    """
    name = "mysql"
    started = time.perf_counter()
    target = {
        "host": f"{settings.mysql_host}:{settings.mysql_port}",
        "database": settings.mysql_database,
    }

    async def _run() -> dict[str, Any]:
        async with pool.acquire() as conn:
            async with conn.cursor() as cursor:
                await cursor.execute("SELECT VERSION()")
                version_row = await cursor.fetchone()

                await cursor.execute("SELECT DATABASE()")
                db_row = await cursor.fetchone()
                current_db = db_row[0] if db_row else None
                if not current_db:
                    raise RuntimeError(f"No database selected (expected {settings.mysql_database!r})")

                await cursor.execute("SHOW TABLES")
                table_rows = await cursor.fetchall()

        return {
            **target,
            "current_db": current_db,
            "table_count": len(table_rows),
            "version": str(version_row[0]) if version_row else "unknown",
        }

    try:
        data = await asyncio.wait_for(_run(), timeout=timeout_seconds)
    except Exception as exc:
        return SanityCheckResult.failed(
            name,
            "MySQL sanity check failed",
            exc,
            data=target,
            elapsed_ms=round((time.perf_counter() - started) * 1000, 1),
        )
    return SanityCheckResult(
        name=name,
        ok=True,
        detail="OK",
        data=data,
        elapsed_ms=round((time.perf_counter() - started) * 1000, 1),
    )

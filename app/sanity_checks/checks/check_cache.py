from __future__ import annotations

import asyncio
import time
import uuid

from app.config import settings
from app.core.result_cache import ResultCache
from app.sanity_checks.result import SanityCheckResult


async def check_cache(cache: ResultCache, *, timeout_seconds: float = 5.0) -> SanityCheckResult:
    """Ping the result cache and verify a short-lived write/read/delete cycle."""
    name = "cache"
    started = time.perf_counter()
    data = {"backend": settings.cache_backend}
    if settings.cache_backend == "redis":
        data["host"] = f"{settings.redis_host}:{settings.redis_port}"

    async def _run() -> None:
        if not await cache.ping():
            raise RuntimeError("cache ping returned a falsy reply")
        key = f"startup_sanity:{uuid.uuid4().hex}"
        await cache.set_with_ttl(key, b"ok", 10)
        try:
            value = await cache.get(key)
            if value != b"ok":
                raise RuntimeError(f"cache read-back mismatch: {value!r}")
        finally:
            await cache.delete(key)

    try:
        await asyncio.wait_for(_run(), timeout=timeout_seconds)
    except Exception as exc:
        return SanityCheckResult.failed(
            name,
            "Result cache sanity check failed",
            exc,
            data=data,
            elapsed_ms=round((time.perf_counter() - started) * 1000, 1),
        )
    return SanityCheckResult(
        name=name,
        ok=True,
        detail="OK",
        data=data,
        elapsed_ms=round((time.perf_counter() - started) * 1000, 1),
    )

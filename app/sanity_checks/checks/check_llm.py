from __future__ import annotations

import asyncio
import time

from app.config import settings
from app.core.llm_client import LanguageModelClient
from app.sanity_checks.result import SanityCheckResult


async def check_llm(llm: LanguageModelClient, *, timeout_seconds: float = 20.0) -> SanityCheckResult:
    """
    LLM connectivity check through the configured provider.

    Any non-empty reply counts as success; some OpenAI-compatible providers do
    not echo "OK" exactly.
    """
    name = "llm"
    started = time.perf_counter()
    data = {
        "llm_provider": settings.llm_provider,
        "llm_model": settings.llm_model,
        "llm_provider_url": (settings.llm_provider_url or "").strip() or None,
    }

    try:
        reachable = await asyncio.wait_for(llm.ping(), timeout=timeout_seconds)
        if not reachable:
            raise RuntimeError("LLM returned an empty reply")
    except Exception as exc:
        return SanityCheckResult.failed(
            name,
            "LLM sanity check failed",
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

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, List

from app.smart_logger import SmartLogger
from app.sanity_checks.result import SanityCheckResult
from app.sanity_checks.checks.check_cache import check_cache
from app.sanity_checks.checks.check_db import check_database
from app.sanity_checks.checks.check_llm import check_llm

if TYPE_CHECKING:
    from app.deps import Dependencies


_CHECK_NAMES = ("mysql", "cache", "llm")


async def run_startup_sanity_checks(deps: "Dependencies") -> List[SanityCheckResult]:
    """Run all checks concurrently and log each result."""
    outcomes = await asyncio.gather(
        check_database(deps.mysql_pool, timeout_seconds=float(deps.settings.mysql_connect_timeout_seconds)),
        check_cache(deps.cache),
        check_llm(deps.llm, timeout_seconds=float(deps.settings.llm_timeout_seconds)),
        return_exceptions=True,
    )

    results: List[SanityCheckResult] = []
    for name, outcome in zip(_CHECK_NAMES, outcomes):
        if isinstance(outcome, BaseException):
            # A check should return a failed result rather than raise.
            results.append(
                SanityCheckResult(
                    name=name,
                    ok=False,
                    detail="A sanity check raised unexpectedly",
                    error=repr(outcome),
                )
            )
        else:
            results.append(outcome)

    for r in results:
        SmartLogger.log(
            "INFO" if r.ok else "ERROR",
            f"startup.sanity.{r.name}." + ("ok" if r.ok else "fail"),
            category="startup.sanity",
            params=r.to_log_params(),
            max_inline_chars=0,
        )
    return results


async def run_startup_sanity_checks_or_raise(deps: "Dependencies") -> List[SanityCheckResult]:
    """
    Run startup sanity checks (fail-fast).

    Raises:
        RuntimeError: if any check fails.
    """
    results = await run_startup_sanity_checks(deps)
    failed = [r for r in results if not r.ok]
    if failed:
        SmartLogger.log(
            "CRITICAL",
            "startup.sanity.failed",
            category="startup.sanity",
            params={"failed": [f.name for f in failed]},
            max_inline_chars=0,
        )
        raise RuntimeError("Startup sanity checks failed. See logs for details.")

    SmartLogger.log("INFO", "startup.sanity.passed", category="startup.sanity", params=None, max_inline_chars=0)
    return results
